import io

import pytest
from botocore.exceptions import ClientError

from dialectic.services import s3


def test_upload_bytes_success(monkeypatch):
    recorded = {}

    class DummyClient:
        def put_object(self, **kwargs):
            recorded.update(kwargs)
            return {}

    monkeypatch.setattr(s3, "_s3_client", DummyClient())
    monkeypatch.setattr(s3, "AWS_BUCKET", "test-bucket")

    key, url = s3.upload_bytes("projects/p/doc.md", b"hello", content_type="text/markdown")

    assert key == "projects/p/doc.md"
    assert url == "s3://test-bucket/projects/p/doc.md"
    assert recorded == {
        "Bucket": "test-bucket",
        "Key": "projects/p/doc.md",
        "Body": b"hello",
        "ContentType": "text/markdown",
    }


def test_upload_bytes_explicit_bucket_wins(monkeypatch):
    recorded = {}

    class DummyClient:
        def put_object(self, **kwargs):
            recorded.update(kwargs)

    monkeypatch.setattr(s3, "_s3_client", DummyClient())
    monkeypatch.setattr(s3, "AWS_BUCKET", "default-bucket")

    _, url = s3.upload_bytes("k", b"data", bucket="contributions")

    assert recorded["Bucket"] == "contributions"
    assert "ContentType" not in recorded
    assert url == "s3://contributions/k"


def test_upload_bytes_no_bucket_raises(monkeypatch):
    monkeypatch.setattr(s3, "AWS_BUCKET", None)
    with pytest.raises(RuntimeError):
        s3.upload_bytes("k", b"data")


def test_download_bytes_reads_body(monkeypatch):
    class DummyClient:
        def get_object(self, Bucket, Key):
            assert (Bucket, Key) == ("test-bucket", "a/b.md")
            return {"Body": io.BytesIO(b"# Title")}

    monkeypatch.setattr(s3, "_s3_client", DummyClient())
    monkeypatch.setattr(s3, "AWS_BUCKET", "test-bucket")

    assert s3.download_bytes("a/b.md") == b"# Title"


def test_download_bytes_missing_body(monkeypatch):
    class DummyClient:
        def get_object(self, Bucket, Key):
            return {}

    monkeypatch.setattr(s3, "_s3_client", DummyClient())

    assert s3.download_bytes("a/b.md", bucket="b") == b""


def test_download_bytes_propagates_client_error(monkeypatch):
    class DummyClient:
        def get_object(self, Bucket, Key):
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")

    monkeypatch.setattr(s3, "_s3_client", DummyClient())

    with pytest.raises(ClientError):
        s3.download_bytes("a/b.md", bucket="b")


def test_delete_objects_counts_deleted(monkeypatch):
    recorded = {}

    class DummyClient:
        def delete_objects(self, Bucket, Delete):
            recorded["keys"] = [o["Key"] for o in Delete["Objects"]]
            return {"Deleted": [{"Key": "a"}], "Errors": [{"Key": "b", "Code": "AccessDenied"}]}

    monkeypatch.setattr(s3, "_s3_client", DummyClient())

    assert s3.delete_objects(["a", "", "b"], bucket="bucket") == 1
    assert recorded["keys"] == ["a", "b"]


def test_delete_objects_empty_is_noop(monkeypatch):
    monkeypatch.setattr(s3, "AWS_BUCKET", "bucket")
    assert s3.delete_objects([]) == 0
