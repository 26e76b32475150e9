from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from dialectic.errors import DocumentIdentityError, RenderValidationError, StorageDownloadError
from dialectic.models.contribution import DialecticContribution
from dialectic.models.project_resource import DialecticProjectResource
from dialectic.services.document_renderer import DocumentRenderer, render_markdown_to_html

PARAMS = {
    "projectId": "project-1",
    "sessionId": "session-1",
    "iterationNumber": 1,
    "stageSlug": "thesis",
    "documentIdentity": "root",
    "documentKey": "business_case",
    "sourceContributionId": "root",
    "template_filename": None,
}


def _chunk(id, continuation_count=0, text_key=None):
    return DialecticContribution(
        id=id,
        session_id="session-1",
        stage="thesis",
        iteration_number=1,
        model_id="model-1",
        model_name="claude",
        document_key="business_case",
        storage_bucket="bucket",
        storage_path="work",
        file_name=f"{id}.md",
        continuation_count=continuation_count,
        document_relationships={"thesis": "root"},
    )


@pytest.fixture
def chain(db, project_session):
    db.add_all([_chunk("root"), _chunk("chunk-1", continuation_count=1)])
    db.commit()


def _renderer(notifications=None):
    texts = {"work/root.md": b"# Business case\n\nPart one. ", "work/chunk-1.md": b"Part two."}
    upload = MagicMock(return_value=("key", "s3://bucket/key"))
    download = MagicMock(side_effect=lambda key, bucket=None: texts[key])
    return DocumentRenderer(upload=upload, download=download, notifications=notifications)


def test_render_markdown_to_html_builds_page():
    html = render_markdown_to_html("# Title\n\nBody text", title="Business Case", stage_slug="thesis",
                                   iteration_number=1, model_name="claude")

    assert "<h1 id=\"title\">Title</h1>" in html
    assert "Business Case" in html
    assert "claude" in html


def test_unknown_template_is_rejected():
    with pytest.raises(RenderValidationError):
        render_markdown_to_html("x", title="t", stage_slug="s", iteration_number=1, template_filename="../secrets.html")


def test_render_concatenates_chain_and_upserts_resource(db, chain):
    renderer = _renderer()

    result = renderer.render_document(db, PARAMS)

    assert result["renderedBytes"] == b"# Business case\n\nPart one. Part two."
    uploaded = {call.args[0]: call.kwargs["content_type"] for call in renderer.upload.call_args_list}
    base = "projects/project-1/sessions/session-1/iteration_1/thesis/documents"
    assert uploaded == {f"{base}/claude_business_case.md": "text/markdown",
                        f"{base}/claude_business_case.html": "text/html"}

    resource = db.get(DialecticProjectResource, result["latestRenderedResourceId"])
    assert resource.resource_type == "rendered_document"
    assert resource.document_key == "business_case"
    assert resource.resource_description["chunk_count"] == 2
    assert result["pathContext"]["sourceContributionId"] == "root"


def test_rerender_updates_same_resource(db, chain):
    renderer = _renderer()

    first = renderer.render_document(db, PARAMS)
    second = renderer.render_document(db, {**PARAMS, "sourceContributionId": "chunk-1"})

    assert first["latestRenderedResourceId"] == second["latestRenderedResourceId"]
    assert db.query(DialecticProjectResource).count() == 1
    assert second["pathContext"]["sourceContributionId"] == "chunk-1"


def test_missing_root_raises(db, project_session):
    with pytest.raises(DocumentIdentityError):
        _renderer().render_document(db, PARAMS)


def test_source_outside_chain_raises(db, chain):
    with pytest.raises(DocumentIdentityError):
        _renderer().render_document(db, {**PARAMS, "sourceContributionId": "stranger"})


def test_undecodable_chunk_is_a_download_failure(db, chain):
    renderer = _renderer()
    renderer.download.side_effect = lambda key, bucket=None: b"\xff\xfe bad"

    with pytest.raises(StorageDownloadError) as exc:
        renderer.render_document(db, PARAMS)

    assert "not valid UTF-8" in str(exc.value)
    renderer.upload.assert_not_called()


def test_chunk_render_emits_intermediate_event(db, chain):
    notifications = MagicMock()
    job = SimpleNamespace(id="render-1", session_id="session-1", stage_slug="thesis", iteration_number=1,
                          payload={"sessionId": "session-1", "stageSlug": "thesis", "iterationNumber": 1})

    _renderer(notifications).render_document(db, {**PARAMS, "sourceContributionId": "chunk-1"}, job=job,
                                             owner_user_id="user-1")

    event, target = notifications.send_document_centric_notification.call_args.args
    assert event["type"] == "render_chunk_completed"
    assert target == "user-1"
