# src/dialectic/services/s3.py
import os
import boto3
from botocore.exceptions import ClientError
from typing import Iterable, Tuple
import logging
from opentelemetry import trace

AWS_REGION = os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION") or "us-east-1"
AWS_BUCKET = os.getenv("AWS_S3_BUCKET")  # default bucket for rendered output

_s3_client = boto3.client(
    "s3",
    region_name=AWS_REGION,
    # boto3 will pick credentials from env, ~/.aws, or IAM role
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _resolve_bucket(bucket: str | None) -> str:
    resolved = bucket or AWS_BUCKET
    if not resolved:
        # Checked per call so importing this module never requires AWS config.
        raise RuntimeError("AWS_S3_BUCKET is not set in environment variables")
    return resolved


def upload_bytes(
    key: str,
    data: bytes,
    content_type: str = None,
    bucket: str | None = None,
) -> Tuple[str, str]:
    """
    Synchronously upload bytes to S3.
    Returns (s3_key, s3_url)
    """
    target_bucket = _resolve_bucket(bucket)

    try:
        kwargs = {"Bucket": target_bucket, "Key": key, "Body": data}
        if content_type:
            kwargs["ContentType"] = content_type

        with tracer.start_as_current_span("s3.upload") as span:
            span.set_attribute("s3.bucket", target_bucket)
            span.set_attribute("s3.key", key)
            span.set_attribute("file.size", len(data) if data is not None else 0)
            logger.info("Uploading to S3: %s/%s", target_bucket, key)
            _s3_client.put_object(**kwargs)

        s3_url = f"s3://{target_bucket}/{key}"
        return key, s3_url
    except ClientError:
        logger.error("S3 upload failed for bucket=%s key=%s", target_bucket, key)
        raise


def download_bytes(key: str, bucket: str | None = None) -> bytes:
    """
    Download raw bytes from S3 for the given key.
    An object with no body is returned as b"".
    """
    target_bucket = _resolve_bucket(bucket)

    try:
        with tracer.start_as_current_span("s3.download") as span:
            span.set_attribute("s3.bucket", target_bucket)
            span.set_attribute("s3.key", key)
            logger.info("Downloading from S3: %s/%s", target_bucket, key)
            resp = _s3_client.get_object(Bucket=target_bucket, Key=key)
            body = resp.get("Body")
            if body is None:
                return b""
            return body.read()
    except ClientError:
        logger.error("S3 download failed for bucket=%s key=%s", target_bucket, key)
        raise


def delete_objects(keys: Iterable[str], bucket: str | None = None) -> int:
    """
    Delete a batch of keys. Returns the number of keys S3 reported as deleted.
    """
    target_bucket = _resolve_bucket(bucket)
    key_list = [k for k in keys if k]
    if not key_list:
        return 0

    try:
        with tracer.start_as_current_span("s3.delete") as span:
            span.set_attribute("s3.bucket", target_bucket)
            span.set_attribute("s3.key_count", len(key_list))
            logger.info("Deleting %d object(s) from S3 bucket=%s", len(key_list), target_bucket)
            resp = _s3_client.delete_objects(
                Bucket=target_bucket,
                Delete={"Objects": [{"Key": k} for k in key_list], "Quiet": False},
            )
    except ClientError:
        logger.error("S3 delete failed for bucket=%s keys=%s", target_bucket, key_list)
        raise

    errors = resp.get("Errors") or []
    if errors:
        logger.warning("S3 reported %d delete error(s): %s", len(errors), errors)
    return len(resp.get("Deleted") or [])
