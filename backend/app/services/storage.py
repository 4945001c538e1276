from __future__ import annotations

import logging
from pathlib import Path

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings

logger = logging.getLogger(__name__)

LOCAL_URL_PREFIX = "/uploads"


def is_s3_configured() -> bool:
    return bool(
        settings.AWS_BUCKET_NAME
        and settings.AWS_REGION
        and settings.AWS_ACCESS_KEY_ID
        and settings.AWS_SECRET_ACCESS_KEY
    )


def _get_client():
    return boto3.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT_URL or None,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        region_name=settings.AWS_REGION,
        config=Config(signature_version="s3v4"),
    )


def _local_path(key: str) -> Path:
    root = Path(settings.LOCAL_UPLOAD_DIR).resolve()
    path = (root / key).resolve()
    if root not in path.parents:
        raise ValueError(f"Storage key escapes the upload directory: {key}")
    return path


def upload_file(file_bytes: bytes, key: str, content_type: str) -> None:
    if is_s3_configured():
        _get_client().put_object(
            Bucket=settings.AWS_BUCKET_NAME,
            Key=key,
            Body=file_bytes,
            ContentType=content_type,
        )
        logger.info("stored %s in s3 bucket %s", key, settings.AWS_BUCKET_NAME)
        return

    path = _local_path(key)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(file_bytes)
    logger.info("stored %s locally at %s", key, path)


def delete_file(key: str) -> None:
    if is_s3_configured():
        _get_client().delete_object(Bucket=settings.AWS_BUCKET_NAME, Key=key)
        return
    _local_path(key).unlink(missing_ok=True)


def generate_presigned_url(key: str, expires_in: int | None = None) -> str:
    client = _get_client()
    return client.generate_presigned_url(
        ClientMethod="get_object",
        Params={"Bucket": settings.AWS_BUCKET_NAME, "Key": key},
        ExpiresIn=expires_in or settings.SIGNED_URL_EXPIRES_SECONDS,
    )


def get_photo_url(key: str) -> str:
    """URL a browser can load the stored object from."""
    if not is_s3_configured():
        return f"{LOCAL_URL_PREFIX}/{key}"
    try:
        return generate_presigned_url(key)
    except (BotoCoreError, ClientError):
        logger.exception("Could not sign url for %s, falling back to local path", key)
        return f"{LOCAL_URL_PREFIX}/{key}"
