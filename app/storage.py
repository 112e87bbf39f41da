"""Cloudflare R2 object storage for uploaded files"""

import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import R2_ACCESS_KEY_ID, R2_ACCOUNT_ID, R2_BUCKET_NAME, R2_PUBLIC_URL, R2_SECRET_ACCESS_KEY

logger = logging.getLogger(__name__)

__all__ = ["get_r2_client", "generate_presigned_url", "upload_object", "StorageError"]

# Longest expiry SigV4 allows (7 days)
PRESIGNED_URL_EXPIRATION = 604800


class StorageError(Exception):
    """Raised when the object store rejects or fails a request"""


def get_r2_client():
    """Create and return an R2 client."""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
    )


def generate_presigned_url(key: str, expiration: int = PRESIGNED_URL_EXPIRATION) -> str:
    """Generate a presigned URL for accessing a private object in R2."""
    r2 = get_r2_client()
    try:
        url = r2.generate_presigned_url(
            "get_object",
            Params={"Bucket": R2_BUCKET_NAME, "Key": key, "ResponseContentDisposition": "inline"},
            ExpiresIn=expiration,
        )
        logger.info(f"✅ Generated presigned URL for key: {key}")
        return url
    except (BotoCoreError, ClientError) as e:
        logger.error(f"❌ Failed to generate presigned URL for key {key}: {e}")
        raise StorageError(str(e)) from e


def public_url_for(key: str) -> str:
    """Durable URL for a stored object, presigned when the bucket is private"""
    if R2_PUBLIC_URL:
        return f"{R2_PUBLIC_URL.rstrip('/')}/{key}"
    return generate_presigned_url(key)


def upload_object(key: str, content: bytes, content_type: str, metadata: dict = None) -> dict:
    """
    Store a binary payload under ``key``.

    Returns:
        Dict with the object key and its URL
    """
    r2 = get_r2_client()
    try:
        r2.put_object(
            Bucket=R2_BUCKET_NAME,
            Key=key,
            Body=content,
            ContentType=content_type,
            Metadata=metadata or {},
        )
    except (BotoCoreError, ClientError) as e:
        logger.error(f"❌ Failed to upload {key} to R2: {e}")
        raise StorageError(str(e)) from e

    logger.info(f"📤 Uploaded {len(content)} bytes to R2: {key}")
    return {"key": key, "url": public_url_for(key)}
