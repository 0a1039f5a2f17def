import boto3
import logging
import os
import uuid
from typing import Optional
from botocore.exceptions import BotoCoreError, ClientError
from app.config import settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = ["image/jpeg", "image/png", "image/gif", "image/webp"]


class StorageError(Exception):
    pass


def get_s3_client():
    return boto3.client(
        's3',
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        region_name=settings.aws_region
    )


def public_url(s3_key: str) -> str:
    return f"https://{settings.s3_bucket}.s3.{settings.aws_region}.amazonaws.com/{s3_key}"


def key_from_url(url: str) -> Optional[str]:
    """Inverse of public_url for objects stored in our bucket"""
    prefix = public_url("")
    if url and url.startswith(prefix):
        return url[len(prefix):]
    return None


def upload_bytes(content: bytes, filename: str, content_type: str, folder: str = "amc-assets") -> str:
    """
    Upload file content to S3 under a unique key and return its public URL
    """
    file_ext = os.path.splitext(filename)[1] if filename else ".jpg"
    s3_key = f"{folder}/{uuid.uuid4()}{file_ext}"

    try:
        s3_client = get_s3_client()
        s3_client.put_object(
            Bucket=settings.s3_bucket,
            Key=s3_key,
            Body=content,
            ContentType=content_type or "application/octet-stream",
        )
    except (ClientError, BotoCoreError) as e:
        raise StorageError(f"Error uploading to S3: {str(e)}") from e

    logger.info(f"Uploaded {filename} to s3://{settings.s3_bucket}/{s3_key}")
    return public_url(s3_key)


def delete_from_s3(s3_key: str) -> bool:
    """
    Delete file from S3
    """
    try:
        s3_client = get_s3_client()
        s3_client.delete_object(Bucket=settings.s3_bucket, Key=s3_key)
        return True
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Error deleting from S3: {str(e)}")
        return False


def delete_urls(urls) -> int:
    """Best-effort removal of previously uploaded objects; returns how many were deleted"""
    deleted = 0
    for url in urls:
        s3_key = key_from_url(url)
        if s3_key and delete_from_s3(s3_key):
            deleted += 1
    return deleted
