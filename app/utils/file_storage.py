"""
File storage utilities for document attachments.
Handles uploads to the R2 private bucket and storage key generation.
"""

import logging
import mimetypes
from datetime import datetime
from typing import Optional

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

from ..config import (
    R2_ACCESS_KEY_ID,
    R2_ACCOUNT_ID,
    R2_BUCKET_NAME,
    R2_SECRET_ACCESS_KEY,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class StorageUploadError(Exception):
    """Raised when the file store rejects an upload"""

    pass


def get_r2_client():
    """Get configured boto3 client for Cloudflare R2"""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
        region_name="auto",
    )


def guess_content_type(filename: str) -> str:
    content_type, _ = mimetypes.guess_type(filename or "")
    return content_type or DEFAULT_CONTENT_TYPE


def file_extension(filename: Optional[str]) -> str:
    if filename and "." in filename:
        return filename.rsplit(".", 1)[-1].lower()
    return "bin"


def generate_attachment_key(
    entity_folder: str, entity_id: int, remote_id: str, filename: Optional[str]
) -> str:
    """
    Generate a unique storage key for an attachment pulled from QuickBooks.

    Format: {entity_folder}/{entity_id}/{timestamp_ms}-qb-{remote_id}.{ext}
    """
    timestamp = int(datetime.now().timestamp() * 1000)
    return f"{entity_folder}/{entity_id}/{timestamp}-qb-{remote_id}.{file_extension(filename)}"


class AttachmentStorage:
    """Thin wrapper over the R2 bucket used for document attachments"""

    def __init__(self, client=None, bucket: str = R2_BUCKET_NAME):
        self._client = client
        self.bucket = bucket

    @property
    def client(self):
        if self._client is None:
            self._client = get_r2_client()
        return self._client

    def upload(self, key: str, content: bytes, content_type: Optional[str] = None) -> str:
        """Upload bytes to the private bucket and return the key"""
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type or DEFAULT_CONTENT_TYPE,
            )
        except ClientError as e:
            logger.error(f"❌ R2 upload failed for {key}: {e}")
            raise StorageUploadError(f"Storage upload failed: {e}") from e

        logger.info(f"✅ Uploaded {len(content)} bytes to R2: {key}")
        return key

    def delete(self, key: str) -> bool:
        """Delete an object; returns False instead of raising so callers can keep going"""
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            logger.error(f"❌ R2 delete failed for {key}: {e}")
            return False

        logger.info(f"🗑️ Deleted R2 object: {key}")
        return True
