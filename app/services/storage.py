# app/services/storage.py
import logging
from typing import Iterator, Optional

import boto3
from botocore.exceptions import ClientError

from app.config import settings

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class StorageError(Exception):
    pass


class ObjectNotFound(StorageError):
    pass


class ObjectStorage:
    """Thin wrapper over the S3-compatible bucket holding plugin archives and media."""

    def __init__(self, client=None, bucket: Optional[str] = None):
        self.bucket = bucket or settings.r2_bucket_name
        self.client = client or boto3.client(
            "s3",
            endpoint_url=settings.storage_endpoint,
            aws_access_key_id=settings.r2_access_key_id,
            aws_secret_access_key=settings.r2_secret_access_key,
            region_name="auto",
        )

    def open(self, key: str) -> Iterator[bytes]:
        """Fetch ``key`` and return an iterator over its bytes."""
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                raise ObjectNotFound(key) from e
            logger.exception(f"Object storage read failed for {key}")
            raise StorageError(key) from e

        return response["Body"].iter_chunks(chunk_size=CHUNK_SIZE)


_storage: Optional[ObjectStorage] = None


def get_storage() -> ObjectStorage:
    global _storage
    if _storage is None:
        _storage = ObjectStorage()
    return _storage
