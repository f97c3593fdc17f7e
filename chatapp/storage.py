"""Object storage for avatars and message attachments.

``S3Storage`` is the production backend. Callers only depend on the
``ObjectStorage`` interface so tests can swap in an in-memory store.
"""
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi.concurrency import run_in_threadpool

from chatapp.config import settings
from chatapp.errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredObject:
    storage_id: str
    url: str


@dataclass
class Upload:
    data: bytes
    filename: str = ""
    content_type: Optional[str] = None


class ObjectStorage:
    async def upload(self, data: bytes, filename: str = "", content_type: Optional[str] = None,
                     folder: str = "uploads") -> StoredObject:
        raise NotImplementedError

    async def delete(self, storage_id: str) -> None:
        raise NotImplementedError


class S3Storage(ObjectStorage):
    def __init__(self, bucket: str, region: str, public_base_url: str = "", client=None):
        self.bucket = bucket
        self.region = region
        self.public_base_url = public_base_url.rstrip("/")
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.session.Session().client("s3", region_name=self.region)
        return self._client

    def _url_for(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def upload(self, data: bytes, filename: str = "", content_type: Optional[str] = None,
                     folder: str = "uploads") -> StoredObject:
        ext = os.path.splitext(filename or "")[1].lower()
        key = f"{folder}/{uuid.uuid4().hex}{ext}"
        extra = {"ContentType": content_type} if content_type else {}
        try:
            await run_in_threadpool(
                self.client.put_object, Bucket=self.bucket, Key=key, Body=data, **extra
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Upload of '{filename}' to bucket '{self.bucket}' failed: {e}")
            raise StorageError("Failed to upload file, please try again")
        logger.info(f"Uploaded '{filename}' as {key}")
        return StoredObject(storage_id=key, url=self._url_for(key))

    async def delete(self, storage_id: str) -> None:
        try:
            await run_in_threadpool(self.client.head_object, Bucket=self.bucket, Key=storage_id)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in ("404", "NoSuchKey", "NotFound"):
                raise NotFoundError(f"Stored object {storage_id} not found")
            raise StorageError(f"Failed to delete stored object {storage_id}")
        except BotoCoreError:
            raise StorageError(f"Failed to delete stored object {storage_id}")
        try:
            await run_in_threadpool(self.client.delete_object, Bucket=self.bucket, Key=storage_id)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Delete of {storage_id} failed: {e}")
            raise StorageError(f"Failed to delete stored object {storage_id}")


async def release_quietly(storage: ObjectStorage, storage_id: Optional[str]) -> None:
    """Delete a stored object, logging instead of raising on failure."""
    if not storage_id:
        return
    try:
        await storage.delete(storage_id)
    except (StorageError, NotFoundError) as e:
        logger.warning(f"Could not release stored object {storage_id}: {e.message}")


_storage: Optional[ObjectStorage] = None

def get_storage() -> ObjectStorage:
    global _storage
    if _storage is None:
        _storage = S3Storage(settings.S3_BUCKET, settings.S3_REGION, settings.S3_PUBLIC_BASE_URL)
    return _storage
