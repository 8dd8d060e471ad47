"""
Blob Store: durable storage for uploaded and processed media.

put_*() returns a locator (public URL); get_to_file() downloads a locator
into a local path. Two backends:

- S3BlobStore: boto3 S3 client (bucket/region/credentials from Settings)
- LocalBlobStore: a directory on disk, served by the API under /files

boto3 and filesystem calls block, so they run in a worker thread.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
import shutil
import time
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional
from urllib.parse import quote, unquote, urlparse
from uuid import UUID, uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class StorageError(Exception):
    """A Blob Store put/get failed."""


def new_input_key(field_name: str, suffix: str = ".mp4") -> str:
    """e.g. video1-1718000000000-3fa2b1c4.mp4 (unique across concurrent uploads)."""
    return f"{field_name}-{int(time.time() * 1000)}-{uuid4().hex[:8]}{suffix}"


def new_output_key(job_id: UUID | str) -> str:
    """Fresh key per delivery; the job id is embedded for traceability."""
    return f"{job_id}-{uuid4().hex}-merged.mp4"


def key_from_locator(locator: str) -> str:
    """Blob keys are flat, so the key is the last path segment of the URL."""
    path = unquote(urlparse(locator).path)
    key = PurePosixPath(path).name
    if not key:
        raise StorageError(f"Locator has no object key: {locator!r}")
    return key


class BlobStore(ABC):
    """Interface shared by the storage backends."""

    async def put_file(self, path: Path, key: str, content_type: str = "video/mp4") -> str:
        def _put() -> str:
            with open(path, "rb") as fh:
                return self._put_fileobj(fh, key, content_type)

        return await self._run("put", key, _put)

    async def put_fileobj(self, fileobj: BinaryIO, key: str, content_type: str = "video/mp4") -> str:
        return await self._run("put", key, self._put_fileobj, fileobj, key, content_type)

    async def get_to_file(self, locator: str, dest: Path) -> Path:
        key = key_from_locator(locator)
        await self._run("get", key, self._get_to_file, key, dest)
        return dest

    @abstractmethod
    def locator_for(self, key: str) -> str:
        ...

    @abstractmethod
    def _put_fileobj(self, fileobj: BinaryIO, key: str, content_type: str) -> str:
        """Blocking upload; runs in a worker thread."""

    @abstractmethod
    def _get_to_file(self, key: str, dest: Path) -> None:
        """Blocking download; runs in a worker thread."""

    async def _run(self, op: str, key: str, fn, *args):
        try:
            result = await asyncio.to_thread(fn, *args)
        except StorageError:
            raise
        except (BotoCoreError, ClientError, OSError) as e:
            logger.error("Blob store operation failed", op=op, key=key, error=str(e))
            raise StorageError(f"Blob store {op} failed for {key}: {e}") from e
        logger.debug("Blob store operation done", op=op, key=key)
        return result


class S3BlobStore(BlobStore):
    def __init__(self, settings: Optional[Settings] = None, client=None) -> None:
        self.settings = settings or get_settings()
        self.bucket = self.settings.s3_bucket
        self.region = self.settings.aws_region
        self._client = client or boto3.client(
            "s3",
            region_name=self.region,
            aws_access_key_id=self.settings.aws_access_key_id,
            aws_secret_access_key=self.settings.aws_secret_access_key,
            aws_session_token=self.settings.aws_session_token,  # temporary credentials
        )
        logger.info("S3 blob store ready", bucket=self.bucket, region=self.region)

    def locator_for(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quote(key)}"

    def _put_fileobj(self, fileobj: BinaryIO, key: str, content_type: str) -> str:
        extra = {"ContentType": content_type}
        if self.settings.s3_public_read:
            extra["ACL"] = "public-read"
        self._client.upload_fileobj(fileobj, self.bucket, key, ExtraArgs=extra)
        return self.locator_for(key)

    def _get_to_file(self, key: str, dest: Path) -> None:
        self._client.download_file(self.bucket, key, str(dest))


class LocalBlobStore(BlobStore):
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.base_path = Path(self.settings.local_storage_path)
        self.base_url = self.settings.blob_public_base_url.rstrip("/")

    def _ensure_base_path(self) -> None:
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        # keys are flat; refuse anything that would escape the storage dir
        if key != PurePosixPath(key).name or key in ("", ".", ".."):
            raise StorageError(f"Invalid blob key: {key!r}")
        return self.base_path / key

    def locator_for(self, key: str) -> str:
        return f"{self.base_url}/{quote(key)}"

    def _put_fileobj(self, fileobj: BinaryIO, key: str, content_type: str) -> str:
        self._ensure_base_path()
        target = self._path_for(key)
        tmp = target.with_name(f".{key}.part")
        try:
            with open(tmp, "wb") as out:
                shutil.copyfileobj(fileobj, out)
            tmp.replace(target)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
        return self.locator_for(key)

    def _get_to_file(self, key: str, dest: Path) -> None:
        source = self._path_for(key)
        if not source.is_file():
            raise StorageError(f"Blob not found: {key}")
        shutil.copyfile(source, dest)


_store: Optional[BlobStore] = None


def build_blob_store(settings: Optional[Settings] = None) -> BlobStore:
    settings = settings or get_settings()
    if settings.storage_backend == "local":
        return LocalBlobStore(settings)
    return S3BlobStore(settings)


def get_blob_store() -> BlobStore:
    global _store
    if _store is None:
        _store = build_blob_store()
    return _store
