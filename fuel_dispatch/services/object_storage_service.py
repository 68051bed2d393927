from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)


class ObjectStorageError(Exception):
    pass


class ObjectStorageNotFoundError(ObjectStorageError):
    pass


@dataclass(frozen=True)
class StoredObject:
    bucket: str
    object_key: str
    size_bytes: int
    content_type: str
    absolute_path: Path


class LocalObjectStorageAdapter:
    def __init__(self, root_dir: Path) -> None:
        self._root_dir = root_dir
        self._root_dir.mkdir(parents=True, exist_ok=True)

    def _safe_object_path(self, bucket: str, object_key: str) -> Path:
        normalized_bucket = bucket.strip()
        if not normalized_bucket or "/" in normalized_bucket or normalized_bucket in {".", ".."}:
            raise ObjectStorageError("invalid bucket")
        key_path = PurePosixPath(object_key)
        if key_path.is_absolute() or ".." in key_path.parts:
            raise ObjectStorageError("invalid object key")
        if not key_path.parts:
            raise ObjectStorageError("object key is empty")
        return self._root_dir / normalized_bucket / Path(*key_path.parts)

    def put_bytes(
        self,
        *,
        bucket: str,
        object_key: str,
        content: bytes,
        content_type: str,
    ) -> StoredObject:
        # Existing objects are replaced so a retried upload lands on the same path.
        path = self._safe_object_path(bucket, object_key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return StoredObject(
            bucket=bucket,
            object_key=object_key,
            size_bytes=len(content),
            content_type=content_type,
            absolute_path=path,
        )

    def get_download_path(self, *, bucket: str, object_key: str) -> Path:
        path = self._safe_object_path(bucket, object_key)
        if not path.exists() or not path.is_file():
            raise ObjectStorageNotFoundError("object not found")
        return path


class ObjectStorageService:
    """Driver upload storage exposing objects under a public base URL."""

    def __init__(self, root_dir: Path | None = None) -> None:
        backend = os.getenv("OBJECT_STORAGE_BACKEND", "local").strip().lower()
        if backend != "local":
            raise ObjectStorageError(f"unsupported storage backend: {backend}")
        root = root_dir or Path(os.getenv("OBJECT_STORAGE_ROOT", "data/object_storage"))
        self._adapter = LocalObjectStorageAdapter(root)
        self.bucket = os.getenv("DRIVER_UPLOAD_BUCKET", "driver-uploads")
        self.public_base_url = os.getenv("OBJECT_STORAGE_PUBLIC_BASE_URL", "/media").rstrip("/")

    def public_url(self, object_key: str) -> str:
        return f"{self.public_base_url}/{self.bucket}/{object_key}"

    def put_object(self, *, object_key: str, content: bytes, content_type: str) -> StoredObject:
        return self._adapter.put_bytes(
            bucket=self.bucket,
            object_key=object_key,
            content=content,
            content_type=content_type,
        )

    async def upload(self, *, object_path: str, content: bytes, content_type: str) -> str:
        stored = await asyncio.to_thread(
            self.put_object,
            object_key=object_path,
            content=content,
            content_type=content_type,
        )
        logger.debug("stored %s (%d bytes) at %s", stored.object_key, stored.size_bytes, stored.absolute_path)
        return self.public_url(stored.object_key)

    def get_download_path(self, *, bucket: str, object_key: str) -> Path:
        return self._adapter.get_download_path(bucket=bucket, object_key=object_key)
