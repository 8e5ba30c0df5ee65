"""
Object storage adapter for avatar images.

Talks to a Supabase-compatible storage REST API:
  upload:     POST {url}/storage/v1/object/{bucket}/{path}
  public URL: {url}/storage/v1/object/public/{bucket}/{path}
"""
import logging
import re
import time
import uuid
from dataclasses import dataclass
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Upload rejected by the storage provider or provider unreachable."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class StoredObject:
    bucket: str
    path: str
    public_url: str


class ObjectStorage(Protocol):
    bucket: str

    async def upload(
        self,
        data: bytes,
        *,
        content_type: str,
        object_path: str | None = None,
        file_name: str | None = None,
        prefix: str | None = None,
        upsert: bool = False,
    ) -> StoredObject: ...

    async def aclose(self) -> None: ...


def sanitize_file_name(value: str | None) -> str:
    if not value:
        return "upload.bin"
    return re.sub(r"[^a-zA-Z0-9.\-_]", "_", value)


def build_object_path(
    *,
    object_path: str | None = None,
    file_name: str | None = None,
    prefix: str | None = None,
    upsert: bool = False,
) -> str:
    """
    Resolve the key an object is stored under.

    An explicit object_path wins. Otherwise prefix/file_name is used, with a
    unique suffix unless the caller wants to overwrite (upsert).
    """
    if object_path and object_path.lstrip("/"):
        return object_path.lstrip("/")

    safe_prefix = prefix.strip("/") if prefix else ""
    safe_name = sanitize_file_name(file_name)
    if not upsert:
        safe_name = f"{int(time.time() * 1000)}-{uuid.uuid4()}-{safe_name}"
    return "/".join(part for part in (safe_prefix, safe_name) if part)


class SupabaseStorage:
    def __init__(
        self,
        base_url: str,
        key: str,
        bucket: str,
        *,
        cache_control: str = "3600",
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        if not bucket:
            raise ValueError("Storage bucket name is required")
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.cache_control = cache_control
        self._key = key
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def upload(
        self,
        data: bytes,
        *,
        content_type: str,
        object_path: str | None = None,
        file_name: str | None = None,
        prefix: str | None = None,
        upsert: bool = False,
    ) -> StoredObject:
        if not data:
            raise StorageError("Upload buffer is empty")

        path = build_object_path(
            object_path=object_path, file_name=file_name, prefix=prefix, upsert=upsert
        )
        url = f"{self.base_url}/storage/v1/object/{self.bucket}/{path}"

        try:
            response = await self._client.post(
                url,
                content=data,
                headers={
                    "Authorization": f"Bearer {self._key}",
                    "apikey": self._key,
                    "Content-Type": content_type,
                    "cache-control": f"max-age={self.cache_control}",
                    "x-upsert": "true" if upsert else "false",
                },
            )
        except httpx.HTTPError as e:
            raise StorageError(f"Storage request failed: {e}") from e

        if response.is_error:
            raise StorageError(
                f"Storage upload failed: {response.text}",
                status_code=response.status_code,
            )

        logger.info("Uploaded %d bytes to %s/%s", len(data), self.bucket, path)
        return StoredObject(bucket=self.bucket, path=path, public_url=self.public_url(path))

    async def aclose(self) -> None:
        await self._client.aclose()
