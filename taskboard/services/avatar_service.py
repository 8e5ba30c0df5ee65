"""
Avatar ingestion.

Avatars arrive either as a multipart upload or as a `photo` string on the
profile (a base64 data URI or an http(s) URL). Bytes are pushed to object
storage under a per-user path so a new upload overwrites the previous one.
"""
import base64
import binascii
import logging
import mimetypes
import re
from uuid import UUID

import httpx

from taskboard.core.config import Settings
from taskboard.core.errors import InternalError, ValidationError
from taskboard.models import AVATAR_URL_MAX_LENGTH
from taskboard.storage import ObjectStorage, StorageError

logger = logging.getLogger(__name__)

_DATA_URI = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>(?:;[^;,]*)*),(?P<data>.*)$", re.DOTALL)


def avatar_extension(content_type: str, filename: str | None = None) -> str:
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[-1]
    else:
        guessed = mimetypes.guess_extension(content_type) or ".bin"
        ext = guessed.lstrip(".")
    ext = re.sub(r"[^a-z0-9]", "", ext.lower())
    return ext or "bin"


def avatar_object_path(user_id: UUID, content_type: str, filename: str | None = None) -> str:
    return f"avatars/{user_id}/avatar.{avatar_extension(content_type, filename)}"


def decode_data_uri(value: str) -> tuple[bytes, str]:
    """Return (payload, content type) for a base64 data URI."""
    match = _DATA_URI.match(value)
    if not match or ";base64" not in match.group("params").lower():
        raise ValidationError("Photo data URI must be base64 encoded")

    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Photo data URI has an invalid base64 payload") from e

    return data, match.group("mime") or "application/octet-stream"


class AvatarService:
    def __init__(
        self,
        storage: ObjectStorage | None,
        http_client: httpx.AsyncClient,
        settings: Settings,
    ):
        self.storage = storage
        self.http = http_client
        self.settings = settings

    def _require_storage(self) -> ObjectStorage:
        if self.storage is None:
            raise InternalError("Object storage is not configured")
        return self.storage

    def _check_image(self, data: bytes, content_type: str):
        if not data:
            raise ValidationError("Avatar image is empty")
        if len(data) > self.settings.avatar_max_bytes:
            raise ValidationError(
                f"Avatar image exceeds {self.settings.avatar_max_bytes} bytes"
            )
        if not content_type.lower().startswith("image/"):
            raise ValidationError("Avatar must be an image")

    async def store_upload(
        self,
        user_id: UUID,
        data: bytes,
        content_type: str,
        filename: str | None = None,
    ) -> str:
        """Upload avatar bytes and return the public URL."""
        storage = self._require_storage()
        self._check_image(data, content_type)

        stored = await storage.upload(
            data,
            content_type=content_type,
            object_path=avatar_object_path(user_id, content_type, filename),
            upsert=True,
        )
        return stored.public_url

    async def resolve_reference(self, user_id: UUID, value: str) -> str | None:
        """
        Turn a profile `photo` string into the avatar URL to persist.

        Empty clears the avatar. Remote URLs that cannot be fetched or stored
        are kept as-is (truncated to the column size).
        """
        if value == "":
            return None

        if value.startswith("data:"):
            data, content_type = decode_data_uri(value)
            return await self.store_upload(user_id, data, content_type)

        if value.startswith(("http://", "https://")):
            return await self._ingest_remote(user_id, value)

        raise ValidationError("Photo must be an http(s) URL or a data URI")

    async def _ingest_remote(self, user_id: UUID, url: str) -> str:
        fallback = url[:AVATAR_URL_MAX_LENGTH]
        if self.storage is None:
            logger.info("Object storage not configured, keeping remote avatar URL")
            return fallback

        try:
            data, content_type = await self._download(url)
            filename = httpx.URL(url).path.rsplit("/", 1)[-1] or None
            return await self.store_upload(user_id, data, content_type, filename)
        except (httpx.HTTPError, httpx.InvalidURL, StorageError, ValidationError) as e:
            logger.warning("Could not ingest remote avatar %s, keeping URL: %s", url, e)
            return fallback

    async def _download(self, url: str) -> tuple[bytes, str]:
        """Fetch a remote image, giving up as soon as it exceeds the size limit."""
        limit = self.settings.avatar_max_bytes
        too_large = ValidationError(f"Avatar image exceeds {limit} bytes")

        async with self.http.stream(
            "GET",
            url,
            follow_redirects=True,
            timeout=self.settings.avatar_fetch_timeout_seconds,
        ) as response:
            response.raise_for_status()
            declared = response.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > limit:
                raise too_large

            chunks = []
            size = 0
            async for chunk in response.aiter_bytes():
                size += len(chunk)
                if size > limit:
                    raise too_large
                chunks.append(chunk)

            content_type = response.headers.get("content-type", "").split(";")[0].strip()
        return b"".join(chunks), content_type
