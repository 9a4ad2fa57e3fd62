from __future__ import annotations

import time
from uuid import uuid4

import httpx
from loguru import logger

from ..exceptions import StorageError
from ..schema import ProcessedImage
from ..settings import get_settings, Settings
from ..shard import constants as C
from ..shard.enums import StorageCategory


def build_storage_key(category: StorageCategory | str, extension: str) -> str:
    """``{category}/{ms-timestamp}-{short-random}.{ext}``; unique without a lookup."""
    prefix = category.value if isinstance(category, StorageCategory) else category
    return f"{prefix}/{int(time.time() * 1000)}-{uuid4().hex[:8]}.{extension.lstrip('.')}"


class SupabaseStorage:
    """Uploads assets to a Supabase Storage bucket through its REST API.

    Uploads require the service role key. There is no fallback to storing
    the image inline when it is missing.
    """

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings or get_settings()
        self._client = client

    @property
    def bucket(self) -> str:
        return self.settings.storage_bucket

    def ensure_configured(self) -> None:
        self._require_credentials()

    def _require_credentials(self) -> tuple[str, str]:
        if not self.settings.supabase_url:
            raise StorageError("SUPABASE_URL not configured. Image storage is required.")
        if not self.settings.supabase_service_role_key:
            raise StorageError("SUPABASE_SERVICE_ROLE_KEY not configured. Image storage is required.")
        return self.settings.supabase_url.rstrip("/"), self.settings.supabase_service_role_key

    def public_url(self, key: str) -> str:
        base = (self.settings.supabase_url or "").rstrip("/")
        return f"{base}/storage/v1/object/public/{self.bucket}/{key}"

    async def _post(self, url: str, *, content: bytes, headers: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, content=content, headers=headers)
        async with httpx.AsyncClient(timeout=self.settings.http_timeout_seconds) as client:
            return await client.post(url, content=content, headers=headers)

    async def upload(self, image: ProcessedImage, category: StorageCategory = StorageCategory.GENERATED) -> str:
        """Upload ``image`` and return its public URL.

        Raises:
            StorageError: missing credentials, transport failure or a non-success response.
        """
        base, key_secret = self._require_credentials()
        key = build_storage_key(category, image.extension)
        headers = {
            "Authorization": f"Bearer {key_secret}",
            "apikey": key_secret,
            "Content-Type": image.mime_type,
            "cache-control": f"max-age={C.CACHE_CONTROL_SECONDS}",
            "x-upsert": "false",
        }
        url = f"{base}/storage/v1/object/{self.bucket}/{key}"

        try:
            response = await self._post(url, content=image.data, headers=headers)
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to upload image: {e}", details={"key": key}) from e

        if not response.is_success:
            raise StorageError(
                f"Failed to upload image ({response.status_code}): {response.text}",
                details={"key": key, "status_code": response.status_code},
            )

        logger.info(f"Uploaded {len(image.data)} bytes to {self.bucket}/{key}")
        return self.public_url(key)


__all__ = ["SupabaseStorage", "build_storage_key"]
