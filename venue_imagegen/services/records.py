from __future__ import annotations

from typing import Any

import httpx
import pydantic
from loguru import logger

from ..exceptions import PersistenceError
from ..schema import GeneratedImageRecord, GeneratedImageRecordCreate
from ..settings import get_settings, Settings


class RecordStore:
    """Generated-image rows over the Supabase PostgREST API.

    Rows are inserted once by the pipeline with status ``pending``; review
    transitions happen elsewhere. The only later write here is the image URL
    rewrite done by the inline-image migration.
    """

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings or get_settings()
        self._client = client

    def ensure_configured(self) -> None:
        self._endpoint()

    def _endpoint(self) -> tuple[str, dict[str, str]]:
        key = self.settings.records_key
        if not self.settings.supabase_url or not key:
            raise PersistenceError("SUPABASE_URL and a Supabase key must be configured to store generated images.")
        url = f"{self.settings.supabase_url.rstrip('/')}/rest/v1/{self.settings.records_table}"
        headers = {"apikey": key, "Authorization": f"Bearer {key}", "Content-Type": "application/json"}
        return url, headers

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            if self._client is not None:
                response = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.settings.http_timeout_seconds) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise PersistenceError(f"Record store request failed: {e}") from e

        if not response.is_success:
            raise PersistenceError(
                f"Record store returned {response.status_code}: {response.text}",
                details={"status_code": response.status_code},
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise PersistenceError(
                f"Record store returned a non-JSON body ({response.status_code})",
                details={"status_code": response.status_code},
            ) from e

    @staticmethod
    def _record(row: Any) -> GeneratedImageRecord:
        try:
            return GeneratedImageRecord.model_validate(row)
        except pydantic.ValidationError as e:
            raise PersistenceError("Record store returned a malformed row", details={"reason": str(e)}) from e

    async def insert(self, record: GeneratedImageRecordCreate) -> GeneratedImageRecord:
        url, headers = self._endpoint()
        headers["Prefer"] = "return=representation"
        response = await self._request("POST", url, json=record.model_dump(mode="json"), headers=headers)
        rows = self._json(response)
        row = rows[0] if isinstance(rows, list) and rows else rows
        if not isinstance(row, dict):
            raise PersistenceError("Record store returned no row for the insert")
        created = self._record(row)
        logger.info(f"Stored generated image {created.id} for section {created.section_id}")
        return created

    async def get(self, record_id: str) -> GeneratedImageRecord | None:
        url, headers = self._endpoint()
        response = await self._request("GET", url, params={"id": f"eq.{record_id}", "select": "*"}, headers=headers)
        rows = self._json(response)
        if not rows:
            return None
        return self._record(rows[0])

    async def count(self, image_url_filter: str | None = None) -> int:
        """Exact row count, optionally restricted by a PostgREST ``image_url`` filter."""
        url, headers = self._endpoint()
        headers["Prefer"] = "count=exact"
        params = {"select": "id", "limit": "1"}
        if image_url_filter:
            params["image_url"] = image_url_filter
        response = await self._request("GET", url, params=params, headers=headers)
        content_range = response.headers.get("content-range", "")
        total = content_range.rpartition("/")[2]
        if total.isdigit():
            return int(total)
        return len(self._json(response))

    async def list_inline(self, limit: int) -> list[dict[str, Any]]:
        """Rows whose ``image_url`` is still a ``data:`` URL, oldest first."""
        url, headers = self._endpoint()
        params = {"select": "id,image_url", "image_url": "like.data:*", "order": "created_at.asc", "limit": str(limit)}
        response = await self._request("GET", url, params=params, headers=headers)
        return list(self._json(response))

    async def update_image_url(self, record_id: str, image_url: str) -> None:
        url, headers = self._endpoint()
        await self._request("PATCH", url, params={"id": f"eq.{record_id}"}, json={"image_url": image_url}, headers=headers)


__all__ = ["RecordStore"]
