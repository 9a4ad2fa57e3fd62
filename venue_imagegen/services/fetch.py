from __future__ import annotations

import httpx
from loguru import logger

from ..exceptions import FetchError
from ..schema import NormalizedRequest, ReferenceImage
from ..settings import get_settings
from ..shard import constants as C
from ..shard.enums import ReferenceEncoding
from ..utils.image_utils import decode_data_url, is_data_url, sniff_mime


class AssetFetcher:
    """Downloads images over HTTP(S); ``data:`` URLs are decoded locally.

    Used for both reference images and remote provider output. A caller may
    pass its own ``httpx.AsyncClient``; otherwise one is opened per download.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url)
        async with httpx.AsyncClient(timeout=get_settings().http_timeout_seconds, follow_redirects=True) as client:
            return await client.get(url)

    async def download(self, url: str, *, what: str = "image") -> tuple[bytes, str]:
        """Return (bytes, mime) for ``url``.

        Raises:
            FetchError: on a transport failure, a non-success status, or an empty body.
        """
        message = f"failed to download {what}"
        if is_data_url(url):
            try:
                return decode_data_url(url)
            except ValueError as e:
                raise FetchError(message, details={"reason": str(e)}) from e

        try:
            response = await self._get(url)
        except httpx.HTTPError as e:
            raise FetchError(message, details={"url": url, "reason": str(e)}) from e

        if not response.is_success:
            logger.warning(f"Download of {url} returned {response.status_code}")
            raise FetchError(message, details={"url": url, "status_code": response.status_code})
        if not response.content:
            raise FetchError(message, details={"url": url, "reason": "empty body"})

        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        mime = sniff_mime(response.content) or content_type or C.DEFAULT_MIME
        return response.content, mime


class ReferenceResolver:
    """Turns a reference URL into whatever the target model consumes.

    Resolution is lazy: models that accept a remote URL get it passed through
    untouched and no download happens.
    """

    def __init__(self, fetcher: AssetFetcher | None = None) -> None:
        self.fetcher = fetcher or AssetFetcher()

    async def resolve(self, url: str) -> tuple[bytes, str]:
        return await self.fetcher.download(url, what="reference image")

    async def attach(self, req: NormalizedRequest, encoding: ReferenceEncoding | None) -> NormalizedRequest:
        """Return ``req`` with its ``reference`` populated for ``encoding``."""
        if not req.reference_image_url or encoding is None:
            return req

        if encoding == ReferenceEncoding.URL:
            reference = ReferenceImage(source_url=req.reference_image_url, strength=req.reference_strength)
        else:
            data, mime = await self.resolve(req.reference_image_url)
            logger.info(f"Resolved reference image ({len(data)} bytes, {mime})")
            reference = ReferenceImage(source_url=req.reference_image_url, data=data, mime_type=mime, strength=req.reference_strength)
        return req.model_copy(update={"reference": reference})


__all__ = ["AssetFetcher", "ReferenceResolver"]
