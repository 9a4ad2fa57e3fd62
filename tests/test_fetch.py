from __future__ import annotations

import httpx
import pytest

from venue_imagegen.engines.normalizer import normalize
from venue_imagegen.exceptions import FetchError
from venue_imagegen.services.fetch import AssetFetcher, ReferenceResolver
from venue_imagegen.shard.enums import ReferenceEncoding
from venue_imagegen.utils.image_utils import to_data_url


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_download_returns_bytes_and_sniffed_mime(png_bytes):
    fetcher = AssetFetcher(client_for(lambda request: httpx.Response(200, content=png_bytes, headers={"content-type": "application/octet-stream"})))
    data, mime = await fetcher.download("https://cdn/x.png")
    assert data == png_bytes
    assert mime == "image/png"


@pytest.mark.asyncio
async def test_reference_404_is_fetch_error():
    resolver = ReferenceResolver(AssetFetcher(client_for(lambda request: httpx.Response(404))))
    with pytest.raises(FetchError, match="failed to download reference image") as exc:
        await resolver.resolve("https://cdn/missing.png")
    assert exc.value.details["status_code"] == 404


@pytest.mark.asyncio
async def test_transport_failure_is_fetch_error():
    def boom(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(FetchError, match="failed to download generated image"):
        await AssetFetcher(client_for(boom)).download("https://cdn/x.png", what="generated image")


@pytest.mark.asyncio
async def test_data_url_is_decoded_locally(png_bytes):
    def never(request):  # pragma: no cover - must not be called
        raise AssertionError("no network for data URLs")

    data, mime = await AssetFetcher(client_for(never)).download(to_data_url(png_bytes))
    assert data == png_bytes
    assert mime == "image/png"


@pytest.mark.asyncio
async def test_url_encoding_skips_download():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, content=b"x")

    resolver = ReferenceResolver(AssetFetcher(client_for(handler)))
    req = normalize({"section_id": "s", "prompt_id": "p", "prompt": "x", "model": "fal-ai/flux-lora", "reference_image_url": "https://x/r.png"})

    out = await resolver.attach(req, ReferenceEncoding.URL)

    assert calls == []
    assert out.reference.source_url == "https://x/r.png"
    assert out.reference.data is None
    assert out.reference.strength == 0.85


@pytest.mark.asyncio
async def test_base64_encoding_downloads(png_bytes):
    resolver = ReferenceResolver(AssetFetcher(client_for(lambda request: httpx.Response(200, content=png_bytes))))
    req = normalize({"section_id": "s", "prompt_id": "p", "prompt": "x", "model": "flux-pro-1.1-ultra", "reference_image_url": "https://x/r.png"})

    out = await resolver.attach(req, ReferenceEncoding.BASE64)

    assert out.reference.data == png_bytes
    assert out.reference.mime_type == "image/png"
    assert req.reference is None
