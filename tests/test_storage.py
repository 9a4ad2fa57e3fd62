from __future__ import annotations

import re

import httpx
import pytest

from venue_imagegen.exceptions import StorageError
from venue_imagegen.schema import ProcessedImage
from venue_imagegen.services.storage import SupabaseStorage, build_storage_key
from venue_imagegen.shard.enums import StorageCategory

IMAGE = ProcessedImage(data=b"RIFF....WEBPVP8 ", mime_type="image/webp", extension="webp", width=10, height=10, source_width=10, source_height=10)


def test_storage_key_shape():
    key = build_storage_key(StorageCategory.SECTIONS, "webp")
    assert re.fullmatch(r"sections/\d{13}-[0-9a-f]{8}\.webp", key)


def test_storage_keys_do_not_collide():
    keys = {build_storage_key(StorageCategory.GENERATED, "webp") for _ in range(500)}
    assert len(keys) == 500


@pytest.mark.asyncio
async def test_upload_posts_to_bucket_and_returns_public_url(storage_settings):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"Key": "generated-images/x"})

    storage = SupabaseStorage(storage_settings, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    url = await storage.upload(IMAGE)

    request = seen[0]
    assert request.method == "POST"
    assert re.fullmatch(r"/storage/v1/object/generated-images/generated/\d+-[0-9a-f]{8}\.webp", request.url.path)
    assert request.headers["authorization"] == "Bearer service-key"
    assert request.headers["content-type"] == "image/webp"
    assert request.headers["cache-control"] == "max-age=31536000"
    assert request.headers["x-upsert"] == "false"
    assert request.content == IMAGE.data
    assert url.startswith("https://proj.supabase.co/storage/v1/object/public/generated-images/generated/")


@pytest.mark.asyncio
async def test_missing_service_role_key_fails_outright(storage_settings):
    storage_settings.supabase_service_role_key = None
    storage_settings.supabase_anon_key = "anon"
    storage = SupabaseStorage(storage_settings, client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))))
    with pytest.raises(StorageError, match="SUPABASE_SERVICE_ROLE_KEY"):
        await storage.upload(IMAGE)


@pytest.mark.asyncio
async def test_rejected_upload_is_storage_error(storage_settings):
    storage = SupabaseStorage(storage_settings, client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(409, text="Duplicate"))))
    with pytest.raises(StorageError, match="409") as exc:
        await storage.upload(IMAGE)
    assert exc.value.details["status_code"] == 409
