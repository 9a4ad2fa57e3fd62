from __future__ import annotations

import json

import httpx
import pytest

from venue_imagegen.exceptions import StorageError
from venue_imagegen.services.migration import InlineImageMigrator
from venue_imagegen.services.records import RecordStore
from venue_imagegen.services.storage import SupabaseStorage
from venue_imagegen.utils.image_utils import to_data_url


class FakeSupabase:
    def __init__(self, inline_rows: list[dict], upload_status: int = 200):
        self.inline_rows = inline_rows
        self.upload_status = upload_status
        self.uploads: list[str] = []
        self.patches: list[tuple[str, dict]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/storage/v1/object/"):
            self.uploads.append(path)
            return httpx.Response(self.upload_status, text="" if self.upload_status == 200 else "bucket full")
        if request.method == "GET":
            return httpx.Response(200, json=self.inline_rows[: int(request.url.params.get("limit", "100"))])
        if request.method == "PATCH":
            self.patches.append((request.url.params["id"], json.loads(request.content)))
            return httpx.Response(204)
        return httpx.Response(405)


def migrator_for(settings, fake) -> InlineImageMigrator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
    return InlineImageMigrator(
        records=RecordStore(settings, client=client),
        storage=SupabaseStorage(settings, client=client),
        settings=settings,
    )


@pytest.mark.asyncio
async def test_migrates_inline_rows_and_collects_failures(storage_settings, png_bytes):
    fake = FakeSupabase(
        [
            {"id": "a", "image_url": to_data_url(png_bytes)},
            {"id": "b", "image_url": "data:image/png;base64,@@not-base64@@"},
        ]
    )

    report = await migrator_for(storage_settings, fake).migrate(limit=10)

    assert report.migrated == 1
    assert report.failed == 1
    assert report.message == "Migration complete: 1 succeeded, 1 failed"
    ok, bad = report.results
    assert ok.success and ok.url.endswith(".webp")
    assert not bad.success and "decode" in bad.error
    assert fake.patches == [("eq.a", {"image_url": ok.url})]
    assert len(fake.uploads) == 1


@pytest.mark.asyncio
async def test_upload_failure_is_recorded_per_row(storage_settings, png_bytes):
    fake = FakeSupabase([{"id": "a", "image_url": to_data_url(png_bytes)}], upload_status=413)
    report = await migrator_for(storage_settings, fake).migrate()
    assert report.failed == 1
    assert "413" in report.results[0].error
    assert fake.patches == []


@pytest.mark.asyncio
async def test_nothing_to_migrate(storage_settings):
    report = await migrator_for(storage_settings, FakeSupabase([])).migrate()
    assert report.results == []
    assert report.message == "No inline images to migrate"


@pytest.mark.asyncio
async def test_requires_service_role_key(storage_settings):
    storage_settings.supabase_service_role_key = None
    storage_settings.supabase_anon_key = "anon"
    with pytest.raises(StorageError):
        await migrator_for(storage_settings, FakeSupabase([])).migrate()


@pytest.mark.asyncio
async def test_status_counts(storage_settings):
    counts = {None: "0-0/12", "like.data:*": "0-0/5", "like.https:*": "0-0/7"}

    def handler(request):
        return httpx.Response(200, json=[], headers={"content-range": counts[request.url.params.get("image_url")]})

    status = await migrator_for(storage_settings, handler).status()

    assert (status.total, status.inline, status.storage) == (12, 5, 7)
    assert status.storage_configured is True
    assert status.needs_migration is True
