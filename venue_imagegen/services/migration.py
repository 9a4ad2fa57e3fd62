from __future__ import annotations

from loguru import logger

from ..exceptions import ImageGenerationError, StorageError
from ..schema import InlineImageStatus, MigrationItem, MigrationReport
from ..settings import get_settings, Settings
from ..shard.enums import StorageCategory
from ..utils.image_utils import decode_data_url
from .postprocess import PostProcessor
from .records import RecordStore
from .storage import SupabaseStorage

DEFAULT_BATCH_SIZE = 10


class InlineImageMigrator:
    """Moves records whose image is stored as a ``data:`` URL into object storage.

    Each batch is small so a single call stays well inside request timeouts;
    call repeatedly until ``status().needs_migration`` is false.
    """

    def __init__(
        self,
        records: RecordStore | None = None,
        storage: SupabaseStorage | None = None,
        postprocessor: PostProcessor | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.records = records or RecordStore(self.settings)
        self.storage = storage or SupabaseStorage(self.settings)
        self.postprocessor = postprocessor or PostProcessor()

    async def status(self) -> InlineImageStatus:
        return InlineImageStatus(
            total=await self.records.count(),
            inline=await self.records.count("like.data:*"),
            storage=await self.records.count("like.https:*"),
            storage_configured=self.settings.use_storage,
        )

    async def _migrate_one(self, record_id: str, image_url: str) -> MigrationItem:
        try:
            data, _ = decode_data_url(image_url)
        except ValueError as e:
            return MigrationItem(id=record_id, success=False, error=str(e))

        try:
            processed = await self.postprocessor.process(data)
            public_url = await self.storage.upload(processed, StorageCategory.GENERATED)
            await self.records.update_image_url(record_id, public_url)
        except ImageGenerationError as e:
            logger.error(f"Migrating image {record_id} failed: {e.user_message}")
            return MigrationItem(id=record_id, success=False, error=e.user_message)

        logger.info(f"Migrated image {record_id} to {public_url}")
        return MigrationItem(id=record_id, success=True, url=public_url)

    async def migrate(self, limit: int = DEFAULT_BATCH_SIZE) -> MigrationReport:
        """Migrate up to ``limit`` inline records; per-record failures are collected, not raised."""
        if not self.settings.use_storage:
            raise StorageError("SUPABASE_SERVICE_ROLE_KEY not configured. Image storage is required.")

        rows = await self.records.list_inline(limit)
        if not rows:
            return MigrationReport()

        logger.info(f"Migrating {len(rows)} inline image(s) to storage")
        report = MigrationReport()
        for row in rows:
            item = await self._migrate_one(str(row["id"]), row.get("image_url") or "")
            report.results.append(item)
            if item.success:
                report.migrated += 1
            else:
                report.failed += 1
        return report


__all__ = ["InlineImageMigrator", "DEFAULT_BATCH_SIZE"]
