from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from venue_imagegen.exceptions import FetchError
from venue_imagegen.schema import (
    ErrorEnvelope,
    FinalAsset,
    GeneratedImageRecord,
    GenerationRequest,
    InlineImageStatus,
    MigrationItem,
    MigrationReport,
    ReferenceImage,
)
from venue_imagegen.shard.enums import PipelineStage, ReviewStatus

NOW = datetime(2026, 10, 18, tzinfo=timezone.utc)


def test_final_asset_requires_exactly_one_source():
    assert FinalAsset(data=b"png").is_inline
    assert not FinalAsset(url="https://x/y.png").is_inline
    with pytest.raises(ValidationError):
        FinalAsset()
    with pytest.raises(ValidationError):
        FinalAsset(data=b"png", url="https://x/y.png")


def test_generation_request_accepts_camel_case():
    req = GenerationRequest.model_validate(
        {"sectionId": "s", "promptId": "p", "prompt": "x", "referenceImageUrl": "https://r", "useReferenceImage": False, "aspectRatio": "16:9"}
    )
    assert req.section_id == "s"
    assert req.prompt_id == "p"
    assert req.reference_image_url == "https://r"
    assert req.use_reference_image is False
    assert req.aspect_ratio == "16:9"


def _record(**overrides) -> dict:
    base = {"id": "img-1", "section_id": "s", "prompt_id": "p", "image_url": "u", "model_name": "dall-e-3", "model_provider": "openai"}
    return {**base, **overrides}


def test_record_defaults_to_pending():
    record = GeneratedImageRecord(**_record())
    assert record.status == ReviewStatus.PENDING
    assert record.is_global_reference is False
    assert record.generation_settings == {}


def test_approved_and_rejected_timestamps_are_exclusive():
    GeneratedImageRecord(**_record(status="approved", approved_at=NOW))
    GeneratedImageRecord(**_record(status="rejected", rejected_at=NOW))
    with pytest.raises(ValidationError):
        GeneratedImageRecord(**_record(status="approved", approved_at=NOW, rejected_at=NOW))
    with pytest.raises(ValidationError):
        GeneratedImageRecord(**_record(status="pending", approved_at=NOW))
    with pytest.raises(ValidationError):
        GeneratedImageRecord(**_record(status="approved", rejected_at=NOW))


def test_error_envelope_carries_stage():
    envelope = ErrorEnvelope.from_error(FetchError("failed to download reference image", details={"status_code": 404}).to_error(), PipelineStage.RESOLVING_REFERENCE)
    assert envelope.error == "failed to download reference image"
    assert envelope.code == "fetch_error"
    assert envelope.details == {"status_code": 404, "stage": "resolving_reference"}


def test_error_envelope_without_details():
    envelope = ErrorEnvelope.from_error(FetchError("boom").to_error())
    assert envelope.details is None


def test_reference_b64_requires_bytes():
    assert ReferenceImage(source_url="u", data=b"\x00\x01").b64 == "AAE="
    with pytest.raises(ValueError):
        ReferenceImage(source_url="u").b64


def test_migration_report_message():
    assert MigrationReport().message == "No inline images to migrate"
    report = MigrationReport(migrated=2, failed=1, results=[MigrationItem(id=str(i), success=i < 2) for i in range(3)])
    assert report.message == "Migration complete: 2 succeeded, 1 failed"


def test_inline_status_needs_migration():
    assert InlineImageStatus(total=3, inline=1, storage=2, storage_configured=True).needs_migration
    assert not InlineImageStatus(total=3, inline=0, storage=3, storage_configured=False).needs_migration
