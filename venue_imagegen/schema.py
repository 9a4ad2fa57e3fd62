from __future__ import annotations

import base64
from datetime import datetime
from typing import Any, Self

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from .shard.enums import (
    ClientKind,
    JobStatus,
    Model,
    PipelineStage,
    Provider,
    ReferenceEncoding,
    ReviewStatus,
    SizeMode,
)

# ------------------------------ Error handling ------------------------------ #


class Error(BaseModel):
    """Normalized error provided on failures.

    Use short, actionable messages and stable error codes suitable for client
    handling.
    """

    code: str = Field(description="Stable machine-readable error code, e.g. 'validation_error'.")
    message: str = Field(description="Human-readable error message with remediation tips when possible.")
    details: dict[str, Any] | None = Field(
        default=None,
        description="Optional provider/debug details; treat as best-effort and unstable for parsing.",
    )


class ErrorEnvelope(BaseModel):
    """The single flat error shape returned by the orchestrator."""

    error: str = Field(description="User-facing error message.")
    code: str = Field(description="Stable error code from the failure taxonomy.")
    details: dict[str, Any] | None = Field(default=None, description="Underlying detail, including the failed pipeline stage.")

    @classmethod
    def from_error(cls, err: Error, stage: PipelineStage | None = None) -> ErrorEnvelope:
        details = dict(err.details or {})
        if stage is not None:
            details["stage"] = stage.value
        return cls(error=err.message, code=err.code, details=details or None)


# ------------------------------ Request models ------------------------------ #


class LoraWeight(BaseModel):
    """A style adapter: weight identifier plus scale."""

    path: str = Field(default="", description="Adapter identifier, e.g. a Hugging Face repo path.")
    scale: float = Field(default=1.0, description="Adapter influence; clamped to [0, 2] by the normalizer.")


class VenuePreset(BaseModel):
    """A bundle of style adapters and prompt phrases tuned for one venue section."""

    id: str
    name: str
    description: str = ""
    venue_section: str = Field(default="Any", description="Section the preset was tuned for; 'Any' fits every section.")
    loras: list[LoraWeight] = Field(default_factory=list)
    prompt_additions: list[str] = Field(default_factory=list, description="Phrases appended to the prompt when the preset is used.")


class GenerationRequest(BaseModel):
    """Provider-agnostic generation input.

    Everything is optional at this layer so the normalizer can report missing
    required fields itself. camelCase keys from the admin UI are accepted.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    section_id: str | None = Field(default=None, validation_alias=AliasChoices("section_id", "sectionId"))
    prompt_id: str | None = Field(default=None, validation_alias=AliasChoices("prompt_id", "promptId"))
    prompt: str | None = None
    negative_prompt: str | None = Field(default=None, validation_alias=AliasChoices("negative_prompt", "negativePrompt"))
    model: str | None = None
    provider: str | None = None

    size: str | None = Field(default=None, description="Provider size token, e.g. '1024x1024' or 'landscape_16_9'.")
    aspect_ratio: str | None = Field(default=None, validation_alias=AliasChoices("aspect_ratio", "aspectRatio"))
    width: int | None = None
    height: int | None = None

    quality: str | None = None
    style: str | None = None
    background: str | None = None
    steps: int | None = None
    guidance: float | None = None
    safety_tolerance: int | None = Field(default=None, validation_alias=AliasChoices("safety_tolerance", "safetyTolerance"))
    raw: bool | None = None
    seed: int | None = None
    output_format: str | None = Field(default=None, validation_alias=AliasChoices("output_format", "outputFormat"))
    loras: list[LoraWeight] | None = None
    lora_preset: str | None = Field(default=None, validation_alias=AliasChoices("lora_preset", "loraPreset"), description="Venue section preset id, e.g. 'middle-center'.")

    reference_image_url: str | None = Field(default=None, validation_alias=AliasChoices("reference_image_url", "referenceImageUrl"))
    use_reference_image: bool | None = Field(default=None, validation_alias=AliasChoices("use_reference_image", "useReferenceImage"))
    reference_strength: float | None = Field(default=None, validation_alias=AliasChoices("reference_strength", "referenceStrength"))


class ReferenceImage(BaseModel):
    """A resolved reference image, in whichever encoding the target model needs."""

    source_url: str
    data: bytes | None = Field(default=None, description="Raw bytes; None when the provider takes the URL directly.")
    mime_type: str | None = None
    strength: float | None = None

    @property
    def b64(self) -> str:
        if self.data is None:
            raise ValueError("Reference image has no resolved bytes")
        return base64.b64encode(self.data).decode("utf-8")


class NormalizedRequest(BaseModel):
    """Fully resolved request handed to a provider engine."""

    section_id: str
    prompt_id: str
    prompt: str
    negative_prompt: str | None = None
    full_prompt: str
    model: Model
    provider: Provider
    client_kind: ClientKind

    requested_size: str | None = None
    size: str | None = None
    width: int | None = None
    height: int | None = None
    aspect_ratio: str | None = None

    quality: str | None = None
    style: str | None = None
    background: str | None = None
    steps: int | None = None
    guidance: float | None = None
    safety_tolerance: int | None = None
    raw: bool | None = None
    seed: int | None = None
    output_format: str | None = None
    loras: list[LoraWeight] = Field(default_factory=list)

    reference_image_url: str | None = None
    reference_strength: float | None = None
    reference: ReferenceImage | None = None

    normalization: dict[str, Any] = Field(default_factory=dict)

    @property
    def uses_reference(self) -> bool:
        return self.reference_image_url is not None

    def generation_settings(self) -> dict[str, Any]:
        """Snapshot of every resolved parameter, stored for exact replay."""
        return {
            "prompt": self.prompt,
            "negativePrompt": self.negative_prompt,
            "size": self.requested_size,
            "resolvedSize": self.size,
            "width": self.width,
            "height": self.height,
            "aspectRatio": self.aspect_ratio,
            "quality": self.quality,
            "style": self.style,
            "background": self.background,
            "steps": self.steps,
            "guidance": self.guidance,
            "safetyTolerance": self.safety_tolerance,
            "raw": self.raw,
            "seed": self.seed,
            "outputFormat": self.output_format,
            "loras": [lora.model_dump() for lora in self.loras],
            "referenceImageUrl": self.reference_image_url,
            "usedReferenceImage": self.uses_reference,
            "referenceStrength": self.reference_strength,
            "clientKind": self.client_kind.value,
            "normalization": self.normalization,
        }


# ------------------------------ Provider results ---------------------------- #


class FinalAsset(BaseModel):
    """What a provider client hands back: inline bytes or a fetchable URL."""

    data: bytes | None = None
    url: str | None = None
    mime_type: str | None = None
    job_id: str | None = None

    @model_validator(mode="after")
    def _exactly_one_source(self) -> Self:
        if (self.data is None) == (self.url is None):
            raise ValueError("FinalAsset needs exactly one of data or url")
        return self

    @property
    def is_inline(self) -> bool:
        return self.data is not None


class ProviderJob(BaseModel):
    """Transient submit/poll job state; never persisted."""

    id: str
    polling_url: str | None = None
    status: JobStatus = JobStatus.SUBMITTED
    attempts: int = 0
    asset_url: str | None = None
    error: str | None = None


class ProcessedImage(BaseModel):
    data: bytes
    mime_type: str
    extension: str
    width: int
    height: int
    source_width: int
    source_height: int


# ------------------------------ Persistence --------------------------------- #


class GeneratedImageRecordCreate(BaseModel):
    """Insert payload for a generated image row."""

    model_config = ConfigDict(protected_namespaces=())

    section_id: str
    prompt_id: str
    image_url: str
    model_name: str
    model_provider: str
    status: ReviewStatus = ReviewStatus.PENDING
    generation_settings: dict[str, Any] = Field(default_factory=dict)
    comparison_notes: str | None = None
    is_global_reference: bool = False


class GeneratedImageRecord(GeneratedImageRecordCreate):
    """A persisted generated image row."""

    id: str
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    created_at: datetime | None = None

    @model_validator(mode="after")
    def _review_timestamps(self) -> Self:
        if self.approved_at is not None and self.rejected_at is not None:
            raise ValueError("approved_at and rejected_at are mutually exclusive")
        if self.approved_at is not None and self.status != ReviewStatus.APPROVED:
            raise ValueError("approved_at is only valid for approved records")
        if self.rejected_at is not None and self.status != ReviewStatus.REJECTED:
            raise ValueError("rejected_at is only valid for rejected records")
        return self


# ------------------------------ Capability schema --------------------------- #


class ModelCapability(BaseModel):
    """Static capability record for one model."""

    model: Model = Field(description="Model identifier.")
    provider: Provider
    client_kind: ClientKind
    size_mode: SizeMode
    reference_encoding: ReferenceEncoding | None = Field(default=None, description="How a reference image is passed; None if unsupported.")
    supports_edit: bool = Field(default=False, description="Reference switches the call to edit semantics.")
    supports_background: bool = False
    supports_style: bool = False
    supports_loras: bool = False
    supports_raw: bool = False
    supports_steps: bool = False
    supports_guidance: bool = False


class CapabilityReport(BaseModel):
    """Advertises one engine and the models it serves."""

    provider: Provider
    client_kind: ClientKind
    models: list[ModelCapability] = Field(default_factory=list)


class CapabilitiesResponse(BaseModel):
    ok: bool = Field(default=True, description="Always true when the request succeeds.")
    capabilities: list[CapabilityReport] = Field(default_factory=list, description="Enabled engines based on credentials.")
    lora_presets: list[VenuePreset] = Field(default_factory=list, description="Venue section presets usable with fal-ai/flux-lora.")


# ------------------------------ Pipeline output ----------------------------- #


class GenerationResult(BaseModel):
    """Either a full record or an error envelope; never both."""

    ok: bool
    record: GeneratedImageRecord | None = None
    image_url: str | None = None
    error: ErrorEnvelope | None = None


class MigrationItem(BaseModel):
    id: str
    success: bool
    url: str | None = None
    error: str | None = None


class MigrationReport(BaseModel):
    migrated: int = 0
    failed: int = 0
    results: list[MigrationItem] = Field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.results:
            return "No inline images to migrate"
        return f"Migration complete: {self.migrated} succeeded, {self.failed} failed"


class InlineImageStatus(BaseModel):
    total: int
    inline: int
    storage: int
    storage_configured: bool

    @property
    def needs_migration(self) -> bool:
        return self.inline > 0


__all__ = [
    "Error",
    "ErrorEnvelope",
    "LoraWeight",
    "VenuePreset",
    "GenerationRequest",
    "ReferenceImage",
    "NormalizedRequest",
    "FinalAsset",
    "ProviderJob",
    "ProcessedImage",
    "GeneratedImageRecordCreate",
    "GeneratedImageRecord",
    "ModelCapability",
    "CapabilityReport",
    "CapabilitiesResponse",
    "GenerationResult",
    "MigrationItem",
    "MigrationReport",
    "InlineImageStatus",
]
