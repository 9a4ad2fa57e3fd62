from __future__ import annotations

from enum import StrEnum
from typing import Self


class Provider(StrEnum):
    """Provider identifiers used for routing image requests.

    Values match the provider names persisted on generated image records and
    the credential groups in ``Settings``.
    """

    OPENAI = "openai"
    BFL = "bfl"
    FAL = "fal"

    @classmethod
    def from_str(cls, value: str | None) -> Self | None:
        if not value:
            return None
        v = value.strip().lower()
        try:
            return cls(v)  # type: ignore[arg-type]
        except ValueError:
            return None


class ClientKind(StrEnum):
    """Protocol variant a provider client speaks.

    - ``SYNCHRONOUS``: one round trip returns the final asset.
    - ``SUBMIT_POLL``: submit a job, then poll a status endpoint until terminal.
    - ``SUBSCRIBE``: a single call that waits for completion internally.
    """

    SYNCHRONOUS = "synchronous"
    SUBMIT_POLL = "submit_poll"
    SUBSCRIBE = "subscribe"


class SizeMode(StrEnum):
    """How a model family expresses output size."""

    SIZE_TOKEN = "size_token"
    DIMENSIONS = "dimensions"
    ASPECT_RATIO = "aspect_ratio"
    PRESET = "preset"


class ReferenceEncoding(StrEnum):
    """Form in which a model consumes a reference image."""

    BYTES = "bytes"
    BASE64 = "base64"
    URL = "url"


class Model(StrEnum):
    """Curated model IDs allowed by this service.

    Values are provider-compatible strings; the BFL values double as the
    endpoint path segment and the fal value is the application id.
    """

    # Synchronous (OpenAI Images)
    GPT_IMAGE_1 = "gpt-image-1"
    DALL_E_3 = "dall-e-3"

    # Submit/Poll (Black Forest Labs)
    FLUX_PRO_1_1 = "flux-pro-1.1"
    FLUX_PRO_1_1_ULTRA = "flux-pro-1.1-ultra"
    FLUX_PRO = "flux-pro"
    FLUX_DEV = "flux-dev"
    FLUX_KONTEXT_PRO = "flux-kontext-pro"

    # Subscribe (fal.ai), dev tier with style adapters
    FAL_FLUX_LORA = "fal-ai/flux-lora"

    @classmethod
    def from_str(cls, value: str | None) -> Self | None:
        if not value:
            return None
        try:
            return cls(value.strip())  # type: ignore[arg-type]
        except ValueError:
            return None


class JobStatus(StrEnum):
    """Lifecycle of a transient provider job."""

    SUBMITTED = "submitted"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    ERROR = "error"
    TIMED_OUT = "timed_out"


class ReviewStatus(StrEnum):
    """Review lifecycle of a persisted generated image."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class StorageCategory(StrEnum):
    """Key prefixes used inside the storage bucket."""

    GENERATED = "generated"
    SECTIONS = "sections"
    BACKLOG = "backlog"


class PipelineStage(StrEnum):
    """Orchestrator states, in execution order."""

    NORMALIZING = "normalizing"
    RESOLVING_REFERENCE = "resolving_reference"
    DISPATCHING = "dispatching"
    POLLING = "polling"
    POST_PROCESSING = "post_processing"
    UPLOADING = "uploading"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class Background(StrEnum):
    """Background alpha preference for models that support it."""

    TRANSPARENT = "transparent"
    OPAQUE = "opaque"
    AUTO = "auto"


class OutputFormat(StrEnum):
    """Output formats accepted by the Flux providers."""

    JPEG = "jpeg"
    PNG = "png"


__all__ = [
    "Provider",
    "ClientKind",
    "SizeMode",
    "ReferenceEncoding",
    "Model",
    "JobStatus",
    "ReviewStatus",
    "StorageCategory",
    "PipelineStage",
    "Background",
    "OutputFormat",
]
