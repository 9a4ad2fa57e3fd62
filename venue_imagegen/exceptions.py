"""Typed failures raised by pipeline components.

Every component raises one of these; the orchestrator catches them and turns
them into a single flat error envelope. Nothing here is retried.
"""

from __future__ import annotations

from typing import Any

from .schema import Error
from .shard import constants as C


class ImageGenerationError(Exception):
    """Base class for all pipeline failures."""

    code: str = C.ERROR_CODE_INTERNAL

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.user_message = message
        self.details: dict[str, Any] = dict(details or {})

    def to_error(self) -> Error:
        return Error(code=self.code, message=self.user_message, details=self.details or None)


class ValidationError(ImageGenerationError):
    """Bad or missing input."""

    code = C.ERROR_CODE_VALIDATION


class ConfigurationError(ImageGenerationError):
    """Missing credential or unroutable provider/model selection."""

    code = C.ERROR_CODE_CONFIGURATION


class SubmitError(ImageGenerationError):
    """The provider rejected the submission (non-2xx)."""

    code = C.ERROR_CODE_SUBMIT

    def __init__(self, status_code: int | None, message: str, provider: str | None = None) -> None:
        self.status_code = status_code
        self.provider = provider
        prefix = f"{provider} " if provider else ""
        status = f" ({status_code})" if status_code is not None else ""
        super().__init__(
            f"{prefix}submission failed{status}: {message}",
            details={"status_code": status_code, "provider": provider, "provider_message": message},
        )


class PollError(ImageGenerationError):
    """A status poll could not be completed."""

    code = C.ERROR_CODE_POLL


class ProviderError(ImageGenerationError):
    """The provider accepted the job but failed it or returned nothing usable."""

    code = C.ERROR_CODE_PROVIDER_ERROR

    def __init__(self, message: str, provider: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        self.provider = provider
        merged = {"provider": provider, **(details or {})}
        super().__init__(message, details=merged)


class NoImagesGeneratedError(ProviderError):
    code = C.ERROR_CODE_NO_IMAGES

    def __init__(self, provider: str, model: str) -> None:
        super().__init__(f"No image data returned from {provider} for model {model}", provider, details={"model": model})


class GenerationTimeoutError(ImageGenerationError, TimeoutError):
    """Polling exceeded the attempt cap; the job is abandoned, not cancelled."""

    code = C.ERROR_CODE_TIMEOUT


class FetchError(ImageGenerationError):
    """A reference image or generated asset could not be downloaded."""

    code = C.ERROR_CODE_FETCH


class StorageError(ImageGenerationError):
    code = C.ERROR_CODE_STORAGE


class PersistenceError(ImageGenerationError):
    """Record write failed; an already-uploaded asset is left orphaned."""

    code = C.ERROR_CODE_PERSISTENCE


__all__ = [
    "ImageGenerationError",
    "ValidationError",
    "ConfigurationError",
    "SubmitError",
    "PollError",
    "ProviderError",
    "NoImagesGeneratedError",
    "GenerationTimeoutError",
    "FetchError",
    "StorageError",
    "PersistenceError",
]
