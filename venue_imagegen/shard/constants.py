"""Project constants for the generation pipeline.

This module centralizes defaults, accepted value enumerations and bounds shared
by the request normalizer, the provider engines and the storage layer. Keep
provider wire formats out of here; those belong in the individual engines.
"""

from __future__ import annotations

from typing import Final

from .enums import Model

# ----------------------------- Request defaults ----------------------------- #

DEFAULT_MODEL: Final[Model] = Model.DALL_E_3
DEFAULT_OPENAI_QUALITY: Final[str] = "hd"
DEFAULT_DALLE_STYLE: Final[str] = "vivid"

# Width/height used by dimension-based models when the caller sends neither.
DEFAULT_WIDTH: Final[int] = 1024
DEFAULT_HEIGHT: Final[int] = 768

# Accepted bounds for explicit width/height (the 64px step is a UI convention).
MIN_DIMENSION: Final[int] = 256
MAX_DIMENSION: Final[int] = 2048

# ---------------------------- Size allow-lists ------------------------------ #

# Each family declares accepted tokens and the default substituted for anything
# else. Substitution is deliberate: an unknown token is never an error.
GPT_IMAGE_SIZES: Final[tuple[str, ...]] = ("auto", "1024x1024", "1536x1024", "1024x1536")
GPT_IMAGE_DEFAULT_SIZE: Final[str] = "auto"

DALLE_SIZES: Final[tuple[str, ...]] = ("1024x1024", "1792x1024", "1024x1792")
DALLE_DEFAULT_SIZE: Final[str] = "1792x1024"

FLUX_ASPECT_RATIOS: Final[tuple[str, ...]] = ("21:9", "16:9", "4:3", "3:2", "1:1", "2:3", "3:4", "9:16", "9:21")
FLUX_DEFAULT_ASPECT_RATIO: Final[str] = "16:9"

FAL_IMAGE_SIZES: Final[tuple[str, ...]] = (
    "square_hd",
    "square",
    "portrait_4_3",
    "portrait_16_9",
    "landscape_4_3",
    "landscape_16_9",
)
FAL_DEFAULT_IMAGE_SIZE: Final[str] = "landscape_16_9"

# ---------------------------- Quality knobs --------------------------------- #

GPT_IMAGE_QUALITIES: Final[tuple[str, ...]] = ("low", "medium", "high", "auto")
GPT_IMAGE_QUALITY_ALIASES: Final[dict[str, str]] = {"hd": "high", "standard": "medium"}
DALLE_QUALITIES: Final[tuple[str, ...]] = ("standard", "hd")
DALLE_STYLES: Final[tuple[str, ...]] = ("vivid", "natural")
BACKGROUNDS: Final[tuple[str, ...]] = ("transparent", "opaque", "auto")

SAFETY_TOLERANCE_RANGE: Final[tuple[int, int]] = (0, 6)
DEFAULT_SAFETY_TOLERANCE: Final[int] = 2
STEPS_RANGE: Final[tuple[int, int]] = (1, 50)
DEFAULT_STEPS: Final[int] = 28
BFL_GUIDANCE_RANGE: Final[tuple[float, float]] = (1.5, 5.0)
DEFAULT_BFL_GUIDANCE: Final[float] = 3.0
FAL_GUIDANCE_RANGE: Final[tuple[float, float]] = (0.0, 20.0)
DEFAULT_FAL_GUIDANCE: Final[float] = 3.5
DEFAULT_OUTPUT_FORMAT: Final[str] = "png"

# ---------------------------- Style adapters -------------------------------- #

LORA_SCALE_RANGE: Final[tuple[float, float]] = (0.0, 2.0)
MAX_LORAS: Final[int] = 5

# ---------------------------- Reference images ------------------------------ #

DEFAULT_IMAGE_PROMPT_STRENGTH: Final[float] = 0.1
DEFAULT_IMG2IMG_STRENGTH: Final[float] = 0.85
REFERENCE_FILENAME: Final[str] = "reference.png"

# ------------------------------- Assets ------------------------------------- #

DEFAULT_MIME: Final[str] = "image/png"
WEBP_MIME: Final[str] = "image/webp"
CACHE_CONTROL_SECONDS: Final[int] = 31536000  # one year

# ------------------------------- Errors ------------------------------------- #

ERROR_CODE_VALIDATION: Final[str] = "validation_error"
ERROR_CODE_CONFIGURATION: Final[str] = "configuration_error"
ERROR_CODE_PROVIDER_UNAVAILABLE: Final[str] = "provider_unavailable"
ERROR_CODE_SUBMIT: Final[str] = "submit_error"
ERROR_CODE_POLL: Final[str] = "poll_error"
ERROR_CODE_PROVIDER_ERROR: Final[str] = "provider_error"
ERROR_CODE_NO_IMAGES: Final[str] = "no_images_generated"
ERROR_CODE_TIMEOUT: Final[str] = "timeout"
ERROR_CODE_FETCH: Final[str] = "fetch_error"
ERROR_CODE_STORAGE: Final[str] = "storage_error"
ERROR_CODE_PERSISTENCE: Final[str] = "persistence_error"
ERROR_CODE_INTERNAL: Final[str] = "internal_error"
