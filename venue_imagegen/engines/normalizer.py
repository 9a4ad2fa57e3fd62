"""Request normalization: provider-agnostic input to a fully resolved request.

Leniency policy: unknown size tokens and out-of-range knobs are replaced or
clamped, never rejected. Only missing required fields, out-of-bounds explicit
dimensions and unroutable model/provider selections are errors. Every
substitution, clamp and drop is recorded in the request's normalization log so
it ends up in the stored generation settings.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pydantic
from loguru import logger

from ..exceptions import ValidationError
from ..schema import GenerationRequest, LoraWeight, ModelCapability, NormalizedRequest, VenuePreset
from ..shard import constants as C
from ..shard.enums import Model, Provider, SizeMode
from ..shard.lora_library import LORA_TRIGGER_WORDS, get_preset
from ..utils.error_helpers import EngineResolutionError
from ..utils.prompt import lora_trigger_words, render_prompt
from ..utils.sizing import clamp, clamp_int, derive_ratio, resolve_ratio_or_default, resolve_size_or_default
from .factory import ModelFactory

_REQUIRED_FIELDS = ("section_id", "prompt_id", "prompt")

# Size-token families: allowed tokens and the default substituted for anything else.
_SIZE_TOKEN_FAMILIES: dict[Model, tuple[tuple[str, ...], str]] = {
    Model.GPT_IMAGE_1: (C.GPT_IMAGE_SIZES, C.GPT_IMAGE_DEFAULT_SIZE),
    Model.DALL_E_3: (C.DALLE_SIZES, C.DALLE_DEFAULT_SIZE),
}

_OUTPUT_FORMAT_ALIASES = {"jpg": "jpeg"}


class _NormalizationLog:
    """Collects what the normalizer changed."""

    def __init__(self) -> None:
        self.substituted: dict[str, dict[str, Any]] = {}
        self.clamped: dict[str, dict[str, Any]] = {}
        self.dropped: list[str] = []
        self.ignored: list[str] = []

    def substitute(self, field: str, requested: Any, resolved: Any) -> None:
        if requested is not None:
            self.substituted[field] = {"requested": requested, "resolved": resolved}

    def clamp(self, field: str, requested: Any, resolved: Any) -> None:
        if requested is not None and requested != resolved:
            self.clamped[field] = {"requested": requested, "resolved": resolved}

    def drop(self, field: str, model: Model) -> None:
        logger.warning(f"Dropping '{field}': not supported by {model.value}")
        self.dropped.append(field)

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.substituted:
            out["substituted"] = self.substituted
        if self.clamped:
            out["clamped"] = self.clamped
        if self.dropped:
            out["dropped"] = self.dropped
        if self.ignored:
            out["ignored"] = self.ignored
        return out


# ------------------------------ entry point -------------------------------- #


def coerce_request(raw: GenerationRequest | Mapping[str, Any]) -> GenerationRequest:
    if isinstance(raw, GenerationRequest):
        return raw
    try:
        return GenerationRequest.model_validate(dict(raw))
    except pydantic.ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise ValidationError(f"invalid request fields: {', '.join(fields)}", details={"fields": fields}) from e


def resolve_model(req: GenerationRequest) -> tuple[Model, Provider]:
    """Pick the model (default dall-e-3) and validate or infer its provider."""
    model_id = req.model or C.DEFAULT_MODEL.value
    model = Model.from_str(model_id)
    if model is None:
        supported = ", ".join(m.value for m in ModelFactory.get_supported_models())
        raise EngineResolutionError(f"No engine available for model={model_id}. Supported models: {supported}", details={"model": model_id})

    provider: Provider | None = None
    if req.provider:
        provider = Provider.from_str(req.provider)
        if provider is None:
            supported = ", ".join(p.value for p in ModelFactory.get_supported_providers())
            raise EngineResolutionError(f"Unknown provider '{req.provider}'. Supported providers: {supported}", details={"provider": req.provider})
    return model, ModelFactory.resolve_provider(model, provider)


def normalize(raw: GenerationRequest | Mapping[str, Any]) -> NormalizedRequest:
    """Turn a raw generation request into a ``NormalizedRequest``.

    Raises:
        ValidationError: missing required fields or explicit dimensions out of bounds.
        ConfigurationError: unknown model, unknown provider or provider/model mismatch.
    """
    req = coerce_request(raw)

    missing = [name for name in _REQUIRED_FIELDS if not (getattr(req, name) or "").strip()]
    if missing:
        raise ValidationError(f"missing required field: {', '.join(missing)}", details={"missing": missing})

    model, provider = resolve_model(req)
    cap = ModelFactory.get_model_capability(model)
    log = _NormalizationLog()

    fields: dict[str, Any] = {}
    fields.update(_normalize_size(req, cap, log))
    fields.update(_normalize_openai_knobs(req, cap, log))
    fields.update(_normalize_flux_knobs(req, cap, log))
    preset = _resolve_preset(req, cap, log)
    loras = _normalize_loras(req, cap, log, preset)
    fields.update(_normalize_reference(req, cap, log))

    trigger_words = lora_trigger_words(loras, LORA_TRIGGER_WORDS) if loras else []
    if preset is not None:
        trigger_words += [phrase for phrase in preset.prompt_additions if phrase not in trigger_words]
    full_prompt, prompt_log = render_prompt(prompt=req.prompt or "", negative_prompt=req.negative_prompt, trigger_words=trigger_words)

    normalization = log.as_dict()
    if preset is not None:
        normalization["lora_preset"] = preset.id
    if prompt_log["prompt_augmented"]:
        normalization["folded_fields"] = prompt_log["folded_fields"]

    return NormalizedRequest(
        section_id=req.section_id,
        prompt_id=req.prompt_id,
        prompt=req.prompt,
        negative_prompt=req.negative_prompt or None,
        full_prompt=full_prompt,
        model=model,
        provider=provider,
        client_kind=cap.client_kind,
        loras=loras,
        normalization=normalization,
        **fields,
    )


# ------------------------------ size ---------------------------------------- #


def _check_dimension(name: str, value: int) -> int:
    if not C.MIN_DIMENSION <= value <= C.MAX_DIMENSION:
        raise ValidationError(
            f"{name} must be between {C.MIN_DIMENSION} and {C.MAX_DIMENSION}, got {value}",
            details={"field": name, "value": value},
        )
    return value


def _parse_dimensions(token: str | None) -> tuple[int, int] | None:
    if not token or "x" not in token.lower():
        return None
    w, _, h = token.lower().partition("x")
    if not (w.strip().isdigit() and h.strip().isdigit()):
        return None
    return int(w), int(h)


def _normalize_size(req: GenerationRequest, cap: ModelCapability, log: _NormalizationLog) -> dict[str, Any]:
    if cap.size_mode == SizeMode.SIZE_TOKEN:
        allowed, default = _SIZE_TOKEN_FAMILIES[cap.model]
        token = req.size
        if token is None and req.width and req.height:
            token = f"{req.width}x{req.height}"
        size, substituted = resolve_size_or_default(token, allowed, default)
        if substituted:
            log.substitute("size", token, size)
        if req.aspect_ratio:
            log.ignored.append("aspect_ratio")
        dims = _parse_dimensions(size)
        return {
            "requested_size": token,
            "size": size,
            "width": dims[0] if dims else None,
            "height": dims[1] if dims else None,
        }

    if cap.size_mode == SizeMode.ASPECT_RATIO:
        token = req.aspect_ratio
        if token is None and req.width is not None and req.height is not None:
            try:
                token = derive_ratio(req.width, req.height)
            except ValueError as e:
                raise ValidationError(str(e), details={"width": req.width, "height": req.height}) from e
        if token is None and req.size and ":" in req.size:
            token = req.size
        ratio, substituted = resolve_ratio_or_default(token, C.FLUX_ASPECT_RATIOS, C.FLUX_DEFAULT_ASPECT_RATIO)
        if substituted:
            log.substitute("aspect_ratio", token, ratio)
        return {"requested_size": req.size or token, "aspect_ratio": ratio}

    # A "WxH" size token is treated like any other token: out of bounds means default.
    token_dims = _parse_dimensions(req.size)
    if token_dims and not all(C.MIN_DIMENSION <= d <= C.MAX_DIMENSION for d in token_dims):
        token_dims = None
    explicit = req.width is not None or req.height is not None

    if cap.size_mode == SizeMode.PRESET and not (req.width is not None and req.height is not None) and not token_dims:
        preset, substituted = resolve_size_or_default(req.size, C.FAL_IMAGE_SIZES, C.FAL_DEFAULT_IMAGE_SIZE, label="image size")
        if substituted:
            log.substitute("size", req.size, preset)
        if req.aspect_ratio:
            log.ignored.append("aspect_ratio")
        return {"requested_size": req.size, "size": preset}

    # Explicit dimensions (dimension models, or fal with width/height supplied).
    if token_dims and not explicit:
        width, height = token_dims
    else:
        if req.size and not explicit:
            log.substitute("size", req.size, f"{C.DEFAULT_WIDTH}x{C.DEFAULT_HEIGHT}")
        width = req.width if req.width is not None else C.DEFAULT_WIDTH
        height = req.height if req.height is not None else C.DEFAULT_HEIGHT
    if req.aspect_ratio:
        log.ignored.append("aspect_ratio")
    return {
        "requested_size": req.size,
        "width": _check_dimension("width", width),
        "height": _check_dimension("height", height),
    }


# ------------------------------ knobs --------------------------------------- #


def _normalize_openai_knobs(req: GenerationRequest, cap: ModelCapability, log: _NormalizationLog) -> dict[str, Any]:
    out: dict[str, Any] = {}

    if cap.model == Model.GPT_IMAGE_1:
        requested = (req.quality or "").strip().lower()
        quality, substituted = resolve_size_or_default(C.GPT_IMAGE_QUALITY_ALIASES.get(requested, requested), C.GPT_IMAGE_QUALITIES, "auto", label="quality")
        if substituted:
            log.substitute("quality", req.quality, quality)
        out["quality"] = quality
    elif cap.model == Model.DALL_E_3:
        quality, substituted = resolve_size_or_default(req.quality or C.DEFAULT_OPENAI_QUALITY, C.DALLE_QUALITIES, C.DEFAULT_OPENAI_QUALITY, label="quality")
        if substituted:
            log.substitute("quality", req.quality, quality)
        out["quality"] = quality
    elif req.quality:
        log.drop("quality", cap.model)

    if cap.supports_style:
        style, substituted = resolve_size_or_default(req.style or C.DEFAULT_DALLE_STYLE, C.DALLE_STYLES, C.DEFAULT_DALLE_STYLE, label="style")
        if substituted:
            log.substitute("style", req.style, style)
        out["style"] = style
    elif req.style:
        log.drop("style", cap.model)

    if req.background:
        background = req.background.strip().lower()
        if cap.supports_background and background in C.BACKGROUNDS:
            out["background"] = background
        else:
            log.drop("background", cap.model)

    return out


def _normalize_flux_knobs(req: GenerationRequest, cap: ModelCapability, log: _NormalizationLog) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if cap.provider == Provider.OPENAI:
        for name in ("steps", "guidance", "safety_tolerance", "raw", "seed", "output_format"):
            if getattr(req, name) is not None:
                log.drop(name, cap.model)
        return out

    out["seed"] = req.seed

    requested_format = (req.output_format or C.DEFAULT_OUTPUT_FORMAT).strip().lower()
    output_format, substituted = resolve_size_or_default(
        _OUTPUT_FORMAT_ALIASES.get(requested_format, requested_format), ("jpeg", "png"), C.DEFAULT_OUTPUT_FORMAT, label="output format"
    )
    if substituted:
        log.substitute("output_format", req.output_format, output_format)
    out["output_format"] = output_format

    if cap.provider == Provider.BFL:
        requested = req.safety_tolerance if req.safety_tolerance is not None else C.DEFAULT_SAFETY_TOLERANCE
        out["safety_tolerance"] = clamp_int(requested, C.SAFETY_TOLERANCE_RANGE)
        log.clamp("safety_tolerance", req.safety_tolerance, out["safety_tolerance"])
    elif req.safety_tolerance is not None:
        log.drop("safety_tolerance", cap.model)

    if cap.supports_steps:
        out["steps"] = clamp_int(req.steps if req.steps is not None else C.DEFAULT_STEPS, C.STEPS_RANGE)
        log.clamp("steps", req.steps, out["steps"])
    elif req.steps is not None:
        log.drop("steps", cap.model)

    if cap.supports_guidance:
        if cap.provider == Provider.FAL:
            bounds, default = C.FAL_GUIDANCE_RANGE, C.DEFAULT_FAL_GUIDANCE
        else:
            bounds, default = C.BFL_GUIDANCE_RANGE, C.DEFAULT_BFL_GUIDANCE
        out["guidance"] = clamp(req.guidance if req.guidance is not None else default, bounds)
        log.clamp("guidance", req.guidance, out["guidance"])
    elif req.guidance is not None:
        log.drop("guidance", cap.model)

    if cap.supports_raw:
        out["raw"] = bool(req.raw)
    elif req.raw is not None:
        log.drop("raw", cap.model)

    return out


def filter_loras(loras: list[LoraWeight] | None) -> list[LoraWeight]:
    """Drop blank adapter paths, clamp scales and cap the list length."""
    kept: list[LoraWeight] = []
    for lora in loras or []:
        path = lora.path.strip()
        if not path:
            continue
        kept.append(LoraWeight(path=path, scale=clamp(lora.scale, C.LORA_SCALE_RANGE)))
    if len(kept) > C.MAX_LORAS:
        logger.warning(f"Keeping the first {C.MAX_LORAS} of {len(kept)} loras")
        kept = kept[: C.MAX_LORAS]
    return kept


def _resolve_preset(req: GenerationRequest, cap: ModelCapability, log: _NormalizationLog) -> VenuePreset | None:
    if not (req.lora_preset or "").strip():
        return None
    if not cap.supports_loras:
        log.drop("lora_preset", cap.model)
        return None
    preset = get_preset(req.lora_preset)
    if preset is None:
        logger.warning(f"Unknown lora preset '{req.lora_preset}', ignoring it")
        log.ignored.append("lora_preset")
    return preset


def _normalize_loras(req: GenerationRequest, cap: ModelCapability, log: _NormalizationLog, preset: VenuePreset | None) -> list[LoraWeight]:
    # Explicit adapters win over the preset's bundle.
    requested = req.loras or (preset.loras if preset is not None else [])
    if not requested:
        return []
    if not cap.supports_loras:
        log.drop("loras", cap.model)
        return []
    kept = filter_loras(requested)
    if len(kept) != len(requested):
        log.clamp("loras", len(requested), len(kept))
    return kept


def _normalize_reference(req: GenerationRequest, cap: ModelCapability, log: _NormalizationLog) -> dict[str, Any]:
    url = (req.reference_image_url or "").strip()
    wanted = bool(url) and req.use_reference_image is not False
    if not wanted:
        return {}
    if cap.reference_encoding is None:
        log.drop("reference_image_url", cap.model)
        return {}

    strength: float | None = None
    if cap.model == Model.FLUX_PRO_1_1_ULTRA:
        strength = clamp(req.reference_strength if req.reference_strength is not None else C.DEFAULT_IMAGE_PROMPT_STRENGTH, (0.0, 1.0))
    elif cap.provider == Provider.FAL:
        strength = clamp(req.reference_strength if req.reference_strength is not None else C.DEFAULT_IMG2IMG_STRENGTH, (0.0, 1.0))
    if strength is not None:
        log.clamp("reference_strength", req.reference_strength, strength)
    return {"reference_image_url": url, "reference_strength": strength}


__all__ = ["normalize", "coerce_request", "resolve_model", "filter_loras"]
