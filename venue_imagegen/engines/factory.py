from __future__ import annotations

import importlib

from loguru import logger

from ..schema import CapabilityReport, ModelCapability
from ..settings import get_settings, Settings
from ..shard.enums import Model, Provider
from ..utils.error_helpers import EngineResolutionError, ProviderUnavailableError
from .base_engine import ImageEngine

# Model-engine mapping constants

# Direct model-to-engine mappings; import paths keep engine SDKs out of module import time
MODEL_ENGINE_MAP: dict[Model, type[ImageEngine] | str] = {
    # Synchronous
    Model.GPT_IMAGE_1: "venue_imagegen.engines.synchronous.openai_images.OpenAIImages",
    Model.DALL_E_3: "venue_imagegen.engines.synchronous.openai_images.OpenAIImages",
    # Submit/Poll
    Model.FLUX_PRO_1_1: "venue_imagegen.engines.submit_poll.bfl_flux.BflFlux",
    Model.FLUX_PRO_1_1_ULTRA: "venue_imagegen.engines.submit_poll.bfl_flux.BflFlux",
    Model.FLUX_PRO: "venue_imagegen.engines.submit_poll.bfl_flux.BflFlux",
    Model.FLUX_DEV: "venue_imagegen.engines.submit_poll.bfl_flux.BflFlux",
    Model.FLUX_KONTEXT_PRO: "venue_imagegen.engines.submit_poll.bfl_flux.BflFlux",
    # Subscribe
    Model.FAL_FLUX_LORA: "venue_imagegen.engines.subscribe.fal_flux_lora.FalFluxLora",
}

# Provider-to-supported-models mappings
PROVIDER_MODELS_MAP: dict[Provider, list[Model]] = {
    Provider.OPENAI: [Model.GPT_IMAGE_1, Model.DALL_E_3],
    Provider.BFL: [Model.FLUX_PRO_1_1, Model.FLUX_PRO_1_1_ULTRA, Model.FLUX_PRO, Model.FLUX_DEV, Model.FLUX_KONTEXT_PRO],
    Provider.FAL: [Model.FAL_FLUX_LORA],
}


# Capability discovery cache (stores ModelCapability instances)
_capability_cache: dict[Model, ModelCapability] = {}


def _load_engine_class(path_or_cls: type[ImageEngine] | str) -> type[ImageEngine]:
    """Resolve an engine class from either a direct class or an import path string."""
    if isinstance(path_or_cls, str):
        module_path, class_name = path_or_cls.rsplit(".", 1)
        module = importlib.import_module(module_path)
        return getattr(module, class_name)
    return path_or_cls


def _get_supported_providers_for_model(model: Model) -> list[Provider]:
    """Get list of providers that support a model."""
    return [provider for provider, models in PROVIDER_MODELS_MAP.items() if model in models]


def _get_model_capabilities(model: Model) -> ModelCapability:
    """Get the static `ModelCapability` for a model by instantiating its engine.

    Engines are cheap to build (no client is created until submit), so this is
    safe with or without credentials. Results are cached per model.
    """
    if model in _capability_cache:
        return _capability_cache[model]

    providers = _get_supported_providers_for_model(model)
    engine_class_path = MODEL_ENGINE_MAP.get(model)
    if not providers or not engine_class_path:
        raise EngineResolutionError(_create_resolution_error_message(None, model))

    engine = _load_engine_class(engine_class_path)(provider=providers[0])
    capability = engine.capability_for(model)
    _capability_cache[model] = capability
    return capability


def _create_resolution_error_message(provider: Provider | None, model: Model | None) -> str:
    """Create a helpful error message for resolution failures."""
    parts = []
    if provider:
        parts.append(f"provider={provider.value}")
    if model:
        parts.append(f"model={model.value}")
    hint = " " + ", ".join(parts) if parts else " for the given inputs"
    message = f"No engine available{hint}"

    if model and provider:
        names = [p.value for p in _get_supported_providers_for_model(model)]
        message += f". Model {model.value} is not supported by {provider.value}. Supported providers: {', '.join(names)}"
    elif provider and not model:
        names = [m.value for m in PROVIDER_MODELS_MAP.get(provider, [])]
        if names:
            message += f". Provider {provider.value} supports: {', '.join(names)}"
    else:
        message += f". Supported models: {', '.join(m.value for m in MODEL_ENGINE_MAP)}"

    return message


def _resolve_engine_spec(provider: Provider | None, model: Model | None) -> tuple[type[ImageEngine], Provider]:
    """
    Determines the engine class and the effective provider to use.
    Raises `EngineResolutionError` if no suitable engine can be found.
    """
    if not model:
        raise EngineResolutionError("A 'model' must be specified to resolve an engine.")

    engine_class = MODEL_ENGINE_MAP.get(model)
    if not engine_class:
        raise EngineResolutionError(_create_resolution_error_message(provider, model))

    supported_providers = _get_supported_providers_for_model(model)
    if provider is None:
        provider = supported_providers[0]
    elif provider not in supported_providers:
        raise EngineResolutionError(_create_resolution_error_message(provider, model))

    return _load_engine_class(engine_class), provider


def _get_enabled_providers(settings: Settings | None = None) -> dict[Provider, bool]:
    """Get mapping of providers to their enabled status based on credentials."""
    settings = settings or get_settings()
    return {
        Provider.OPENAI: settings.use_openai,
        Provider.BFL: settings.use_bfl,
        Provider.FAL: settings.use_fal,
    }


# Public API - ModelFactory


class ModelFactory:
    """
    Provides a clean, maintainable interface for creating image engines
    based on model and provider specifications.
    """

    @classmethod
    def create(cls, provider: Provider | None = None, model: Model | None = None) -> ImageEngine:
        """
        Create an engine instance for the given model/provider.

        Raises:
            EngineResolutionError: If no suitable engine can be found.
            ProviderUnavailableError: If the required provider is not enabled.
        """
        engine_class, effective_provider = _resolve_engine_spec(provider, model)

        if not cls.is_provider_enabled(effective_provider):
            raise ProviderUnavailableError(effective_provider)

        return engine_class(provider=effective_provider)

    @classmethod
    def resolve_provider(cls, model: Model, provider: Provider | None = None) -> Provider:
        """Validate a provider/model pair, inferring the provider when omitted."""
        _, effective_provider = _resolve_engine_spec(provider, model)
        return effective_provider

    @classmethod
    def get_supported_models(cls, provider: Provider | None = None) -> list[Model]:
        """Get all supported models, optionally filtered by provider."""
        if provider:
            return PROVIDER_MODELS_MAP.get(provider, [])
        return list(MODEL_ENGINE_MAP.keys())

    @classmethod
    def get_supported_providers(cls, model: Model | None = None) -> list[Provider]:
        """Get all supported providers, optionally filtered by model."""
        if model:
            return _get_supported_providers_for_model(model)
        return list(PROVIDER_MODELS_MAP.keys())

    @classmethod
    def get_model_capability(cls, model: Model) -> ModelCapability:
        return _get_model_capabilities(model)

    @classmethod
    def get_capabilities_for_provider(cls, provider: Provider) -> list[CapabilityReport]:
        """Get capabilities for a single enabled provider.

        Instantiates every distinct engine class referenced by the provider's
        models and collects each engine's `CapabilityReport`.
        """
        if not cls.get_enabled_providers().get(provider):
            logger.warning(f"Provider {provider.value} is not enabled, skipping capabilities.")
            return []

        engine_paths: list[str | type[ImageEngine]] = []
        for m in PROVIDER_MODELS_MAP.get(provider, []):
            val = MODEL_ENGINE_MAP.get(m)
            if val and val not in engine_paths:
                engine_paths.append(val)

        reports: list[CapabilityReport] = []
        for path_or_cls in engine_paths:
            engine = _load_engine_class(path_or_cls)(provider=provider)
            reports.append(engine.get_capability_report())
        return reports

    @classmethod
    def is_combination_supported(cls, provider: Provider, model: Model) -> bool:
        """Validate if a provider/model combination is supported."""
        return model in PROVIDER_MODELS_MAP.get(provider, [])

    @classmethod
    def get_enabled_providers(cls) -> dict[Provider, bool]:
        """Get mapping of providers to their enabled status."""
        return _get_enabled_providers()

    @classmethod
    def is_provider_enabled(cls, provider: Provider) -> bool:
        """Check if a provider is enabled (has required credentials)."""
        return _get_enabled_providers().get(provider, False)


__all__ = ["ModelFactory", "MODEL_ENGINE_MAP", "PROVIDER_MODELS_MAP"]
