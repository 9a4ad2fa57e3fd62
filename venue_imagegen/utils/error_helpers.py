from __future__ import annotations

from typing import TYPE_CHECKING

from ..exceptions import ConfigurationError
from ..shard import constants as C

if TYPE_CHECKING:
    from ..shard.enums import Provider


_CONFIGURATION_TIP = " Tip: check the provider API key and base URL settings, or use 'get_model_capabilities' to see which providers are enabled."


def _looks_like_auth_or_capability_issue(text: str) -> bool:
    """Best-effort detection for auth/capability issues from provider errors."""
    if not text:
        return False
    lower = text.lower()

    keywords = [
        # auth/credentials
        "api key",
        "apikey",
        "invalid key",
        "missing key",
        "unauthorized",
        "forbidden",
        "permission",
        "access denied",
        "credentials",
        "401",
        "403",
        # billing/quota
        "billing",
        "quota",
        "insufficient credits",
        # routing/model mapping
        "not enabled",
        "no engine available",
        "unsupported model",
    ]

    return any(k in lower for k in keywords)


def augment_with_configuration_tip(message: str) -> str:
    """Append a configuration tip to the message when appropriate."""
    if not message:
        return message
    if _CONFIGURATION_TIP.strip() in message:
        return message
    if _looks_like_auth_or_capability_issue(message):
        return message.rstrip() + _CONFIGURATION_TIP
    return message


# ============================================================================
# Engine Factory Errors
# ============================================================================


class EngineFactoryError(ConfigurationError):
    """Base exception for engine factory errors."""


class ProviderUnavailableError(EngineFactoryError):
    """Raised when a provider is not enabled (missing credentials)."""

    code = C.ERROR_CODE_PROVIDER_UNAVAILABLE

    def __init__(self, provider: Provider):
        self.provider = provider
        super().__init__(
            augment_with_configuration_tip(f"Provider '{provider.value}' is not enabled (missing credentials)."),
            details={"provider": provider.value},
        )


class EngineResolutionError(EngineFactoryError):
    """Raised when no suitable engine can be found for the inputs."""


__all__ = [
    "augment_with_configuration_tip",
    "EngineFactoryError",
    "ProviderUnavailableError",
    "EngineResolutionError",
]
