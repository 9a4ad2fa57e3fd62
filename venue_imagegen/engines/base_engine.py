from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from ..schema import (
    CapabilityReport,
    FinalAsset,
    ModelCapability,
    NormalizedRequest,
)
from ..shard.enums import ClientKind, Model, Provider, ReferenceEncoding


class ImageEngine(ABC, BaseModel):
    """Abstract base for provider clients.

    Every variant satisfies the same contract: take a ``NormalizedRequest`` and
    return a ``FinalAsset`` (inline bytes or a fetchable URL), raising one of the
    pipeline's typed errors on failure.
    """

    name: str
    provider: Provider

    def __init__(self, provider: Provider, **data):
        """Initialize engine with provider."""
        super().__init__(provider=provider, **data)

    @property
    @abstractmethod
    def client_kind(self) -> ClientKind:
        raise NotImplementedError

    def capability_for(self, model: Model) -> ModelCapability:
        for cap in self.get_capability_report().models:
            if cap.model == model:
                return cap
        raise KeyError(f"{self.name} does not serve model {model.value}")

    def reference_encoding(self, model: Model) -> ReferenceEncoding | None:
        """How this engine wants a reference image for ``model``; None if it takes none."""
        return self.capability_for(model).reference_encoding

    @abstractmethod
    async def submit(self, req: NormalizedRequest) -> FinalAsset:
        raise NotImplementedError

    @abstractmethod
    def get_capability_report(self) -> CapabilityReport:
        """Return the capability report for this engine.

        Each engine implementation should return the static capabilities of the
        models it serves: size mode, reference encoding and feature flags.
        """
        raise NotImplementedError
