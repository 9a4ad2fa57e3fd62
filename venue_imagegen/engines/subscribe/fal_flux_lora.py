from __future__ import annotations

from typing import Any

import fal_client
import httpx
from loguru import logger
from pydantic import BaseModel

from ...exceptions import ConfigurationError, NoImagesGeneratedError, ProviderError, SubmitError
from ...schema import (
    CapabilityReport,
    FinalAsset,
    LoraWeight,
    ModelCapability,
    NormalizedRequest,
)
from ...settings import get_settings
from ...shard.enums import (
    ClientKind,
    Model,
    Provider,
    ReferenceEncoding,
    SizeMode,
)
from ...utils.error_helpers import augment_with_configuration_tip
from ..base_engine import ImageEngine

settings = get_settings()


class FalImageSize(BaseModel):
    width: int
    height: int


class FalFluxLoraArguments(BaseModel):
    """Arguments for the ``fal-ai/flux-lora`` application."""

    prompt: str
    image_size: str | FalImageSize | None = None
    num_inference_steps: int | None = None
    guidance_scale: float | None = None
    num_images: int = 1
    seed: int | None = None
    output_format: str | None = None
    loras: list[LoraWeight] | None = None
    image_url: str | None = None
    strength: float | None = None


class FalFluxLora(ImageEngine):
    """Subscribe client for fal.ai.

    The fal queue is driven by ``fal_client``: one awaited call submits, waits
    and returns the result. Queue updates are only logged.
    """

    def __init__(self, provider: Provider = Provider.FAL) -> None:
        super().__init__(provider=provider, name=f"subscribe:{provider.value}")

    @property
    def client_kind(self) -> ClientKind:
        return ClientKind.SUBSCRIBE

    def get_capability_report(self) -> CapabilityReport:
        return CapabilityReport(
            provider=self.provider,
            client_kind=ClientKind.SUBSCRIBE,
            models=[
                ModelCapability(
                    model=Model.FAL_FLUX_LORA,
                    provider=self.provider,
                    client_kind=ClientKind.SUBSCRIBE,
                    size_mode=SizeMode.PRESET,
                    reference_encoding=ReferenceEncoding.URL,
                    supports_loras=True,
                    supports_steps=True,
                    supports_guidance=True,
                )
            ],
        )

    def _client(self) -> fal_client.AsyncClient:
        if not settings.fal_key:
            raise ConfigurationError("FAL_KEY environment variable must be set to use the fal provider")
        return fal_client.AsyncClient(key=settings.fal_key)

    def _build_arguments(self, req: NormalizedRequest) -> FalFluxLoraArguments:
        image_size: str | FalImageSize | None = req.size
        if image_size is None and req.width and req.height:
            image_size = FalImageSize(width=req.width, height=req.height)

        loras = [lora for lora in req.loras if lora.path.strip()]

        args = FalFluxLoraArguments(
            prompt=req.full_prompt,
            image_size=image_size,
            num_inference_steps=req.steps,
            guidance_scale=req.guidance,
            seed=req.seed,
            output_format=req.output_format,
            loras=loras or None,
        )
        if req.reference_image_url:
            args.image_url = req.reference_image_url
            args.strength = req.reference_strength
        return args

    @staticmethod
    def _on_queue_update(update: Any) -> None:
        if isinstance(update, fal_client.InProgress):
            for entry in update.logs or []:
                logger.debug(f"[fal] {entry.get('message', entry)}")
        else:
            logger.debug(f"[fal] {type(update).__name__}")

    async def submit(self, req: NormalizedRequest) -> FinalAsset:
        args = self._build_arguments(req)
        client = self._client()
        logger.info(f"Subscribing to {req.model.value} with {len(args.loras or [])} lora(s)")
        try:
            result = await client.subscribe(
                req.model.value,
                arguments=args.model_dump(exclude_none=True),
                with_logs=True,
                on_queue_update=self._on_queue_update,
            )
        except httpx.HTTPStatusError as e:
            raise SubmitError(e.response.status_code, augment_with_configuration_tip(e.response.text), self.provider.value) from e
        except Exception as e:
            # fal_client surfaces queue and application failures as its own error types.
            raise ProviderError(augment_with_configuration_tip(str(e)), self.provider.value) from e

        images = (result or {}).get("images") or []
        first = images[0] if images else {}
        url = first.get("url") if isinstance(first, dict) else None
        if not url:
            raise NoImagesGeneratedError(self.provider.value, req.model.value)
        return FinalAsset(url=url, mime_type=first.get("content_type"), job_id=(result or {}).get("request_id"))


__all__ = ["FalFluxLora", "FalFluxLoraArguments"]
