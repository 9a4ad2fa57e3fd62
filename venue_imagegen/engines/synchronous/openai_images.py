from __future__ import annotations

import base64
from enum import StrEnum
from typing import Any

from loguru import logger
from openai import APIError, APIStatusError, AsyncOpenAI
from pydantic import BaseModel

from ...exceptions import ConfigurationError, NoImagesGeneratedError, ProviderError, SubmitError
from ...schema import (
    CapabilityReport,
    FinalAsset,
    ModelCapability,
    NormalizedRequest,
    ReferenceImage,
)
from ...settings import get_settings
from ...shard import constants as C
from ...shard.enums import (
    ClientKind,
    Model,
    Provider,
    ReferenceEncoding,
    SizeMode,
)
from ...utils.error_helpers import augment_with_configuration_tip
from ...utils.image_utils import decode_data_url, is_data_url
from ..base_engine import ImageEngine

settings = get_settings()


class OpenAIResponseFormat(StrEnum):
    """Response formats for the Images API; gpt-image-1 always answers base64."""

    B64_JSON = "b64_json"
    URL = "url"


class OpenAIImageParams(BaseModel):
    """Native Images API parameters built from a ``NormalizedRequest``."""

    model: str
    prompt: str
    n: int = 1
    size: str | None = None
    quality: str | None = None
    style: str | None = None
    background: str | None = None
    response_format: str | None = None

    def generate_kwargs(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def edit_kwargs(self) -> dict[str, Any]:
        # The edit endpoint takes no style and gpt-image-1 ignores response_format.
        return self.model_dump(exclude_none=True, exclude={"style", "response_format"})


class OpenAIImages(ImageEngine):
    """Synchronous client for the OpenAI Images API (direct or via AI gateway).

    One round trip returns the asset. When a resolved reference image is
    attached and the model supports editing, the call switches from
    ``images.generate`` to ``images.edit`` with the reference uploaded as a file.
    """

    def __init__(self, provider: Provider = Provider.OPENAI) -> None:
        super().__init__(provider=provider, name=f"synchronous:{provider.value}")

    @property
    def client_kind(self) -> ClientKind:
        return ClientKind.SYNCHRONOUS

    # Capability discovery
    def get_capability_report(self) -> CapabilityReport:
        return CapabilityReport(
            provider=self.provider,
            client_kind=ClientKind.SYNCHRONOUS,
            models=[
                ModelCapability(
                    model=Model.GPT_IMAGE_1,
                    provider=self.provider,
                    client_kind=ClientKind.SYNCHRONOUS,
                    size_mode=SizeMode.SIZE_TOKEN,
                    reference_encoding=ReferenceEncoding.BYTES,
                    supports_edit=True,
                    supports_background=True,
                ),
                ModelCapability(
                    model=Model.DALL_E_3,
                    provider=self.provider,
                    client_kind=ClientKind.SYNCHRONOUS,
                    size_mode=SizeMode.SIZE_TOKEN,
                    supports_style=True,
                ),
            ],
        )

    # Client management
    def _client(self) -> AsyncOpenAI:
        api_key, base_url = settings.openai_credentials
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY or AI_GATEWAY_API_KEY environment variable must be set to use the OpenAI provider")
        return AsyncOpenAI(api_key=api_key, base_url=base_url)

    # Request building
    def _build_params(self, req: NormalizedRequest) -> OpenAIImageParams:
        response_format = None
        if req.model == Model.DALL_E_3:
            response_format = OpenAIResponseFormat.URL.value
        return OpenAIImageParams(
            model=req.model.value,
            prompt=req.full_prompt,
            n=1,
            size=req.size,
            quality=req.quality,
            style=req.style,
            background=req.background,
            response_format=response_format,
        )

    def _edit_reference(self, req: NormalizedRequest) -> ReferenceImage | None:
        """The resolved reference when this call should use the edit endpoint."""
        if req.reference is None or req.reference.data is None:
            return None
        return req.reference if self.capability_for(req.model).supports_edit else None

    # Response processing
    def _extract_asset(self, result: Any, model: Model) -> FinalAsset:
        data = getattr(result, "data", None) or []
        for item in data:
            url = getattr(item, "url", None)
            if url:
                if is_data_url(url):
                    payload, mime = decode_data_url(url)
                    return FinalAsset(data=payload, mime_type=mime)
                return FinalAsset(url=url)
            b64 = getattr(item, "b64_json", None)
            if b64:
                return FinalAsset(data=base64.b64decode(b64), mime_type=C.DEFAULT_MIME)
        raise NoImagesGeneratedError(self.provider.value, model.value)

    # ------------------------------- submit ------------------------------ #
    async def submit(self, req: NormalizedRequest) -> FinalAsset:
        params = self._build_params(req)
        client = self._client()
        try:
            reference = self._edit_reference(req)
            if reference is not None and reference.data is not None:
                logger.info(f"Editing reference image with {req.model.value}")
                result = await client.images.edit(
                    image=(C.REFERENCE_FILENAME, reference.data, reference.mime_type or C.DEFAULT_MIME),
                    **params.edit_kwargs(),
                )
            else:
                logger.info(f"Generating image with {req.model.value}")
                result = await client.images.generate(**params.generate_kwargs())
        except APIStatusError as e:
            raise SubmitError(e.status_code, augment_with_configuration_tip(e.message), self.provider.value) from e
        except APIError as e:
            raise ProviderError(augment_with_configuration_tip(str(e)), self.provider.value) from e

        return self._extract_asset(result, req.model)


__all__ = ["OpenAIImages", "OpenAIImageParams"]
