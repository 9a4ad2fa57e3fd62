from __future__ import annotations

import base64
from types import SimpleNamespace

import httpx
import openai
import pytest

from venue_imagegen.engines.normalizer import normalize
from venue_imagegen.engines.synchronous import openai_images
from venue_imagegen.engines.synchronous.openai_images import OpenAIImages
from venue_imagegen.exceptions import ConfigurationError, NoImagesGeneratedError, ProviderError, SubmitError
from venue_imagegen.schema import ReferenceImage


class DummyImages:
    def __init__(self, response=None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.generate_calls: list[dict] = []
        self.edit_calls: list[dict] = []

    async def generate(self, **kwargs):
        self.generate_calls.append(kwargs)
        if self.error:
            raise self.error
        return self.response

    async def edit(self, **kwargs):
        self.edit_calls.append(kwargs)
        if self.error:
            raise self.error
        return self.response


class DummyClient:
    def __init__(self, images: DummyImages):
        self.images = images


def response_with(**item):
    return SimpleNamespace(data=[SimpleNamespace(url=item.get("url"), b64_json=item.get("b64_json"))])


def openai_request(**overrides):
    return normalize({"section_id": "s", "prompt_id": "p", "prompt": "lower bowl view", **overrides})


@pytest.fixture
def engine():
    return OpenAIImages()


@pytest.mark.asyncio
async def test_dalle3_requests_url(monkeypatch, engine):
    images = DummyImages(response_with(url="https://oaidalle.blob/x.png"))
    monkeypatch.setattr(engine, "_client", lambda: DummyClient(images))

    asset = await engine.submit(openai_request(negative_prompt="blur"))

    assert asset.url == "https://oaidalle.blob/x.png"
    call = images.generate_calls[0]
    assert call == {
        "model": "dall-e-3",
        "prompt": "lower bowl view\n\nAvoid: blur",
        "n": 1,
        "size": "1792x1024",
        "quality": "hd",
        "style": "vivid",
        "response_format": "url",
    }


@pytest.mark.asyncio
async def test_gpt_image_returns_inline_bytes(monkeypatch, engine, png_bytes):
    images = DummyImages(response_with(b64_json=base64.b64encode(png_bytes).decode()))
    monkeypatch.setattr(engine, "_client", lambda: DummyClient(images))

    asset = await engine.submit(openai_request(model="gpt-image-1", background="transparent"))

    assert asset.is_inline
    assert asset.data == png_bytes
    call = images.generate_calls[0]
    assert "response_format" not in call
    assert call["background"] == "transparent"
    assert call["size"] == "auto"


@pytest.mark.asyncio
async def test_reference_switches_to_edit(monkeypatch, engine, png_bytes):
    images = DummyImages(response_with(b64_json=base64.b64encode(png_bytes).decode()))
    monkeypatch.setattr(engine, "_client", lambda: DummyClient(images))
    req = openai_request(model="gpt-image-1", reference_image_url="https://x/ref.png")
    req = req.model_copy(update={"reference": ReferenceImage(source_url="https://x/ref.png", data=b"refbytes", mime_type="image/png")})

    await engine.submit(req)

    assert images.generate_calls == []
    call = images.edit_calls[0]
    assert call["image"] == ("reference.png", b"refbytes", "image/png")
    assert call["model"] == "gpt-image-1"
    assert "style" not in call


@pytest.mark.asyncio
async def test_reference_without_edit_support_generates(monkeypatch, engine):
    images = DummyImages(response_with(url="https://oai/img.png"))
    monkeypatch.setattr(engine, "_client", lambda: DummyClient(images))
    req = openai_request(model="dall-e-3")
    req = req.model_copy(update={"reference": ReferenceImage(source_url="https://x/ref.png", data=b"refbytes", mime_type="image/png")})

    asset = await engine.submit(req)

    assert images.edit_calls == []
    assert len(images.generate_calls) == 1
    assert asset.url == "https://oai/img.png"


@pytest.mark.asyncio
async def test_empty_response_is_no_images_error(monkeypatch, engine):
    monkeypatch.setattr(engine, "_client", lambda: DummyClient(DummyImages(SimpleNamespace(data=[]))))
    with pytest.raises(NoImagesGeneratedError):
        await engine.submit(openai_request())


@pytest.mark.asyncio
async def test_status_error_maps_to_submit_error(monkeypatch, engine):
    request = httpx.Request("POST", "https://api.openai.com/v1/images/generations")
    response = httpx.Response(400, request=request, json={"error": {"message": "Your request was rejected by the safety system"}})
    error = openai.BadRequestError("Your request was rejected by the safety system", response=response, body=None)
    monkeypatch.setattr(engine, "_client", lambda: DummyClient(DummyImages(error=error)))

    with pytest.raises(SubmitError) as exc:
        await engine.submit(openai_request())
    assert exc.value.status_code == 400
    assert "safety system" in exc.value.user_message


@pytest.mark.asyncio
async def test_connection_error_maps_to_provider_error(monkeypatch, engine):
    error = openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/images/generations"))
    monkeypatch.setattr(engine, "_client", lambda: DummyClient(DummyImages(error=error)))
    with pytest.raises(ProviderError):
        await engine.submit(openai_request())


@pytest.mark.asyncio
async def test_missing_key_is_configuration_error(monkeypatch, engine):
    monkeypatch.setattr(openai_images.settings, "openai_api_key", None)
    monkeypatch.setattr(openai_images.settings, "ai_gateway_api_key", None)
    with pytest.raises(ConfigurationError):
        await engine.submit(openai_request())


def test_gateway_credentials_take_precedence(monkeypatch):
    settings = openai_images.settings
    monkeypatch.setattr(settings, "openai_api_key", "sk-direct")
    monkeypatch.setattr(settings, "ai_gateway_api_key", "gw-key")
    monkeypatch.setattr(settings, "ai_gateway_url", "https://gateway.example/v1")
    assert settings.openai_credentials == ("gw-key", "https://gateway.example/v1")
