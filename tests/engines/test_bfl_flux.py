from __future__ import annotations

import json

import httpx
import pytest

from venue_imagegen.engines.normalizer import normalize
from venue_imagegen.engines.submit_poll import bfl_flux
from venue_imagegen.engines.submit_poll.bfl_flux import BflFlux
from venue_imagegen.exceptions import ConfigurationError, GenerationTimeoutError, PollError, ProviderError, SubmitError
from venue_imagegen.schema import ReferenceImage
from venue_imagegen.shard.enums import JobStatus

POLL_URL = "https://api.bfl.ai/v1/get_result?id=job-1"


class FakeBfl:
    """MockTransport handler: accepts one submit, then replays poll bodies."""

    def __init__(self, polls: list[dict], submit_status: int = 200):
        self.polls = list(polls)
        self.submit_status = submit_status
        self.submitted: list[dict] = []
        self.poll_count = 0
        self.headers: list[httpx.Headers] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.headers.append(request.headers)
        if request.method == "POST":
            self.submitted.append(json.loads(request.content))
            if self.submit_status != 200:
                return httpx.Response(self.submit_status, json={"detail": "Invalid width"})
            return httpx.Response(200, json={"id": "job-1", "polling_url": POLL_URL})
        self.poll_count += 1
        body = self.polls[min(self.poll_count - 1, len(self.polls) - 1)]
        if "_status_code" in body:
            return httpx.Response(body["_status_code"], text="upstream down")
        return httpx.Response(200, json=body)


@pytest.fixture
def engine(monkeypatch):
    monkeypatch.setattr(bfl_flux.settings, "bfl_api_key", "bfl-secret")
    monkeypatch.setattr(bfl_flux.settings, "poll_max_attempts", 60)
    engine = BflFlux()

    async def no_sleep(seconds: float) -> None:
        return None

    monkeypatch.setattr(engine, "_sleep", no_sleep)
    return engine


def use_transport(monkeypatch, engine, handler):
    monkeypatch.setattr(engine, "_http_client", lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def flux_request(**overrides):
    return normalize({"section_id": "s", "prompt_id": "p", "prompt": "sunset over amphitheater", "model": "flux-pro-1.1", "width": 1024, "height": 1024, **overrides})


@pytest.mark.asyncio
async def test_ready_after_three_polls(monkeypatch, engine):
    fake = FakeBfl([{"status": "Pending"}, {"status": "Pending"}, {"status": "Ready", "result": {"sample": "https://cdn.bfl.ai/x.png"}}])
    use_transport(monkeypatch, engine, fake)

    asset = await engine.submit(flux_request())

    assert asset.url == "https://cdn.bfl.ai/x.png"
    assert asset.job_id == "job-1"
    assert fake.poll_count == 3
    assert fake.submitted[0] == {"prompt": "sunset over amphitheater", "width": 1024, "height": 1024, "safety_tolerance": 2, "output_format": "png"}
    assert all(h["x-key"] == "bfl-secret" for h in fake.headers)


@pytest.mark.asyncio
async def test_ready_without_sample_is_provider_error(monkeypatch, engine):
    use_transport(monkeypatch, engine, FakeBfl([{"status": "Ready", "result": {}}]))
    with pytest.raises(ProviderError, match="missing asset in ready response"):
        await engine.submit(flux_request())


@pytest.mark.parametrize("status", ["Error", "Failed", "Content Moderated", "Request Moderated"])
@pytest.mark.asyncio
async def test_error_statuses_raise_provider_error(monkeypatch, engine, status):
    use_transport(monkeypatch, engine, FakeBfl([{"status": status, "error": "nsfw content"}]))
    with pytest.raises(ProviderError) as exc:
        await engine.submit(flux_request())
    assert exc.value.details["job_id"] == "job-1"


@pytest.mark.asyncio
async def test_error_text_is_carried(monkeypatch, engine):
    use_transport(monkeypatch, engine, FakeBfl([{"status": "Error", "error": "GPU fell over"}]))
    with pytest.raises(ProviderError, match="GPU fell over"):
        await engine.submit(flux_request())


@pytest.mark.asyncio
async def test_submit_rejection(monkeypatch, engine):
    fake = FakeBfl([], submit_status=422)
    use_transport(monkeypatch, engine, fake)
    with pytest.raises(SubmitError) as exc:
        await engine.submit(flux_request())
    assert exc.value.status_code == 422
    assert "Invalid width" in exc.value.user_message
    assert fake.poll_count == 0


@pytest.mark.asyncio
async def test_non_json_submit_body_is_submit_error(monkeypatch, engine):
    use_transport(monkeypatch, engine, lambda request: httpx.Response(200, text="<html>gateway</html>"))
    with pytest.raises(SubmitError, match="not JSON") as exc:
        await engine.submit(flux_request())
    assert exc.value.status_code == 200


@pytest.mark.asyncio
async def test_missing_polling_url_falls_back_to_get_result(monkeypatch, engine):
    monkeypatch.setattr(bfl_flux.settings, "bfl_api_base", "https://api.bfl.ai/v1")
    polled: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(200, json={"id": "job-9"})
        polled.append(str(request.url))
        return httpx.Response(200, json={"status": "Ready", "result": {"sample": "https://cdn.bfl.ai/9.png"}})

    use_transport(monkeypatch, engine, handler)
    asset = await engine.submit(flux_request())

    assert asset.url == "https://cdn.bfl.ai/9.png"
    assert polled == ["https://api.bfl.ai/v1/get_result?id=job-9"]


@pytest.mark.asyncio
async def test_poll_failure_is_poll_error(monkeypatch, engine):
    use_transport(monkeypatch, engine, FakeBfl([{"status": "Pending"}, {"_status_code": 502}]))
    with pytest.raises(PollError):
        await engine.submit(flux_request())


@pytest.mark.asyncio
async def test_timeout_after_sixty_polls(monkeypatch, engine):
    fake = FakeBfl([{"status": "Pending"}])
    use_transport(monkeypatch, engine, fake)
    with pytest.raises(GenerationTimeoutError) as exc:
        await engine.submit(flux_request())
    assert fake.poll_count == 60
    assert exc.value.details["job_id"] == "job-1"


@pytest.mark.asyncio
async def test_missing_key_is_configuration_error(monkeypatch):
    monkeypatch.setattr(bfl_flux.settings, "bfl_api_key", None)
    with pytest.raises(ConfigurationError):
        await BflFlux().submit(flux_request())


def test_classify():
    assert BflFlux.classify({"status": "Ready"}) == JobStatus.READY
    assert BflFlux.classify({"status": "content moderated"}) == JobStatus.ERROR
    assert BflFlux.classify({"status": "Task not found"}) == JobStatus.IN_PROGRESS
    assert BflFlux.classify({}) == JobStatus.IN_PROGRESS


def test_ultra_payload_uses_ratio_raw_and_image_prompt(engine):
    req = normalize({"section_id": "s", "prompt_id": "p", "prompt": "x", "model": "flux-pro-1.1-ultra", "aspect_ratio": "21:9", "raw": True, "reference_image_url": "https://x/r.png", "seed": 9})
    req = req.model_copy(update={"reference": ReferenceImage(source_url="https://x/r.png", data=b"\x89PNG-bytes", mime_type="image/png")})

    payload = engine._build_payload(req).model_dump(exclude_none=True)

    assert payload["aspect_ratio"] == "21:9"
    assert payload["raw"] is True
    assert payload["seed"] == 9
    assert payload["image_prompt"] == req.reference.b64
    assert payload["image_prompt_strength"] == 0.1
    assert "width" not in payload and "input_image" not in payload


def test_kontext_payload_uses_input_image(engine):
    req = normalize({"section_id": "s", "prompt_id": "p", "prompt": "x", "model": "flux-kontext-pro", "reference_image_url": "https://x/r.png"})
    req = req.model_copy(update={"reference": ReferenceImage(source_url="https://x/r.png", data=b"ref")})

    payload = engine._build_payload(req).model_dump(exclude_none=True)

    assert payload["input_image"] == req.reference.b64
    assert "image_prompt" not in payload


def test_dev_payload_carries_steps_and_guidance(engine):
    payload = engine._build_payload(flux_request(model="flux-dev", steps=40, guidance=2.5)).model_dump(exclude_none=True)
    assert payload["steps"] == 40
    assert payload["guidance"] == 2.5
