from __future__ import annotations

import asyncio
from typing import Any

import httpx
from loguru import logger
from pydantic import BaseModel

from ...exceptions import (
    ConfigurationError,
    GenerationTimeoutError,
    PollError,
    ProviderError,
    SubmitError,
)
from ...schema import (
    CapabilityReport,
    FinalAsset,
    ModelCapability,
    NormalizedRequest,
    ProviderJob,
)
from ...settings import get_settings
from ...shard.enums import (
    ClientKind,
    JobStatus,
    Model,
    Provider,
    ReferenceEncoding,
    SizeMode,
)
from ...utils.error_helpers import augment_with_configuration_tip
from ...utils.polling import poll_until
from ..base_engine import ImageEngine

settings = get_settings()

# Lowercased provider status strings that end a job unsuccessfully.
_ERROR_STATUSES = frozenset({"error", "failed", "content moderated", "request moderated"})
_READY_STATUS = "ready"


class BflSubmitPayload(BaseModel):
    """JSON body for ``POST {base}/{model}``."""

    prompt: str
    width: int | None = None
    height: int | None = None
    aspect_ratio: str | None = None
    seed: int | None = None
    safety_tolerance: int | None = None
    output_format: str | None = None
    raw: bool | None = None
    image_prompt: str | None = None
    image_prompt_strength: float | None = None
    input_image: str | None = None
    steps: int | None = None
    guidance: float | None = None


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error") or body.get("message")
        if detail:
            return detail if isinstance(detail, str) else str(detail)
    return str(body)


class BflFlux(ImageEngine):
    """Submit/poll client for the Black Forest Labs Flux API.

    A job is submitted once, then its polling URL is read at a fixed interval
    until the status is ready or failed, or until the attempt cap is hit.
    """

    def __init__(self, provider: Provider = Provider.BFL) -> None:
        super().__init__(provider=provider, name=f"submit_poll:{provider.value}")

    @property
    def client_kind(self) -> ClientKind:
        return ClientKind.SUBMIT_POLL

    def get_capability_report(self) -> CapabilityReport:
        def cap(model: Model, size_mode: SizeMode, **flags: bool) -> ModelCapability:
            return ModelCapability(
                model=model,
                provider=self.provider,
                client_kind=ClientKind.SUBMIT_POLL,
                size_mode=size_mode,
                reference_encoding=ReferenceEncoding.BASE64,
                **flags,
            )

        return CapabilityReport(
            provider=self.provider,
            client_kind=ClientKind.SUBMIT_POLL,
            models=[
                cap(Model.FLUX_PRO_1_1, SizeMode.DIMENSIONS),
                cap(Model.FLUX_PRO_1_1_ULTRA, SizeMode.ASPECT_RATIO, supports_raw=True),
                cap(Model.FLUX_PRO, SizeMode.DIMENSIONS, supports_steps=True, supports_guidance=True),
                cap(Model.FLUX_DEV, SizeMode.DIMENSIONS, supports_steps=True, supports_guidance=True),
                cap(Model.FLUX_KONTEXT_PRO, SizeMode.ASPECT_RATIO, supports_edit=True),
            ],
        )

    # ----------------------------- transport ----------------------------- #
    def _headers(self) -> dict[str, str]:
        if not settings.bfl_api_key:
            raise ConfigurationError("BFL_API_KEY environment variable must be set to use the bfl provider")
        return {"x-key": settings.bfl_api_key, "accept": "application/json"}

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=settings.http_timeout_seconds)

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    # ----------------------------- payload ------------------------------- #
    def _build_payload(self, req: NormalizedRequest) -> BflSubmitPayload:
        payload = BflSubmitPayload(
            prompt=req.full_prompt,
            seed=req.seed,
            safety_tolerance=req.safety_tolerance,
            output_format=req.output_format,
        )
        cap = self.capability_for(req.model)

        if cap.size_mode == SizeMode.ASPECT_RATIO:
            payload.aspect_ratio = req.aspect_ratio
        else:
            payload.width = req.width
            payload.height = req.height

        if cap.supports_raw:
            payload.raw = req.raw
        if cap.supports_steps:
            payload.steps = req.steps
        if cap.supports_guidance:
            payload.guidance = req.guidance

        if req.reference is not None and req.reference.data is not None:
            if cap.supports_edit:
                payload.input_image = req.reference.b64
            else:
                payload.image_prompt = req.reference.b64
                if req.model == Model.FLUX_PRO_1_1_ULTRA:
                    payload.image_prompt_strength = req.reference_strength

        if req.loras:
            logger.warning(f"{req.model.value} does not accept style adapters; dropping {len(req.loras)} lora(s)")
        return payload

    # ----------------------------- protocol ------------------------------ #
    async def _submit_job(self, client: httpx.AsyncClient, model: Model, payload: BflSubmitPayload, headers: dict[str, str]) -> ProviderJob:
        url = f"{settings.bfl_api_base.rstrip('/')}/{model.value}"
        try:
            response = await client.post(url, json=payload.model_dump(exclude_none=True), headers=headers)
        except httpx.HTTPError as e:
            raise SubmitError(None, str(e), self.provider.value) from e

        if not response.is_success:
            raise SubmitError(response.status_code, augment_with_configuration_tip(_error_text(response)), self.provider.value)

        try:
            body = response.json()
        except ValueError as e:
            raise SubmitError(response.status_code, "response was not JSON", self.provider.value) from e
        job_id = body.get("id") if isinstance(body, dict) else None
        if not job_id:
            raise SubmitError(response.status_code, "response carried no job id", self.provider.value)
        polling_url = body.get("polling_url") or f"{settings.bfl_api_base.rstrip('/')}/get_result?id={job_id}"
        logger.info(f"Submitted {model.value} job {job_id}")
        return ProviderJob(id=job_id, polling_url=polling_url)

    async def _fetch_status(self, client: httpx.AsyncClient, job: ProviderJob, headers: dict[str, str]) -> dict[str, Any]:
        polling_url = job.polling_url or f"{settings.bfl_api_base.rstrip('/')}/get_result?id={job.id}"
        try:
            response = await client.get(polling_url, headers=headers)
        except httpx.HTTPError as e:
            raise PollError(f"Polling {job.id} failed: {e}", details={"job_id": job.id}) from e

        if not response.is_success:
            raise PollError(
                f"Polling {job.id} failed ({response.status_code}): {_error_text(response)}",
                details={"job_id": job.id, "status_code": response.status_code},
            )
        try:
            body = response.json()
        except ValueError as e:
            raise PollError(f"Polling {job.id} returned invalid JSON", details={"job_id": job.id}) from e
        job.attempts += 1
        return body if isinstance(body, dict) else {}

    @staticmethod
    def classify(body: dict[str, Any]) -> JobStatus:
        """Map a BFL status body onto the job lifecycle; unknown statuses keep polling."""
        status = str(body.get("status") or "").strip().lower()
        if status == _READY_STATUS:
            return JobStatus.READY
        if status in _ERROR_STATUSES:
            return JobStatus.ERROR
        return JobStatus.IN_PROGRESS

    # ------------------------------ submit ------------------------------- #
    async def submit(self, req: NormalizedRequest) -> FinalAsset:
        headers = self._headers()
        payload = self._build_payload(req)

        async with self._http_client() as client:
            job = await self._submit_job(client, req.model, payload, headers)
            try:
                outcome = await poll_until(
                    lambda: self._fetch_status(client, job, headers),
                    self.classify,
                    interval=settings.poll_interval_seconds,
                    max_attempts=settings.poll_max_attempts,
                    sleep=self._sleep,
                    label=f"bfl job {job.id}",
                )
            except GenerationTimeoutError as e:
                job.status = JobStatus.TIMED_OUT
                e.details["job_id"] = job.id
                raise

        job.status = outcome.status
        body = outcome.payload
        if outcome.status == JobStatus.ERROR:
            job.error = str(body.get("error") or body.get("status"))
            raise ProviderError(
                f"{req.model.value} job {job.id} failed: {job.error}",
                self.provider.value,
                details={"job_id": job.id, "status": body.get("status")},
            )

        result = body.get("result") or {}
        job.asset_url = result.get("sample") if isinstance(result, dict) else None
        if not job.asset_url:
            raise ProviderError("missing asset in ready response", self.provider.value, details={"job_id": job.id})

        logger.info(f"{req.model.value} job {job.id} ready after {outcome.attempts} poll(s)")
        return FinalAsset(url=job.asset_url, job_id=job.id)


__all__ = ["BflFlux", "BflSubmitPayload"]
