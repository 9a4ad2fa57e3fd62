"""Generation pipeline entry point.

Normalizing -> Resolving-Reference (optional) -> Dispatching -> Polling
(submit/poll engines) -> Post-Processing -> Uploading -> Persisting.

Any failure short-circuits the rest and comes back as one flat error envelope
tagged with the stage it happened in. Either a full record is returned or
nothing is persisted. A record write failing after a successful upload leaves
the uploaded object orphaned.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from loguru import logger

from .engines.base_engine import ImageEngine
from .engines.factory import ModelFactory
from .engines.normalizer import normalize
from .exceptions import GenerationTimeoutError, ImageGenerationError, PollError, ProviderError
from .schema import (
    ErrorEnvelope,
    FinalAsset,
    GeneratedImageRecordCreate,
    GenerationRequest,
    GenerationResult,
    NormalizedRequest,
    ProcessedImage,
)
from .services.fetch import AssetFetcher, ReferenceResolver
from .services.postprocess import PostProcessor
from .services.records import RecordStore
from .services.storage import SupabaseStorage
from .settings import get_settings, Settings
from .shard import constants as C
from .shard.enums import ClientKind, Model, PipelineStage, Provider, ReviewStatus, StorageCategory

EngineFactory = Callable[[Provider, Model], ImageEngine]


def _failed_stage(stage: PipelineStage, err: Exception, client_kind: ClientKind | None) -> PipelineStage:
    """Attribute a failure inside ``submit`` to dispatch or polling."""
    if stage != PipelineStage.DISPATCHING:
        return stage
    if isinstance(err, (PollError, GenerationTimeoutError)):
        return PipelineStage.POLLING
    if client_kind == ClientKind.SUBMIT_POLL and isinstance(err, ProviderError):
        return PipelineStage.POLLING
    return stage


class GenerationOrchestrator:
    """Runs one generation request end to end.

    Collaborators are injectable; by default each is built from settings. The
    orchestrator holds no per-request state, so one instance can serve
    concurrent calls.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        fetcher: AssetFetcher | None = None,
        resolver: ReferenceResolver | None = None,
        postprocessor: PostProcessor | None = None,
        storage: SupabaseStorage | None = None,
        records: RecordStore | None = None,
        engine_factory: EngineFactory | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.fetcher = fetcher or AssetFetcher()
        self.resolver = resolver or ReferenceResolver(self.fetcher)
        self.postprocessor = postprocessor or PostProcessor()
        self.storage = storage or SupabaseStorage(self.settings)
        self.records = records or RecordStore(self.settings)
        self.engine_factory: EngineFactory = engine_factory or (lambda provider, model: ModelFactory.create(provider=provider, model=model))

    async def _process(self, asset: FinalAsset) -> ProcessedImage:
        if asset.url is not None:
            data, _ = await self.fetcher.download(asset.url, what="generated image")
            return await self.postprocessor.process(data)

        inline = asset.data or b""
        if self.settings.compress_inline_assets:
            return await self.postprocessor.process(inline)
        return await self.postprocessor.passthrough(inline, asset.mime_type)

    @staticmethod
    def _build_record(req: NormalizedRequest, image_url: str) -> GeneratedImageRecordCreate:
        return GeneratedImageRecordCreate(
            section_id=req.section_id,
            prompt_id=req.prompt_id,
            image_url=image_url,
            model_name=req.model.value,
            model_provider=req.provider.value,
            status=ReviewStatus.PENDING,
            generation_settings=req.generation_settings(),
        )

    async def generate(self, raw: GenerationRequest | Mapping[str, Any]) -> GenerationResult:
        stage = PipelineStage.NORMALIZING
        client_kind: ClientKind | None = None
        try:
            req = normalize(raw)
            engine = self.engine_factory(req.provider, req.model)
            client_kind = engine.client_kind
            # Fail before spending a provider call when the asset cannot be kept.
            self.storage.ensure_configured()
            self.records.ensure_configured()

            if req.reference_image_url:
                stage = PipelineStage.RESOLVING_REFERENCE
                req = await self.resolver.attach(req, engine.reference_encoding(req.model))

            stage = PipelineStage.DISPATCHING
            logger.info(f"Dispatching {req.model.value} via {engine.name} for section {req.section_id}")
            asset = await engine.submit(req)

            stage = PipelineStage.POST_PROCESSING
            processed = await self._process(asset)

            stage = PipelineStage.UPLOADING
            image_url = await self.storage.upload(processed, StorageCategory.GENERATED)

            stage = PipelineStage.PERSISTING
            record = await self.records.insert(self._build_record(req, image_url))
        except ImageGenerationError as e:
            failed_at = _failed_stage(stage, e, client_kind)
            logger.error(f"Generation failed while {failed_at.value}: [{e.code}] {e.user_message}")
            return GenerationResult(ok=False, error=ErrorEnvelope.from_error(e.to_error(), failed_at))
        except Exception as e:
            logger.exception(f"Unexpected failure while {stage.value}")
            return GenerationResult(
                ok=False,
                error=ErrorEnvelope(
                    error=str(e) or "Failed to generate image",
                    code=C.ERROR_CODE_INTERNAL,
                    details={"stage": stage.value, "type": type(e).__name__},
                ),
            )

        logger.info(f"Generated image {record.id} ({req.model.value}) stored at {image_url}")
        return GenerationResult(ok=True, record=record, image_url=image_url)


__all__ = ["GenerationOrchestrator"]
