from __future__ import annotations

import argparse
from functools import lru_cache
from typing import Annotated, NoReturn

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.tools.tool import ToolResult
from loguru import logger
from pydantic import Field

from .engines import ModelFactory
from .exceptions import ImageGenerationError
from .orchestrator import GenerationOrchestrator
from .schema import CapabilitiesResponse, ErrorEnvelope, GenerationRequest, LoraWeight
from .services.migration import DEFAULT_BATCH_SIZE, InlineImageMigrator
from .shard.enums import Provider
from .shard.instructions import SERVER_INSTRUCTIONS, TOOL_DESCRIPTIONS
from .shard.lora_library import VENUE_PRESETS

app = FastMCP("venue-imagegen", instructions=SERVER_INSTRUCTIONS)


@lru_cache
def get_orchestrator() -> GenerationOrchestrator:
    return GenerationOrchestrator()


@lru_cache
def get_migrator() -> InlineImageMigrator:
    return InlineImageMigrator()


def _handle_image_generation_error(e: Exception) -> NoReturn:
    """Convert an exception to a ToolError for proper MCP error handling."""
    if isinstance(e, ImageGenerationError):
        raise ToolError(f"[{e.code}] {e.user_message}")

    # For unexpected exceptions, log and provide a generic error message
    logger.error(f"Unexpected error: {type(e).__name__}: {e}")
    raise ToolError("An unexpected error occurred. Please try again.")


def _raise_envelope(envelope: ErrorEnvelope) -> NoReturn:
    stage = (envelope.details or {}).get("stage")
    where = f" (while {stage})" if stage else ""
    raise ToolError(f"[{envelope.code}] {envelope.error}{where}")


@app.tool(
    name="generate_section_image",
    description=TOOL_DESCRIPTIONS["generate_section_image"],
    annotations={
        "title": "Generate Section Image",
        "readOnlyHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def mcp_generate_section_image(
    section_id: Annotated[str, Field(description="Section the image is generated for.")],
    prompt_id: Annotated[str, Field(description="Prompt row the text comes from.")],
    prompt: Annotated[str, Field(description="Text description of the desired image.")],
    model: Annotated[
        str | None,
        Field(description="Model id, e.g. 'dall-e-3', 'gpt-image-1', 'flux-pro-1.1', 'flux-pro-1.1-ultra', 'fal-ai/flux-lora'."),
    ] = None,
    provider: Annotated[str | None, Field(description="Provider: 'openai' | 'bfl' | 'fal'. Inferred from the model when omitted.")] = None,
    negative_prompt: Annotated[str | None, Field(description="Things to avoid; folded into the prompt text.")] = None,
    size: Annotated[str | None, Field(description="Size token or preset, e.g. '1792x1024' or 'landscape_16_9'.")] = None,
    aspect_ratio: Annotated[str | None, Field(description="Aspect ratio for ratio-based models, e.g. '16:9'.")] = None,
    width: Annotated[int | None, Field(description="Explicit width for dimension-based models (256-2048).")] = None,
    height: Annotated[int | None, Field(description="Explicit height for dimension-based models (256-2048).")] = None,
    quality: Annotated[str | None, Field(description="OpenAI quality, e.g. 'hd', 'standard', 'high'.")] = None,
    style: Annotated[str | None, Field(description="dall-e-3 style: 'vivid' | 'natural'.")] = None,
    background: Annotated[str | None, Field(description="gpt-image-1 background: 'transparent' | 'opaque' | 'auto'.")] = None,
    steps: Annotated[int | None, Field(description="Inference steps for flux models that take them.")] = None,
    guidance: Annotated[float | None, Field(description="Guidance scale for flux models that take it.")] = None,
    safety_tolerance: Annotated[int | None, Field(description="BFL safety tolerance 0-6.")] = None,
    raw: Annotated[bool | None, Field(description="Raw mode (flux-pro-1.1-ultra only).")] = None,
    seed: Annotated[int | None, Field(description="Seed for reproducible flux output.")] = None,
    output_format: Annotated[str | None, Field(description="'jpeg' | 'png' for flux models.")] = None,
    loras: Annotated[list[LoraWeight] | None, Field(description="Style adapters for fal-ai/flux-lora: [{path, scale}].")] = None,
    lora_preset: Annotated[str | None, Field(description="Venue section preset id for fal-ai/flux-lora, e.g. 'middle-center'. Explicit loras override its adapters.")] = None,
    reference_image_url: Annotated[str | None, Field(description="Reference image URL used to steer generation.")] = None,
    use_reference_image: Annotated[bool | None, Field(description="Set false to ignore reference_image_url.")] = None,
    reference_strength: Annotated[float | None, Field(description="Reference influence in [0, 1].")] = None,
) -> ToolResult:
    """Run the generation pipeline for one section prompt."""
    req = GenerationRequest(
        section_id=section_id,
        prompt_id=prompt_id,
        prompt=prompt,
        model=model,
        provider=provider,
        negative_prompt=negative_prompt,
        size=size,
        aspect_ratio=aspect_ratio,
        width=width,
        height=height,
        quality=quality,
        style=style,
        background=background,
        steps=steps,
        guidance=guidance,
        safety_tolerance=safety_tolerance,
        raw=raw,
        seed=seed,
        output_format=output_format,
        loras=loras,
        lora_preset=lora_preset,
        reference_image_url=reference_image_url,
        use_reference_image=use_reference_image,
        reference_strength=reference_strength,
    )
    result = await get_orchestrator().generate(req)
    if result.error is not None:
        _raise_envelope(result.error)
    return ToolResult(content=[], structured_content=result.model_dump(mode="json"))


@app.tool(
    name="get_model_capabilities",
    description=TOOL_DESCRIPTIONS["get_model_capabilities"],
    annotations={
        "title": "List Capabilities",
        "readOnlyHint": True,
        "idempotentHint": True,
        "openWorldHint": False,
    },
)
async def mcp_get_model_capabilities(
    provider: Annotated[
        Provider | None,
        Field(description="Optional provider filter: openai | bfl | fal."),
    ] = None,
) -> CapabilitiesResponse:
    """Return enabled engines and supported models/knobs for current credentials."""
    try:
        if provider:
            capabilities = ModelFactory.get_capabilities_for_provider(provider)
        else:
            enabled_providers = [p for p, enabled in ModelFactory.get_enabled_providers().items() if enabled]
            capabilities = [r for p in enabled_providers for r in ModelFactory.get_capabilities_for_provider(p)]

        lora_ready = any(model.supports_loras for report in capabilities for model in report.models)
        return CapabilitiesResponse(capabilities=capabilities, lora_presets=list(VENUE_PRESETS.values()) if lora_ready else [])

    except Exception as e:
        _handle_image_generation_error(e)


@app.tool(
    name="migrate_inline_images",
    description=TOOL_DESCRIPTIONS["migrate_inline_images"],
    annotations={
        "title": "Migrate Inline Images",
        "readOnlyHint": False,
        "idempotentHint": False,
        "openWorldHint": True,
    },
)
async def mcp_migrate_inline_images(
    limit: Annotated[int, Field(ge=1, le=50, description="Maximum records to migrate in this call.")] = DEFAULT_BATCH_SIZE,
) -> ToolResult:
    try:
        report = await get_migrator().migrate(limit=limit)
    except Exception as e:
        _handle_image_generation_error(e)
    payload = {"message": report.message, **report.model_dump(mode="json")}
    return ToolResult(content=[], structured_content=payload)


@app.tool(
    name="inline_image_status",
    description=TOOL_DESCRIPTIONS["inline_image_status"],
    annotations={
        "title": "Inline Image Status",
        "readOnlyHint": True,
        "idempotentHint": True,
        "openWorldHint": True,
    },
)
async def mcp_inline_image_status() -> ToolResult:
    try:
        status = await get_migrator().status()
    except Exception as e:
        _handle_image_generation_error(e)
    payload = {"needs_migration": status.needs_migration, **status.model_dump(mode="json")}
    return ToolResult(content=[], structured_content=payload)


def main() -> None:
    parser = argparse.ArgumentParser(description="Venue Image Generation Server")
    # Only accept transports supported by FastMCP for server runs.
    parser.add_argument(
        "--transport",
        choices=["stdio", "http", "sse", "streamable-http"],
        help="Transport to use (stdio, sse, http, streamable-http). Default: stdio",
    )
    parser.add_argument("--host", help="Host to bind to")
    parser.add_argument("--port", type=int, help="Port to listen on")
    args = parser.parse_args()

    transport = args.transport
    host = args.host
    port = args.port

    logger.info(f"Starting venue image server on {host}:{port} with {transport} transport")

    # stdio does not accept host/port.
    if transport in {"http", "sse", "streamable-http"}:
        app.run(transport=transport, host=host, port=port)
    else:
        app.run()


if __name__ == "__main__":
    main()
