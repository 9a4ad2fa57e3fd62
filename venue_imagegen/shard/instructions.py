from __future__ import annotations

# Tool descriptions used by FastMCP when registering tools. Keep short and clear.
TOOL_DESCRIPTIONS: dict[str, str] = {
    "generate_section_image": (
        "Generate one image for a venue section prompt, store it and record it for review (status 'pending'). "
        "Returns the stored record with every resolved generation setting."
    ),
    "get_model_capabilities": "Return enabled providers and per-model capability metadata (size mode, reference encoding, knobs).",
    "migrate_inline_images": "Move up to 'limit' records whose image is still an inline data URL into object storage.",
    "inline_image_status": "Count records stored inline versus in object storage.",
}


# High-level, concise server instructions for agents.
SERVER_INSTRUCTIONS: str = (
    "Venue Image Generation Server - Agent Instructions.\n"
    "Role: generates candidate images for venue sections across OpenAI, Black Forest Labs and fal.ai, "
    "uploads them to object storage and records them for human review.\n\n"
    "Workflow (short):\n"
    "1) Call get_model_capabilities to see which providers are enabled and how each model takes size "
    "(size token, width/height, aspect ratio or preset) and reference images.\n"
    "2) Call generate_section_image with section_id, prompt_id, prompt and a model. The provider is inferred "
    "from the model when omitted.\n\n"
    "Rules:\n"
    "- Unknown size tokens are replaced by the model's default, never rejected; check generation_settings "
    "on the returned record for what was actually used.\n"
    "- Explicit width/height must be within 256..2048.\n"
    "- Style adapters (loras) apply to fal-ai/flux-lora only; at most 5 are used.\n"
    "- lora_preset picks a venue section bundle of adapters and prompt phrases; ids are listed by get_model_capabilities.\n"
    "- Generation through submit/poll providers can take up to two minutes.\n\n"
    "Failures surface as ToolErrors prefixed with a stable error code and the pipeline stage that failed."
)


__all__ = ["TOOL_DESCRIPTIONS", "SERVER_INSTRUCTIONS"]
