"""Known style adapters for the flux-lora endpoint and their trigger words.

Adapters listed here get their trigger words appended to the prompt when they
are selected; adapters not listed are forwarded unchanged. Venue presets bundle
adapters with prompt phrases tuned for one seating section.
"""

from __future__ import annotations

from typing import Final

from ..schema import LoraWeight, VenuePreset

SUPER_REALISM = "strangerzonehf/Flux-Super-Realism-LoRA"
EDM_STAGE = "Purz/edm-festival-stage"
XLABS_REALISM = "XLabs-AI/flux-RealismLora"
CANOPUS_ULTRA = "prithivMLmods/Canopus-LoRA-Flux-UltraRealism-2.0"
KONTEXT_ULTIMATE = "strangerzonehf/Flux-Kontext-Ultimate-LoRA"
IMAGEPIPELINE_REALISM = "imagepipeline/Flux-Realism-LoRA"

LORA_TRIGGER_WORDS: Final[dict[str, list[str]]] = {
    EDM_STAGE: ["3dm_f35t1v47"],
    XLABS_REALISM: [],
    SUPER_REALISM: ["Super Realism"],
    CANOPUS_ULTRA: ["Ultra realistic"],
    KONTEXT_ULTIMATE: [],
    IMAGEPIPELINE_REALISM: [],
}


def _preset(preset_id: str, name: str, section: str, description: str, loras: list[tuple[str, float]], additions: str) -> VenuePreset:
    return VenuePreset(
        id=preset_id,
        name=name,
        description=description,
        venue_section=section,
        loras=[LoraWeight(path=path, scale=scale) for path, scale in loras],
        prompt_additions=[phrase.strip() for phrase in additions.split(",")],
    )


_PRESETS = [
    _preset(
        "front-left", "Front Left", "Front Left",
        "Stage left perspective, close crowd energy with stage visibility",
        [(SUPER_REALISM, 1.0), (EDM_STAGE, 0.9)],
        "Super Realism, concert crowd, stage left view, energetic atmosphere, 3dm_f35t1v47",
    ),
    _preset(
        "front-center", "Front Center", "Front Center",
        "Center front perspective, optimal stage view with front crowd",
        [(SUPER_REALISM, 1.0), (XLABS_REALISM, 0.8)],
        "Super Realism, concert crowd, center view, energetic atmosphere, professional photography",
    ),
    _preset(
        "front-right", "Front Right", "Front Right",
        "Stage right perspective, close crowd energy with stage visibility",
        [(SUPER_REALISM, 1.0), (EDM_STAGE, 0.9)],
        "Super Realism, concert crowd, stage right view, energetic atmosphere, 3dm_f35t1v47",
    ),
    _preset(
        "middle-left", "Middle Left", "Middle Left",
        "Mid-level left view, balanced stage and crowd with rock formations",
        [(CANOPUS_ULTRA, 0.9), (XLABS_REALISM, 0.8)],
        "Ultra realistic, Red Rocks amphitheater, natural rock formations, left perspective",
    ),
    _preset(
        "middle-center", "Middle Center", "Middle Center",
        "Perfect center mid-level view, classic Red Rocks perspective",
        [(CANOPUS_ULTRA, 0.9), (EDM_STAGE, 0.8)],
        "Ultra realistic, Red Rocks amphitheater, natural rock formations, center perspective, concert atmosphere",
    ),
    _preset(
        "middle-right", "Middle Right", "Middle Right",
        "Mid-level right view, balanced stage and crowd with rock formations",
        [(CANOPUS_ULTRA, 0.9), (XLABS_REALISM, 0.8)],
        "Ultra realistic, Red Rocks amphitheater, natural rock formations, right perspective",
    ),
    _preset(
        "back-left", "Back Left", "Back Left",
        "Upper left wide view, sweeping venue scale with Colorado landscape",
        [(XLABS_REALISM, 0.9), (KONTEXT_ULTIMATE, 0.6)],
        "professional photography, wide angle, dramatic lighting, Colorado landscape, left panorama",
    ),
    _preset(
        "back-center", "Back Center", "Back Center",
        "Upper center wide shot, classic panoramic Red Rocks view",
        [(XLABS_REALISM, 0.9), (KONTEXT_ULTIMATE, 0.6)],
        "professional photography, wide angle, dramatic lighting, Colorado landscape, center panorama",
    ),
    _preset(
        "back-right", "Back Right", "Back Right",
        "Upper right wide view, sweeping venue scale with Colorado landscape",
        [(XLABS_REALISM, 0.9), (KONTEXT_ULTIMATE, 0.6)],
        "professional photography, wide angle, dramatic lighting, Colorado landscape, right panorama",
    ),
    _preset(
        "general-admission", "General Admission", "General Admission",
        "Dynamic GA floor experience with immersive crowd energy",
        [(SUPER_REALISM, 1.0), (XLABS_REALISM, 0.8)],
        "Super Realism, concert crowd, GA floor, immersive perspective, energetic atmosphere",
    ),
    _preset(
        "pit", "Pit", "Pit",
        "Closest to stage, intense energy with dramatic stage lighting",
        [(EDM_STAGE, 1.0), (SUPER_REALISM, 0.9)],
        "3dm_f35t1v47, Super Realism, pit section, extreme close-up, stage lighting, intense energy",
    ),
    _preset(
        "standing-room-only", "Standing Room Only", "Standing Room Only",
        "Back standing area with full venue visibility and atmosphere",
        [(XLABS_REALISM, 0.9), (IMAGEPIPELINE_REALISM, 0.8)],
        "professional photography, standing room view, full venue, concert atmosphere, Red Rocks",
    ),
    _preset(
        "artistic-cinematic", "Artistic/Cinematic", "Any",
        "Dramatic, film-grade concert photography for any section",
        [(KONTEXT_ULTIMATE, 0.8), (SUPER_REALISM, 0.7)],
        "Super Realism, cinematic lighting, dramatic atmosphere, artistic concert photography",
    ),
]

VENUE_PRESETS: Final[dict[str, VenuePreset]] = {preset.id: preset for preset in _PRESETS}


def get_preset(preset_id: str | None) -> VenuePreset | None:
    return VENUE_PRESETS.get((preset_id or "").strip().lower())


__all__ = ["LORA_TRIGGER_WORDS", "VENUE_PRESETS", "get_preset"]
