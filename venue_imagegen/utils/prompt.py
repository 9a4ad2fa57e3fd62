from __future__ import annotations

from typing import Any

import jinja2

from ..schema import LoraWeight

# ---------------------------------------------------------------------------
# Jinja2 template to fold knobs no provider accepts natively into the prompt
# ---------------------------------------------------------------------------

# None of the supported providers take a negative prompt, so it is appended as
# an instruction, matching what earlier records were generated with:
# "<prompt>\n\nAvoid: <negative>"
_PROMPT_TEMPLATE = jinja2.Environment(
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=False,
).from_string(
    """{{ prompt | trim }}
{% if fold.trigger_words %}

{{ fold.trigger_words | join(", ") }}
{% endif %}
{% if fold.negative_prompt %}

Avoid: {{ fold.negative_prompt | trim }}
{% endif %}"""
)


def render_prompt(
    *,
    prompt: str,
    negative_prompt: str | None = None,
    trigger_words: list[str] | None = None,
) -> tuple[str, dict[str, Any]]:
    """Render the final provider prompt.

    Returns a tuple of (rendered_prompt, normalization_log) where the log notes
    which fields were folded into the text.
    """
    fold: dict[str, Any] = {}
    used: list[str] = []

    if negative_prompt and negative_prompt.strip():
        fold["negative_prompt"] = negative_prompt
        used.append("negative_prompt")
    words = [w for w in (trigger_words or []) if w and w not in prompt]
    if words:
        fold["trigger_words"] = words
        used.append("trigger_words")

    rendered = _PROMPT_TEMPLATE.render(prompt=prompt, fold=fold).strip()

    normlog = {
        "prompt_augmented": bool(used),
        "folded_fields": used,
    }
    return rendered, normlog


def lora_trigger_words(loras: list[LoraWeight], catalog: dict[str, list[str]]) -> list[str]:
    """Collect trigger words registered for the given adapter paths."""
    words: list[str] = []
    for lora in loras:
        for word in catalog.get(lora.path, []):
            if word not in words:
                words.append(word)
    return words


__all__ = ["render_prompt", "lora_trigger_words"]
