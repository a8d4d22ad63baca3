"""Prompt composition for direct and direct-cached code generation.

Both modes send the same preset text; they differ only in shape:

* **direct** -- one plain-string system message.
* **direct_cached** -- the system message is a list of text blocks and the
  last stable block carries ``cache_control`` so the provider can reuse
  the prefix.  The user request stays the only uncached segment.
"""

from __future__ import annotations

from typing import Literal

from app.clients.model_caps import caching_enabled_for
from app.services.jobs.models import ImprovedSpec
from app.services.presets import PromptPreset

Pipeline = Literal["direct", "direct_cached", "two_stage"]

JSON_ONLY_INSTRUCTION = (
    "IMPORTANT: Return ONLY valid JSON. No markdown. No code fences. "
    "All file contents MUST be valid JSON strings: escape backslashes as \\\\ "
    'and quotes as \\".'
)

_GENERATE_INSTRUCTION = (
    "Generate complete, production-ready code following the requirements above.\n"
    "Return ONLY the JSON object. Ensure all strings are properly escaped."
)

CORRECTIVE_SCHEMA = """{
  "files": [{"path": "string", "content": "string"}],
  "entrypoints": {"run": "string", "dev": "string", "build": "string"},
  "notes": "string"
}"""


def stable_blocks(preset: PromptPreset, is_web: bool) -> list[str]:
    """Preset blocks in send order.  Identical for every request of a type."""
    blocks = [preset.stable_system_prefix, preset.output_schema_rules]
    if is_web:
        blocks.extend(b for b in (preset.style_rubric, preset.placeholder_image_guide) if b)
    blocks.append(JSON_ONLY_INSTRUCTION)
    return blocks


def build_user_request(user_message: str, spec: ImprovedSpec | None = None) -> str:
    """The dynamic part of the prompt: the raw request (plus spec, if any)."""
    parts = [f"PROJECT REQUEST:\n{user_message}"]
    if spec is not None:
        checklist = "\n".join(f"- {item}" for item in spec.acceptance_checklist)
        parts.append(
            f"IMPROVED SPEC: {spec.title}\n{spec.spec}"
            + (f"\n\nACCEPTANCE CHECKLIST:\n{checklist}" if checklist else "")
            + (f"\n\nPRIMARY FILE: {spec.output.primary_file}" if spec.output.primary_file else "")
        )
    parts.append(_GENERATE_INSTRUCTION)
    return "\n\n".join(parts)


def build_cached_message(
    role: str,
    cached_blocks: list[str],
    dynamic_content: str | None,
    model: str,
) -> dict:
    """Build a message whose stable blocks are cache-eligible.

    Falls back to one joined string when caching is disabled or the model
    is not cache-capable.
    """
    if not caching_enabled_for(model):
        content = "\n\n".join(b for b in [*cached_blocks, dynamic_content] if b)
        return {"role": role, "content": content}

    blocks: list[dict] = [{"type": "text", "text": text} for text in cached_blocks]
    if blocks:
        # One breakpoint after the last stable block caches the whole prefix
        blocks[-1] = {**blocks[-1], "cache_control": {"type": "ephemeral"}}
    if dynamic_content:
        blocks.append({"type": "text", "text": dynamic_content})
    return {"role": role, "content": blocks}


def compose_direct_messages(preset: PromptPreset, is_web: bool, user_request: str) -> list[dict]:
    return [
        {"role": "system", "content": "\n\n".join(stable_blocks(preset, is_web))},
        {"role": "user", "content": user_request},
    ]


def compose_cached_messages(
    preset: PromptPreset,
    is_web: bool,
    user_request: str,
    model: str,
) -> list[dict]:
    return [
        build_cached_message("system", stable_blocks(preset, is_web), None, model),
        {"role": "user", "content": user_request},
    ]


def select_pipeline(model: str) -> Pipeline:
    """``direct_cached`` when the model can cache and caching is enabled."""
    return "direct_cached" if caching_enabled_for(model) else "direct"


def corrective_prompt(errors: list[str], snapshot: str, schema: str = CORRECTIVE_SCHEMA) -> str:
    """Follow-up user message asking the model to repair its last output."""
    issues = "\n".join(f"- {e}" for e in errors) or "- output was not valid JSON"
    return (
        "Your previous output was not valid. Problems found:\n"
        f"{issues}\n\n"
        "Here is what you returned:\n"
        f"{snapshot}\n\n"
        "Convert this into the required JSON schema WITHOUT losing any content:\n"
        f"{schema}\n\n"
        "Return ONLY the corrected JSON object."
    )
