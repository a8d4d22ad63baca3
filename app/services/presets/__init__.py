"""Prompt presets -- stable, cacheable prompt segments per project type.

Sub-modules:
    static_html   -- multi-page static websites
    web_app_node  -- Node.js web applications
    discord_bot   -- discord.js bots
    node_cli      -- fallback for CLIs / libraries

Each module exposes ``STABLE_SYSTEM_PREFIX``, ``OUTPUT_SCHEMA``,
``STYLE_RUBRIC`` and ``PLACEHOLDER_IMAGE_GUIDE`` as module constants so
the text is byte-identical across requests.
"""

from types import ModuleType

from pydantic import BaseModel, ConfigDict

from app.services.presets import discord_bot, node_cli, static_html, web_app_node

__all__ = [
    "PromptPreset",
    "get_preset_for_project_type",
    "is_web_project",
    "WEB_PROJECT_TYPES",
]

WEB_PROJECT_TYPES: frozenset[str] = frozenset({"static_html", "node_project"})


class PromptPreset(BaseModel):
    """The four prompt blocks for one project type."""

    model_config = ConfigDict(frozen=True)

    name: str
    stable_system_prefix: str
    output_schema_rules: str
    style_rubric: str = ""
    placeholder_image_guide: str = ""


def _from_module(name: str, module: ModuleType) -> PromptPreset:
    return PromptPreset(
        name=name,
        stable_system_prefix=module.STABLE_SYSTEM_PREFIX,
        output_schema_rules=module.OUTPUT_SCHEMA,
        style_rubric=module.STYLE_RUBRIC,
        placeholder_image_guide=module.PLACEHOLDER_IMAGE_GUIDE,
    )


_PRESETS: dict[str, PromptPreset] = {
    "static_html": _from_module("static_html", static_html),
    "web_app_node": _from_module("web_app_node", web_app_node),
    "discord_bot": _from_module("discord_bot", discord_bot),
    "node_cli": _from_module("node_cli", node_cli),
}

_PROJECT_TYPE_TO_PRESET: dict[str, str] = {
    "static_html": "static_html",
    "node_project": "web_app_node",
    "discord_bot": "discord_bot",
}


def get_preset_for_project_type(project_type: str) -> PromptPreset:
    """Return the preset for *project_type*; unknown types get ``node_cli``."""
    return _PRESETS[_PROJECT_TYPE_TO_PRESET.get(project_type, "node_cli")]


def is_web_project(project_type: str) -> bool:
    """Web projects get the style rubric, image guide and asset enforcement."""
    return project_type in WEB_PROJECT_TYPES
