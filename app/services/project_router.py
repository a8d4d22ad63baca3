"""Project router -- deterministic keyword classification of coding requests.

Rule-based only; no LLM calls.  Priority order:

1. Discord bot keywords  → ``discord_bot``
2. Web / frontend keywords → ``static_html``
3. Anything else          → ``node_project``

Keywords match on word boundaries (with an optional plural ``s``) so that
e.g. "build" does not trigger the "ui" keyword.
"""

import logging
import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

ProjectType = Literal["static_html", "node_project", "discord_bot"]

_DISCORD_KEYWORDS: tuple[str, ...] = (
    "discord bot",
    "discord.js",
    "slash command",
    "guild",
    "interaction",
    "bot command",
    "discord server",
    "message handler",
    "discord client",
    "discord application",
)

_STATIC_KEYWORDS: tuple[str, ...] = (
    "website",
    "web site",
    "landing page",
    "frontend",
    "front-end",
    "front end",
    "ui",
    "user interface",
    "react",
    "next.js",
    "nextjs",
    "vue",
    "angular",
    "html",
    "css",
    "webpage",
    "web page",
    "site",
    "portfolio",
    "homepage",
    "dashboard",
    "admin panel",
    "web app",
    "webapp",
)


def _compile(keywords: tuple[str, ...]) -> list[tuple[str, re.Pattern[str]]]:
    return [
        (kw, re.compile(rf"(?<![\w.]){re.escape(kw)}s?(?![\w])", re.IGNORECASE))
        for kw in keywords
    ]


_DISCORD_PATTERNS = _compile(_DISCORD_KEYWORDS)
_STATIC_PATTERNS = _compile(_STATIC_KEYWORDS)


class ProjectRoutingDecision(BaseModel):
    """Classification result consumed by the job pipeline."""

    model_config = ConfigDict(frozen=True)

    project_type: ProjectType
    preview_allowed: bool
    requires_build: bool
    description: str
    matched_keywords: list[str] = Field(default_factory=list)


def _matches(text: str, patterns: list[tuple[str, re.Pattern[str]]]) -> list[str]:
    return [kw for kw, pattern in patterns if pattern.search(text)]


def classify(text: str) -> ProjectRoutingDecision:
    """Route a free-text coding request to a project type."""
    matched = _matches(text, _DISCORD_PATTERNS)
    if matched:
        decision = ProjectRoutingDecision(
            project_type="discord_bot",
            preview_allowed=False,
            requires_build=False,
            description="Discord bot project with interactions and commands",
            matched_keywords=matched,
        )
    elif matched := _matches(text, _STATIC_PATTERNS):
        decision = ProjectRoutingDecision(
            project_type="static_html",
            preview_allowed=True,
            requires_build=False,
            description="Static HTML/frontend project with UI components",
            matched_keywords=matched,
        )
    else:
        decision = ProjectRoutingDecision(
            project_type="node_project",
            preview_allowed=True,
            requires_build=True,
            description="General Node.js backend project",
        )

    logger.debug(
        "Routed request to %s (matched: %s)",
        decision.project_type,
        ", ".join(decision.matched_keywords) or "none",
    )
    return decision


def forced_decision(project_type: ProjectType) -> ProjectRoutingDecision:
    """Decision for callers that already know the project type."""
    return ProjectRoutingDecision(
        project_type=project_type,
        preview_allowed=project_type != "discord_bot",
        requires_build=project_type == "node_project",
        description=f"Forced project type: {project_type}",
    )
