"""Job and codegen result models.

A :class:`Job` is mutable and owned by exactly one task for its whole
lifetime; nothing else mutates it concurrently.  :class:`CodegenResult`
is frozen -- it is only ever produced by the validator.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from app.services.llm_metadata import LLMResponseMetadata
from app.services.project_router import ProjectType

JobStatus = Literal["created", "generated", "done", "failed"]


# ---------------------------------------------------------------------------
# Codegen result (the validated wire payload)
# ---------------------------------------------------------------------------


class GeneratedFile(BaseModel):
    """One file produced by the model, path already checked for safety."""

    model_config = ConfigDict(frozen=True)

    path: str
    content: str


class Entrypoints(BaseModel):
    model_config = ConfigDict(frozen=True)

    run: str | None = None
    dev: str | None = None
    build: str | None = None


class CodegenResult(BaseModel):
    """Validated file bundle.

    Invariants (enforced by ``validate_codegen_result``): at least one file,
    no more than the configured file / character limits, and every path
    relative with no ``..``, null byte or drive letter.
    """

    model_config = ConfigDict(frozen=True)

    files: list[GeneratedFile] = Field(..., min_length=1)
    entrypoints: Entrypoints = Field(default_factory=Entrypoints)
    notes: str

    @property
    def total_chars(self) -> int:
        return sum(len(f.content) for f in self.files)


# ---------------------------------------------------------------------------
# Two-stage spec
# ---------------------------------------------------------------------------


class SpecOutput(BaseModel):
    model_config = ConfigDict(frozen=True)

    format: str = "files"
    primary_file: str | None = None
    notes: str = ""


class ImprovedSpec(BaseModel):
    """Structured spec produced by the first call of the two-stage pipeline."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., min_length=1)
    project_type: str
    spec: str = Field(..., min_length=1)
    output: SpecOutput = Field(default_factory=SpecOutput)
    acceptance_checklist: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Job
# ---------------------------------------------------------------------------


class JobInput(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_message: str
    user_id: str
    guild_id: str | None = None
    channel_id: str


class JobPaths(BaseModel):
    workspace_dir: Path
    output_dir: Path


class TokenUsageSummary(BaseModel):
    total: int = 0
    spec: int | None = None
    generator: int | None = None


class PolicyFlags(BaseModel):
    website_assets_enforced: bool = False
    assets_rewritten: int = 0
    caching_used: bool = False


class JobDiagnostics(BaseModel):
    logs_path: Path
    stage_timings: dict[str, int] = Field(default_factory=dict)
    token_usage: TokenUsageSummary = Field(default_factory=TokenUsageSummary)
    llm_metadata: dict[str, LLMResponseMetadata] = Field(default_factory=dict)
    policy_flags: PolicyFlags = Field(default_factory=PolicyFlags)
    pipeline: str | None = None


class Job(BaseModel):
    """One end-to-end unit of work: request in, files (and zip) out."""

    job_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    project_type: ProjectType
    status: JobStatus = "created"
    input: JobInput
    paths: JobPaths
    preview_enabled: bool = False
    diagnostics: JobDiagnostics
    spec: ImprovedSpec | None = None
    codegen_result: CodegenResult | None = None
    zip_path: Path | None = None

    # monotonic start instants, keyed by stage name
    _stage_starts: dict[str, float] = PrivateAttr(default_factory=dict)
