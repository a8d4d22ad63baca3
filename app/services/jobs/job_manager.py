"""Job manager -- job creation, directories, stage timing and per-job logs.

No LLM calls here.  Every function takes the :class:`Job` it acts on;
there is no registry of jobs -- the orchestrating task owns its job.
"""

import logging
import re
import secrets
import string
import time
from datetime import datetime, timezone
from pathlib import Path

from app.config import job_bases, settings
from app.services.jobs.models import (
    Job,
    JobDiagnostics,
    JobInput,
    JobPaths,
    JobStatus,
)
from app.services.project_router import ProjectRoutingDecision

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase
_UNSAFE_PATH_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_job_id() -> str:
    """Opaque, URL-safe id: ``job-<base36 ms timestamp>-<6 random chars>``."""
    timestamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"job-{timestamp}-{suffix}"


def sanitize_for_path(value: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_-]`` with ``-``."""
    return _UNSAFE_PATH_CHARS.sub("-", value)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def create_job(decision: ProjectRoutingDecision, job_input: JobInput) -> Job:
    """Create a job with default paths under the configured bases.

    Nothing is written to disk; call :func:`ensure_job_dirs` next.
    """
    bases = job_bases()
    job_id = generate_job_id()
    return Job(
        job_id=job_id,
        project_type=decision.project_type,
        input=job_input,
        paths=JobPaths(
            workspace_dir=bases.work / job_id,
            output_dir=bases.output / job_id,
        ),
        preview_enabled=decision.preview_allowed,
        diagnostics=JobDiagnostics(logs_path=bases.logs / f"{job_id}.log"),
    )


def set_job_output_to_logs_dir(
    job: Job,
    username: str,
    guild_name: str | None,
    channel_name: str,
) -> None:
    """Move the output dir into the human-browsable per-user tree.

    ``<JOB_BROWSE_BASE>/<user>/<guild or "dms">/<channel>/generated/<job_id>``
    """
    job.paths.output_dir = (
        Path(settings.JOB_BROWSE_BASE)
        / sanitize_for_path(username)
        / (sanitize_for_path(guild_name) if guild_name else "dms")
        / sanitize_for_path(channel_name)
        / "generated"
        / job.job_id
    )


def ensure_job_dirs(job: Job) -> None:
    """Create workspace, output and log directories (idempotent)."""
    for directory in (
        job.paths.workspace_dir,
        job.paths.output_dir,
        job.diagnostics.logs_path.parent,
    ):
        directory.mkdir(parents=True, exist_ok=True)


def write_job_log(job: Job, line: str) -> None:
    """Append ``[<ISO-8601>] <line>`` to the job log.

    Never raises -- a broken log file must not take the job down with it.
    """
    timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    try:
        with job.diagnostics.logs_path.open("a", encoding="utf-8") as fh:
            fh.write(f"[{timestamp}] {line}\n")
    except OSError as exc:
        logger.warning("Could not write job log for %s: %s", job.job_id, exc)


def mark_stage_start(job: Job, stage: str) -> None:
    job._stage_starts[stage] = time.monotonic()
    write_job_log(job, f"Stage started: {stage}")


def mark_stage_end(job: Job, stage: str) -> None:
    """Record the stage duration; logs without one if start was never marked."""
    start = job._stage_starts.pop(stage, None)
    if start is None:
        write_job_log(job, f"Stage completed: {stage} (no start time recorded)")
        return
    duration_ms = int((time.monotonic() - start) * 1000)
    job.diagnostics.stage_timings[stage] = duration_ms
    write_job_log(job, f"Stage completed: {stage} ({duration_ms}ms)")


def update_job_status(job: Job, status: JobStatus) -> None:
    """Set and log a status change.  Transitions are advisory, not enforced."""
    old = job.status
    job.status = status
    write_job_log(job, f"Status changed: {old} → {status}")


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


def get_job_summary(job: Job) -> dict:
    """JSON-friendly snapshot for API responses and the CLI."""
    result = job.codegen_result
    return {
        "job_id": job.job_id,
        "project_type": job.project_type,
        "status": job.status,
        "created_at": job.created_at.isoformat(),
        "workspace_dir": str(job.paths.workspace_dir),
        "output_dir": str(job.paths.output_dir),
        "logs_path": str(job.diagnostics.logs_path),
        "zip_path": str(job.zip_path) if job.zip_path else None,
        "preview_enabled": job.preview_enabled,
        "pipeline": job.diagnostics.pipeline,
        "stage_timings": dict(job.diagnostics.stage_timings),
        "token_usage": job.diagnostics.token_usage.model_dump(),
        "policy_flags": job.diagnostics.policy_flags.model_dump(),
        "file_count": len(result.files) if result else 0,
        "entrypoints": result.entrypoints.model_dump() if result else None,
        "notes": result.notes if result else None,
    }


def format_job_summary(job: Job) -> str:
    """Multi-line human-readable summary, appended to the job log on completion."""
    lines = [
        f"Job ID: {job.job_id}",
        f"Project Type: {job.project_type}",
        f"Status: {job.status}",
        f"Created: {job.created_at.isoformat()}",
        f"Workspace: {job.paths.workspace_dir}",
        f"Output: {job.paths.output_dir}",
        f"Logs: {job.diagnostics.logs_path}",
        f"Preview Enabled: {job.preview_enabled}",
    ]
    if job.diagnostics.stage_timings:
        lines.append("Stage Timings:")
        lines.extend(
            f"  {stage}: {ms}ms" for stage, ms in job.diagnostics.stage_timings.items()
        )
    return "\n".join(lines)


def safe_write_file(path: Path, content: str) -> None:
    """Write *content* to *path*, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
