"""Generation pipeline -- request in, files + zip + diagnostics out.

Two entry points:

* :func:`run_generation` -- light path, runs inline in the caller's task.
* :func:`enqueue_website_generation` -- heavy website path, serialized
  through :data:`~app.services.generation_queue.generation_queue` with
  one queued-or-active item per user.

Stage order: [spec] → codegen_direct → output_copy → zip_create.  Every
stage is timed on the job; a failure anywhere marks the job ``failed``,
emits an ``error`` progress event and re-raises.  Only zip creation is
allowed to fail without failing the job.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from typing import Awaitable, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.clients.llm_client import OpenRouterClient
from app.config import settings
from app.errors import ConflictError, NotFoundError
from app.services.codegen.generator import run_codegen
from app.services.codegen.prompts import Pipeline, select_pipeline
from app.services.codegen.spec_stage import run_spec_stage
from app.services.generation_queue import QueueItem, generation_queue
from app.services.jobs.artifact_writer import (
    copy_workspace_to_output,
    list_output_files,
    try_create_zip_archive,
)
from app.services.jobs.job_manager import (
    create_job,
    ensure_job_dirs,
    format_job_summary,
    get_job_summary,
    mark_stage_end,
    mark_stage_start,
    set_job_output_to_logs_dir,
    update_job_status,
    write_job_log,
)
from app.services.jobs.models import Job, JobInput
from app.services.llm_metadata import AggregatedLLMMetadata, aggregate_llm_metadata
from app.services.project_router import ProjectType, classify, forced_decision

logger = logging.getLogger(__name__)

# Finished tickets kept for GET /generate/web/{ticket_id}
_MAX_TICKETS = 500


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class GenerationRequest(BaseModel):
    """One code generation request (HTTP body, CLI args or bot command)."""

    model_config = ConfigDict(frozen=True)

    message: str = Field(..., min_length=1)
    user_id: str = "anonymous"
    username: str | None = None
    guild_id: str | None = None
    guild_name: str | None = None
    channel_id: str = "direct"
    channel_name: str | None = None
    project_type: ProjectType | None = None
    two_stage: bool = False
    theme: str | None = None


class ProgressEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: str
    message: str
    detail: str | None = None
    job_id: str | None = None


ProgressCallback = Callable[[ProgressEvent], Awaitable[None]]


class GenerationOutcome(BaseModel):
    """Result of a successful :func:`run_generation`."""

    summary: dict
    files: list[str]
    metadata: AggregatedLLMMetadata


TicketStatus = Literal["queued", "running", "done", "failed"]


class WebTicket(BaseModel):
    """Handle for a queued website generation."""

    ticket_id: str
    user_id: str
    username: str
    status: TicketStatus = "queued"
    position: int | None = None
    summary: dict | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Light path
# ---------------------------------------------------------------------------


def _new_job(request: GenerationRequest) -> Job:
    decision = (
        forced_decision(request.project_type)
        if request.project_type
        else classify(request.message)
    )
    job = create_job(
        decision,
        JobInput(
            user_message=request.message,
            user_id=request.user_id,
            guild_id=request.guild_id,
            channel_id=request.channel_id,
        ),
    )
    if request.username and request.channel_name:
        set_job_output_to_logs_dir(job, request.username, request.guild_name, request.channel_name)
    return job


async def run_generation(
    request: GenerationRequest,
    *,
    llm: OpenRouterClient,
    model: str | None = None,
    pipeline: Pipeline | None = None,
    on_progress: ProgressCallback | None = None,
) -> GenerationOutcome:
    """Run the whole pipeline for *request* and return the job summary.

    ``pipeline`` defaults to ``two_stage`` when the request asks for it,
    otherwise to whatever :func:`select_pipeline` picks for *model*.
    """
    model = model or settings.CODEGEN_MODEL
    job = _new_job(request)
    await asyncio.to_thread(ensure_job_dirs, job)

    async def emit(stage: str, message: str, detail: str | None = None) -> None:
        if on_progress:
            await on_progress(ProgressEvent(stage=stage, message=message, detail=detail, job_id=job.job_id))

    async def codegen_progress(message: str, detail: str | None) -> None:
        await emit("codegen", message, detail)

    chosen: Pipeline = "two_stage" if request.two_stage else (pipeline or select_pipeline(model))
    job.diagnostics.pipeline = chosen
    write_job_log(job, f"Job created for user {request.user_id} ({job.project_type}, pipeline {chosen})")
    write_job_log(job, f"Request: {request.message}")
    logger.info("Job %s started: %s via %s", job.job_id, job.project_type, chosen)

    spec_calls = []
    try:
        if chosen == "two_stage":
            await emit("spec", "Improving the request...")
            mark_stage_start(job, "spec")
            spec_calls = await run_spec_stage(job, llm)
            mark_stage_end(job, "spec")

        mark_stage_start(job, "codegen_direct")
        codegen_calls = await run_codegen(
            job,
            llm,
            model,
            use_cache=None if chosen == "two_stage" else chosen == "direct_cached",
            on_progress=codegen_progress,
        )
        mark_stage_end(job, "codegen_direct")
        update_job_status(job, "generated")

        await emit("output", "Copying files to output...")
        mark_stage_start(job, "output_copy")
        await asyncio.to_thread(copy_workspace_to_output, job)
        mark_stage_end(job, "output_copy")

        await emit("zip", "Creating zip archive...")
        mark_stage_start(job, "zip_create")
        job.zip_path = await asyncio.to_thread(try_create_zip_archive, job)
        mark_stage_end(job, "zip_create")

        metadata = aggregate_llm_metadata(
            planning_call=spec_calls[-1] if spec_calls else None,
            execution_calls=[*spec_calls[:-1], *codegen_calls],
        )
        update_job_status(job, "done")
    except Exception as exc:
        write_job_log(job, f"Job failed: {type(exc).__name__}: {exc}")
        update_job_status(job, "failed")
        logger.error("Job %s failed: %s", job.job_id, exc)
        await emit("error", "Generation failed", str(exc))
        raise

    write_job_log(
        job,
        f"Job complete: {metadata.total_calls} call(s), "
        f"{metadata.totals.total_tokens} tokens, ${metadata.totals.estimated_cost:.6f}",
    )
    write_job_log(job, "Final state:\n" + format_job_summary(job))
    await emit("complete", "Generation complete!", f"{len(job.codegen_result.files)} files")
    files = await asyncio.to_thread(list_output_files, job)
    return GenerationOutcome(summary=get_job_summary(job), files=files, metadata=metadata)


# ---------------------------------------------------------------------------
# Heavy (queued) website path
# ---------------------------------------------------------------------------

_tickets: OrderedDict[str, WebTicket] = OrderedDict()


def _store_ticket(ticket: WebTicket) -> None:
    _tickets[ticket.ticket_id] = ticket
    _tickets.move_to_end(ticket.ticket_id)
    while len(_tickets) > _MAX_TICKETS:
        _tickets.popitem(last=False)


def get_ticket(ticket_id: str) -> WebTicket:
    """Current state of a queued generation; position is live while queued."""
    ticket = _tickets.get(ticket_id)
    if ticket is None:
        raise NotFoundError(f"Unknown ticket: {ticket_id}")
    if ticket.status == "queued":
        return ticket.model_copy(update={"position": generation_queue.position_of(ticket.user_id)})
    return ticket


def clear_tickets() -> None:
    _tickets.clear()


def ensure_not_queued(user_id: str) -> None:
    """Raise :class:`ConflictError` if *user_id* already has a queued or running job."""
    if generation_queue.has_user_in_queue(user_id):
        raise ConflictError("You already have a website generation queued or in progress")


async def enqueue_website_generation(
    request: GenerationRequest,
    *,
    llm: OpenRouterClient,
    model: str | None = None,
    on_progress: ProgressCallback | None = None,
) -> WebTicket:
    """Queue a static-site generation for *request*.

    Raises
    ------
    ConflictError
        The user already has a generation queued or running.
    """
    ensure_not_queued(request.user_id)

    message = request.message
    if request.theme:
        message = f"{message} (theme: {request.theme})"
    web_request = request.model_copy(update={"message": message, "project_type": "static_html"})
    username = request.username or request.user_id
    ticket = WebTicket(ticket_id=uuid.uuid4().hex, user_id=request.user_id, username=username)

    async def execute() -> None:
        _store_ticket(ticket.model_copy(update={"status": "running", "position": 0}))
        try:
            outcome = await run_generation(web_request, llm=llm, model=model, on_progress=on_progress)
        except Exception as exc:
            _store_ticket(
                ticket.model_copy(update={"status": "failed", "position": None, "error": str(exc)})
            )
            raise
        _store_ticket(
            ticket.model_copy(update={"status": "done", "position": None, "summary": outcome.summary})
        )

    _store_ticket(ticket)
    position = await generation_queue.enqueue(
        QueueItem(user_id=request.user_id, username=username, execute=execute)
    )
    ticket = ticket.model_copy(update={"position": position})
    _store_ticket(ticket)
    return ticket
