"""Generate router -- light (inline) and queued website generation."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.api.deps import get_current_user, get_llm_client
from app.api.rate_limit import generation_limiter
from app.clients.llm_client import OpenRouterClient
from app.errors import NotFoundError, RateLimitedError
from app.services import generation_service
from app.services.generation_queue import generation_queue
from app.services.generation_service import GenerationRequest
from app.services.project_router import ProjectType

router = APIRouter(prefix="/generate", tags=["generate"])


class GenerateRequest(BaseModel):
    """Request body for inline generation."""
    message: str = Field(..., min_length=1, max_length=20_000)
    project_type: ProjectType | None = None
    two_stage: bool = False
    model: str | None = None
    guild_id: str | None = None
    guild_name: str | None = None
    channel_id: str = "http"
    channel_name: str | None = None


class WebGenerateRequest(BaseModel):
    """Request body for queued website generation."""
    message: str = Field(..., min_length=1, max_length=20_000)
    theme: str | None = Field(default=None, max_length=200)
    model: str | None = None
    guild_id: str | None = None
    guild_name: str | None = None
    channel_id: str = "http"
    channel_name: str | None = None


def _check_rate(user: dict) -> None:
    if not generation_limiter.is_allowed(user["id"]):
        raise RateLimitedError("Generation rate limit exceeded")


# ── POST /generate ───────────────────────────────────────────────────────


@router.post("")
async def generate(
    body: GenerateRequest,
    user: dict = Depends(get_current_user),
    llm: OpenRouterClient = Depends(get_llm_client),
):
    """Run a generation inline and return the job summary."""
    _check_rate(user)
    request = GenerationRequest(
        message=body.message,
        user_id=user["id"],
        username=user["username"],
        guild_id=body.guild_id,
        guild_name=body.guild_name,
        channel_id=body.channel_id,
        channel_name=body.channel_name,
        project_type=body.project_type,
        two_stage=body.two_stage,
    )
    outcome = await generation_service.run_generation(request, llm=llm, model=body.model)
    return {
        "job": outcome.summary,
        "files": outcome.files,
        "llm_metadata": outcome.metadata.model_dump(),
    }


# ── POST /generate/web ───────────────────────────────────────────────────


@router.post("/web")
async def generate_web(
    body: WebGenerateRequest,
    user: dict = Depends(get_current_user),
    llm: OpenRouterClient = Depends(get_llm_client),
):
    """Queue a website generation.  202 with the queue position."""
    # A duplicate is refused before it can use up a rate-limit hit
    generation_service.ensure_not_queued(user["id"])
    _check_rate(user)
    request = GenerationRequest(
        message=body.message,
        user_id=user["id"],
        username=user["username"],
        guild_id=body.guild_id,
        guild_name=body.guild_name,
        channel_id=body.channel_id,
        channel_name=body.channel_name,
        theme=body.theme,
    )
    ticket = await generation_service.enqueue_website_generation(
        request, llm=llm, model=body.model
    )
    return JSONResponse(status_code=202, content=ticket.model_dump())


# ── GET /generate/queue ──────────────────────────────────────────────────


@router.get("/queue")
async def queue_status() -> dict:
    """Who is running and who is waiting."""
    return generation_queue.get_status().model_dump()


# ── GET /generate/web/{ticket_id} ────────────────────────────────────────


@router.get("/web/{ticket_id}")
async def web_ticket(
    ticket_id: str,
    user: dict = Depends(get_current_user),
) -> dict:
    """Status (and, once done, the job summary) of a queued generation.

    Tickets of other users are reported as not found.
    """
    ticket = generation_service.get_ticket(ticket_id)
    if ticket.user_id != user["id"]:
        raise NotFoundError(f"Unknown ticket: {ticket_id}")
    return ticket.model_dump()
