"""Health check router."""

from fastapi import APIRouter

from app.config import VERSION, settings
from app.services.generation_queue import generation_queue

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Return health status plus whether an LLM key is configured."""
    return {
        "status": "ok",
        "llm": "configured" if settings.OPENROUTER_API_KEY else "missing_key",
        "queue_length": len(generation_queue),
    }


@router.get("/health/version")
async def health_version() -> dict:
    """Return application version and the default models."""
    return {
        "version": VERSION,
        "codegen_model": settings.CODEGEN_MODEL,
        "spec_model": settings.SPEC_MODEL,
    }
