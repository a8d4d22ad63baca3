"""ASGI entry point: ``uvicorn app.main:app``."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routers.generate import router as generate_router
from app.api.routers.health import router as health_router
from app.clients import llm_client
from app.config import VERSION, settings
from app.logging_setup import configure_logging
from app.middleware import RequestIDMiddleware
from app.middleware.access_log import AccessLogMiddleware
from app.middleware.exception_handler import setup_exception_handlers
from app.services.generation_queue import generation_queue

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    logger.info("codegen %s up, default model %s", VERSION, settings.CODEGEN_MODEL)
    yield

    # Queued jobs still need the pooled HTTP client, so drain first
    backlog = len(generation_queue) + (1 if generation_queue.processing else 0)
    if backlog:
        logger.info("Draining %d generation job(s) before shutdown", backlog)
    await generation_queue.drain()
    await llm_client.close_client()


def _install_middleware(application: FastAPI) -> None:
    # Starlette runs the last-added middleware outermost, so the request
    # ID exists before the access log reads it.
    application.add_middleware(AccessLogMiddleware)
    application.add_middleware(RequestIDMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.FRONTEND_URL],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-User-ID", "X-Username", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )


def create_app() -> FastAPI:
    """Build the application: error handlers, middleware, routers."""
    docs = settings.DEBUG
    application = FastAPI(
        title="Codegen Service",
        version=VERSION,
        description="LLM code generation jobs: request in, files and zip out",
        lifespan=lifespan,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
    )
    setup_exception_handlers(application)
    _install_middleware(application)
    for router in (health_router, generate_router):
        application.include_router(router)
    return application


app = create_app()
