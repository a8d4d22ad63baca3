"""Exception handlers that turn every failure into ``{error, detail, request_id}``.

Domain errors (:class:`~app.errors.AppError`) carry their own HTTP status.
Anything else is a 500 whose traceback stays in the server log.
"""

import logging
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.errors import AppError, CodegenValidationError, format_error_response

logger = logging.getLogger(__name__)

_ERROR_TITLES = {
    400: "Bad Request",
    404: "Not Found",
    409: "Conflict",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
}


def _request_id(request: Request) -> str:
    # A bare FastAPI() in tests has no RequestIDMiddleware
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _where(request: Request, request_id: str) -> str:
    return f"{request.method} {request.url.path} [request_id={request_id}]"


def _respond(status_code: int, request_id: str, error: str, detail: object = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=format_error_response(error=error, detail=detail, request_id=request_id),
    )


def jsonable_errors(errors: list) -> list[dict]:
    """Keep ``loc`` / ``msg`` / ``type``; pydantic's ``ctx`` and ``input`` may not serialise."""
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in errors
    ]


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Map an :class:`AppError` to its status code."""
    request_id = _request_id(request)
    log = logger.error if exc.status_code >= 500 else logger.info
    log("%s on %s: %s", type(exc).__name__, _where(request, request_id), exc)

    detail = exc.errors if isinstance(exc, CodegenValidationError) else str(exc)
    title = _ERROR_TITLES.get(exc.status_code, type(exc).__name__)
    return _respond(exc.status_code, request_id, title, detail)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    request_id = _request_id(request)
    logger.warning("HTTP %s on %s: %s", exc.status_code, _where(request, request_id), exc.detail)

    detail = str(exc.detail) if exc.detail else None
    title = _ERROR_TITLES.get(exc.status_code, detail or "Error")
    return _respond(exc.status_code, request_id, title, detail)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    request_id = _request_id(request)
    errors = jsonable_errors(exc.errors())
    logger.warning("Request validation failed on %s: %s", _where(request, request_id), errors)
    return _respond(422, request_id, "Validation failed", errors)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort.  The exception text is logged, never returned."""
    request_id = _request_id(request)
    logger.error("Unhandled exception on %s", _where(request, request_id), exc_info=exc)
    return _respond(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        request_id,
        "Internal Server Error",
        "Internal server error",
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the handlers on *app*, most specific first."""
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)  # type: ignore[arg-type]
