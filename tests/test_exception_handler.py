"""Tests for the structured error responses.

A bare FastAPI app with throwaway routes keeps these independent of the
real routers and of any LLM traffic.
"""

from unittest.mock import patch

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from pydantic import BaseModel

from app.errors import (
    CodegenParseError,
    CodegenValidationError,
    ConflictError,
    ExternalCallError,
    NotFoundError,
    PackagingError,
    RateLimitedError,
)
from app.middleware import RequestIDMiddleware
from app.middleware.exception_handler import jsonable_errors, setup_exception_handlers

_RAISERS = {
    "not-found": lambda: NotFoundError("Ticket not found"),
    "conflict": lambda: ConflictError("Already queued"),
    "rate-limited": lambda: RateLimitedError(),
    "external": lambda: ExternalCallError("OpenRouter API 503: busy", upstream_status=503),
    "parse": lambda: CodegenParseError("no JSON object found", response_length=12),
    "packaging": lambda: PackagingError(),
    "invalid-output": lambda: CodegenValidationError(['Missing "notes" key', "File 1: empty path"]),
    "crash": lambda: RuntimeError("secret internals"),
    "http-404": lambda: HTTPException(status_code=404, detail="No such route"),
    "http-418": lambda: HTTPException(status_code=418, detail="I'm a teapot"),
}


class Payload(BaseModel):
    message: str
    count: int


@pytest.fixture()
def client() -> TestClient:
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/raise/{name}")
    async def _raise(name: str) -> None:
        raise _RAISERS[name]()

    @app.post("/echo")
    async def _echo(payload: Payload) -> dict:
        return payload.model_dump()

    return TestClient(app, raise_server_exceptions=False)


@pytest.mark.parametrize("name,status,title", [
    ("not-found", 404, "Not Found"),
    ("conflict", 409, "Conflict"),
    ("rate-limited", 429, "Too Many Requests"),
    ("external", 502, "Bad Gateway"),
    ("parse", 502, "Bad Gateway"),
    ("packaging", 500, "Internal Server Error"),
    ("http-404", 404, "Not Found"),
    ("crash", 500, "Internal Server Error"),
])
def test_status_and_title(client: TestClient, name, status, title) -> None:
    response = client.get(f"/raise/{name}")
    assert response.status_code == status
    body = response.json()
    assert set(body) == {"error", "detail", "request_id"}
    assert body["error"] == title
    assert body["request_id"]


def test_app_error_detail_is_message(client: TestClient) -> None:
    assert client.get("/raise/conflict").json()["detail"] == "Already queued"


def test_unmapped_http_status_titled_by_detail(client: TestClient) -> None:
    response = client.get("/raise/http-418")
    assert response.status_code == 418
    assert response.json()["error"] == "I'm a teapot"


def test_invalid_output_lists_every_violation(client: TestClient) -> None:
    response = client.get("/raise/invalid-output")
    assert response.status_code == 502
    assert response.json()["detail"] == ['Missing "notes" key', "File 1: empty path"]


def test_crash_text_never_reaches_client(client: TestClient) -> None:
    body = client.get("/raise/crash").json()
    assert "secret internals" not in str(body)
    assert body["detail"] == "Internal server error"


def test_body_validation_is_422(client: TestClient) -> None:
    response = client.post("/echo", json={"message": "hi", "count": "many"})
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "Validation failed"
    assert body["detail"][0]["loc"] == ["body", "count"]


def test_jsonable_errors_drops_extra_keys() -> None:
    raw = [{"loc": ("body", "x"), "msg": "bad", "type": "value_error", "ctx": {"error": object()}}]
    assert jsonable_errors(raw) == [{"loc": ["body", "x"], "msg": "bad", "type": "value_error"}]


def test_request_id_from_middleware_used() -> None:
    app = FastAPI()
    setup_exception_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/boom")
    async def _boom() -> None:
        raise NotFoundError()

    response = TestClient(app).get("/boom", headers={"X-Request-ID": "trace-7"})
    assert response.json()["request_id"] == "trace-7"
    assert response.headers["X-Request-ID"] == "trace-7"


# ------------------------------------------------------------------
# Logging
# ------------------------------------------------------------------

def test_crash_logged_with_traceback(client: TestClient) -> None:
    with patch("app.middleware.exception_handler.logger") as mock_logger:
        client.get("/raise/crash")
    mock_logger.error.assert_called_once()
    call = mock_logger.error.call_args
    assert "GET /raise/crash" in str(call)
    assert isinstance(call.kwargs["exc_info"], RuntimeError)


def test_client_errors_logged_at_info(client: TestClient) -> None:
    with patch("app.middleware.exception_handler.logger") as mock_logger:
        client.get("/raise/conflict")
    mock_logger.info.assert_called_once()
    mock_logger.error.assert_not_called()


def test_upstream_errors_logged_at_error(client: TestClient) -> None:
    with patch("app.middleware.exception_handler.logger") as mock_logger:
        client.get("/raise/external")
    mock_logger.error.assert_called_once()
