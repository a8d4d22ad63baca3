"""Shared test fixtures -- reduces boilerplate across test modules.

Provides:
- ``set_test_config`` -- autouse fixture that patches common settings and
  points every job directory at a per-test temp dir
- ``reset_singletons`` -- autouse fixture that clears the generation queue,
  the rate limiter and the ticket store between tests
- ``make_job`` -- factory for jobs with their directories already created
- ``llm_response`` / ``mock_llm`` -- canned LLM responses without HTTP
- ``USER_ID`` / ``user_headers`` -- caller identity for API tests
"""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.api.rate_limit import generation_limiter
from app.clients.llm_client import LLMResponse
from app.main import app
from app.services import generation_service
from app.services.generation_queue import generation_queue
from app.services.jobs.job_manager import create_job, ensure_job_dirs
from app.services.jobs.models import JobInput
from app.services.llm_metadata import TokenUsage, create_llm_metadata
from app.services.project_router import forced_decision


# ---------------------------------------------------------------------------
# Marker registration
# ---------------------------------------------------------------------------


def pytest_configure(config):
    """Register custom markers.

    Tests that need a real OpenRouter key should be decorated with
    ``@pytest.mark.integration``.  Run pytest with ``-m 'not integration'``
    to skip them.
    """
    config.addinivalue_line(
        "markers",
        "integration: tests requiring external services (OpenRouter, etc.)",
    )


# ---------------------------------------------------------------------------
# Canonical test identifiers
# ---------------------------------------------------------------------------

USER_ID = "222222222222222222"
USERNAME = "octocat"
TEST_MODEL = "test/model"


def user_headers(user_id: str = USER_ID, username: str = USERNAME) -> dict:
    """Return identity headers for API requests."""
    return {"X-User-ID": user_id, "X-Username": username}


# ---------------------------------------------------------------------------
# Environment patching
# ---------------------------------------------------------------------------

_SETTINGS_PATCHES: dict[str, object] = {
    "app.config.settings.OPENROUTER_API_KEY": "test-key",
    "app.config.settings.FRONTEND_URL": "http://localhost:5173",
    "app.config.settings.CODEGEN_MODEL": TEST_MODEL,
    "app.config.settings.SPEC_MODEL": TEST_MODEL,
    "app.config.settings.OPENROUTER_PROMPT_CACHE": True,
    "app.config.settings.MODEL_CACHE_CAPABLE": "",
    "app.config.settings.CODEGEN_JSON_RETRIES": 0,
    "app.config.settings.SPEC_JSON_RETRIES": 1,
    "app.config.settings.LLM_MAX_RETRIES": 0,
    "app.config.settings.LLM_PRICING_OVERRIDES": "",
}


@pytest.fixture(autouse=True)
def set_test_config(monkeypatch, tmp_path):
    """Patch common application settings for a safe test environment.

    This is ``autouse=True`` so every test automatically gets a
    deterministic configuration and never writes outside ``tmp_path``.
    """
    for target, value in _SETTINGS_PATCHES.items():
        monkeypatch.setattr(target, value)
    monkeypatch.setattr("app.config.settings.JOB_WORK_BASE", str(tmp_path / "work"))
    monkeypatch.setattr("app.config.settings.JOB_OUTPUT_BASE", str(tmp_path / "output"))
    monkeypatch.setattr("app.config.settings.JOB_LOG_BASE", str(tmp_path / "logs"))
    monkeypatch.setattr("app.config.settings.JOB_BROWSE_BASE", str(tmp_path / "browse"))


@pytest.fixture(autouse=True)
def reset_singletons():
    """Module-level singletons start empty in every test."""
    generation_limiter.reset()
    generation_service.clear_tickets()
    # Items are dropped synchronously; any loop task dies with its event loop.
    generation_queue._items.clear()
    generation_queue._active = None
    generation_queue._processing = False
    generation_queue._task = None
    yield
    generation_limiter.reset()
    generation_service.clear_tickets()


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


@pytest.fixture
def make_job():
    """Factory: ``make_job("static_html", "build a site")`` with dirs created."""

    def _make(project_type: str = "static_html", message: str = "build me a website"):
        job = create_job(
            forced_decision(project_type),
            JobInput(user_message=message, user_id=USER_ID, channel_id="test"),
        )
        ensure_job_dirs(job)
        return job

    return _make


# ---------------------------------------------------------------------------
# LLM doubles
# ---------------------------------------------------------------------------


def llm_response(
    content,
    *,
    model: str = TEST_MODEL,
    prompt_tokens: int = 100,
    completion_tokens: int = 200,
) -> LLMResponse:
    """An :class:`LLMResponse` as the client would return it.

    Non-string *content* is serialised to JSON.
    """
    if not isinstance(content, str):
        content = json.dumps(content)
    usage = TokenUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )
    return LLMResponse(
        content=content,
        metadata=create_llm_metadata(model, usage, 1_000, 1_250),
    )


def mock_llm(*responses) -> AsyncMock:
    """Mock client whose ``complete`` yields *responses* in order.

    Exceptions in *responses* are raised instead of returned.
    """
    llm = AsyncMock()
    llm.complete.side_effect = list(responses)
    return llm


SIMPLE_RESULT = {
    "files": [
        {"path": "index.html", "content": "<!doctype html><h1>Hello</h1>"},
        {"path": "styles.css", "content": "body { margin: 0; }"},
    ],
    "entrypoints": {"run": "open index.html"},
    "notes": "Static page",
}


@pytest.fixture
def test_client() -> TestClient:
    """A fresh ``TestClient`` instance wrapping the FastAPI app."""
    return TestClient(app)
