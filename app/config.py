"""Application configuration loaded from environment variables.

Uses ``pydantic-settings`` for automatic env-var loading, type coercion,
and ``.env`` file support.  The OpenRouter key is checked on import when
running outside of tests -- fails fast instead of at the first job.
"""

VERSION = "0.1.0"

import sys
import tempfile
from pathlib import Path
from typing import NamedTuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------------------------------------------------------------------------
# Required var names: checked after instantiation (not during), so tests
# that leave them blank still work.
# ---------------------------------------------------------------------------
_REQUIRED_VARS: list[str] = [
    "OPENROUTER_API_KEY",
]


class Settings(BaseSettings):
    """Application settings -- sourced from environment / ``.env`` file.

    Required vars (must be set in production, may be blank in test):
      OPENROUTER_API_KEY
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -- required in production (default empty so tests don't fail) --
    OPENROUTER_API_KEY: str = ""

    # -- optional with sensible defaults --
    FRONTEND_URL: str = "http://localhost:5174"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    LLM_REQUEST_TIMEOUT_SECS: float = 600.0
    LLM_MAX_RETRIES: int = Field(default=2, ge=0)

    # -------------------------------------------------------------------------
    # Models.  CODEGEN_MODEL is used for direct / direct-cached generation,
    # SPEC_MODEL for the first call of the two-stage pipeline.
    # -------------------------------------------------------------------------
    CODEGEN_MODEL: str = "google/gemini-3-flash-preview"
    SPEC_MODEL: str = "openai/gpt-oss-120b"
    CODEGEN_TEMPERATURE: float = 0.3
    CODEGEN_RETRY_TEMPERATURE: float = 0.2
    CODEGEN_MAX_TOKENS: int = 128_000
    SPEC_MAX_TOKENS: int = 8_000

    # -------------------------------------------------------------------------
    # Prompt caching.  OPENROUTER_PROMPT_CACHE=false disables the cached
    # pipeline entirely.  MODEL_CACHE_CAPABLE is a comma-separated list of
    # extra model ids treated as cache-capable on top of the built-in list.
    # -------------------------------------------------------------------------
    OPENROUTER_PROMPT_CACHE: bool = True
    MODEL_CACHE_CAPABLE: str = ""

    # -------------------------------------------------------------------------
    # Codegen output policy.  These are policy limits, not format limits;
    # raise them if a provider reliably returns bigger projects.
    # -------------------------------------------------------------------------
    CODEGEN_MAX_FILES: int = Field(default=60, ge=1)
    CODEGEN_MAX_TOTAL_CHARS: int = Field(default=1_800_000, ge=1)

    # Corrective-retry budget per JSON-producing stage.  Codegen calls are
    # large; 0 keeps a single billed attempt per job.
    CODEGEN_JSON_RETRIES: int = Field(default=0, ge=0)
    SPEC_JSON_RETRIES: int = Field(default=1, ge=0)

    # Job directories.  Blank = <tempdir>/codegen-jobs/{work,output,logs}.
    JOB_WORK_BASE: str = ""
    JOB_OUTPUT_BASE: str = ""
    JOB_LOG_BASE: str = ""
    # Root of the human-browsable tree used by set_job_output_to_logs_dir.
    JOB_BROWSE_BASE: str = "logs"

    # JSON object of extra per-1M-token prices, e.g.
    # {"vendor/model": {"input": 1.0, "output": 2.0, "cache_read": 0.1}}
    LLM_PRICING_OVERRIDES: str = ""

    # Light (non-queued) generation starts per user per hour.
    GENERATE_RATE_LIMIT_PER_HOUR: int = 20


settings = Settings()


# ---------------------------------------------------------------------------
# Job directory resolution
# ---------------------------------------------------------------------------

_DEFAULT_JOB_ROOT = "codegen-jobs"


class JobBases(NamedTuple):
    work: Path
    output: Path
    logs: Path


def job_bases() -> JobBases:
    """Return the resolved work / output / log base directories.

    Blank settings fall back to a shared directory under the system temp
    dir so a fresh checkout can run jobs without any configuration.
    """
    root = Path(tempfile.gettempdir()) / _DEFAULT_JOB_ROOT
    return JobBases(
        work=Path(settings.JOB_WORK_BASE) if settings.JOB_WORK_BASE else root / "work",
        output=Path(settings.JOB_OUTPUT_BASE) if settings.JOB_OUTPUT_BASE else root / "output",
        logs=Path(settings.JOB_LOG_BASE) if settings.JOB_LOG_BASE else root / "logs",
    )


def cache_capable_overrides() -> frozenset[str]:
    """Model ids listed in ``MODEL_CACHE_CAPABLE``."""
    return frozenset(
        m.strip() for m in settings.MODEL_CACHE_CAPABLE.split(",") if m.strip()
    )


# Validate at import time, but only when NOT running under pytest.
if "pytest" not in sys.modules:
    _missing = [v for v in _REQUIRED_VARS if not getattr(settings, v)]
    if _missing:
        print(
            f"[config] FATAL: missing required environment variables: "
            f"{', '.join(_missing)}",
            file=sys.stderr,
        )
        sys.exit(1)
