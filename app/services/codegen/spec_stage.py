"""Spec stage: the first call of the ``two_stage`` pipeline.

Turns a terse request into an :class:`ImprovedSpec` (title, long-form spec,
acceptance checklist) that the codegen call then receives alongside the
original request.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from app.clients.llm_client import OpenRouterClient
from app.config import settings
from app.errors import CodegenValidationError
from app.services.codegen.json_call import request_json
from app.services.codegen.parser import parse_json_response
from app.services.jobs.job_manager import write_job_log
from app.services.jobs.models import ImprovedSpec, Job
from app.services.llm_metadata import LLMResponseMetadata

logger = logging.getLogger(__name__)

SPEC_SCHEMA = """{
  "title": "string",
  "project_type": "string",
  "spec": "string",
  "output": {"format": "single_file | multi_file", "primary_file": "string", "notes": "string"},
  "acceptance_checklist": ["string"]
}"""

_SPEC_SYSTEM_PROMPT = """You are a technical specification writer. Turn the user's brief request \
into a detailed, implementation-ready spec for a {project_type} project.

Return EXACTLY one JSON object, no markdown and no text around it:
{schema}

The "spec" field uses "## " section headers: Overview, Core Requirements, \
UI/UX Requirements (web projects), Data / State Model, Interactions, \
Accessibility, Error Handling & Edge Cases, File/Module Expectations, Non-Goals.
Every requirement is concrete.  No placeholders, no TODO sections.
Only free APIs and services unless the user supplied keys.
"acceptance_checklist" holds 10-40 short, testable items.
Use \\n for line breaks inside strings."""

# Models sometimes answer in camelCase.
_KEY_ALIASES = {
    "projectType": "project_type",
    "acceptanceChecklist": "acceptance_checklist",
    "primaryFile": "primary_file",
}


def _normalize_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {_KEY_ALIASES.get(k, k): _normalize_keys(v) for k, v in value.items()}
    return value


def parse_spec_response(raw: str) -> ImprovedSpec:
    """Parse model output into an :class:`ImprovedSpec`.

    Raises
    ------
    CodegenParseError
        Output is not recoverable JSON.
    CodegenValidationError
        JSON parsed but does not fit the spec shape (``stage="spec"``).
    """
    data = _normalize_keys(parse_json_response(raw))
    if not isinstance(data, dict):
        raise CodegenValidationError(["Result is not a JSON object"], stage="spec")
    try:
        return ImprovedSpec.model_validate(data)
    except ValidationError as exc:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or 'root'}: {err['msg']}"
            for err in exc.errors()
        ]
        raise CodegenValidationError(errors, stage="spec") from exc


def build_spec_messages(job: Job) -> list[dict]:
    return [
        {
            "role": "system",
            "content": _SPEC_SYSTEM_PROMPT.format(
                project_type=job.project_type, schema=SPEC_SCHEMA
            ),
        },
        {"role": "user", "content": job.input.user_message},
    ]


async def run_spec_stage(
    job: Job,
    llm: OpenRouterClient,
    model: str | None = None,
) -> list[LLMResponseMetadata]:
    """Produce ``job.spec``.  One retry covers both bad output and a failed call."""
    model = model or settings.SPEC_MODEL
    write_job_log(job, f"Starting spec stage with model {model}")

    spec, calls = await request_json(
        job,
        llm,
        model,
        build_spec_messages(job),
        parse=parse_spec_response,
        stage="spec",
        retries=settings.SPEC_JSON_RETRIES,
        temperature=settings.CODEGEN_TEMPERATURE,
        max_tokens=settings.SPEC_MAX_TOKENS,
        schema=SPEC_SCHEMA,
        retry_on_external_error=True,
    )

    job.spec = spec
    spec_tokens = sum(c.usage.total_tokens for c in calls if c.usage)
    usage = job.diagnostics.token_usage
    usage.spec = spec_tokens
    usage.total = spec_tokens + (usage.generator or 0)

    write_job_log(
        job,
        f"Spec ready: {spec.title!r} ({len(spec.spec)} chars, "
        f"{len(spec.acceptance_checklist)} checklist items)",
    )
    logger.info("Job %s: spec stage produced %r", job.job_id, spec.title)
    return calls
