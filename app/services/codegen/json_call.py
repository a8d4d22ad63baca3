"""One LLM call that must come back as JSON, with a bounded corrective retry.

Every JSON-producing stage (codegen, two-stage spec) goes through
:func:`request_json`.  The retry budget is per stage: codegen defaults to
0 (one billed attempt), the spec stage to 1.  A retry replays the
original messages plus the rejected output and a corrective prompt.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from app.clients.llm_client import OpenRouterClient
from app.config import settings
from app.errors import CodegenParseError, CodegenValidationError, ExternalCallError
from app.services.codegen.prompts import CORRECTIVE_SCHEMA, corrective_prompt
from app.services.jobs.job_manager import write_job_log
from app.services.jobs.models import Job
from app.services.llm_metadata import LLMResponseMetadata, create_unavailable_metadata

logger = logging.getLogger(__name__)

MAX_RESPONSE_SNAPSHOT = 12_000
_LOG_PREVIEW_CHARS = 500

JSON_RESPONSE_FORMAT = {"type": "json_object"}


def _record(job: Job, label: str, metadata: LLMResponseMetadata) -> None:
    job.diagnostics.llm_metadata[label] = metadata


async def request_json(
    job: Job,
    llm: OpenRouterClient,
    model: str,
    messages: list[dict],
    *,
    parse: Callable[[str], Any],
    stage: str,
    retries: int,
    temperature: float,
    max_tokens: int,
    schema: str = CORRECTIVE_SCHEMA,
    retry_on_external_error: bool = False,
) -> tuple[Any, list[LLMResponseMetadata]]:
    """Call the model and return ``(parse(content), call_metadata)``.

    Each call's metadata is also recorded on the job under ``stage`` /
    ``stage_retry_<n>`` so it survives a failure.

    Raises
    ------
    CodegenParseError, CodegenValidationError
        Output still rejected after ``retries`` corrective attempts.
    ExternalCallError
        The LLM call failed (retried only with ``retry_on_external_error``).
    """
    calls: list[LLMResponseMetadata] = []
    conversation = list(messages)
    attempt = 0

    while True:
        label = stage if attempt == 0 else f"{stage}_retry_{attempt}"
        try:
            response = await llm.complete(
                conversation,
                model,
                temperature=temperature,
                max_tokens=max_tokens,
                response_format=JSON_RESPONSE_FORMAT,
            )
        except ExternalCallError as exc:
            failed = create_unavailable_metadata(model, str(exc))
            calls.append(failed)
            _record(job, label, failed)
            write_job_log(job, f"{stage}: LLM call failed: {exc}")
            if retry_on_external_error and attempt < retries:
                attempt += 1
                write_job_log(job, f"{stage}: retrying after call failure ({attempt}/{retries})")
                continue
            raise

        calls.append(response.metadata)
        _record(job, label, response.metadata)
        write_job_log(job, f"{stage}: received response ({len(response.content)} chars)")

        try:
            return parse(response.content), calls
        except (CodegenParseError, CodegenValidationError) as exc:
            errors = exc.errors if isinstance(exc, CodegenValidationError) else [str(exc)]
            write_job_log(job, f"{stage}: output rejected: {exc}")
            write_job_log(job, f"{stage}: raw response head: {response.content[:_LOG_PREVIEW_CHARS]!r}")
            if attempt >= retries:
                if retries == 0:
                    write_job_log(job, f"{stage}: corrective retries disabled, failing job")
                logger.warning("Job %s %s output rejected: %s", job.job_id, stage, exc)
                raise

            attempt += 1
            write_job_log(job, f"{stage}: corrective retry {attempt}/{retries}")
            snapshot = response.content[:MAX_RESPONSE_SNAPSHOT]
            conversation = [
                *messages,
                {"role": "assistant", "content": snapshot},
                {"role": "user", "content": corrective_prompt(errors, snapshot, schema)},
            ]
            temperature = settings.CODEGEN_RETRY_TEMPERATURE
