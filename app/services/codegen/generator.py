"""Code generator -- one LLM call from request to files on disk.

Flow for both single-call pipelines:

1. compose prompts from the project-type preset (plain or cache-eligible)
2. call the model for JSON (:func:`~app.services.codegen.json_call.request_json`)
3. parse + validate into a :class:`CodegenResult`
4. enforce the asset policy (web projects only)
5. materialize the files under the job workspace

Any parse / validation / call failure is fatal for the job.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from app.clients.llm_client import OpenRouterClient
from app.clients.model_caps import caching_enabled_for
from app.config import settings
from app.services.codegen.asset_policy import enforce_website_assets
from app.services.codegen.json_call import request_json
from app.services.codegen.prompts import (
    build_user_request,
    compose_cached_messages,
    compose_direct_messages,
)
from app.services.codegen.validator import parse_codegen_response
from app.services.jobs.job_manager import safe_write_file, write_job_log
from app.services.jobs.models import CodegenResult, Job
from app.services.jobs.workspace import resolve_in_workspace
from app.services.llm_metadata import LLMResponseMetadata
from app.services.presets import get_preset_for_project_type, is_web_project

logger = logging.getLogger(__name__)

# (message, detail) -> None
CodegenProgress = Callable[[str, str | None], Awaitable[None]]


def materialize_files(job: Job, result: CodegenResult) -> int:
    """Write every file under the workspace (overwrite; idempotent).

    Paths go through :func:`resolve_in_workspace` even though the validator
    already checked them.
    """
    root = job.paths.workspace_dir
    for file in result.files:
        safe_write_file(resolve_in_workspace(root, file.path), file.content)
    write_job_log(job, f"Materialized {len(result.files)} files to workspace")
    return len(result.files)


async def run_codegen(
    job: Job,
    llm: OpenRouterClient,
    model: str,
    *,
    use_cache: bool | None = None,
    on_progress: CodegenProgress | None = None,
) -> list[LLMResponseMetadata]:
    """Generate, validate and materialize code for *job*.

    ``use_cache`` defaults to whether *model* is cache-capable and caching
    is enabled.  Returns the metadata of every LLM call made.
    """
    cached = caching_enabled_for(model) if use_cache is None else use_cache
    preset = get_preset_for_project_type(job.project_type)
    is_web = is_web_project(job.project_type)
    user_request = build_user_request(job.input.user_message, job.spec)

    if cached:
        messages = compose_cached_messages(preset, is_web, user_request, model)
        mode = "cached prompts"
    else:
        messages = compose_direct_messages(preset, is_web, user_request)
        mode = "no caching"
    job.diagnostics.policy_flags.caching_used = (
        cached and isinstance(messages[0]["content"], list)
    )

    write_job_log(job, f"Starting code generation with model {model} ({mode}, preset {preset.name})")
    write_job_log(job, f"User request length: {len(user_request)} chars")
    if on_progress:
        await on_progress("Generating code...", f"Single-shot generation ({mode})")

    result, calls = await request_json(
        job,
        llm,
        model,
        messages,
        parse=parse_codegen_response,
        stage="codegen",
        retries=settings.CODEGEN_JSON_RETRIES,
        temperature=settings.CODEGEN_TEMPERATURE,
        max_tokens=settings.CODEGEN_MAX_TOKENS,
    )
    write_job_log(job, f"Parsed codegen result: {len(result.files)} files")

    if is_web:
        enforcement = enforce_website_assets(result.files)
        result = result.model_copy(update={"files": enforcement.files})
        job.diagnostics.policy_flags.website_assets_enforced = True
        job.diagnostics.policy_flags.assets_rewritten = enforcement.rewritten
        write_job_log(
            job,
            f"Enforced website asset policy ({enforcement.rewritten} reference(s) rewritten)",
        )

    await asyncio.to_thread(materialize_files, job, result)
    job.codegen_result = result

    generator_tokens = sum(c.usage.total_tokens for c in calls if c.usage)
    usage = job.diagnostics.token_usage
    usage.generator = generator_tokens
    usage.total = (usage.spec or 0) + generator_tokens

    if on_progress:
        await on_progress("Code generation complete!", f"Generated {len(result.files)} files")
    logger.info("Job %s: generated %d files", job.job_id, len(result.files))
    return calls


async def run_direct_codegen(
    job: Job,
    llm: OpenRouterClient,
    model: str,
    on_progress: CodegenProgress | None = None,
) -> list[LLMResponseMetadata]:
    return await run_codegen(job, llm, model, use_cache=False, on_progress=on_progress)


async def run_direct_cached_codegen(
    job: Job,
    llm: OpenRouterClient,
    model: str,
    on_progress: CodegenProgress | None = None,
) -> list[LLMResponseMetadata]:
    return await run_codegen(job, llm, model, use_cache=True, on_progress=on_progress)
