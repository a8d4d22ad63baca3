"""
cli.py -- run one generation job from the terminal.

Usage:
    python -m app.cli "<request>" [--model M] [--two-stage] [--user U]

Examples:
    # Classify, generate, copy and zip; print the job summary as JSON
    python -m app.cli "build a portfolio website with a hero and project cards"

    # Improve the request first, then generate
    python -m app.cli "discord bot that rolls dice" --two-stage

    # Force a project type and model
    python -m app.cli "todo api" --project-type node_project --model openai/gpt-4o

Set OPENROUTER_API_KEY in the environment (or .env) before running.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from app.clients import llm_client
from app.clients.llm_client import OpenRouterClient
from app.config import settings
from app.errors import AppError
from app.logging_setup import configure_logging
from app.services.generation_service import (
    GenerationRequest,
    ProgressEvent,
    run_generation,
)


async def _print_progress(event: ProgressEvent) -> None:
    line = f"[CODEGEN] {event.stage:<8s} {event.message}"
    if event.detail:
        line += f" ({event.detail})"
    print(line, file=sys.stderr)


async def _run(args: argparse.Namespace) -> int:
    request = GenerationRequest(
        message=args.request,
        user_id=args.user,
        username=args.user,
        channel_id="cli",
        project_type=args.project_type,
        two_stage=args.two_stage,
    )
    try:
        outcome = await run_generation(
            request,
            llm=OpenRouterClient(),
            model=args.model,
            on_progress=_print_progress,
        )
    except AppError as exc:
        print(f"[CODEGEN] FAILED: {exc}", file=sys.stderr)
        return 1
    finally:
        await llm_client.close_client()

    totals = outcome.metadata.totals
    print(f"[CODEGEN] ════════════════════════════════════", file=sys.stderr)
    print(f"[CODEGEN] JOB COMPLETE: {outcome.summary['job_id']}", file=sys.stderr)
    print(f"[CODEGEN]   Files:  {len(outcome.files):>10,}", file=sys.stderr)
    print(f"[CODEGEN]   Tokens: {totals.total_tokens:>10,}", file=sys.stderr)
    print(f"[CODEGEN]   Cost:   ${totals.estimated_cost:>9.4f}", file=sys.stderr)
    print(f"[CODEGEN] ════════════════════════════════════", file=sys.stderr)
    print(json.dumps({**outcome.summary, "files": outcome.files}, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m app.cli",
        description="Generate a project from a free-text request",
    )
    parser.add_argument("request", help="What to build, in plain language")
    parser.add_argument(
        "--model", default=None,
        help=f"Codegen model id (default: {settings.CODEGEN_MODEL})",
    )
    parser.add_argument(
        "--two-stage", action="store_true",
        help="Improve the request into a detailed spec before generating",
    )
    parser.add_argument(
        "--user", default="cli",
        help="User id recorded on the job (default: cli)",
    )
    parser.add_argument(
        "--project-type", default=None,
        choices=["static_html", "node_project", "discord_bot"],
        help="Skip classification and force a project type",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
