"""LLM call metadata -- per-call records, pricing and multi-call aggregation.

Every LLM call produces one frozen :class:`LLMResponseMetadata`.  A job
that makes several calls (spec stage, codegen, corrective retries) folds
them into an :class:`AggregatedLLMMetadata` on demand; the aggregate is
never stored on its own.

LLM latency and tool latency are summed separately -- tool time is not
billed model time.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, Field

from app.config import settings

logger = logging.getLogger(__name__)

Provider = Literal["openrouter", "openai", "gemini", "unknown"]


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class TokenUsage(BaseModel):
    """Token counts reported by the provider for one call."""

    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    cache_read_tokens: int | None = Field(default=None, ge=0)


class LLMResponseMetadata(BaseModel):
    """Immutable record of a single LLM API call."""

    model_config = ConfigDict(frozen=True)

    model: str
    provider: Provider = "unknown"
    usage: TokenUsage | None = None
    latency_ms: int | None = None
    estimated_cost: float | None = None
    request_timestamp: int = Field(..., description="Epoch ms when the request was sent")
    response_timestamp: int | None = None
    success: bool = True
    error: str | None = None


class ToolExecutionMetadata(BaseModel):
    """Wall-clock timing for a non-LLM tool step."""

    model_config = ConfigDict(frozen=True)

    tool_name: str
    start_time_ms: int
    end_time_ms: int
    latency_ms: int = Field(..., ge=0)
    success: bool = True


class AggregateTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_tokens: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    llm_latency_ms: int = 0
    tool_latency_ms: int = 0
    total_latency_ms: int = 0
    estimated_cost: float = 0.0


class AggregatedLLMMetadata(BaseModel):
    """Summary across every call made for one job."""

    model_config = ConfigDict(frozen=True)

    planning_call: LLMResponseMetadata | None = None
    execution_calls: list[LLMResponseMetadata] = Field(default_factory=list)
    tool_executions: list[ToolExecutionMetadata] = Field(default_factory=list)
    response_call: LLMResponseMetadata | None = None
    totals: AggregateTotals = Field(default_factory=AggregateTotals)
    total_calls: int = 0
    models_used: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Pricing (USD per 1M tokens, OpenRouter list prices)
# ---------------------------------------------------------------------------


class ModelRates(NamedTuple):
    prompt: float
    completion: float
    # Rate for prompt tokens served from the provider's cache; None means
    # the model has no cache discount
    cache_read: float | None = None


MODEL_PRICING: dict[str, ModelRates] = {
    "meta-llama/llama-3.3-70b-instruct:free": ModelRates(0.0, 0.0),
    "google/gemini-2.0-flash-exp:free":       ModelRates(0.0, 0.0),
    "google/gemini-flash-1.5":                ModelRates(0.075, 0.30, cache_read=0.0075),
    "google/gemini-3-flash-preview":          ModelRates(0.50, 3.00, cache_read=0.05),
    "google/gemini-3-pro-preview":            ModelRates(2.00, 12.00, cache_read=0.20),
    "z-ai/glm-4-32b":                         ModelRates(0.10, 0.10),
    "z-ai/glm-4.7":                           ModelRates(0.40, 1.50, cache_read=0.11),
    "openai/gpt-oss-20b":                     ModelRates(0.10, 0.10),
    "openai/gpt-oss-120b":                    ModelRates(0.10, 0.50),
    "openai/gpt-5.2":                         ModelRates(1.75, 14.00, cache_read=0.175),
    "minimax/minimax-m2.1":                   ModelRates(0.30, 1.50),
    "anthropic/claude-3.5-sonnet":            ModelRates(3.0, 15.0, cache_read=0.30),
    "openai/gpt-4":                           ModelRates(30.0, 60.0),
    "openai/gpt-4-turbo":                     ModelRates(10.0, 30.0),
    "openai/gpt-3.5-turbo":                   ModelRates(0.5, 1.5),
}


def _pricing_overrides() -> dict[str, ModelRates]:
    """Parse ``LLM_PRICING_OVERRIDES``; malformed entries are skipped."""
    raw = settings.LLM_PRICING_OVERRIDES.strip()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning("Ignoring LLM_PRICING_OVERRIDES: %s", exc)
        return {}
    out: dict[str, ModelRates] = {}
    if not isinstance(data, dict):
        return out
    for model, rates in data.items():
        if not isinstance(rates, dict):
            continue
        try:
            cache_read = rates.get("cache_read")
            out[model] = ModelRates(
                float(rates.get("input", 0)),
                float(rates.get("output", 0)),
                float(cache_read) if cache_read is not None else None,
            )
        except (TypeError, ValueError):
            logger.warning("Ignoring LLM_PRICING_OVERRIDES entry for %s: %r", model, rates)
    return out


def calculate_cost(usage: TokenUsage | None, model: str) -> float:
    """Estimated USD cost for *usage* on *model*.

    Providers report cached prompt tokens as part of ``prompt_tokens``;
    those are billed at the model's ``cache_read`` rate when it has one.
    Unpriced models cost 0 -- this under-reports spend for unlisted models
    but never fails a job over bookkeeping.
    """
    if usage is None:
        return 0.0
    rates = _pricing_overrides().get(model) or MODEL_PRICING.get(model)
    if rates is None:
        return 0.0
    cached = 0
    if rates.cache_read is not None and usage.cache_read_tokens:
        cached = min(usage.cache_read_tokens, usage.prompt_tokens)
    cost = (usage.prompt_tokens - cached) * rates.prompt / 1_000_000
    cost += cached * (rates.cache_read or 0.0) / 1_000_000
    cost += usage.completion_tokens * rates.completion / 1_000_000
    return round(cost, 6)


def detect_provider(model: str) -> Provider:
    """Best-effort provider tag.  Every call goes through OpenRouter today."""
    if "/" in model:
        return "openrouter"
    m = model.lower()
    if m.startswith(("gpt-", "o1", "o3", "o4")):
        return "openai"
    if m.startswith("gemini"):
        return "gemini"
    return "unknown"


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def _now_ms() -> int:
    return int(time.time() * 1000)


def create_llm_metadata(
    model: str,
    usage: TokenUsage | None,
    request_timestamp: int,
    response_timestamp: int | None = None,
) -> LLMResponseMetadata:
    """Build the metadata record for a successful call, with cost filled in."""
    response_timestamp = response_timestamp if response_timestamp is not None else _now_ms()
    return LLMResponseMetadata(
        model=model,
        provider=detect_provider(model),
        usage=usage,
        latency_ms=max(0, response_timestamp - request_timestamp),
        estimated_cost=calculate_cost(usage, model),
        request_timestamp=request_timestamp,
        response_timestamp=response_timestamp,
        success=True,
    )


def create_unavailable_metadata(model: str, reason: str | None = None) -> LLMResponseMetadata:
    """Metadata for a call whose usage data is missing or that failed."""
    return LLMResponseMetadata(
        model=model,
        provider="unknown",
        success=False,
        error=reason or "Token usage data unavailable from provider",
        request_timestamp=_now_ms(),
    )


def tool_execution(tool_name: str, start_ms: int, end_ms: int, success: bool = True) -> ToolExecutionMetadata:
    return ToolExecutionMetadata(
        tool_name=tool_name,
        start_time_ms=start_ms,
        end_time_ms=end_ms,
        latency_ms=max(0, end_ms - start_ms),
        success=success,
    )


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def aggregate_llm_metadata(
    planning_call: LLMResponseMetadata | None = None,
    execution_calls: list[LLMResponseMetadata] | None = None,
    response_call: LLMResponseMetadata | None = None,
    tool_executions: list[ToolExecutionMetadata] | None = None,
) -> AggregatedLLMMetadata:
    """Fold 0..N call records (plus tool timings) into one summary."""
    execution_calls = list(execution_calls or [])
    tool_executions = list(tool_executions or [])
    calls = [
        c for c in (planning_call, *execution_calls, response_call) if c is not None
    ]

    total_tokens = prompt_tokens = completion_tokens = 0
    llm_latency = 0
    cost = 0.0
    models_used: list[str] = []
    for call in calls:
        if call.usage is not None:
            total_tokens += call.usage.total_tokens
            prompt_tokens += call.usage.prompt_tokens
            completion_tokens += call.usage.completion_tokens
        llm_latency += call.latency_ms or 0
        cost += call.estimated_cost or 0.0
        if call.model not in models_used:
            models_used.append(call.model)

    tool_latency = sum(t.latency_ms for t in tool_executions)

    return AggregatedLLMMetadata(
        planning_call=planning_call,
        execution_calls=execution_calls,
        tool_executions=tool_executions,
        response_call=response_call,
        totals=AggregateTotals(
            total_tokens=total_tokens,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            llm_latency_ms=llm_latency,
            tool_latency_ms=tool_latency,
            total_latency_ms=llm_latency + tool_latency,
            estimated_cost=round(cost, 6),
        ),
        total_calls=len(calls),
        models_used=models_used,
    )
