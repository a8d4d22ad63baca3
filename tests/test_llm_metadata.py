"""Tests for LLM call metadata, pricing and aggregation."""

import json

import pytest

from app.services.llm_metadata import (
    TokenUsage,
    aggregate_llm_metadata,
    calculate_cost,
    create_llm_metadata,
    create_unavailable_metadata,
    detect_provider,
    tool_execution,
)


def _usage(prompt: int, completion: int) -> TokenUsage:
    return TokenUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


def test_calculate_cost_known_model():
    # 0.50 / 3.00 USD per 1M tokens
    cost = calculate_cost(_usage(1_000_000, 100_000), "google/gemini-3-flash-preview")
    assert cost == pytest.approx(0.5 + 0.3)


def test_calculate_cost_unknown_model_is_zero():
    assert calculate_cost(_usage(1000, 1000), "vendor/unpriced") == 0.0


def test_calculate_cost_no_usage():
    assert calculate_cost(None, "openai/gpt-4") == 0.0


def test_pricing_override(monkeypatch):
    monkeypatch.setattr(
        "app.config.settings.LLM_PRICING_OVERRIDES",
        json.dumps({"vendor/custom": {"input": 1.0, "output": 2.0}}),
    )
    assert calculate_cost(_usage(1_000_000, 1_000_000), "vendor/custom") == pytest.approx(3.0)


def test_malformed_pricing_override_ignored(monkeypatch):
    monkeypatch.setattr("app.config.settings.LLM_PRICING_OVERRIDES", "{not json")
    assert calculate_cost(_usage(1_000_000, 0), "openai/gpt-3.5-turbo") == pytest.approx(0.5)


def _cached_usage(prompt: int, cached: int, completion: int = 0) -> TokenUsage:
    return TokenUsage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=prompt + completion,
        cache_read_tokens=cached,
    )


def test_cached_prompt_tokens_billed_at_cache_rate():
    # 0.50 per 1M uncached, 0.05 per 1M cached, 3.00 per 1M out
    usage = _cached_usage(1_000_000, 800_000, completion=100_000)
    cost = calculate_cost(usage, "google/gemini-3-flash-preview")
    assert cost == pytest.approx(0.2 * 0.5 + 0.8 * 0.05 + 0.1 * 3.0)
    assert cost < calculate_cost(_usage(1_000_000, 100_000), "google/gemini-3-flash-preview")


def test_cached_tokens_full_price_without_cache_rate():
    usage = _cached_usage(1_000_000, 500_000)
    assert calculate_cost(usage, "openai/gpt-3.5-turbo") == pytest.approx(0.5)


def test_cached_tokens_capped_at_prompt_tokens():
    usage = _cached_usage(1_000_000, 5_000_000)
    assert calculate_cost(usage, "openai/gpt-5.2") == pytest.approx(0.175)


def test_pricing_override_with_cache_read(monkeypatch):
    monkeypatch.setattr(
        "app.config.settings.LLM_PRICING_OVERRIDES",
        json.dumps({"vendor/cached": {"input": 2.0, "output": 0, "cache_read": 0.5}}),
    )
    usage = _cached_usage(1_000_000, 1_000_000)
    assert calculate_cost(usage, "vendor/cached") == pytest.approx(0.5)


@pytest.mark.parametrize("model,provider", [
    ("google/gemini-3-flash-preview", "openrouter"),
    ("gpt-4o", "openai"),
    ("gemini-1.5-pro", "gemini"),
    ("mystery", "unknown"),
])
def test_detect_provider(model, provider):
    assert detect_provider(model) == provider


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def test_create_llm_metadata():
    meta = create_llm_metadata("openai/gpt-4", _usage(1000, 500), 10_000, 10_750)
    assert meta.latency_ms == 750
    assert meta.success is True
    assert meta.estimated_cost == pytest.approx(0.03 + 0.03)
    assert meta.provider == "openrouter"


def test_metadata_is_frozen():
    meta = create_llm_metadata("m", None, 0, 1)
    with pytest.raises(Exception):
        meta.model = "other"


def test_unavailable_metadata():
    meta = create_unavailable_metadata("m", "timeout")
    assert meta.success is False
    assert meta.error == "timeout"
    assert meta.usage is None


def test_tool_execution_latency_never_negative():
    assert tool_execution("zip", 100, 50).latency_ms == 0
    assert tool_execution("zip", 100, 160).latency_ms == 60


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def test_aggregate_two_calls():
    """100 + 200 tokens over two calls."""
    a = create_llm_metadata("model/a", _usage(60, 40), 0, 100)
    b = create_llm_metadata("model/b", _usage(150, 50), 0, 300)
    agg = aggregate_llm_metadata(planning_call=a, execution_calls=[b])
    assert agg.totals.total_tokens == 300
    assert agg.totals.prompt_tokens == 210
    assert agg.totals.completion_tokens == 90
    assert agg.totals.llm_latency_ms == 400
    assert agg.total_calls == 2
    assert agg.models_used == ["model/a", "model/b"]


def test_aggregate_separates_tool_latency():
    call = create_llm_metadata("m", _usage(1, 1), 0, 1000)
    agg = aggregate_llm_metadata(
        execution_calls=[call],
        tool_executions=[tool_execution("copy", 0, 200), tool_execution("zip", 0, 300)],
    )
    assert agg.totals.llm_latency_ms == 1000
    assert agg.totals.tool_latency_ms == 500
    assert agg.totals.total_latency_ms == 1500


def test_aggregate_dedupes_models_and_counts_failed_calls():
    ok = create_llm_metadata("m", _usage(10, 10), 0, 5)
    failed = create_unavailable_metadata("m")
    agg = aggregate_llm_metadata(execution_calls=[ok, failed], response_call=ok)
    assert agg.total_calls == 3
    assert agg.models_used == ["m"]
    assert agg.totals.total_tokens == 40


def test_aggregate_nothing():
    agg = aggregate_llm_metadata()
    assert agg.total_calls == 0
    assert agg.totals.estimated_cost == 0.0
