"""Model capability lookup -- which models accept prompt-cache markers."""

from app.config import cache_capable_overrides, settings

# Models known to honour ``cache_control`` content blocks through OpenRouter.
CACHING_CAPABLE_MODELS: frozenset[str] = frozenset({
    "google/gemini-3-flash-preview",
    "google/gemini-3-pro-preview",
    "google/gemini-2.0-flash-thinking-exp:free",
    "anthropic/claude-3.5-sonnet",
    "anthropic/claude-3-5-sonnet-20241022",
    "anthropic/claude-3-opus",
})


def supports_caching(model_id: str) -> bool:
    """True if *model_id* is on the built-in list or ``MODEL_CACHE_CAPABLE``."""
    return model_id in CACHING_CAPABLE_MODELS or model_id in cache_capable_overrides()


def caching_enabled_for(model_id: str) -> bool:
    """Cache-capable model *and* caching not switched off globally."""
    return settings.OPENROUTER_PROMPT_CACHE and supports_caching(model_id)
