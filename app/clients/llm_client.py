"""LLM client -- OpenRouter chat-completions wrapper.

Exposes :class:`OpenRouterClient` whose :meth:`~OpenRouterClient.complete`
returns the response text plus an immutable metadata record (usage,
latency, estimated cost).  Transient failures (429 / 5xx / transport)
are retried with backoff; everything else surfaces as
:class:`~app.errors.ExternalCallError`.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from app.config import settings
from app.errors import ExternalCallError
from app.services.llm_metadata import (
    LLMResponseMetadata,
    TokenUsage,
    create_llm_metadata,
)

logger = logging.getLogger(__name__)

RETRY_BACKOFF_BASE = 3.0  # seconds; waits grow 3, 9, 27
_MAX_WAIT_SECS = 90.0
_MAX_RETRY_AFTER_SECS = 120.0
_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 529})
_TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.TransportError)

# One pooled client per process, created on first use
_client: httpx.AsyncClient | None = None


def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None:
        _client = httpx.AsyncClient(timeout=settings.LLM_REQUEST_TIMEOUT_SECS)
    return _client


async def close_client() -> None:
    """Dispose of the pooled client (app shutdown, end of a CLI run)."""
    global _client
    client, _client = _client, None
    if client is not None:
        await client.aclose()


def _compute_wait(exc: httpx.HTTPStatusError | None, attempt: int) -> float:
    """Seconds to sleep before retry number ``attempt + 1``.

    A numeric ``retry-after`` header wins (capped at two minutes);
    otherwise exponential backoff capped at 90 seconds.
    """
    header = None
    if exc is not None and exc.response is not None:
        header = exc.response.headers.get("retry-after")
    if header:
        try:
            return min(float(header), _MAX_RETRY_AFTER_SECS)
        except (ValueError, TypeError):
            pass
    return min(RETRY_BACKOFF_BASE ** (attempt + 1), _MAX_WAIT_SECS)


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, _TRANSIENT_ERRORS):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in _RETRYABLE_STATUS_CODES


async def _retry_on_transient(
    coro_factory,
    *,
    max_retries: int | None = None,
    backoff_base: float = RETRY_BACKOFF_BASE,
):
    """Await ``coro_factory()`` until it succeeds or stops being worth retrying.

    The factory is called again for every attempt.  Transport errors,
    timeouts and retryable HTTP statuses are retried up to ``max_retries``
    times (default ``settings.LLM_MAX_RETRIES``); the last error is
    re-raised unchanged.
    """
    retries = settings.LLM_MAX_RETRIES if max_retries is None else max_retries
    attempt = 0
    while True:
        try:
            return await coro_factory()
        except (httpx.HTTPStatusError, *_TRANSIENT_ERRORS) as exc:
            if attempt >= retries or not _is_retryable(exc):
                raise
            if isinstance(exc, httpx.HTTPStatusError):
                wait = _compute_wait(exc, attempt)
                reason = str(exc.response.status_code)
            else:
                wait = min(backoff_base ** (attempt + 1), _MAX_WAIT_SECS)
                reason = type(exc).__name__
            logger.warning(
                "LLM call failed with %s, retry %d/%d in %.1fs",
                reason, attempt + 1, retries, wait,
            )
            await asyncio.sleep(wait)
            attempt += 1


@dataclass
class LLMResponse:
    """Text returned by a completion call plus its metadata."""
    content: str
    metadata: LLMResponseMetadata


def _openrouter_headers(api_key: str) -> dict:
    """Return standard OpenRouter API headers."""
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "X-Title": "codegen-jobs",
    }


def _parse_usage(data: dict) -> TokenUsage | None:
    usage = data.get("usage")
    if not isinstance(usage, dict):
        return None
    prompt = int(usage.get("prompt_tokens") or 0)
    completion = int(usage.get("completion_tokens") or 0)
    cached = (usage.get("prompt_tokens_details") or {}).get("cached_tokens")
    return TokenUsage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=int(usage.get("total_tokens") or prompt + completion),
        cache_read_tokens=int(cached) if cached is not None else None,
    )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
        return body.get("error", {}).get("message", response.text)
    except (ValueError, AttributeError):
        return response.text


class OpenRouterClient:
    """Chat-completions client for the OpenRouter API.

    Parameters
    ----------
    api_key : str | None
        Defaults to ``settings.OPENROUTER_API_KEY``.
    base_url : str | None
        Defaults to ``settings.OPENROUTER_BASE_URL``.
    """

    def __init__(self, api_key: str | None = None, base_url: str | None = None) -> None:
        self._api_key = api_key if api_key is not None else settings.OPENROUTER_API_KEY
        self._base_url = (base_url or settings.OPENROUTER_BASE_URL).rstrip("/")

    @property
    def chat_url(self) -> str:
        return f"{self._base_url}/chat/completions"

    async def complete(
        self,
        messages: list[dict],
        model: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        response_format: dict | None = None,
        extra_body: dict | None = None,
    ) -> LLMResponse:
        """Send one chat-completions request and return text + metadata.

        Raises
        ------
        ExternalCallError
            On non-retryable HTTP errors, exhausted retries, or an empty
            completion.
        """
        body: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "usage": {"include": True},
        }
        if temperature is not None:
            body["temperature"] = temperature
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        if response_format is not None:
            body["response_format"] = response_format
        if extra_body:
            body.update(extra_body)

        async def _call() -> dict:
            client = _get_client()
            response = await client.post(
                self.chat_url,
                headers=_openrouter_headers(self._api_key),
                json=body,
            )
            if response.status_code >= 400:
                if response.status_code in _RETRYABLE_STATUS_CODES:
                    raise httpx.HTTPStatusError(
                        f"OpenRouter API {response.status_code}",
                        request=response.request,
                        response=response,
                    )
                raise ExternalCallError(
                    f"OpenRouter API {response.status_code}: {_error_message(response)}",
                    upstream_status=response.status_code,
                )
            try:
                payload = response.json()
            except ValueError as exc:
                raise ExternalCallError(
                    f"OpenRouter API returned a non-JSON body ({len(response.content)} bytes)",
                    upstream_status=response.status_code,
                ) from exc
            if not isinstance(payload, dict):
                raise ExternalCallError(
                    f"OpenRouter API returned {type(payload).__name__}, expected an object",
                    upstream_status=response.status_code,
                )
            return payload

        request_ts = int(time.time() * 1000)
        try:
            data = await _retry_on_transient(_call)
        except httpx.HTTPStatusError as exc:
            raise ExternalCallError(
                f"OpenRouter API {exc.response.status_code} after retries: "
                f"{_error_message(exc.response)}",
                upstream_status=exc.response.status_code,
            ) from exc
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise ExternalCallError(
                f"OpenRouter request failed: {type(exc).__name__}: {exc}",
            ) from exc
        response_ts = int(time.time() * 1000)

        choices = data.get("choices") or []
        if not choices:
            raise ExternalCallError("Empty response from OpenRouter API")
        content = (choices[0].get("message") or {}).get("content")
        if not content:
            finish = choices[0].get("finish_reason")
            raise ExternalCallError(
                f"No content in OpenRouter API response (finish_reason={finish})"
            )

        metadata = create_llm_metadata(
            model,
            _parse_usage(data),
            request_ts,
            response_ts,
        )
        logger.info(
            "LLM %s: %s tokens in %dms",
            metadata.model,
            metadata.usage.total_tokens if metadata.usage else "?",
            metadata.latency_ms or 0,
        )
        return LLMResponse(content=content, metadata=metadata)
