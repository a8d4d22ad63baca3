"""Access log: one ``METRIC | type=http_request | ...`` line per HTTP request.

Fields: method, path, status, wall_ms, user (``X-User-ID``), req_id and,
for 4xx/5xx, the ``detail`` of the JSON error body.  Lines go to the
``codegen.access`` logger at INFO / WARNING / ERROR by status class.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("codegen.access")

# Health checks and docs are noise in the access log
_SKIP_PREFIXES = ("/health", "/docs", "/redoc", "/openapi.json", "/favicon.ico")

_MAX_DETAIL_CHARS = 200


@dataclass
class _Exchange:
    method: str
    path: str
    user: str
    started: float = field(default_factory=time.perf_counter)
    status: int = 0
    detail: str = ""

    def observe(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status = message.get("status", 0)
        elif message["type"] == "http.response.body" and self.status >= 400 and not self.detail:
            self.detail = _error_detail(message.get("body", b""))

    def metric_line(self, request_id: str) -> str:
        wall_ms = (time.perf_counter() - self.started) * 1000
        parts = [
            "METRIC | type=http_request",
            f"method={self.method}",
            f"path={self.path}",
            f"status={self.status}",
            f"wall_ms={wall_ms:.0f}",
            f"user={self.user}",
            f"req_id={request_id}",
        ]
        if self.detail:
            # "|" separates fields
            parts.append(f"error={self.detail.replace('|', '/')}")
        return " | ".join(parts)


class AccessLogMiddleware:
    """Pure ASGI, so streaming responses are not buffered."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        path: str = scope.get("path", "")
        if scope["type"] != "http" or path.startswith(_SKIP_PREFIXES):
            await self.app(scope, receive, send)
            return

        exchange = _Exchange(
            method=scope.get("method", "?"),
            path=path,
            user=_caller(scope),
        )

        async def observing_send(message: Message) -> None:
            exchange.observe(message)
            await send(message)

        try:
            await self.app(scope, receive, observing_send)
        except Exception:
            # Raised before any response started
            exchange.status = exchange.status or 500
            raise
        finally:
            # request_id is set by the outer RequestIDMiddleware
            request_id = scope.get("state", {}).get("request_id", "-")
            _log_at_status(exchange.status, exchange.metric_line(request_id))


def _caller(scope: Scope) -> str:
    for name, value in scope.get("headers", []):
        if name == b"x-user-id":
            return value.decode("utf-8", errors="ignore").strip()[:32] or "-"
    return "-"


def _error_detail(body: bytes) -> str:
    if not body:
        return ""
    try:
        payload = json.loads(body)
    except ValueError:
        return ""
    if not isinstance(payload, dict):
        return ""
    return str(payload.get("detail", payload.get("error", "")))[:_MAX_DETAIL_CHARS]


def _log_at_status(status: int, line: str) -> None:
    if status >= 500:
        logger.error(line)
    elif status >= 400:
        logger.warning(line)
    else:
        logger.info(line)
