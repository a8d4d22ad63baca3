"""Request tracing: every HTTP exchange carries an ``X-Request-ID``.

The ID lands in ``scope["state"]["request_id"]`` (read by the access log
and the exception handlers) and on the response headers.
"""

import re
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

# Client-supplied IDs are echoed into logs and headers; keep them tame.
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def _pick_request_id(scope: Scope) -> str:
    for name, value in scope.get("headers", []):
        if name == b"x-request-id":
            supplied = value.decode("latin-1")
            if _VALID_REQUEST_ID.match(supplied):
                return supplied
            break
    return str(uuid.uuid4())


class RequestIDMiddleware:
    """Reuse a well-formed client ``X-Request-ID`` or mint a UUID-4.

    Reusing the caller's ID lets a bot command be traced through to its
    job log.  Pure ASGI so long generation responses are not buffered;
    non-HTTP scopes pass straight through.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = _pick_request_id(scope)
        scope.setdefault("state", {})["request_id"] = request_id
        header = (b"x-request-id", request_id.encode("latin-1"))

        async def send_with_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                message = {**message, "headers": [*message.get("headers", []), header]}
            await send(message)

        await self.app(scope, receive, send_with_id)
