"""Request dependencies -- caller identity and the shared LLM client.

There is no login: the bot or frontend in front of this service passes
the chat user's id (and optionally display name) in headers.
"""

from fastapi import Header, HTTPException, status

from app.clients.llm_client import OpenRouterClient


async def get_current_user(
    x_user_id: str | None = Header(default=None),
    x_username: str | None = Header(default=None),
) -> dict:
    """Return ``{"id", "username"}`` for the calling user.

    Raises 401 if ``X-User-ID`` is missing or blank.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-ID header",
        )
    user_id = x_user_id.strip()
    return {"id": user_id, "username": (x_username or "").strip() or user_id}


def get_llm_client() -> OpenRouterClient:
    """LLM client for the request.  Overridden in tests."""
    return OpenRouterClient()
