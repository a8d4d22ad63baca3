"""Domain exception hierarchy for the generation service.

Services raise these instead of bare ``ValueError`` so that the global
exception handler in ``main.py`` can map them to the correct HTTP status
code without fragile string matching.  Pipeline stages write the failure
to the per-job log before letting these propagate.
"""


class AppError(Exception):
    """Base for all domain exceptions."""

    def __init__(self, message: str = "An unexpected error occurred", *, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, status_code=404)


class ConflictError(AppError):
    """Request conflicts with in-flight work, e.g. user already queued (409)."""

    def __init__(self, message: str = "Conflict"):
        super().__init__(message, status_code=409)


class RateLimitedError(AppError):
    """Too many requests from one user (429)."""

    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(message, status_code=429)


# ---------------------------------------------------------------------------
# Generation pipeline errors
# ---------------------------------------------------------------------------


class CodegenParseError(AppError):
    """Model output could not be recovered as JSON after the fix-up passes.

    Attributes
    ----------
    response_length : int
        Length of the raw model response in characters.
    offset : int | None
        Character offset reported by the JSON decoder, if any.
    """

    def __init__(self, message: str, *, response_length: int, offset: int | None = None):
        super().__init__(message, status_code=502)
        self.response_length = response_length
        self.offset = offset


class CodegenValidationError(AppError):
    """Model output parsed but broke the result contract.

    ``errors`` lists every rule violated, not just the first.
    """

    def __init__(self, errors: list[str], *, stage: str = "codegen"):
        summary = "; ".join(errors[:5])
        if len(errors) > 5:
            summary += f" (+{len(errors) - 5} more)"
        super().__init__(f"Invalid {stage} output: {summary}", status_code=502)
        self.errors = list(errors)
        self.stage = stage


class ExternalCallError(AppError):
    """The LLM request itself failed (network, provider, empty response)."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "openrouter",
        upstream_status: int | None = None,
    ):
        super().__init__(message, status_code=502)
        self.provider = provider
        self.upstream_status = upstream_status


class SandboxViolation(AppError):
    """A generated path would land outside the job workspace."""

    def __init__(self, path: str, *, root: str = "", reason: str = ""):
        super().__init__(
            f"Sandbox violation: {reason} (path={path!r}, root={root!r})",
            status_code=502,
        )
        self.path = path
        self.root = root
        self.reason = reason


class PackagingError(AppError):
    """Creating the zip archive failed.  Non-fatal inside the pipeline."""

    def __init__(self, message: str = "Failed to create archive"):
        super().__init__(message, status_code=500)


class QueueItemError(AppError):
    """A queued generation raised.  Logged by the queue loop, never re-raised."""

    def __init__(self, user_id: str, username: str, duration_ms: int, cause: BaseException):
        super().__init__(
            f"Queued job for {username} ({user_id}) failed after {duration_ms}ms: "
            f"{type(cause).__name__}: {cause}",
        )
        self.user_id = user_id
        self.username = username
        self.duration_ms = duration_ms
        self.cause = cause


def format_error_response(
    *,
    error: str,
    detail: object = None,
    request_id: str = "",
) -> dict:
    """Build a structured error response dict.

    Parameters
    ----------
    error : str
        Short error title (e.g. ``"Internal Server Error"``).
    detail : object
        Human-readable detail string or validation error list.
    request_id : str
        The request ID for tracing.

    Returns
    -------
    dict
        ``{"error": ..., "detail": ..., "request_id": ...}``
    """
    return {
        "error": error,
        "detail": detail if detail is not None else error,
        "request_id": request_id,
    }
