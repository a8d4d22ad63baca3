"""Lenient JSON extraction for codegen model output.

The recovery passes run in a fixed order and sit strictly *ahead of*
schema validation -- they only ever produce an untyped tree:

1. trim whitespace
2. if the text starts with a fence, take the first fenced block's body
3. take the first ``{`` through the last ``}``
4. drop trailing commas before ``}`` / ``]``
5. ``json.loads``; on failure strip comments (and repair stray
   backslashes) and retry exactly once

The candidate from step 3 is parsed as-is before step 4 touches it, and
passes 4 and 5 only edit text outside JSON string literals (bar the
backslash repair, which only edits inside them), so well-formed output
is never rewritten.

All functions are pure string processors -- no I/O, no side effects.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from typing import Any

from app.errors import CodegenParseError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_OBJECT_SPAN_RE = re.compile(r"\{[\s\S]*\}")
_CLOSER_AHEAD_RE = re.compile(r"\s*[}\]]")
# Characters allowed after a backslash inside a JSON string
_VALID_ESCAPES = frozenset('"\\/bfnrtu')


# ---------------------------------------------------------------------------
# Public functions
# ---------------------------------------------------------------------------


def extract_json_text(raw: str) -> str:
    """Apply passes 1-3 and return the candidate JSON text."""
    text = raw.strip()

    if text.startswith("```"):
        match = _FENCED_BLOCK_RE.search(text)
        if match:
            text = match.group(1).strip()

    match = _OBJECT_SPAN_RE.search(text)
    if match:
        text = match.group(0)
    return text


def strip_trailing_commas(text: str) -> str:
    """Drop a ``,`` that only has whitespace before a ``}`` or ``]``.

    Commas inside string literals are content and stay.
    """
    out: list[str] = []
    in_string = escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "," and _CLOSER_AHEAD_RE.match(text, i + 1):
            continue
        out.append(ch)
    return "".join(out)


def strip_json_comments(text: str) -> str:
    """Remove ``/* */`` and ``//`` comments and escape stray backslashes.

    Comment markers inside strings (``https://...``) are content; a
    backslash inside a string that does not start a valid JSON escape
    (``\\d``, ``C:\\path``) is doubled so it survives as a literal.
    """
    out: list[str] = []
    i, n = 0, len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            if ch == "\\":
                if i + 1 < n and text[i + 1] in _VALID_ESCAPES:
                    out.append(text[i:i + 2])
                    i += 2
                else:
                    out.append("\\\\")
                    i += 1
                continue
            if ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif text.startswith("//", i):
            end = text.find("\n", i)
            i = n if end == -1 else end
            continue
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _recovery_attempts(candidate: str) -> Iterator[str]:
    yield candidate
    without_commas = strip_trailing_commas(candidate)
    if without_commas != candidate:
        yield without_commas
    # Comments can hide a trailing comma (``1, // last``), so strip again
    yield strip_trailing_commas(strip_json_comments(without_commas))


def parse_json_response(raw: str) -> Any:
    """Recover one JSON value from raw model output.

    Returns the untyped tree; validation is the caller's job.

    Raises
    ------
    CodegenParseError
        When neither the direct parse nor the comment-stripped retry
        succeeds.  Carries the raw response length and the offset of the
        decoder's first complaint.
    """
    errors: list[json.JSONDecodeError] = []
    for text in _recovery_attempts(extract_json_text(raw)):
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            errors.append(exc)
    first = errors[0]
    raise CodegenParseError(
        f"Failed to parse JSON: {first.msg} at offset {first.pos}. "
        f"Raw response length: {len(raw)} chars.",
        response_length=len(raw),
        offset=first.pos,
    ) from first
