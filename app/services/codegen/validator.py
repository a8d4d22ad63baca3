"""Schema validation for parsed codegen output.

Takes the untyped tree from :mod:`app.services.codegen.parser` and either
returns a typed :class:`CodegenResult` or the full list of rules it broke.
There is no partial acceptance: one bad file rejects the whole result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app.config import settings
from app.errors import CodegenValidationError
from app.services.codegen.parser import parse_json_response
from app.services.jobs.models import CodegenResult, Entrypoints, GeneratedFile
from app.services.jobs.workspace import path_problem

_ENTRYPOINT_KEYS = ("run", "dev", "build")


@dataclass
class ValidationOutcome:
    """Result of :func:`validate_codegen_result`."""
    ok: bool
    errors: list[str] = field(default_factory=list)
    result: CodegenResult | None = None


def normalize_entrypoints(raw: Any) -> Entrypoints:
    """Keep only non-empty string ``run`` / ``dev`` / ``build`` values."""
    if not isinstance(raw, dict):
        return Entrypoints()
    values = {
        key: raw[key]
        for key in _ENTRYPOINT_KEYS
        if isinstance(raw.get(key), str) and raw[key].strip()
    }
    return Entrypoints(**values)


def validate_codegen_result(
    data: Any,
    *,
    max_files: int | None = None,
    max_total_chars: int | None = None,
) -> ValidationOutcome:
    """Check *data* against the codegen output contract.

    Every violation is collected so diagnostics show the whole picture.
    Limits default to ``CODEGEN_MAX_FILES`` / ``CODEGEN_MAX_TOTAL_CHARS``.
    """
    max_files = max_files if max_files is not None else settings.CODEGEN_MAX_FILES
    max_total_chars = (
        max_total_chars if max_total_chars is not None else settings.CODEGEN_MAX_TOTAL_CHARS
    )

    if not isinstance(data, dict):
        return ValidationOutcome(ok=False, errors=["Result is not a JSON object"])

    errors: list[str] = []
    if "files" not in data:
        errors.append('Missing "files" key')
    if "notes" not in data:
        errors.append('Missing "notes" key')

    files: list[GeneratedFile] = []
    raw_files = data.get("files")
    if "files" in data:
        if not isinstance(raw_files, list):
            errors.append('"files" must be an array')
        elif not raw_files:
            errors.append('"files" must not be empty')
        else:
            if len(raw_files) > max_files:
                errors.append(f"Too many files: {len(raw_files)} > {max_files}")

            total_chars = 0
            for i, entry in enumerate(raw_files):
                if not isinstance(entry, dict):
                    errors.append(f"File {i}: entry is not an object")
                    continue
                path = entry.get("path")
                content = entry.get("content")
                entry_ok = True
                if not isinstance(path, str) or not path:
                    errors.append(f"File {i}: missing or invalid path")
                    entry_ok = False
                else:
                    problem = path_problem(path)
                    if problem:
                        errors.append(f"File {i}: unsafe path {path!r} ({problem})")
                        entry_ok = False
                if not isinstance(content, str):
                    errors.append(f"File {i}: content must be a string")
                    entry_ok = False
                else:
                    total_chars += len(content)
                if entry_ok:
                    files.append(GeneratedFile(path=path, content=content))

            if total_chars > max_total_chars:
                errors.append(
                    f"Total content too large: {total_chars} > {max_total_chars} chars"
                )

    if "notes" in data and not isinstance(data["notes"], str):
        errors.append('"notes" must be a string')

    if errors:
        return ValidationOutcome(ok=False, errors=errors)

    return ValidationOutcome(
        ok=True,
        result=CodegenResult(
            files=files,
            entrypoints=normalize_entrypoints(data.get("entrypoints")),
            notes=data["notes"],
        ),
    )


def parse_codegen_response(raw: str) -> CodegenResult:
    """Parse then validate raw model output.

    Raises
    ------
    CodegenParseError
        Output could not be recovered as JSON.
    CodegenValidationError
        JSON parsed but broke the contract; ``errors`` lists every rule.
    """
    outcome = validate_codegen_result(parse_json_response(raw))
    if not outcome.ok:
        raise CodegenValidationError(outcome.errors)
    assert outcome.result is not None
    return outcome.result
