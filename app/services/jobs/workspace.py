"""Sandboxed path handling for generated files.

``path_problem`` is the pure rule set shared with the codegen validator;
``resolve_in_workspace`` applies the same rules and then checks the
resolved target really is under the root (catches symlink escapes).
"""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath

from app.errors import SandboxViolation

_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")


def path_problem(rel_path: str) -> str | None:
    """Return why *rel_path* is unsafe, or ``None`` if it is acceptable."""
    if not rel_path or not rel_path.strip():
        return "path is empty"
    if "\x00" in rel_path:
        return "path contains null bytes"
    normalised = rel_path.replace("\\", "/")
    if normalised.startswith("/") or PurePosixPath(normalised).is_absolute():
        return "absolute paths are not allowed"
    if _DRIVE_LETTER.match(normalised):
        return "drive-letter paths are not allowed"
    if ".." in normalised:
        return "path must not contain '..'"
    return None


def resolve_in_workspace(root: Path, rel_path: str) -> Path:
    """Resolve *rel_path* under *root*.

    Raises
    ------
    SandboxViolation
        If the path breaks the rules in :func:`path_problem` or resolves
        outside the root.
    """
    problem = path_problem(rel_path)
    if problem:
        raise SandboxViolation(rel_path, root=str(root), reason=problem)

    root_resolved = root.resolve()
    target = (root_resolved / rel_path.replace("\\", "/")).resolve()
    try:
        target.relative_to(root_resolved)
    except ValueError:
        raise SandboxViolation(
            rel_path,
            root=str(root),
            reason="resolved path is outside workspace root",
        )
    if target == root_resolved:
        raise SandboxViolation(rel_path, root=str(root), reason="path names the workspace root")
    return target
