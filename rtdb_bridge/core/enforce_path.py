"""Path Enforcement: database locations must follow the Realtime Database key rules.

Invariants:
    - Paths never contain ".", "#", "$", "[" or "]"
    - Leading/trailing whitespace is trimmed before use
    - An empty path means the database root and is only accepted when allow_empty=True
    - Raises ValidationError (never returns an error value)
"""

import re

from rtdb_bridge.core.errors import ValidationError

_FORBIDDEN_CHARACTERS = re.compile(r"[.#$\[\]]")


def check_path(path: object, allow_empty: bool = False) -> str | None:
    """Validate a caller-supplied path. Returns the trimmed path, or None for root."""
    if path is None:
        if allow_empty:
            return None
        raise ValidationError("The PATH does not exist!", "path")

    if not isinstance(path, str):
        raise ValidationError("PATH must be a string!", "path")

    if _FORBIDDEN_CHARACTERS.search(path):
        raise ValidationError(
            'PATH must not contain ".", "#", "$", "[", or "]"', "path",
        )

    trimmed = path.strip()
    if not trimmed:
        if allow_empty:
            return None
        raise ValidationError("PATH must be a non-empty string!", "path")

    return trimmed


def join_path(*parts: str | None) -> str:
    """Join path segments, dropping empty ones and redundant slashes."""
    segments: list[str] = []
    for part in parts:
        if not part:
            continue
        segments.extend(s for s in part.split("/") if s)
    return "/".join(segments)


def last_segment(path: str | None) -> str | None:
    """Key of the location a path points at (None for root)."""
    if not path:
        return None
    segments = [s for s in path.split("/") if s]
    return segments[-1] if segments else None
