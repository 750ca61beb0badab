"""Shared validation functions for card titles and resource names.

Pure functions returning ``(cleaned, error)`` tuples; callers decide whether
an error becomes an exception.
"""

from __future__ import annotations

import unicodedata
from typing import Any

_MAX_TITLE_LENGTH = 500
_MAX_NAME_LENGTH = 128


def _control_char(value: str) -> str | None:
    for ch in value:
        if unicodedata.category(ch).startswith("C"):  # Cc (control) and Cf (format)
            return f"U+{ord(ch):04X}"
    return None


def sanitize_title(value: Any) -> tuple[str, str | None]:
    """Validate and clean a card title.

    Returns (cleaned_title, None) on success or ("", error_message) on failure.
    Strips whitespace, then checks: non-empty, max length, no control/format chars.
    """
    if not isinstance(value, str):
        return ("", "title must be a string")
    # Checked before strip(): "\nbad" is rejected, not trimmed.
    found = _control_char(value)
    if found:
        return ("", f"title must not contain control characters (found {found})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "title must not be empty")
    if len(cleaned) > _MAX_TITLE_LENGTH:
        return ("", f"title must be at most {_MAX_TITLE_LENGTH} characters")
    return (cleaned, None)


def check_name(value: Any, kind: str = "name") -> tuple[str, str | None]:
    """Validate a workflow, state, card type, field, or card key name.

    Names are used verbatim as lookup keys, so surrounding whitespace is an
    error rather than something to strip.
    """
    if not isinstance(value, str):
        return ("", f"{kind} must be a string")
    if not value.strip():
        return ("", f"{kind} must not be empty")
    if value != value.strip():
        return ("", f"{kind} '{value}' must not start or end with whitespace")
    found = _control_char(value)
    if found:
        return ("", f"{kind} must not contain control characters (found {found})")
    if len(value) > _MAX_NAME_LENGTH:
        return ("", f"{kind} must be at most {_MAX_NAME_LENGTH} characters")
    return (value, None)
