"""Field validation at the repository boundary.

Every user-supplied string passes through here before touching SQLite:
identifiers are whitelisted, names and titles are length-checked, and
free-text notes are trimmed to a hard limit.

All validators return the stripped value or raise ``ValueError`` with a
message naming the offending field.
"""

from __future__ import annotations

import re

# Characters allowed in entity ids (whitelist approach).
_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_\-.]{1,128}$")

_MAX_NOTES = 4096


def validate_id(value: str, *, field: str = "id") -> str:
    """Validate and sanitise an entity id (framework_id, control_id, ...).

    Raises
    ------
    ValueError
        If the id is empty, contains disallowed characters or is too long.
    """
    value = value.strip()
    if not value:
        raise ValueError(f"{field} must not be empty")
    if not _SAFE_ID_RE.match(value):
        raise ValueError(
            f"{field} contains invalid characters or is too long (max 128): {value!r}"
        )
    return value


def validate_length(value: str, *, field: str, min_len: int = 1, max_len: int) -> str:
    """Strip *value* and check ``min_len <= len(value) <= max_len``."""
    value = value.strip()
    if not value:
        raise ValueError(f"{field} must not be empty")
    if len(value) < min_len:
        raise ValueError(f"{field} must be at least {min_len} characters")
    if len(value) > max_len:
        raise ValueError(f"{field} cannot exceed {max_len} characters")
    return value


def validate_optional_length(value: str | None, *, field: str, max_len: int) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if len(value) > max_len:
        raise ValueError(f"{field} cannot exceed {max_len} characters")
    return value


def validate_control_code(code: str) -> str:
    """Control codes (``AC-1``, ``SOC2.CC5.1``) are short and contain no spaces."""
    code = validate_length(code, field="control code", max_len=50)
    if " " in code:
        raise ValueError("control code should not contain spaces")
    return code


def sanitise_notes(notes: str) -> str:
    """Trim free-text audit notes to the hard length limit."""
    return notes.strip()[:_MAX_NOTES]
