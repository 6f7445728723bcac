"""Semantic versions for policy documents.

Policies start at ``1.0.0``; a new policy with an existing name gets the
next minor version, and :func:`next_major` produces a fresh major
revision.  Two-component strings (``"1.2"``) are accepted and treated as
patch ``0``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from grc.core.errors import ParseError

_VERSION_RE = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?", re.ASCII)


class Ordering(int, Enum):
    LESS = -1
    EQUAL = 0
    GREATER = 1


@dataclass(frozen=True, order=True)
class SemanticVersion:
    major: int
    minor: int
    patch: int = 0

    @classmethod
    def parse(cls, text: str) -> SemanticVersion:
        """Parse ``major.minor`` or ``major.minor.patch``.

        Raises
        ------
        ParseError
            If *text* is not a well-formed version string.
        """
        m = _VERSION_RE.fullmatch(text) if isinstance(text, str) else None
        if m is None:
            raise ParseError(str(text))
        major, minor, patch = m.groups()
        return cls(int(major), int(minor), int(patch or 0))

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def _coerce(v: SemanticVersion | str) -> SemanticVersion:
    return v if isinstance(v, SemanticVersion) else SemanticVersion.parse(v)


def compare(a: SemanticVersion | str, b: SemanticVersion | str) -> Ordering:
    """Compare major, then minor, then patch."""
    left, right = _coerce(a), _coerce(b)
    if left < right:
        return Ordering.LESS
    if left > right:
        return Ordering.GREATER
    return Ordering.EQUAL


def next_minor(v: SemanticVersion | str) -> SemanticVersion:
    cur = _coerce(v)
    return SemanticVersion(cur.major, cur.minor + 1, 0)


def next_major(v: SemanticVersion | str) -> SemanticVersion:
    cur = _coerce(v)
    return SemanticVersion(cur.major + 1, 0, 0)
