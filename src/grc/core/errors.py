"""GRC domain exceptions.

Every module raises typed exceptions so callers can handle failures
explicitly instead of catching bare ValueError/RuntimeError.
"""

from __future__ import annotations


# ── Base ────────────────────────────────────────────────────
class GRCError(Exception):
    """Root exception for all GRC errors."""


# ── Repo / filesystem ──────────────────────────────────────
class RepoRootNotFound(GRCError):
    """Could not locate the repository root (pyproject.toml marker)."""

    def __init__(self, start_path: str | None = None) -> None:
        where = f" (searched from {start_path})" if start_path else ""
        super().__init__(f"Repository root not found{where}: no pyproject.toml in parent chain")
        self.start_path = start_path


# ── Framework catalogue ────────────────────────────────────
class CatalogNotFound(GRCError):
    """The framework catalogue YAML file does not exist at the expected path."""


class CatalogInvalid(GRCError):
    """The catalogue failed schema validation or safe-load."""


class CatalogTooLarge(CatalogInvalid):
    """The catalogue file exceeds the allowed size limit."""


# ── Versioning ─────────────────────────────────────────────
class ParseError(GRCError, ValueError):
    """A version string is not ``major.minor`` or ``major.minor.patch``."""

    def __init__(self, text: str) -> None:
        super().__init__(f"Invalid version {text!r}: expected major.minor[.patch] (e.g. 1.0.0)")
        self.text = text


# ── State machine ───────────────────────────────────────────
class InvalidTransition(GRCError):
    """An illegal status transition was attempted."""

    def __init__(self, entity_kind: str, from_status: str, to_status: str, reason: str) -> None:
        super().__init__(reason)
        self.entity_kind = entity_kind
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason


class LifecycleViolation(GRCError):
    """A use-case precondition does not hold (e.g. publishing an unapproved policy)."""


# ── Audit / chain ──────────────────────────────────────────
class AuditChainBroken(GRCError):
    """Hash-chain integrity verification failed."""
