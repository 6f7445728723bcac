"""Status transition guard for policies, findings, audits and controls.

The tables below list *prohibitions* only: a state that appears in
``RESTRICTED_EXITS`` may only be left towards the listed targets, and any
transition not covered by a rule is allowed.  Control implementation
status has no rules at all.

``check_transition()`` is the pure decision function and returns a tagged
result (:class:`Allowed` or :class:`Rejected`).  ``transition()`` is the
raising form used by the repository: it returns a timestamped
:class:`TransitionEvent` or raises :class:`InvalidTransition`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from datetime import datetime, timezone
from enum import Enum

from grc.core.errors import InvalidTransition
from grc.core.models import (
    STATUS_ENUMS,
    AuditStatus,
    EntityKind,
    FindingStatus,
    PolicyStatus,
)


# Reglas: states that can only be left towards a fixed set of targets.
RESTRICTED_EXITS: dict[EntityKind, dict[Enum, tuple[frozenset[Enum], str]]] = {
    EntityKind.POLICY: {
        PolicyStatus.ARCHIVED: (
            frozenset({PolicyStatus.DRAFT}),
            "archived policy can only be restored to draft",
        ),
    },
    EntityKind.FINDING: {
        FindingStatus.CLOSED: (
            frozenset({FindingStatus.OPEN, FindingStatus.ACCEPTED}),
            "closed finding can only be reopened or accepted",
        ),
    },
    EntityKind.AUDIT: {
        AuditStatus.CANCELLED: (
            frozenset({AuditStatus.PLANNED}),
            "cancelled audit can only return to planned",
        ),
        AuditStatus.COMPLETED: (
            frozenset({AuditStatus.UNDER_REVIEW, AuditStatus.CANCELLED}),
            "completed audit can only move to under_review or cancelled",
        ),
    },
    EntityKind.CONTROL: {},
}

_DRAFT_TO_PUBLISHED = "cannot publish directly from draft"
_NO_APPROVERS = "cannot approve without approvers"


@dataclass(frozen=True)
class TransitionContext:
    """Facts a rule may need beyond the two states."""

    approver_count: int = 0


@dataclass(frozen=True)
class Allowed:
    new_state: Enum


@dataclass(frozen=True)
class Rejected:
    reason: str
    entity_kind: EntityKind
    current: Enum
    requested: Enum

    def error(self) -> InvalidTransition:
        """Return the equivalent :class:`InvalidTransition` exception."""
        return InvalidTransition(
            self.entity_kind.value, self.current.value, self.requested.value, self.reason
        )


TransitionResult = Allowed | Rejected

_CONTEXT_FIELDS = frozenset(f.name for f in fields(TransitionContext))


@dataclass(frozen=True)
class TransitionEvent:
    entity_kind: EntityKind
    entity_id: str
    from_status: Enum
    to_status: Enum
    at_utc: str  # ISO string


def coerce_status(entity_kind: EntityKind | str, status: Enum | str) -> Enum:
    """Return *status* as the status enum of *entity_kind*.

    Raises
    ------
    ValueError
        If the entity kind or the status value is unknown.
    """
    enum_cls = STATUS_ENUMS[EntityKind(entity_kind)]
    if isinstance(status, enum_cls):
        return status
    value = status.value if isinstance(status, Enum) else status
    return enum_cls(value)


def coerce_context(context: TransitionContext | Mapping[str, int] | None) -> TransitionContext:
    """Return *context* as a :class:`TransitionContext`.

    A plain mapping is read by field name; missing fields take their defaults.

    Raises
    ------
    ValueError
        If the mapping holds a key that is not a context field.
    """
    if context is None:
        return TransitionContext()
    if isinstance(context, TransitionContext):
        return context
    unknown = set(context) - _CONTEXT_FIELDS
    if unknown:
        raise ValueError(f"unknown transition context keys: {sorted(unknown)}")
    return TransitionContext(**{k: int(v) for k, v in context.items()})


def check_transition(
    entity_kind: EntityKind | str,
    current: Enum | str,
    requested: Enum | str,
    context: TransitionContext | Mapping[str, int] | None = None,
) -> TransitionResult:
    kind = EntityKind(entity_kind)
    from_s = coerce_status(kind, current)
    to_s = coerce_status(kind, requested)
    ctx = coerce_context(context)

    reason = _policy_rule(from_s, to_s, ctx) if kind is EntityKind.POLICY else None
    if reason is None:
        reason = _restricted_exit_rule(kind, from_s, to_s)

    if reason is not None:
        return Rejected(reason=reason, entity_kind=kind, current=from_s, requested=to_s)
    return Allowed(new_state=to_s)


def can_transition(
    entity_kind: EntityKind | str,
    current: Enum | str,
    requested: Enum | str,
    context: TransitionContext | Mapping[str, int] | None = None,
) -> bool:
    return isinstance(check_transition(entity_kind, current, requested, context), Allowed)


def transition(
    entity_kind: EntityKind | str,
    entity_id: str,
    current: Enum | str,
    requested: Enum | str,
    context: TransitionContext | Mapping[str, int] | None = None,
) -> TransitionEvent:
    result = check_transition(entity_kind, current, requested, context)
    if isinstance(result, Rejected):
        raise result.error()

    kind = EntityKind(entity_kind)
    return TransitionEvent(
        entity_kind=kind,
        entity_id=entity_id,
        from_status=coerce_status(kind, current),
        to_status=result.new_state,
        at_utc=datetime.now(timezone.utc).isoformat(),
    )


def _policy_rule(from_s: Enum, to_s: Enum, ctx: TransitionContext) -> str | None:
    if from_s is PolicyStatus.DRAFT and to_s is PolicyStatus.PUBLISHED:
        return _DRAFT_TO_PUBLISHED
    if from_s is PolicyStatus.ARCHIVED:
        return None  # handled by RESTRICTED_EXITS
    if to_s is PolicyStatus.APPROVED and ctx.approver_count <= 0:
        return _NO_APPROVERS
    return None


def _restricted_exit_rule(kind: EntityKind, from_s: Enum, to_s: Enum) -> str | None:
    rule = RESTRICTED_EXITS[kind].get(from_s)
    if rule is None:
        return None
    targets, reason = rule
    return None if to_s in targets else reason
