"""Policy lifecycle use cases.

    draft ──► review ──► approved ──► published
      ▲                                   │
      └──────────── archived ◄────────────┘

Versioning: the first policy with a given name is ``1.0.0``; creating
another policy with the same name bumps the minor version, and
:func:`create_major_version` starts a new major revision as a draft.

Status changes go through the transition guard (via the repository) and
every change, creation included, is appended to the audit trail.
Preconditions that belong to a use case rather than to the guard (e.g.
"only approved policies can be published") raise
:class:`LifecycleViolation`.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterable
from datetime import date, datetime, timezone

import structlog

from grc.core import audit
from grc.core.errors import LifecycleViolation
from grc.core.models import EntityKind, PolicyStatus, PolicyType
from grc.core.repository import (
    Approver,
    Policy,
    add_policy_approver,
    create_policy as _insert_policy,
    get_control,
    get_policy,
    latest_policy_by_name,
    link_policy_control,
    set_policy_dates,
    transition_policy,
)
from grc.core.state import TransitionEvent
from grc.core.validation import validate_id, validate_length
from grc.core.versioning import SemanticVersion, next_major, next_minor

logger = structlog.get_logger()

INITIAL_VERSION = SemanticVersion(1, 0, 0)


def create_policy(
    conn: sqlite3.Connection,
    *,
    name: str,
    policy_type: PolicyType,
    description: str,
    owner: str,
    related_control_ids: Iterable[str] = (),
    policy_id: str | None = None,
) -> Policy:
    """Create a draft policy, versioned after any existing policy of the same name.

    Raises
    ------
    KeyError
        If a related control does not exist.
    """
    controls = list(related_control_ids)
    for control_id in controls:
        if get_control(conn, control_id) is None:
            raise KeyError(f"Control not found: {control_id}")

    latest = latest_policy_by_name(conn, name)
    version = next_minor(latest.version) if latest else INITIAL_VERSION

    policy = _insert_policy(
        conn,
        policy_id=policy_id or _new_id(),
        name=name,
        version=version,
        policy_type=policy_type,
        description=description,
        owner=owner,
        related_control_ids=controls,
    )
    _record_creation(conn, policy, notes="Policy created")
    logger.info("policy_created", policy_id=policy.policy_id, version=str(policy.version))
    return policy


def create_major_version(conn: sqlite3.Connection, policy_id: str, *, new_policy_id: str | None = None) -> Policy:
    """Start the next major revision of a policy as a new draft."""
    existing = _require(conn, policy_id)
    policy = _insert_policy(
        conn,
        policy_id=new_policy_id or _new_id(),
        name=existing.name,
        version=next_major(existing.version),
        policy_type=existing.policy_type,
        description=existing.description,
        owner=existing.owner,
        related_control_ids=existing.related_control_ids,
    )
    _record_creation(conn, policy, notes=f"Major version of {existing.policy_id} ({existing.version})")
    logger.info(
        "policy_major_version_created",
        policy_id=policy.policy_id,
        previous_policy_id=existing.policy_id,
        version=str(policy.version),
    )
    return policy


def approve_policy(
    conn: sqlite3.Connection,
    policy_id: str,
    *,
    approver_user_id: str,
    approver_name: str,
    approver_title: str,
    comments: str | None = None,
) -> Policy:
    """Record a sign-off.  A draft policy moves to review on its first approval.

    Raises
    ------
    LifecycleViolation
        If the policy is not in draft or review, or the approver already signed.
    """
    policy = _require(conn, policy_id)
    if policy.status not in (PolicyStatus.DRAFT, PolicyStatus.REVIEW):
        raise LifecycleViolation(
            f"Policy must be in draft or review status to be approved, current status: {policy.status.value}"
        )

    approver = Approver(
        user_id=validate_id(approver_user_id, field="approver user_id"),
        name=validate_length(approver_name, field="approver name", max_len=100),
        title=validate_length(approver_title, field="approver title", max_len=100),
        approved_at=datetime.now(timezone.utc).isoformat(),
        comments=comments.strip() if comments else None,
    )
    if any(a.user_id == approver.user_id for a in policy.approvers):
        raise LifecycleViolation("Approver has already approved this policy")

    policy = add_policy_approver(conn, policy.policy_id, approver)
    logger.info("policy_approver_added", policy_id=policy.policy_id, approver=approver.user_id)

    if policy.status is PolicyStatus.DRAFT:
        change_policy_status(conn, policy.policy_id, PolicyStatus.REVIEW, notes=f"Approved by {approver.user_id}")
        policy = _require(conn, policy.policy_id)
    return policy


def change_policy_status(
    conn: sqlite3.Connection,
    policy_id: str,
    to_status: PolicyStatus,
    *,
    notes: str = "",
) -> tuple[TransitionEvent, str]:
    """Guarded status change, appended to the audit trail.

    Raises
    ------
    KeyError
        If the policy does not exist.
    InvalidTransition
        If the guard rejects the move.
    """
    event = transition_policy(conn, policy_id, PolicyStatus(to_status))
    entry_hash = audit.append(conn, event, notes=notes)
    logger.info(
        "policy_transitioned",
        policy_id=event.entity_id,
        from_status=event.from_status.value,
        to_status=event.to_status.value,
    )
    return event, entry_hash


def publish_policy(
    conn: sqlite3.Connection,
    policy_id: str,
    *,
    effective_start: date,
    effective_end: date | None = None,
    review_date: date | None = None,
    today: date | None = None,
) -> Policy:
    """Publish an approved policy with its effective period.

    Raises
    ------
    LifecycleViolation
        If the policy is not approved, the effective period is inverted, or
        the review date lies in the past.
    """
    policy = _require(conn, policy_id)
    if policy.status is not PolicyStatus.APPROVED:
        raise LifecycleViolation(
            f"Policy must be in approved status to be published, current status: {policy.status.value}"
        )
    if effective_end is not None and effective_end < effective_start:
        raise LifecycleViolation("Effective end date must be after start date")
    if review_date is not None and review_date < (today or date.today()):
        raise LifecycleViolation("Review date cannot be in the past")

    change_policy_status(conn, policy.policy_id, PolicyStatus.PUBLISHED, notes="Published")
    return set_policy_dates(
        conn,
        policy.policy_id,
        effective_start=effective_start,
        effective_end=effective_end,
        review_date=review_date,
    )


def archive_policy(conn: sqlite3.Connection, policy_id: str, *, notes: str = "") -> Policy:
    policy = _require(conn, policy_id)
    if policy.status is PolicyStatus.ARCHIVED:
        raise LifecycleViolation("Policy is already archived")
    change_policy_status(conn, policy.policy_id, PolicyStatus.ARCHIVED, notes=notes or "Archived")
    return _require(conn, policy.policy_id)


def link_policy_to_control(conn: sqlite3.Connection, policy_id: str, control_id: str) -> Policy:
    policy = _require(conn, policy_id)
    if get_control(conn, control_id) is None:
        raise KeyError(f"Control not found: {control_id}")
    if control_id.strip() in policy.related_control_ids:
        raise LifecycleViolation(f"Policy is already linked to control {control_id.strip()}")
    return link_policy_control(conn, policy.policy_id, control_id)


def is_effective(policy: Policy, at: date | None = None) -> bool:
    """True if *at* (default today) falls inside the policy's effective period."""
    if policy.effective_start is None:
        return False
    at = at or date.today()
    if at < date.fromisoformat(policy.effective_start):
        return False
    return policy.effective_end is None or at <= date.fromisoformat(policy.effective_end)


def is_review_due(policy: Policy, as_of: date | None = None) -> bool:
    if policy.review_date is None:
        return False
    return (as_of or date.today()) >= date.fromisoformat(policy.review_date)


# ── Internal helpers ────────────────────────────────────────
def _require(conn: sqlite3.Connection, policy_id: str) -> Policy:
    policy = get_policy(conn, policy_id)
    if policy is None:
        raise KeyError(f"Policy not found: {policy_id}")
    return policy


def _new_id() -> str:
    return f"pol-{uuid.uuid4().hex[:12]}"


def _record_creation(conn: sqlite3.Connection, policy: Policy, *, notes: str) -> None:
    event = TransitionEvent(
        entity_kind=EntityKind.POLICY,
        entity_id=policy.policy_id,
        from_status=policy.status,
        to_status=policy.status,
        at_utc=policy.created_utc,
    )
    audit.append(conn, event, notes=notes)
