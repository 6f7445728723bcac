"""Audit and finding use cases.

Audits start ``planned`` and findings start ``open``.  Both tables are
open: any status may follow any other except the restricted exits
enforced by :mod:`grc.core.state` (a cancelled audit may only return to
planned, a completed one only to under_review or cancelled, a closed
finding only reopens or is accepted).

A finding may carry a due date and a remediation plan.  Adding a plan
moves the finding to ``in_remediation``; from then on the plan's status
follows the finding's.  A finding is overdue when its due date (or its
plan's) has passed and it is not verified, accepted or closed.
"""

from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

import structlog

from grc.core import audit as audit_log
from grc.core.db import transaction
from grc.core.errors import LifecycleViolation
from grc.core.models import (
    RESOLVED_FINDING_STATUSES,
    AuditStatus,
    AuditType,
    EntityKind,
    FindingSeverity,
    FindingStatus,
)
from grc.core.repository import (
    Audit,
    Finding,
    count_grouped,
    create_audit as _insert_audit,
    create_finding as _insert_finding,
    get_control,
    get_finding,
    list_findings,
    save_remediation_plan,
    set_finding_due_date,
    transition_audit,
    transition_finding,
)
from grc.core.state import TransitionEvent

logger = structlog.get_logger()


@dataclass(frozen=True)
class AuditStatistics:
    """Counts across all audits and findings, every enum member present."""

    total_audits: int
    audits_by_status: dict[AuditStatus, int] = field(default_factory=dict)
    audits_by_type: dict[AuditType, int] = field(default_factory=dict)
    total_findings: int = 0
    findings_by_severity: dict[FindingSeverity, int] = field(default_factory=dict)
    findings_by_status: dict[FindingStatus, int] = field(default_factory=dict)
    overdue_findings: int = 0


def create_audit(
    conn: sqlite3.Connection,
    *,
    name: str,
    audit_type: AuditType,
    framework_id: str | None = None,
    lead_auditor: str | None = None,
    scope: str | None = None,
    audit_id: str | None = None,
) -> Audit:
    audit = _insert_audit(
        conn,
        audit_id=audit_id or f"aud-{uuid.uuid4().hex[:12]}",
        name=name,
        audit_type=audit_type,
        framework_id=framework_id,
        lead_auditor=lead_auditor,
        scope=scope,
    )
    audit_log.append(
        conn,
        TransitionEvent(EntityKind.AUDIT, audit.audit_id, audit.status, audit.status, audit.created_utc),
        notes="Audit planned",
    )
    logger.info("audit_created", audit_id=audit.audit_id, audit_type=audit.audit_type.value)
    return audit


def create_finding(
    conn: sqlite3.Connection,
    *,
    audit_id: str,
    title: str,
    severity: FindingSeverity,
    description: str = "",
    control_id: str | None = None,
    finding_id: str | None = None,
    due_date: date | None = None,
) -> Finding:
    """Raise a finding against an audit, optionally tied to a control.

    Raises
    ------
    KeyError
        If the audit or the referenced control does not exist.
    """
    if control_id is not None and get_control(conn, control_id) is None:
        raise KeyError(f"Control not found: {control_id}")
    finding = _insert_finding(
        conn,
        finding_id=finding_id or f"fnd-{uuid.uuid4().hex[:12]}",
        audit_id=audit_id,
        title=title,
        severity=severity,
        description=description,
        control_id=control_id,
        due_date=due_date,
    )
    audit_log.append(
        conn,
        TransitionEvent(EntityKind.FINDING, finding.finding_id, finding.status, finding.status, finding.created_utc),
        notes=f"Finding raised ({finding.severity.value})",
    )
    logger.info(
        "finding_created",
        finding_id=finding.finding_id,
        audit_id=finding.audit_id,
        severity=finding.severity.value,
    )
    return finding


def change_audit_status(
    conn: sqlite3.Connection,
    audit_id: str,
    to_status: AuditStatus,
    *,
    notes: str = "",
) -> tuple[TransitionEvent, str]:
    event = transition_audit(conn, audit_id, AuditStatus(to_status))
    entry_hash = audit_log.append(conn, event, notes=notes)
    logger.info(
        "audit_transitioned",
        audit_id=event.entity_id,
        from_status=event.from_status.value,
        to_status=event.to_status.value,
    )
    return event, entry_hash


def change_finding_status(
    conn: sqlite3.Connection,
    finding_id: str,
    to_status: FindingStatus,
    *,
    notes: str = "",
) -> tuple[TransitionEvent, str]:
    """Guarded finding status change, appended to the audit trail.

    Raises
    ------
    KeyError
        If the finding does not exist.
    InvalidTransition
        E.g. ``closed -> remediated``.
    """
    event = transition_finding(conn, finding_id, FindingStatus(to_status))
    entry_hash = audit_log.append(conn, event, notes=notes)
    logger.info(
        "finding_transitioned",
        finding_id=event.entity_id,
        from_status=event.from_status.value,
        to_status=event.to_status.value,
    )
    return event, entry_hash


# ── Remediation ─────────────────────────────────────────────
def add_remediation_plan(
    conn: sqlite3.Connection,
    finding_id: str,
    *,
    description: str,
    due_date: date,
    assignee: str,
    updated_by: str,
    notes: str = "",
) -> Finding:
    """Attach a remediation plan and move the finding to ``in_remediation``.

    The finding's own due date is set from the plan when it has none.  The
    status change, the audit event and the plan are written together.

    Raises
    ------
    KeyError
        If the finding does not exist.
    InvalidTransition
        If the finding cannot enter ``in_remediation`` (e.g. it is closed).
    ValueError
        If a plan field fails validation.
    """
    finding = _require_finding(conn, finding_id)
    with transaction(conn):
        event = transition_finding(conn, finding.finding_id, FindingStatus.IN_REMEDIATION)
        audit_log.append(conn, event, notes=notes or "Remediation plan added")
        updated = save_remediation_plan(
            conn,
            finding.finding_id,
            description=description,
            due_date=due_date,
            assignee=assignee,
            status=FindingStatus.IN_REMEDIATION,
            updated_by=updated_by,
        )
        if finding.due_date is None:
            updated = set_finding_due_date(conn, finding.finding_id, due_date)
    logger.info("remediation_plan_added", finding_id=finding.finding_id, due_date=due_date.isoformat())
    return updated


def update_remediation_plan(
    conn: sqlite3.Connection,
    finding_id: str,
    *,
    updated_by: str,
    description: str | None = None,
    due_date: date | None = None,
    assignee: str | None = None,
    status: FindingStatus | None = None,
    notes: str = "",
) -> Finding:
    """Change fields of an existing plan; ``None`` keeps the current value.

    A new *status* is a guarded finding transition (and an audit event).  A
    new *due_date* is copied to the finding.

    Raises
    ------
    KeyError
        If the finding does not exist.
    LifecycleViolation
        If the finding has no remediation plan.
    InvalidTransition
        If the guard rejects the status change.
    """
    finding = _require_finding(conn, finding_id)
    plan = finding.remediation_plan
    if plan is None:
        raise LifecycleViolation("Finding does not have a remediation plan")

    with transaction(conn):
        new_status = plan.status
        if status is not None:
            event = transition_finding(conn, finding.finding_id, FindingStatus(status))
            audit_log.append(conn, event, notes=notes or "Remediation plan updated")
            new_status = event.to_status
        updated = save_remediation_plan(
            conn,
            finding.finding_id,
            description=plan.description if description is None else description,
            due_date=date.fromisoformat(plan.due_date) if due_date is None else due_date,
            assignee=plan.assignee if assignee is None else assignee,
            status=new_status,
            updated_by=updated_by,
        )
        if due_date is not None:
            updated = set_finding_due_date(conn, finding.finding_id, due_date)
    logger.info("remediation_plan_updated", finding_id=finding.finding_id, status=new_status.value)
    return updated


# ── Overdue & statistics ────────────────────────────────────
def is_overdue(finding: Finding, as_of: date | None = None) -> bool:
    """True when a due date (the finding's or its plan's) lies before *as_of*."""
    if finding.status in RESOLVED_FINDING_STATUSES:
        return False
    as_of = as_of or date.today()
    due_dates = [finding.due_date]
    if finding.remediation_plan is not None:
        due_dates.append(finding.remediation_plan.due_date)
    return any(d is not None and date.fromisoformat(d) < as_of for d in due_dates)


def overdue_findings(
    conn: sqlite3.Connection,
    *,
    audit_id: str | None = None,
    as_of: date | None = None,
) -> list[Finding]:
    unresolved = [s for s in FindingStatus if s not in RESOLVED_FINDING_STATUSES]
    return [f for f in list_findings(conn, audit_id, statuses=unresolved) if is_overdue(f, as_of)]


def get_audit_statistics(conn: sqlite3.Connection, *, as_of: date | None = None) -> AuditStatistics:
    audits_by_status = _tally(AuditStatus, count_grouped(conn, "audits", "status"))
    findings_by_status = _tally(FindingStatus, count_grouped(conn, "findings", "status"))
    return AuditStatistics(
        total_audits=sum(audits_by_status.values()),
        audits_by_status=audits_by_status,
        audits_by_type=_tally(AuditType, count_grouped(conn, "audits", "audit_type")),
        total_findings=sum(findings_by_status.values()),
        findings_by_severity=_tally(FindingSeverity, count_grouped(conn, "findings", "severity")),
        findings_by_status=findings_by_status,
        overdue_findings=len(overdue_findings(conn, as_of=as_of)),
    )


def _tally(enum_cls: type[Enum], counts: dict[str, int]) -> dict[Any, int]:
    return {member: counts.get(member.value, 0) for member in enum_cls}


def _require_finding(conn: sqlite3.Connection, finding_id: str) -> Finding:
    finding = get_finding(conn, finding_id)
    if finding is None:
        raise KeyError(f"Finding not found: {finding_id}")
    return finding
