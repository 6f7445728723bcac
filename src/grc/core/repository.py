"""GRC repository — CRUD for frameworks, controls, policies, audits, findings.

Thin wrapper around SQLite.  Every status change goes through the
transition guard (:mod:`grc.core.state`):

1. The current row is loaded (``KeyError`` if it does not exist).
2. The guard decides; a rejection raises :class:`InvalidTransition` and
   the row is left untouched.
3. The new status is written and a ``TransitionEvent`` is returned for
   the caller to pass to the audit trail.

All inputs are validated (:mod:`grc.core.validation`) before touching
SQLite.  This module never writes the events table; that's ``audit.py``'s
job.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone

from grc.core.db import commit
from grc.core.models import (
    AuditStatus,
    AuditType,
    EntityKind,
    FindingSeverity,
    FindingStatus,
    ImplementationStatus,
    PolicyStatus,
    PolicyType,
)
from grc.core.scoring import ControlCountSnapshot
from grc.core.state import TransitionContext, TransitionEvent, transition
from grc.core.validation import (
    validate_control_code,
    validate_id,
    validate_length,
    validate_optional_length,
)
from grc.core.versioning import SemanticVersion


# ── Entities ────────────────────────────────────────────────
@dataclass(frozen=True)
class Framework:
    framework_id: str
    name: str
    version: str
    description: str
    is_active: bool
    created_utc: str
    updated_utc: str


@dataclass(frozen=True)
class Control:
    control_id: str
    framework_id: str
    code: str
    title: str
    description: str
    implementation_status: ImplementationStatus
    implementation_details: str | None
    owner_id: str | None
    is_active: bool
    created_utc: str
    updated_utc: str


@dataclass(frozen=True)
class Approver:
    """A person who signed off on a policy."""

    user_id: str
    name: str
    title: str
    approved_at: str
    comments: str | None = None


@dataclass(frozen=True)
class Policy:
    policy_id: str
    name: str
    version: SemanticVersion
    policy_type: PolicyType
    status: PolicyStatus
    description: str
    owner: str
    approvers: tuple[Approver, ...] = ()
    related_control_ids: tuple[str, ...] = ()
    effective_start: str | None = None
    effective_end: str | None = None
    review_date: str | None = None
    is_active: bool = True
    created_utc: str = ""
    updated_utc: str = ""


@dataclass(frozen=True)
class Audit:
    audit_id: str
    name: str
    audit_type: AuditType
    status: AuditStatus
    framework_id: str | None
    lead_auditor: str | None
    scope: str | None
    created_utc: str
    updated_utc: str


@dataclass(frozen=True)
class RemediationPlan:
    """How and by when a finding gets fixed; its status follows the finding's."""

    description: str
    due_date: str  # ISO date
    assignee: str
    status: FindingStatus
    last_updated: str
    updated_by: str


@dataclass(frozen=True)
class Finding:
    finding_id: str
    audit_id: str
    title: str
    severity: FindingSeverity
    status: FindingStatus
    description: str
    control_id: str | None
    created_utc: str
    updated_utc: str
    due_date: str | None = None
    remediation_plan: RemediationPlan | None = None


# ── Frameworks ──────────────────────────────────────────────
def create_framework(
    conn: sqlite3.Connection,
    *,
    framework_id: str,
    name: str,
    version: str,
    description: str = "",
) -> Framework:
    """Insert a new active framework.

    Raises
    ------
    ValueError
        If any input fails validation.
    sqlite3.IntegrityError
        If *framework_id* already exists.
    """
    framework_id = validate_id(framework_id, field="framework_id")
    name = validate_length(name, field="framework name", min_len=2, max_len=100)
    version = validate_length(version, field="framework version", max_len=50)
    description = description.strip()
    now = _now()
    conn.execute(
        """
        INSERT INTO frameworks (framework_id, name, version, description, is_active, created_utc, updated_utc)
        VALUES (?, ?, ?, ?, 1, ?, ?)
        """,
        (framework_id, name, version, description, now, now),
    )
    commit(conn)
    return Framework(framework_id, name, version, description, True, now, now)


def get_framework(conn: sqlite3.Connection, framework_id: str) -> Framework | None:
    framework_id = validate_id(framework_id, field="framework_id")
    row = conn.execute(
        "SELECT * FROM frameworks WHERE framework_id = ?", (framework_id,)
    ).fetchone()
    return _row_to_framework(row) if row else None


def list_frameworks(conn: sqlite3.Connection, *, active_only: bool = False) -> list[Framework]:
    """Return frameworks ordered by name."""
    sql = "SELECT * FROM frameworks"
    if active_only:
        sql += " WHERE is_active = 1"
    rows = conn.execute(sql + " ORDER BY name, framework_id").fetchall()
    return [_row_to_framework(r) for r in rows]


def update_framework(
    conn: sqlite3.Connection,
    framework_id: str,
    *,
    description: str | None = None,
    is_active: bool | None = None,
) -> Framework:
    """Change a framework's description and/or active flag; ``None`` keeps a field.

    Raises
    ------
    KeyError
        If the framework does not exist.
    ValueError
        If the new description is blank or too long.
    """
    framework = _require_framework(conn, framework_id)
    if description is not None:
        description = validate_length(description, field="framework description", max_len=2000)
    conn.execute(
        "UPDATE frameworks SET description = ?, is_active = ?, updated_utc = ? WHERE framework_id = ?",
        (
            framework.description if description is None else description,
            int(framework.is_active if is_active is None else is_active),
            _now(),
            framework.framework_id,
        ),
    )
    commit(conn)
    return _require_framework(conn, framework.framework_id)


# ── Controls ────────────────────────────────────────────────
def create_control(
    conn: sqlite3.Connection,
    *,
    control_id: str,
    framework_id: str,
    code: str,
    title: str,
    description: str = "",
    implementation_status: ImplementationStatus = ImplementationStatus.NOT_IMPLEMENTED,
    owner_id: str | None = None,
) -> Control:
    """Insert a control under an existing framework.

    Raises
    ------
    KeyError
        If the framework does not exist.
    ValueError
        If any input fails validation.
    """
    control_id = validate_id(control_id, field="control_id")
    framework_id = validate_id(framework_id, field="framework_id")
    if get_framework(conn, framework_id) is None:
        raise KeyError(f"Framework not found: {framework_id}")
    code = validate_control_code(code)
    title = validate_length(title, field="control title", max_len=200)
    status = ImplementationStatus(implementation_status)
    owner_id = validate_id(owner_id, field="owner_id") if owner_id else None
    now = _now()
    conn.execute(
        """
        INSERT INTO controls (control_id, framework_id, code, title, description,
                              implementation_status, owner_id, is_active, created_utc, updated_utc)
        VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
        """,
        (control_id, framework_id, code, title, description.strip(), status.value, owner_id, now, now),
    )
    commit(conn)
    return Control(
        control_id=control_id,
        framework_id=framework_id,
        code=code,
        title=title,
        description=description.strip(),
        implementation_status=status,
        implementation_details=None,
        owner_id=owner_id,
        is_active=True,
        created_utc=now,
        updated_utc=now,
    )


def get_control(conn: sqlite3.Connection, control_id: str) -> Control | None:
    control_id = validate_id(control_id, field="control_id")
    row = conn.execute("SELECT * FROM controls WHERE control_id = ?", (control_id,)).fetchone()
    return _row_to_control(row) if row else None


def list_controls(conn: sqlite3.Connection, framework_id: str | None = None) -> list[Control]:
    """Return controls (optionally of one framework), ordered by code."""
    if framework_id is None:
        rows = conn.execute("SELECT * FROM controls ORDER BY framework_id, code").fetchall()
    else:
        framework_id = validate_id(framework_id, field="framework_id")
        rows = conn.execute(
            "SELECT * FROM controls WHERE framework_id = ? ORDER BY code", (framework_id,)
        ).fetchall()
    return [_row_to_control(r) for r in rows]


def count_controls(conn: sqlite3.Connection, framework_id: str) -> ControlCountSnapshot:
    """Per-status counts of the *active* controls of a framework (one grouped query)."""
    framework_id = validate_id(framework_id, field="framework_id")
    rows = conn.execute(
        """
        SELECT implementation_status, COUNT(*) AS n FROM controls
        WHERE framework_id = ? AND is_active = 1
        GROUP BY implementation_status
        """,
        (framework_id,),
    ).fetchall()
    by_status = {ImplementationStatus(r["implementation_status"]): r["n"] for r in rows}
    return ControlCountSnapshot(
        total=sum(by_status.values()),
        implemented=by_status.get(ImplementationStatus.IMPLEMENTED, 0),
        partially_implemented=by_status.get(ImplementationStatus.PARTIALLY_IMPLEMENTED, 0),
        not_implemented=by_status.get(ImplementationStatus.NOT_IMPLEMENTED, 0),
        not_applicable=by_status.get(ImplementationStatus.NOT_APPLICABLE, 0),
    )


def set_control_status(
    conn: sqlite3.Connection,
    control_id: str,
    to_status: ImplementationStatus,
    *,
    details: str | None = None,
) -> TransitionEvent:
    """Reassign a control's implementation status (no transition restrictions).

    Raises
    ------
    KeyError
        If the control does not exist.
    """
    control = get_control(conn, control_id)
    if control is None:
        raise KeyError(f"Control not found: {control_id}")
    details = validate_optional_length(details, field="implementation details", max_len=5000)

    event = transition(EntityKind.CONTROL, control.control_id, control.implementation_status, to_status)
    conn.execute(
        "UPDATE controls SET implementation_status = ?, implementation_details = ?, updated_utc = ? "
        "WHERE control_id = ?",
        (event.to_status.value, details, event.at_utc, control.control_id),
    )
    commit(conn)
    return event


# ── Policies ────────────────────────────────────────────────
def create_policy(
    conn: sqlite3.Connection,
    *,
    policy_id: str,
    name: str,
    version: SemanticVersion,
    policy_type: PolicyType,
    description: str,
    owner: str,
    related_control_ids: Iterable[str] = (),
) -> Policy:
    """Insert a new policy in ``draft`` state."""
    policy_id = validate_id(policy_id, field="policy_id")
    name = validate_length(name, field="policy name", min_len=3, max_len=100)
    description = validate_length(description, field="policy description", max_len=1000)
    owner = validate_id(owner, field="owner")
    controls = tuple(validate_id(c, field="control_id") for c in related_control_ids)
    ptype = PolicyType(policy_type)
    now = _now()
    conn.execute(
        """
        INSERT INTO policies (policy_id, name, version, policy_type, status, description, owner,
                              approvers, related_control_ids, is_active, created_utc, updated_utc)
        VALUES (?, ?, ?, ?, ?, ?, ?, '[]', ?, 1, ?, ?)
        """,
        (
            policy_id, name, str(version), ptype.value, PolicyStatus.DRAFT.value,
            description, owner, json.dumps(list(controls)), now, now,
        ),
    )
    commit(conn)
    return Policy(
        policy_id=policy_id,
        name=name,
        version=version,
        policy_type=ptype,
        status=PolicyStatus.DRAFT,
        description=description,
        owner=owner,
        related_control_ids=controls,
        created_utc=now,
        updated_utc=now,
    )


def get_policy(conn: sqlite3.Connection, policy_id: str) -> Policy | None:
    policy_id = validate_id(policy_id, field="policy_id")
    row = conn.execute("SELECT * FROM policies WHERE policy_id = ?", (policy_id,)).fetchone()
    return _row_to_policy(row) if row else None


def list_policies(conn: sqlite3.Connection, *, status: PolicyStatus | None = None) -> list[Policy]:
    if status is None:
        rows = conn.execute("SELECT * FROM policies ORDER BY name, created_utc").fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM policies WHERE status = ? ORDER BY name, created_utc",
            (PolicyStatus(status).value,),
        ).fetchall()
    return [_row_to_policy(r) for r in rows]


def latest_policy_by_name(conn: sqlite3.Connection, name: str) -> Policy | None:
    """Return the highest-versioned policy called *name*, or ``None``."""
    rows = conn.execute("SELECT * FROM policies WHERE name = ?", (name.strip(),)).fetchall()
    policies = [_row_to_policy(r) for r in rows]
    return max(policies, key=lambda p: p.version, default=None)


def add_policy_approver(conn: sqlite3.Connection, policy_id: str, approver: Approver) -> Policy:
    """Append *approver* to the policy's approver list.

    Raises
    ------
    KeyError
        If the policy does not exist.
    """
    policy = _require_policy(conn, policy_id)
    approvers = (*policy.approvers, approver)
    _update_policy(conn, policy.policy_id, approvers=json.dumps([_approver_to_doc(a) for a in approvers]))
    return _require_policy(conn, policy.policy_id)


def link_policy_control(conn: sqlite3.Connection, policy_id: str, control_id: str) -> Policy:
    policy = _require_policy(conn, policy_id)
    control_id = validate_id(control_id, field="control_id")
    controls = [*policy.related_control_ids, control_id]
    _update_policy(conn, policy.policy_id, related_control_ids=json.dumps(controls))
    return _require_policy(conn, policy.policy_id)


def set_policy_dates(
    conn: sqlite3.Connection,
    policy_id: str,
    *,
    effective_start: date,
    effective_end: date | None = None,
    review_date: date | None = None,
) -> Policy:
    policy = _require_policy(conn, policy_id)
    _update_policy(
        conn,
        policy.policy_id,
        effective_start=effective_start.isoformat(),
        effective_end=effective_end.isoformat() if effective_end else None,
        review_date=review_date.isoformat() if review_date else policy.review_date,
    )
    return _require_policy(conn, policy.policy_id)


def transition_policy(conn: sqlite3.Connection, policy_id: str, to_status: PolicyStatus) -> TransitionEvent:
    """Move a policy to a new status.

    Raises
    ------
    KeyError
        If the policy does not exist.
    InvalidTransition
        If the guard rejects the move.
    """
    policy = _require_policy(conn, policy_id)
    ctx = TransitionContext(approver_count=len(policy.approvers))
    event = transition(EntityKind.POLICY, policy.policy_id, policy.status, to_status, ctx)
    _write_status(conn, "policies", "policy_id", policy.policy_id, event)
    return event


# ── Audits ──────────────────────────────────────────────────
def create_audit(
    conn: sqlite3.Connection,
    *,
    audit_id: str,
    name: str,
    audit_type: AuditType,
    framework_id: str | None = None,
    lead_auditor: str | None = None,
    scope: str | None = None,
) -> Audit:
    """Insert a new audit in ``planned`` state."""
    audit_id = validate_id(audit_id, field="audit_id")
    name = validate_length(name, field="audit name", min_len=3, max_len=200)
    atype = AuditType(audit_type)
    if framework_id is not None:
        framework_id = validate_id(framework_id, field="framework_id")
        if get_framework(conn, framework_id) is None:
            raise KeyError(f"Framework not found: {framework_id}")
    lead_auditor = validate_id(lead_auditor, field="lead_auditor") if lead_auditor else None
    scope = validate_optional_length(scope, field="scope", max_len=5000)
    now = _now()
    conn.execute(
        """
        INSERT INTO audits (audit_id, name, audit_type, status, framework_id, lead_auditor, scope,
                            created_utc, updated_utc)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (audit_id, name, atype.value, AuditStatus.PLANNED.value, framework_id, lead_auditor, scope, now, now),
    )
    commit(conn)
    return Audit(audit_id, name, atype, AuditStatus.PLANNED, framework_id, lead_auditor, scope, now, now)


def get_audit(conn: sqlite3.Connection, audit_id: str) -> Audit | None:
    audit_id = validate_id(audit_id, field="audit_id")
    row = conn.execute("SELECT * FROM audits WHERE audit_id = ?", (audit_id,)).fetchone()
    return _row_to_audit(row) if row else None


def list_audits(conn: sqlite3.Connection) -> list[Audit]:
    rows = conn.execute("SELECT * FROM audits ORDER BY created_utc").fetchall()
    return [_row_to_audit(r) for r in rows]


def transition_audit(conn: sqlite3.Connection, audit_id: str, to_status: AuditStatus) -> TransitionEvent:
    audit = get_audit(conn, audit_id)
    if audit is None:
        raise KeyError(f"Audit not found: {audit_id}")
    event = transition(EntityKind.AUDIT, audit.audit_id, audit.status, to_status)
    _write_status(conn, "audits", "audit_id", audit.audit_id, event)
    return event


# ── Findings ────────────────────────────────────────────────
def create_finding(
    conn: sqlite3.Connection,
    *,
    finding_id: str,
    audit_id: str,
    title: str,
    severity: FindingSeverity,
    description: str = "",
    control_id: str | None = None,
    due_date: date | None = None,
) -> Finding:
    """Insert a new finding in ``open`` state under an existing audit."""
    finding_id = validate_id(finding_id, field="finding_id")
    audit_id = validate_id(audit_id, field="audit_id")
    if get_audit(conn, audit_id) is None:
        raise KeyError(f"Audit not found: {audit_id}")
    title = validate_length(title, field="finding title", min_len=3, max_len=200)
    sev = FindingSeverity(severity)
    control_id = validate_id(control_id, field="control_id") if control_id else None
    due = due_date.isoformat() if due_date else None
    now = _now()
    conn.execute(
        """
        INSERT INTO findings (finding_id, audit_id, title, severity, status, description, control_id,
                              due_date, created_utc, updated_utc)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (finding_id, audit_id, title, sev.value, FindingStatus.OPEN.value,
         description.strip(), control_id, due, now, now),
    )
    commit(conn)
    return Finding(finding_id, audit_id, title, sev, FindingStatus.OPEN,
                   description.strip(), control_id, now, now, due_date=due)


def get_finding(conn: sqlite3.Connection, finding_id: str) -> Finding | None:
    finding_id = validate_id(finding_id, field="finding_id")
    row = conn.execute("SELECT * FROM findings WHERE finding_id = ?", (finding_id,)).fetchone()
    return _row_to_finding(row) if row else None


def list_findings(
    conn: sqlite3.Connection,
    audit_id: str | None = None,
    *,
    statuses: Iterable[FindingStatus] | None = None,
) -> list[Finding]:
    """Return findings (optionally of one audit and/or in *statuses*), oldest first."""
    clauses: list[str] = []
    params: list[str] = []
    if audit_id is not None:
        clauses.append("audit_id = ?")
        params.append(validate_id(audit_id, field="audit_id"))
    if statuses is not None:
        wanted = [FindingStatus(s).value for s in statuses]
        if not wanted:
            return []
        clauses.append(f"status IN ({', '.join('?' for _ in wanted)})")
        params.extend(wanted)
    sql = "SELECT * FROM findings"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    rows = conn.execute(sql + " ORDER BY created_utc", params).fetchall()
    return [_row_to_finding(r) for r in rows]


def transition_finding(conn: sqlite3.Connection, finding_id: str, to_status: FindingStatus) -> TransitionEvent:
    """Move a finding to a new status; an attached remediation plan follows it.

    Raises
    ------
    KeyError
        If the finding does not exist.
    InvalidTransition
        If the guard rejects the move.
    """
    finding = _require_finding(conn, finding_id)
    event = transition(EntityKind.FINDING, finding.finding_id, finding.status, to_status)
    _write_status(conn, "findings", "finding_id", finding.finding_id, event)
    plan = finding.remediation_plan
    if plan is not None:
        synced = replace(plan, status=event.to_status, last_updated=event.at_utc)
        _update_finding(conn, finding.finding_id, remediation_plan=json.dumps(_plan_to_doc(synced)))
    return event


def save_remediation_plan(
    conn: sqlite3.Connection,
    finding_id: str,
    *,
    description: str,
    due_date: date,
    assignee: str,
    status: FindingStatus,
    updated_by: str,
) -> Finding:
    """Attach (or replace) the remediation plan of a finding.

    Raises
    ------
    KeyError
        If the finding does not exist.
    ValueError
        If any plan field fails validation.
    """
    finding = _require_finding(conn, finding_id)
    plan = RemediationPlan(
        description=validate_length(description, field="remediation plan description", max_len=2000),
        due_date=due_date.isoformat(),
        assignee=validate_id(assignee, field="assignee"),
        status=FindingStatus(status),
        last_updated=_now(),
        updated_by=validate_id(updated_by, field="updated_by"),
    )
    _update_finding(conn, finding.finding_id, remediation_plan=json.dumps(_plan_to_doc(plan)))
    return _require_finding(conn, finding.finding_id)


def set_finding_due_date(conn: sqlite3.Connection, finding_id: str, due_date: date | None) -> Finding:
    finding = _require_finding(conn, finding_id)
    _update_finding(conn, finding.finding_id, due_date=due_date.isoformat() if due_date else None)
    return _require_finding(conn, finding.finding_id)


# ── Statistics ──────────────────────────────────────────────
_GROUPABLE = frozenset({
    ("audits", "status"),
    ("audits", "audit_type"),
    ("findings", "status"),
    ("findings", "severity"),
})


def count_grouped(conn: sqlite3.Connection, table: str, column: str) -> dict[str, int]:
    """Row counts of *table* per distinct *column* value (one grouped query).

    Only the (table, column) pairs in ``_GROUPABLE`` are accepted.
    """
    if (table, column) not in _GROUPABLE:
        raise ValueError(f"cannot group {table} by {column}")
    rows = conn.execute(f"SELECT {column} AS k, COUNT(*) AS n FROM {table} GROUP BY {column}").fetchall()
    return {r["k"]: r["n"] for r in rows}


# ── Internal helpers ────────────────────────────────────────
def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _write_status(conn: sqlite3.Connection, table: str, id_col: str, entity_id: str, event: TransitionEvent) -> None:
    # table / id_col are module constants, never user input.
    conn.execute(
        f"UPDATE {table} SET status = ?, updated_utc = ? WHERE {id_col} = ?",
        (event.to_status.value, event.at_utc, entity_id),
    )
    commit(conn)


_POLICY_UPDATABLE = frozenset({"approvers", "related_control_ids", "effective_start", "effective_end", "review_date"})


def _update_policy(conn: sqlite3.Connection, policy_id: str, **fields: str | None) -> None:
    unknown = set(fields) - _POLICY_UPDATABLE
    if unknown:
        raise ValueError(f"not updatable: {sorted(unknown)}")
    assignments = ", ".join(f"{col} = ?" for col in fields)
    conn.execute(
        f"UPDATE policies SET {assignments}, updated_utc = ? WHERE policy_id = ?",
        (*fields.values(), _now(), policy_id),
    )
    commit(conn)


_FINDING_UPDATABLE = frozenset({"due_date", "remediation_plan"})


def _update_finding(conn: sqlite3.Connection, finding_id: str, **fields: str | None) -> None:
    unknown = set(fields) - _FINDING_UPDATABLE
    if unknown:
        raise ValueError(f"not updatable: {sorted(unknown)}")
    assignments = ", ".join(f"{col} = ?" for col in fields)
    conn.execute(
        f"UPDATE findings SET {assignments}, updated_utc = ? WHERE finding_id = ?",
        (*fields.values(), _now(), finding_id),
    )
    commit(conn)


def _require_framework(conn: sqlite3.Connection, framework_id: str) -> Framework:
    framework = get_framework(conn, framework_id)
    if framework is None:
        raise KeyError(f"Framework not found: {framework_id}")
    return framework


def _require_policy(conn: sqlite3.Connection, policy_id: str) -> Policy:
    policy = get_policy(conn, policy_id)
    if policy is None:
        raise KeyError(f"Policy not found: {policy_id}")
    return policy


def _require_finding(conn: sqlite3.Connection, finding_id: str) -> Finding:
    finding = get_finding(conn, finding_id)
    if finding is None:
        raise KeyError(f"Finding not found: {finding_id}")
    return finding


def _approver_to_doc(a: Approver) -> dict[str, str | None]:
    return {
        "user_id": a.user_id,
        "name": a.name,
        "title": a.title,
        "approved_at": a.approved_at,
        "comments": a.comments,
    }


def _row_to_framework(row: sqlite3.Row) -> Framework:
    return Framework(
        framework_id=row["framework_id"],
        name=row["name"],
        version=row["version"],
        description=row["description"],
        is_active=bool(row["is_active"]),
        created_utc=row["created_utc"],
        updated_utc=row["updated_utc"],
    )


def _row_to_control(row: sqlite3.Row) -> Control:
    return Control(
        control_id=row["control_id"],
        framework_id=row["framework_id"],
        code=row["code"],
        title=row["title"],
        description=row["description"],
        implementation_status=ImplementationStatus(row["implementation_status"]),
        implementation_details=row["implementation_details"],
        owner_id=row["owner_id"],
        is_active=bool(row["is_active"]),
        created_utc=row["created_utc"],
        updated_utc=row["updated_utc"],
    )


def _row_to_policy(row: sqlite3.Row) -> Policy:
    return Policy(
        policy_id=row["policy_id"],
        name=row["name"],
        version=SemanticVersion.parse(row["version"]),
        policy_type=PolicyType(row["policy_type"]),
        status=PolicyStatus(row["status"]),
        description=row["description"],
        owner=row["owner"],
        approvers=tuple(Approver(**doc) for doc in json.loads(row["approvers"])),
        related_control_ids=tuple(json.loads(row["related_control_ids"])),
        effective_start=row["effective_start"],
        effective_end=row["effective_end"],
        review_date=row["review_date"],
        is_active=bool(row["is_active"]),
        created_utc=row["created_utc"],
        updated_utc=row["updated_utc"],
    )


def _row_to_audit(row: sqlite3.Row) -> Audit:
    return Audit(
        audit_id=row["audit_id"],
        name=row["name"],
        audit_type=AuditType(row["audit_type"]),
        status=AuditStatus(row["status"]),
        framework_id=row["framework_id"],
        lead_auditor=row["lead_auditor"],
        scope=row["scope"],
        created_utc=row["created_utc"],
        updated_utc=row["updated_utc"],
    )


def _row_to_finding(row: sqlite3.Row) -> Finding:
    return Finding(
        finding_id=row["finding_id"],
        audit_id=row["audit_id"],
        title=row["title"],
        severity=FindingSeverity(row["severity"]),
        status=FindingStatus(row["status"]),
        description=row["description"],
        control_id=row["control_id"],
        created_utc=row["created_utc"],
        updated_utc=row["updated_utc"],
        due_date=row["due_date"],
        remediation_plan=_plan_from_doc(row["remediation_plan"]),
    )


def _plan_to_doc(plan: RemediationPlan) -> dict[str, str]:
    return {
        "description": plan.description,
        "due_date": plan.due_date,
        "assignee": plan.assignee,
        "status": plan.status.value,
        "last_updated": plan.last_updated,
        "updated_by": plan.updated_by,
    }


def _plan_from_doc(text: str | None) -> RemediationPlan | None:
    if not text:
        return None
    doc = json.loads(text)
    return RemediationPlan(**{**doc, "status": FindingStatus(doc["status"])})
