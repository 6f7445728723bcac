"""Tests for grc.core.repository — CRUD + guarded status changes."""

from __future__ import annotations

import sqlite3
from datetime import date

import pytest

from grc.core.errors import InvalidTransition
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
from grc.core.repository import (
    Approver,
    add_policy_approver,
    count_controls,
    count_grouped,
    create_audit,
    create_control,
    create_finding,
    create_framework,
    create_policy,
    get_audit,
    get_control,
    get_finding,
    get_framework,
    get_policy,
    latest_policy_by_name,
    link_policy_control,
    list_controls,
    list_findings,
    list_frameworks,
    list_policies,
    save_remediation_plan,
    set_control_status,
    set_finding_due_date,
    set_policy_dates,
    transition_audit,
    transition_finding,
    transition_policy,
    update_framework,
)
from grc.core.scoring import ControlCountSnapshot
from grc.core.versioning import SemanticVersion


@pytest.fixture()
def framework(conn):
    return create_framework(conn, framework_id="iso27001", name="ISO 27001", version="2022")


def _policy(conn, policy_id: str = "pol-1", name: str = "Access Control", version: str = "1.0.0"):
    return create_policy(
        conn,
        policy_id=policy_id,
        name=name,
        version=SemanticVersion.parse(version),
        policy_type=PolicyType.SECURITY,
        description="Who may access what.",
        owner="ciso",
    )


def _approver(user_id: str = "u-1") -> Approver:
    return Approver(user_id=user_id, name="Ada", title="CISO", approved_at="2025-01-15T00:00:00+00:00")


# ── Frameworks & controls ───────────────────────────────────
class TestFrameworks:
    def test_create_and_get(self, conn, framework) -> None:
        assert framework.is_active is True
        assert get_framework(conn, "iso27001") == framework

    def test_missing_returns_none(self, conn) -> None:
        assert get_framework(conn, "nope") is None

    def test_duplicate_id_raises(self, conn, framework) -> None:
        with pytest.raises(sqlite3.IntegrityError):
            create_framework(conn, framework_id="iso27001", name="Other", version="1")

    def test_short_name_rejected(self, conn) -> None:
        with pytest.raises(ValueError):
            create_framework(conn, framework_id="x", name="X", version="1")

    def test_update_keeps_unspecified_fields(self, conn, framework) -> None:
        fw = update_framework(conn, "iso27001", is_active=False)
        assert fw.is_active is False
        assert fw.description == framework.description
        assert list_frameworks(conn, active_only=True) == []

        fw = update_framework(conn, "iso27001", description="Information security")
        assert (fw.description, fw.is_active) == ("Information security", False)

    def test_update_missing_framework(self, conn) -> None:
        with pytest.raises(KeyError, match="Framework not found"):
            update_framework(conn, "ghost", is_active=True)

    def test_list_ordered_by_name(self, conn) -> None:
        create_framework(conn, framework_id="soc2", name="SOC 2", version="2017")
        create_framework(conn, framework_id="gdpr", name="GDPR", version="2016")
        assert [f.framework_id for f in list_frameworks(conn)] == ["gdpr", "soc2"]


class TestControls:
    def test_create_defaults_to_not_implemented(self, conn, framework) -> None:
        c = create_control(conn, control_id="c-1", framework_id="iso27001", code="A.5.1", title="Policies")
        assert c.implementation_status is ImplementationStatus.NOT_IMPLEMENTED
        assert get_control(conn, "c-1") == c

    def test_unknown_framework_raises_key_error(self, conn) -> None:
        with pytest.raises(KeyError, match="Framework not found"):
            create_control(conn, control_id="c-1", framework_id="ghost", code="A.5.1", title="Policies")

    def test_code_with_spaces_rejected(self, conn, framework) -> None:
        with pytest.raises(ValueError, match="spaces"):
            create_control(conn, control_id="c-1", framework_id="iso27001", code="A 5", title="Policies")

    def test_count_controls(self, conn, framework) -> None:
        statuses = [
            ImplementationStatus.IMPLEMENTED,
            ImplementationStatus.IMPLEMENTED,
            ImplementationStatus.PARTIALLY_IMPLEMENTED,
            ImplementationStatus.NOT_APPLICABLE,
            ImplementationStatus.NOT_IMPLEMENTED,
        ]
        for i, status in enumerate(statuses):
            create_control(
                conn, control_id=f"c-{i}", framework_id="iso27001", code=f"A.{i}",
                title="Control", implementation_status=status,
            )
        assert count_controls(conn, "iso27001") == ControlCountSnapshot(
            total=5, implemented=2, partially_implemented=1, not_implemented=1, not_applicable=1
        )
        assert [c.code for c in list_controls(conn, "iso27001")] == ["A.0", "A.1", "A.2", "A.3", "A.4"]

    def test_count_ignores_inactive(self, conn, framework) -> None:
        create_control(conn, control_id="c-1", framework_id="iso27001", code="A.1", title="Control")
        conn.execute("UPDATE controls SET is_active = 0")
        assert count_controls(conn, "iso27001").total == 0

    def test_count_for_empty_framework(self, conn, framework) -> None:
        assert count_controls(conn, "iso27001") == ControlCountSnapshot()

    def test_set_control_status_any_to_any(self, conn, framework) -> None:
        create_control(conn, control_id="c-1", framework_id="iso27001", code="A.1", title="Control")
        event = set_control_status(conn, "c-1", ImplementationStatus.NOT_APPLICABLE, details="Out of scope")
        assert event.entity_kind is EntityKind.CONTROL
        assert event.from_status is ImplementationStatus.NOT_IMPLEMENTED
        set_control_status(conn, "c-1", ImplementationStatus.IMPLEMENTED)
        c = get_control(conn, "c-1")
        assert c is not None
        assert c.implementation_status is ImplementationStatus.IMPLEMENTED

    def test_set_status_of_missing_control(self, conn) -> None:
        with pytest.raises(KeyError):
            set_control_status(conn, "ghost", ImplementationStatus.IMPLEMENTED)


# ── Policies ────────────────────────────────────────────────
class TestPolicies:
    def test_create_in_draft(self, conn) -> None:
        p = _policy(conn)
        assert p.status is PolicyStatus.DRAFT
        assert p.approvers == ()
        assert get_policy(conn, "pol-1") == p

    def test_version_round_trips(self, conn) -> None:
        _policy(conn, version="2.3.4")
        p = get_policy(conn, "pol-1")
        assert p is not None
        assert p.version == SemanticVersion(2, 3, 4)

    def test_latest_by_name_uses_semantic_order(self, conn) -> None:
        _policy(conn, "pol-1", version="1.9.0")
        _policy(conn, "pol-2", version="1.10.0")
        _policy(conn, "pol-3", name="Other Policy", version="5.0.0")
        latest = latest_policy_by_name(conn, "Access Control")
        assert latest is not None
        assert latest.policy_id == "pol-2"
        assert latest_policy_by_name(conn, "Unknown") is None

    def test_add_approver_persists_document(self, conn) -> None:
        _policy(conn)
        p = add_policy_approver(conn, "pol-1", _approver())
        assert p.approvers == (_approver(),)

    def test_link_control(self, conn) -> None:
        _policy(conn)
        p = link_policy_control(conn, "pol-1", "iso27001.A.5.1")
        assert p.related_control_ids == ("iso27001.A.5.1",)

    def test_set_dates(self, conn) -> None:
        _policy(conn)
        p = set_policy_dates(conn, "pol-1", effective_start=date(2025, 1, 1), review_date=date(2026, 1, 1))
        assert (p.effective_start, p.effective_end, p.review_date) == ("2025-01-01", None, "2026-01-01")

    def test_list_filters_by_status(self, conn) -> None:
        _policy(conn, "pol-1")
        _policy(conn, "pol-2", name="Backup Policy")
        transition_policy(conn, "pol-2", PolicyStatus.REVIEW)
        assert [p.policy_id for p in list_policies(conn, status=PolicyStatus.REVIEW)] == ["pol-2"]
        assert len(list_policies(conn)) == 2

    def test_transition_uses_approver_count(self, conn) -> None:
        _policy(conn)
        transition_policy(conn, "pol-1", PolicyStatus.REVIEW)
        with pytest.raises(InvalidTransition, match="without approvers"):
            transition_policy(conn, "pol-1", PolicyStatus.APPROVED)
        add_policy_approver(conn, "pol-1", _approver())
        event = transition_policy(conn, "pol-1", PolicyStatus.APPROVED)
        assert event.to_status is PolicyStatus.APPROVED

    def test_rejected_transition_leaves_row_untouched(self, conn) -> None:
        before = _policy(conn)
        with pytest.raises(InvalidTransition):
            transition_policy(conn, "pol-1", PolicyStatus.PUBLISHED)
        assert get_policy(conn, "pol-1") == before

    def test_transition_missing_policy(self, conn) -> None:
        with pytest.raises(KeyError):
            transition_policy(conn, "ghost", PolicyStatus.REVIEW)


# ── Audits & findings ───────────────────────────────────────
class TestAuditsAndFindings:
    def test_audit_starts_planned(self, conn, framework) -> None:
        a = create_audit(conn, audit_id="aud-1", name="Annual ISMS", audit_type=AuditType.INTERNAL,
                         framework_id="iso27001")
        assert a.status is AuditStatus.PLANNED
        assert get_audit(conn, "aud-1") == a

    def test_audit_unknown_framework(self, conn) -> None:
        with pytest.raises(KeyError):
            create_audit(conn, audit_id="aud-1", name="Annual", audit_type=AuditType.EXTERNAL, framework_id="ghost")

    def test_completed_audit_cannot_restart(self, conn) -> None:
        create_audit(conn, audit_id="aud-1", name="Annual", audit_type=AuditType.EXTERNAL)
        transition_audit(conn, "aud-1", AuditStatus.COMPLETED)
        with pytest.raises(InvalidTransition):
            transition_audit(conn, "aud-1", AuditStatus.IN_PROGRESS)

    def test_finding_requires_audit(self, conn) -> None:
        with pytest.raises(KeyError, match="Audit not found"):
            create_finding(conn, finding_id="f-1", audit_id="ghost", title="Weak passwords",
                           severity=FindingSeverity.HIGH)

    def test_finding_lifecycle(self, conn) -> None:
        create_audit(conn, audit_id="aud-1", name="Annual", audit_type=AuditType.INTERNAL)
        f = create_finding(conn, finding_id="f-1", audit_id="aud-1", title="Weak passwords",
                           severity=FindingSeverity.HIGH)
        assert f.status is FindingStatus.OPEN
        transition_finding(conn, "f-1", FindingStatus.CLOSED)
        with pytest.raises(InvalidTransition):
            transition_finding(conn, "f-1", FindingStatus.REMEDIATED)
        transition_finding(conn, "f-1", FindingStatus.OPEN)
        found = get_finding(conn, "f-1")
        assert found is not None and found.status is FindingStatus.OPEN
        assert [x.finding_id for x in list_findings(conn, "aud-1")] == ["f-1"]
        assert list_findings(conn, "aud-2") == []

    def test_finding_due_date_and_status_filter(self, conn) -> None:
        create_audit(conn, audit_id="aud-1", name="Annual", audit_type=AuditType.INTERNAL)
        create_finding(conn, finding_id="f-1", audit_id="aud-1", title="Weak passwords",
                       severity=FindingSeverity.HIGH, due_date=date(2025, 3, 31))
        create_finding(conn, finding_id="f-2", audit_id="aud-1", title="No MFA", severity=FindingSeverity.LOW)
        transition_finding(conn, "f-2", FindingStatus.CLOSED)

        assert get_finding(conn, "f-1").due_date == "2025-03-31"
        assert set_finding_due_date(conn, "f-1", None).due_date is None
        assert [f.finding_id for f in list_findings(conn, statuses=[FindingStatus.OPEN])] == ["f-1"]
        assert list_findings(conn, "aud-1", statuses=[]) == []


class TestRemediationPlans:
    @pytest.fixture()
    def finding(self, conn):
        create_audit(conn, audit_id="aud-1", name="Annual", audit_type=AuditType.INTERNAL)
        return create_finding(conn, finding_id="f-1", audit_id="aud-1", title="Weak passwords",
                              severity=FindingSeverity.HIGH)

    def _save(self, conn, **overrides):
        fields = dict(description="Enforce a 14 character minimum", due_date=date(2025, 6, 30),
                      assignee="it-ops", status=FindingStatus.IN_REMEDIATION, updated_by="auditor")
        fields.update(overrides)
        return save_remediation_plan(conn, "f-1", **fields)

    def test_plan_round_trips(self, conn, finding) -> None:
        saved = self._save(conn)
        plan = saved.remediation_plan
        assert plan is not None
        assert (plan.description, plan.due_date, plan.assignee) == (
            "Enforce a 14 character minimum", "2025-06-30", "it-ops"
        )
        assert plan.status is FindingStatus.IN_REMEDIATION
        assert plan.updated_by == "auditor"
        assert get_finding(conn, "f-1") == saved

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"description": "   "}, "description"),
            ({"description": "x" * 2001}, "description"),
            ({"assignee": "it ops"}, "assignee"),
            ({"updated_by": ""}, "updated_by"),
        ],
    )
    def test_plan_fields_validated(self, conn, finding, overrides, message) -> None:
        with pytest.raises(ValueError, match=message):
            self._save(conn, **overrides)
        assert get_finding(conn, "f-1").remediation_plan is None

    def test_plan_follows_finding_status(self, conn, finding) -> None:
        self._save(conn, status=FindingStatus.OPEN)
        event = transition_finding(conn, "f-1", FindingStatus.IN_REMEDIATION)
        plan = get_finding(conn, "f-1").remediation_plan
        assert plan.status is FindingStatus.IN_REMEDIATION
        assert plan.last_updated == event.at_utc

    def test_plan_of_missing_finding(self, conn) -> None:
        with pytest.raises(KeyError, match="Finding not found"):
            self._save(conn)


# ── Statistics ──────────────────────────────────────────────
class TestCountGrouped:
    def test_counts_per_value(self, conn) -> None:
        create_audit(conn, audit_id="aud-1", name="Annual", audit_type=AuditType.INTERNAL)
        create_audit(conn, audit_id="aud-2", name="Vendor", audit_type=AuditType.VENDOR)
        create_audit(conn, audit_id="aud-3", name="Regulator", audit_type=AuditType.INTERNAL)
        transition_audit(conn, "aud-3", AuditStatus.IN_PROGRESS)
        assert count_grouped(conn, "audits", "audit_type") == {"internal": 2, "vendor": 1}
        assert count_grouped(conn, "audits", "status") == {"planned": 2, "in_progress": 1}
        assert count_grouped(conn, "findings", "severity") == {}

    @pytest.mark.parametrize("table, column", [("policies", "status"), ("audits", "name"), ("events", "entity_id")])
    def test_only_known_pairs(self, conn, table, column) -> None:
        with pytest.raises(ValueError, match="cannot group"):
            count_grouped(conn, table, column)
