"""Tests for Zero Trust input validation at the repository boundary.

The repository layer rejects hostile ids and oversized text even when a
caller bypasses the CLI and the use-case modules entirely.
"""

from __future__ import annotations

import pytest

from grc.core.models import AuditType, FindingSeverity, PolicyStatus, PolicyType
from grc.core.repository import (
    create_audit,
    create_framework,
    create_policy,
    get_control,
    get_policy,
    transition_policy,
)
from grc.core.versioning import SemanticVersion


class TestRepositoryInputValidation:
    def test_rejects_sql_injection_framework_id(self, conn) -> None:
        with pytest.raises(ValueError, match="invalid characters"):
            create_framework(conn, framework_id="x'; DROP TABLE controls;--", name="Evil", version="1")

    def test_rejects_path_traversal_policy_owner(self, conn) -> None:
        with pytest.raises(ValueError, match="owner"):
            create_policy(
                conn, policy_id="pol-1", name="Access Control", version=SemanticVersion(1, 0, 0),
                policy_type=PolicyType.SECURITY, description="d", owner="../../etc/passwd",
            )

    def test_rejects_oversized_description(self, conn) -> None:
        with pytest.raises(ValueError, match="cannot exceed 1000"):
            create_policy(
                conn, policy_id="pol-1", name="Access Control", version=SemanticVersion(1, 0, 0),
                policy_type=PolicyType.SECURITY, description="x" * 1001, owner="ciso",
            )

    def test_rejects_unknown_enum_values(self, conn) -> None:
        with pytest.raises(ValueError):
            create_audit(conn, audit_id="aud-1", name="Annual", audit_type="surprise")  # type: ignore[arg-type]
        with pytest.raises(ValueError):
            FindingSeverity("catastrophic")

    def test_rejects_empty_ids(self, conn) -> None:
        with pytest.raises(ValueError, match="must not be empty"):
            create_framework(conn, framework_id="   ", name="Blank", version="1")

    def test_lookups_validate_ids(self, conn) -> None:
        with pytest.raises(ValueError):
            get_control(conn, "c-1' OR '1'='1")
        with pytest.raises(ValueError):
            get_policy(conn, "")

    def test_transition_validates_id(self, conn) -> None:
        with pytest.raises(ValueError):
            transition_policy(conn, "pol 1", PolicyStatus.REVIEW)

    def test_accepts_valid_inputs(self, conn) -> None:
        fw = create_framework(conn, framework_id="iso27001", name="ISO 27001", version="2022")
        a = create_audit(conn, audit_id="aud-1", name="Annual", audit_type=AuditType.INTERNAL,
                         framework_id=fw.framework_id)
        assert a.framework_id == "iso27001"
