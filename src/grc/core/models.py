"""GRC domain models — enums shared by every layer."""

from enum import Enum


class EntityKind(str, Enum):
    CONTROL = "control"
    POLICY = "policy"
    AUDIT = "audit"
    FINDING = "finding"


class ImplementationStatus(str, Enum):
    NOT_IMPLEMENTED = "not_implemented"
    PARTIALLY_IMPLEMENTED = "partially_implemented"
    IMPLEMENTED = "implemented"
    NOT_APPLICABLE = "not_applicable"


class PolicyStatus(str, Enum):
    DRAFT = "draft"
    REVIEW = "review"
    APPROVED = "approved"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class PolicyType(str, Enum):
    SECURITY = "security"
    PRIVACY = "privacy"
    OPERATIONAL = "operational"
    HR = "hr"
    IT = "it"
    COMPLIANCE = "compliance"
    GOVERNANCE = "governance"
    RISK = "risk"
    OTHER = "other"


class AuditStatus(str, Enum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    UNDER_REVIEW = "under_review"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AuditType(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"
    CERTIFICATION = "certification"
    REGULATORY = "regulatory"
    VENDOR = "vendor"
    CUSTOM = "custom"


class FindingStatus(str, Enum):
    OPEN = "open"
    IN_REMEDIATION = "in_remediation"
    REMEDIATED = "remediated"
    VERIFIED = "verified"
    ACCEPTED = "accepted"
    DEFERRED = "deferred"
    CLOSED = "closed"


class FindingSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFORMATIONAL = "informational"


# Status enum per entity kind (used to coerce raw strings).
STATUS_ENUMS: dict[EntityKind, type[Enum]] = {
    EntityKind.CONTROL: ImplementationStatus,
    EntityKind.POLICY: PolicyStatus,
    EntityKind.AUDIT: AuditStatus,
    EntityKind.FINDING: FindingStatus,
}

# A finding in one of these states is never overdue.
RESOLVED_FINDING_STATUSES: frozenset[FindingStatus] = frozenset(
    {FindingStatus.VERIFIED, FindingStatus.ACCEPTED, FindingStatus.CLOSED}
)
