"""Framework and control use cases.

The detail view reports the unrounded implementation rate; list
summaries round to one decimal place.  Both derive from the same
:mod:`grc.core.scoring` functions over :func:`count_controls` snapshots.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass

import structlog

from grc.core import audit
from grc.core.models import ImplementationStatus
from grc.core.repository import (
    Control,
    Framework,
    count_controls,
    create_control,
    create_framework as _insert_framework,
    get_framework,
    list_frameworks,
    set_control_status,
    update_framework as _update_framework,
)
from grc.core.scoring import (
    ControlCountSnapshot,
    compute_implementation_rate,
    score_frameworks,
)
from grc.core.state import TransitionEvent

logger = structlog.get_logger()


@dataclass(frozen=True)
class FrameworkDetail:
    framework: Framework
    counts: ControlCountSnapshot
    implementation_rate: float


@dataclass(frozen=True)
class FrameworkSummary:
    framework_id: str
    name: str
    version: str
    is_active: bool
    total_controls: int
    implementation_rate: float


def create_framework(conn: sqlite3.Connection, *, framework_id: str, name: str, version: str,
                     description: str = "") -> Framework:
    fw = _insert_framework(conn, framework_id=framework_id, name=name, version=version, description=description)
    logger.info("framework_created", framework_id=fw.framework_id, name=fw.name)
    return fw


def update_framework(
    conn: sqlite3.Connection,
    framework_id: str,
    *,
    description: str | None = None,
    is_active: bool | None = None,
) -> Framework:
    """Edit the description or (de)activate a framework.

    Inactive frameworks stay queryable but drop out of ``active_only``
    summaries.  Raises ``KeyError`` if the framework does not exist.
    """
    fw = _update_framework(conn, framework_id, description=description, is_active=is_active)
    logger.info("framework_updated", framework_id=fw.framework_id, is_active=fw.is_active)
    return fw


def add_control(
    conn: sqlite3.Connection,
    *,
    control_id: str,
    framework_id: str,
    code: str,
    title: str,
    description: str = "",
    owner_id: str | None = None,
) -> Control:
    ctl = create_control(
        conn,
        control_id=control_id,
        framework_id=framework_id,
        code=code,
        title=title,
        description=description,
        owner_id=owner_id,
    )
    logger.info("control_created", control_id=ctl.control_id, framework_id=ctl.framework_id)
    return ctl


def get_framework_detail(conn: sqlite3.Connection, framework_id: str) -> FrameworkDetail:
    """Framework plus control counts and its unrounded implementation rate.

    Raises
    ------
    KeyError
        If the framework does not exist.
    """
    fw = get_framework(conn, framework_id)
    if fw is None:
        raise KeyError(f"Framework not found: {framework_id}")
    counts = count_controls(conn, fw.framework_id)
    return FrameworkDetail(framework=fw, counts=counts, implementation_rate=compute_implementation_rate(counts))


def list_framework_summaries(conn: sqlite3.Connection, *, active_only: bool = False) -> list[FrameworkSummary]:
    """One row per framework with its implementation rate rounded to 0.1."""
    frameworks = list_frameworks(conn, active_only=active_only)
    snapshots = {fw.framework_id: count_controls(conn, fw.framework_id) for fw in frameworks}
    rates = score_frameworks(snapshots)
    return [
        FrameworkSummary(
            framework_id=fw.framework_id,
            name=fw.name,
            version=fw.version,
            is_active=fw.is_active,
            total_controls=snapshots[fw.framework_id].total,
            implementation_rate=rates[fw.framework_id],
        )
        for fw in frameworks
    ]


def update_control_implementation(
    conn: sqlite3.Connection,
    control_id: str,
    status: ImplementationStatus,
    *,
    details: str | None = None,
    notes: str = "",
) -> tuple[TransitionEvent, str]:
    """Set a control's implementation status and record it in the audit trail.

    Returns the transition event and its audit ``entry_hash``.
    """
    event = set_control_status(conn, control_id, ImplementationStatus(status), details=details)
    entry_hash = audit.append(conn, event, notes=notes)
    logger.info(
        "control_status_updated",
        control_id=event.entity_id,
        from_status=event.from_status.value,
        to_status=event.to_status.value,
    )
    return event, entry_hash
