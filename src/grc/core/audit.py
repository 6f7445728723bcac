"""Append-only audit trail of status transitions, with a hash chain.

Every status change of a control, policy, audit or finding produces a
:class:`~grc.core.state.TransitionEvent`.  ``append()`` serialises it
canonically (sorted JSON, no spaces), computes
``entry_hash = SHA-256(canonical_blob + prev_hash)`` and inserts a row
into ``events``.  Rows are never updated or deleted.

``verify_chain()`` walks the events in sequence order, recomputes each
hash and raises :class:`AuditChainBroken` on the first mismatch, so an
edited, deleted or re-ordered row is detected.

``export_audit()`` returns the log as a list of dicts for JSON export;
``compute_hmac()`` optionally signs an export with ``GRC_EXPORT_KEY``.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import os
import sqlite3
from enum import Enum

import structlog

from grc.core.db import commit
from grc.core.errors import AuditChainBroken
from grc.core.state import TransitionEvent
from grc.core.validation import sanitise_notes

logger = structlog.get_logger()

_INSERT_COLUMNS = "entity_kind, entity_id, from_status, to_status, at_utc, entry_hash, prev_hash, notes"
_EVENT_COLUMNS = "seq, entity_kind, entity_id, from_status, to_status, at_utc, entry_hash, prev_hash, notes"


def append(conn: sqlite3.Connection, event: TransitionEvent, *, notes: str = "") -> str:
    """Append *event* to the audit trail and return its ``entry_hash``.

    *notes* is sanitised, stored, and included in the hash so that later
    edits to the annotation are detectable.
    """
    prev_hash = _get_last_hash(conn)
    notes = sanitise_notes(notes)

    canonical = _canonical_blob(
        entity_kind=_value(event.entity_kind),
        entity_id=event.entity_id,
        from_status=_value(event.from_status),
        to_status=_value(event.to_status),
        at_utc=event.at_utc,
        notes=notes,
    )
    entry_hash = hashlib.sha256((canonical + prev_hash).encode("utf-8")).hexdigest()

    cur = conn.execute(
        f"INSERT INTO events ({_INSERT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (
            _value(event.entity_kind),
            event.entity_id,
            _value(event.from_status),
            _value(event.to_status),
            event.at_utc,
            entry_hash,
            prev_hash,
            notes,
        ),
    )
    commit(conn)

    logger.info(
        "audit_event_appended",
        entity_kind=_value(event.entity_kind),
        entity_id=event.entity_id,
        transition=f"{_value(event.from_status)}→{_value(event.to_status)}",
        entry_hash=entry_hash[:12],
        seq=cur.lastrowid,
    )
    return entry_hash


def verify_chain(conn: sqlite3.Connection) -> int:
    """Verify the full hash chain.  Returns the number of events checked.

    Raises
    ------
    AuditChainBroken
        If a ``prev_hash`` link or a recomputed ``entry_hash`` does not match.
    """
    rows = conn.execute(f"SELECT {_EVENT_COLUMNS} FROM events ORDER BY seq").fetchall()

    expected_prev = ""
    for row in rows:
        seq = row["seq"]
        if row["prev_hash"] != expected_prev:
            raise AuditChainBroken(
                f"Chain broken at seq={seq}: expected prev_hash={expected_prev[:12]}... "
                f"but found {row['prev_hash'][:12]}..."
            )

        canonical = _canonical_blob(
            entity_kind=row["entity_kind"],
            entity_id=row["entity_id"],
            from_status=row["from_status"],
            to_status=row["to_status"],
            at_utc=row["at_utc"],
            notes=row["notes"],
        )
        recomputed = hashlib.sha256((canonical + row["prev_hash"]).encode("utf-8")).hexdigest()
        if recomputed != row["entry_hash"]:
            raise AuditChainBroken(
                f"Tamper detected at seq={seq}: recomputed hash={recomputed[:12]}... "
                f"does not match stored={row['entry_hash'][:12]}..."
            )
        expected_prev = row["entry_hash"]

    logger.info("audit_chain_verified", events_checked=len(rows))
    return len(rows)


def export_audit(
    conn: sqlite3.Connection,
    *,
    entity_kind: str | None = None,
    entity_id: str | None = None,
) -> list[dict[str, str | int]]:
    """Export the audit trail as a list of dicts, optionally filtered to one entity."""
    sql = f"SELECT {_EVENT_COLUMNS} FROM events"
    clauses: list[str] = []
    params: list[str] = []
    if entity_kind is not None:
        clauses.append("entity_kind = ?")
        params.append(entity_kind)
    if entity_id is not None:
        clauses.append("entity_id = ?")
        params.append(entity_id)
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    rows = conn.execute(sql + " ORDER BY seq", params).fetchall()
    return [dict(row) for row in rows]


def compute_hmac(data: str, *, env_var: str = "GRC_EXPORT_KEY") -> str | None:
    """HMAC-SHA256 over exported data, or ``None`` when no key is configured."""
    key = os.environ.get(env_var, "").strip()
    if not key:
        return None
    return hmac.new(key.encode("utf-8"), data.encode("utf-8"), hashlib.sha256).hexdigest()


# ── Internal helpers ────────────────────────────────────────

def _value(v: Enum | str) -> str:
    return v.value if isinstance(v, Enum) else v


def _canonical_blob(**fields: str) -> str:
    return json.dumps(fields, sort_keys=True, separators=(",", ":"))


def _get_last_hash(conn: sqlite3.Connection) -> str:
    row = conn.execute("SELECT entry_hash FROM events ORDER BY seq DESC LIMIT 1").fetchone()
    return row["entry_hash"] if row else ""
