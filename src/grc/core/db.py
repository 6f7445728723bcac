"""SQLite database manager.

Owns the connection lifecycle and schema creation.  The connection is
opened once by the caller (the CLI, a test fixture) and passed explicitly
to every repository / use-case function; nothing holds a global handle.

Each aggregate is one table; list-valued fields (policy approvers, linked
control ids) are stored as JSON documents in TEXT columns.

Design decisions
----------------
* WAL mode for concurrent reads.
* Foreign keys enforced.
* ``CREATE TABLE IF NOT EXISTS`` is idempotent and safe to call on every start.
* The ``events`` table (audit trail) is append-only, enforced by triggers.
* Autocommit connection; :func:`transaction` groups several writes into
  one atomic unit and :func:`commit` defers to it.
* Columns added after the first release are back-filled by
  ``ALTER TABLE`` on open.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import structlog

logger = structlog.get_logger()

SCHEMA_VERSION = 2

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS frameworks (
    framework_id  TEXT PRIMARY KEY,
    name          TEXT NOT NULL,
    version       TEXT NOT NULL,
    description   TEXT NOT NULL DEFAULT '',
    is_active     INTEGER NOT NULL DEFAULT 1,
    created_utc   TEXT NOT NULL,
    updated_utc   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS controls (
    control_id              TEXT PRIMARY KEY,
    framework_id            TEXT NOT NULL,
    code                    TEXT NOT NULL,
    title                   TEXT NOT NULL,
    description             TEXT NOT NULL DEFAULT '',
    implementation_status   TEXT NOT NULL DEFAULT 'not_implemented',
    implementation_details  TEXT,
    owner_id                TEXT,
    is_active               INTEGER NOT NULL DEFAULT 1,
    created_utc             TEXT NOT NULL,
    updated_utc             TEXT NOT NULL,
    FOREIGN KEY (framework_id) REFERENCES frameworks(framework_id),
    UNIQUE (framework_id, code)
);

CREATE INDEX IF NOT EXISTS controls_by_framework ON controls(framework_id, is_active);

CREATE TABLE IF NOT EXISTS policies (
    policy_id            TEXT PRIMARY KEY,
    name                 TEXT NOT NULL,
    version              TEXT NOT NULL,
    policy_type          TEXT NOT NULL,
    status               TEXT NOT NULL DEFAULT 'draft',
    description          TEXT NOT NULL,
    owner                TEXT NOT NULL,
    approvers            TEXT NOT NULL DEFAULT '[]',
    related_control_ids  TEXT NOT NULL DEFAULT '[]',
    effective_start      TEXT,
    effective_end        TEXT,
    review_date          TEXT,
    is_active            INTEGER NOT NULL DEFAULT 1,
    created_utc          TEXT NOT NULL,
    updated_utc          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS audits (
    audit_id      TEXT PRIMARY KEY,
    name          TEXT NOT NULL,
    audit_type    TEXT NOT NULL,
    status        TEXT NOT NULL DEFAULT 'planned',
    framework_id  TEXT,
    lead_auditor  TEXT,
    scope         TEXT,
    created_utc   TEXT NOT NULL,
    updated_utc   TEXT NOT NULL,
    FOREIGN KEY (framework_id) REFERENCES frameworks(framework_id)
);

CREATE TABLE IF NOT EXISTS findings (
    finding_id   TEXT PRIMARY KEY,
    audit_id     TEXT NOT NULL,
    title        TEXT NOT NULL,
    severity     TEXT NOT NULL,
    status       TEXT NOT NULL DEFAULT 'open',
    description  TEXT NOT NULL DEFAULT '',
    control_id        TEXT,
    due_date          TEXT,
    remediation_plan  TEXT,
    created_utc       TEXT NOT NULL,
    updated_utc       TEXT NOT NULL,
    FOREIGN KEY (audit_id) REFERENCES audits(audit_id)
);

-- Append-only event log (the audit trail of status transitions)
CREATE TABLE IF NOT EXISTS events (
    seq          INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_kind  TEXT    NOT NULL,
    entity_id    TEXT    NOT NULL,
    from_status  TEXT    NOT NULL,
    to_status    TEXT    NOT NULL,
    at_utc       TEXT    NOT NULL,
    entry_hash   TEXT    NOT NULL,
    prev_hash    TEXT    NOT NULL DEFAULT '',
    notes        TEXT    NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TRIGGER IF NOT EXISTS events_no_update
    BEFORE UPDATE ON events
    BEGIN
        SELECT RAISE(ABORT, 'events table is append-only: UPDATE blocked');
    END;

CREATE TRIGGER IF NOT EXISTS events_no_delete
    BEFORE DELETE ON events
    BEGIN
        SELECT RAISE(ABORT, 'events table is append-only: DELETE blocked');
    END;
"""


# Columns added after schema version 1, back-filled on open.
_ADDED_COLUMNS: dict[str, dict[str, str]] = {
    "findings": {"due_date": "TEXT", "remediation_plan": "TEXT"},
}

# Connections (by id) inside a transaction() block.
_OPEN_TRANSACTIONS: set[int] = set()


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open (or create) the GRC database and ensure the schema exists.

    Parameters
    ----------
    db_path:
        Path to the SQLite file (e.g. ``data/grc.db``).  Parent
        directories are created as needed.

    Returns
    -------
    sqlite3.Connection
        Ready-to-use connection with WAL mode, foreign keys and
        ``sqlite3.Row`` rows.  The caller is responsible for closing it.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path), isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")

    conn.executescript(_SCHEMA_SQL)
    _add_missing_columns(conn)
    conn.execute(
        "INSERT INTO meta(key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        ("schema_version", str(SCHEMA_VERSION)),
    )
    conn.commit()

    logger.debug("database_opened", path=str(db_path), schema_version=SCHEMA_VERSION)
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the enclosed writes as one unit: all committed, or all rolled back.

    Repository functions call :func:`commit` after each write; inside this
    block that call is deferred to the final ``COMMIT``.  Nested blocks join
    the outermost one.
    """
    if id(conn) in _OPEN_TRANSACTIONS:
        yield conn
        return

    conn.execute("BEGIN")
    _OPEN_TRANSACTIONS.add(id(conn))
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        logger.warning("transaction_rolled_back")
        raise
    else:
        conn.execute("COMMIT")
    finally:
        _OPEN_TRANSACTIONS.discard(id(conn))


def commit(conn: sqlite3.Connection) -> None:
    """Commit the current write unless a :func:`transaction` block owns it."""
    if id(conn) not in _OPEN_TRANSACTIONS:
        conn.commit()


def _add_missing_columns(conn: sqlite3.Connection) -> None:
    # Table and column names come from _ADDED_COLUMNS, never from input.
    for table, columns in _ADDED_COLUMNS.items():
        existing = {row["name"] for row in conn.execute(f"PRAGMA table_info({table})")}
        for name, decl in columns.items():
            if name not in existing:
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
                logger.info("schema_column_added", table=table, column=name)
