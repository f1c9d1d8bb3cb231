"""Database schema and migration logic for finishstrong SQLite storage.

Contains:
- Schema DDL (SCHEMA)
- Schema version tracking (SCHEMA_VERSION)
- Table allowlist (ALLOWED_TABLES, validate_table_name)
- Per-table column sets used to build parameterized queries
- Database initialization (init_db)
- Schema migration (migrate_schema)
"""

import logging
import os
import sqlite3
from pathlib import Path
from typing import Dict, FrozenSet

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 1

EXERCISES = "exercises"
ENTRIES = "entries"
SESSIONS = "sessions"
PARSE_QUEUE = "parse_queue"

# Tables whose rows carry synced/updated_at and are replicated individually
SYNCED_TABLES = frozenset({SESSIONS, ENTRIES})

# Record tables exposed through the generic store API
RECORD_TABLES = frozenset({EXERCISES, ENTRIES, SESSIONS, PARSE_QUEUE})

# Allowed table names for SQL queries (prevents SQL injection via table names)
ALLOWED_TABLES = frozenset(
    {
        EXERCISES,
        ENTRIES,
        SESSIONS,
        PARSE_QUEUE,
        "schema_version",
        "sync_meta",
        "pending_deletes",
    }
)

TABLE_COLUMNS: Dict[str, FrozenSet[str]] = {
    EXERCISES: frozenset({"id", "name", "display_name", "type"}),
    ENTRIES: frozenset(
        {
            "id",
            "exercise_id",
            "session_id",
            "weight",
            "unit",
            "reps",
            "sets",
            "notes",
            "created_at",
            "updated_at",
            "synced",
            "user_id",
        }
    ),
    SESSIONS: frozenset(
        {
            "id",
            "name",
            "date",
            "started_at",
            "ended_at",
            "notes",
            "created_at",
            "updated_at",
            "synced",
            "user_id",
        }
    ),
    PARSE_QUEUE: frozenset({"id", "raw_input", "status", "created_at", "processed_at", "error"}),
}


def validate_table_name(table: str) -> str:
    """Validate table name against allowlist to prevent SQL injection.

    Raises:
        ValueError: If table name is not in allowlist
    """
    if table not in ALLOWED_TABLES:
        raise ValueError(f"Invalid table name: {table}")
    return table


def validate_columns(table: str, columns) -> None:
    """Validate column names for a record table.

    Raises:
        ValueError: If any column is unknown for the table
    """
    allowed = TABLE_COLUMNS.get(table)
    if allowed is None:
        raise ValueError(f"Not a record table: {table}")
    unknown = set(columns) - allowed
    if unknown:
        raise ValueError(f"Unknown column(s) for {table}: {', '.join(sorted(unknown))}")


SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Exercises (catalogue, business key = name)
CREATE TABLE IF NOT EXISTS exercises (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,     -- normalized: lowercase with underscores
    display_name TEXT NOT NULL,
    type TEXT NOT NULL DEFAULT 'strength'
);

-- Sessions (contiguous bouts of activity on one calendar day)
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    date TEXT NOT NULL,            -- local calendar day, YYYY-MM-DD
    started_at TEXT NOT NULL,
    ended_at TEXT,                 -- NULL while active
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    synced INTEGER NOT NULL DEFAULT 0,
    user_id TEXT
);
CREATE INDEX IF NOT EXISTS idx_sessions_date ON sessions(date);
CREATE INDEX IF NOT EXISTS idx_sessions_synced ON sessions(synced);
CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id);

-- Entries (logged set groups, owned by one session)
CREATE TABLE IF NOT EXISTS entries (
    id TEXT PRIMARY KEY,
    exercise_id TEXT NOT NULL,
    session_id TEXT NOT NULL,
    weight REAL,
    unit TEXT,                     -- 'kg', 'lbs' or NULL (bodyweight)
    reps INTEGER,
    sets INTEGER,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    synced INTEGER NOT NULL DEFAULT 0,
    user_id TEXT
);
CREATE INDEX IF NOT EXISTS idx_entries_session ON entries(session_id, created_at);
CREATE INDEX IF NOT EXISTS idx_entries_exercise ON entries(exercise_id);
CREATE INDEX IF NOT EXISTS idx_entries_synced ON entries(synced);
CREATE INDEX IF NOT EXISTS idx_entries_user ON entries(user_id);

-- Parse queue (raw text awaiting interpretation)
CREATE TABLE IF NOT EXISTS parse_queue (
    id TEXT PRIMARY KEY,
    raw_input TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',  -- pending | parsed | failed
    created_at TEXT NOT NULL,
    processed_at TEXT,
    error TEXT
);
CREATE INDEX IF NOT EXISTS idx_parse_queue_status ON parse_queue(status, created_at);

-- Sync metadata (pull cursor and friends)
CREATE TABLE IF NOT EXISTS sync_meta (
    key TEXT PRIMARY KEY,
    value TEXT,
    updated_at TEXT NOT NULL
);

-- Local deletes not yet confirmed by the remote store
CREATE TABLE IF NOT EXISTS pending_deletes (
    table_name TEXT NOT NULL,
    record_id TEXT NOT NULL,
    queued_at TEXT NOT NULL,
    PRIMARY KEY (table_name, record_id)
);
"""


def init_db(conn: sqlite3.Connection, db_path: Path) -> None:
    """Initialize the database schema.

    Args:
        conn: Database connection.
        db_path: Path to the database file (for permissions).
    """
    # First, run migrations if needed (before executing full schema)
    migrate_schema(conn)

    # Now execute full schema (CREATE TABLE IF NOT EXISTS is safe)
    conn.executescript(SCHEMA)

    row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
    if row is None:
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
    else:
        conn.execute("UPDATE schema_version SET version = ?", (SCHEMA_VERSION,))

    conn.commit()

    # Set secure file permissions (owner read/write only)
    if str(db_path) != ":memory:":
        try:
            os.chmod(db_path, 0o600)
        except OSError as e:
            logger.warning(f"Could not set secure permissions: {e}")


def migrate_schema(conn: sqlite3.Connection) -> None:
    """Run schema migrations for existing databases.

    Handles adding new columns to existing tables.
    """
    tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    table_names = {t[0] for t in tables}

    if "sessions" not in table_names:
        # Fresh database, no migration needed
        return

    def get_columns(table: str) -> set:
        validate_table_name(table)
        cols = conn.execute(f"PRAGMA table_info({table})").fetchall()
        return {c[1] for c in cols}

    migrations = []

    # Ownership columns for association-on-login
    if "user_id" not in get_columns("sessions"):
        migrations.append("ALTER TABLE sessions ADD COLUMN user_id TEXT")
    if "entries" in table_names and "user_id" not in get_columns("entries"):
        migrations.append("ALTER TABLE entries ADD COLUMN user_id TEXT")

    for migration in migrations:
        logger.info(f"Running migration: {migration}")
        conn.execute(migration)

    if migrations:
        conn.commit()
