"""SQLite storage backend for finishstrong.

Local-first storage with:
- One table per collection (exercises, entries, sessions, parse_queue)
- Secondary indexes for owner, status, parent reference and recency
- Sync metadata (synced flag, updated_at) for replication
- A small key-value table for the pull cursor
- Tombstones for deletes that still have to reach the remote store

Every write is atomic at the single-record granularity. Nothing here
retries; sqlite3 errors propagate to the caller unchanged.
"""

import contextlib
import logging
import sqlite3
from dataclasses import asdict, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from finishstrong.protocols import StorageError
from finishstrong.types import Entry, Exercise, QueueItem, Session, isoformat

from .schema import (
    ENTRIES,
    EXERCISES,
    PARSE_QUEUE,
    RECORD_TABLES,
    SESSIONS,
    SYNCED_TABLES,
    TABLE_COLUMNS,
    init_db,
    validate_columns,
)

logger = logging.getLogger(__name__)

RECORD_TYPES = {
    EXERCISES: Exercise,
    ENTRIES: Entry,
    SESSIONS: Session,
    PARSE_QUEUE: QueueItem,
}

DirtyListener = Callable[[str], None]


def _default_now() -> datetime:
    return datetime.now(timezone.utc)


class SQLiteStorage:
    """SQLite-based local store for finishstrong.

    Features:
    - Zero-config local storage
    - Point get, insert, partial update, delete and filtered scans
    - Dirty-write notifications so a sync engine can debounce pushes
    - Offline-first: writes never touch the network

    Args:
        db_path: Database file location.
        now_fn: Clock returning an aware datetime. Every timestamp the store
            and its managers write comes from here.
    """

    def __init__(self, db_path: Path, now_fn: Optional[Callable[[], datetime]] = None):
        self.db_path = Path(db_path)
        self._now_fn = now_fn or _default_now
        self._dirty_listeners: List[DirtyListener] = []

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            init_db(conn, self.db_path)

    # === Connection Handling ===

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        return conn

    @contextlib.contextmanager
    def _connect(self):
        """Context manager that handles transactions AND closes connection.

        - Transaction commit on success
        - Transaction rollback on exception
        - Connection close in all cases
        """
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    def close(self):
        """Close any resources.

        Connections are opened per operation, so this exists for API
        symmetry and explicit cleanup in tests.
        """
        self._dirty_listeners.clear()

    # === Clock ===

    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""
        moment = self._now_fn()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment

    def timestamp(self) -> str:
        """Current time as the ISO string records store."""
        return isoformat(self.now())

    # === Dirty Notifications ===

    def add_dirty_listener(self, listener: DirtyListener) -> None:
        """Register a callback invoked with the table name after a dirtying write."""
        if listener not in self._dirty_listeners:
            self._dirty_listeners.append(listener)

    def remove_dirty_listener(self, listener: DirtyListener) -> None:
        if listener in self._dirty_listeners:
            self._dirty_listeners.remove(listener)

    def _notify_dirty(self, table: str) -> None:
        for listener in list(self._dirty_listeners):
            listener(table)

    # === Row Conversion ===

    def _check_table(self, table: str) -> None:
        if table not in RECORD_TABLES:
            raise StorageError(f"Unknown collection: {table}")

    def _check_columns(self, table: str, columns: Iterable[str]) -> None:
        try:
            validate_columns(table, columns)
        except ValueError as e:
            raise StorageError(str(e)) from e

    def _record_to_row(self, table: str, record: Any) -> Dict[str, Any]:
        if not isinstance(record, RECORD_TYPES[table]):
            raise StorageError(
                f"Expected {RECORD_TYPES[table].__name__} for {table}, got {type(record).__name__}"
            )
        row = asdict(record)
        if "synced" in row:
            row["synced"] = 1 if row["synced"] else 0
        return row

    def _row_to_record(self, table: str, row: sqlite3.Row) -> Any:
        record_type = RECORD_TYPES[table]
        keys = row.keys()
        values = {f.name: row[f.name] for f in fields(record_type) if f.name in keys}
        if "synced" in values:
            values["synced"] = bool(values["synced"])
        return record_type(**values)

    @staticmethod
    def _to_sql_value(value: Any) -> Any:
        if isinstance(value, bool):
            return 1 if value else 0
        return value

    def _build_where(self, table: str, where: Optional[Dict[str, Any]]) -> Tuple[str, List[Any]]:
        if not where:
            return "", []
        self._check_columns(table, where.keys())
        clauses = []
        params: List[Any] = []
        for column, value in where.items():
            if value is None:
                clauses.append(f"{column} IS NULL")
            elif isinstance(value, (list, tuple, set, frozenset)):
                values = list(value)
                if not values:
                    clauses.append("0")
                    continue
                clauses.append(f"{column} IN ({','.join('?' * len(values))})")
                params.extend(self._to_sql_value(v) for v in values)
            else:
                clauses.append(f"{column} = ?")
                params.append(self._to_sql_value(value))
        return " WHERE " + " AND ".join(clauses), params

    # === Point Operations ===

    def get(self, table: str, record_id: str) -> Optional[Any]:
        """Get one record by id, or None."""
        self._check_table(table)
        with self._connect() as conn:
            row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,)).fetchone()
        return self._row_to_record(table, row) if row else None

    def insert(self, table: str, record: Any) -> str:
        """Insert one record. Fails if the id (or a unique key) already exists."""
        return self.bulk_insert(table, [record])[0]

    def bulk_insert(self, table: str, records: Sequence[Any]) -> List[str]:
        """Insert several records in one transaction."""
        self._check_table(table)
        if not records:
            return []
        rows = [self._record_to_row(table, record) for record in records]
        columns = list(rows[0].keys())
        placeholders = ",".join("?" * len(columns))
        with self._connect() as conn:
            conn.executemany(
                f"INSERT INTO {table} ({','.join(columns)}) VALUES ({placeholders})",
                [tuple(row[c] for c in columns) for row in rows],
            )
        if table in SYNCED_TABLES and any(not row["synced"] for row in rows):
            self._notify_dirty(table)
        return [row["id"] for row in rows]

    def put(self, table: str, record: Any) -> str:
        """Insert or fully replace one record by id.

        Used when applying remote copies; a replaced record takes every field
        from ``record``.
        """
        self._check_table(table)
        row = self._record_to_row(table, record)
        columns = list(row.keys())
        assignments = ",".join(f"{c} = excluded.{c}" for c in columns if c != "id")
        with self._connect() as conn:
            conn.execute(
                f"""INSERT INTO {table} ({','.join(columns)})
                    VALUES ({','.join('?' * len(columns))})
                    ON CONFLICT(id) DO UPDATE SET {assignments}""",
                tuple(row[c] for c in columns),
            )
        if table in SYNCED_TABLES and not row["synced"]:
            self._notify_dirty(table)
        return row["id"]

    def update(self, table: str, record_id: str, changes: Dict[str, Any]) -> bool:
        """Merge ``changes`` into an existing record.

        Fields not named in ``changes`` are left as they are. Returns False
        when no record has that id.
        """
        return self.bulk_update(table, [record_id], changes) > 0

    def bulk_update(self, table: str, record_ids: Sequence[str], changes: Dict[str, Any]) -> int:
        """Apply the same partial update to every listed id. Returns rows changed."""
        self._check_table(table)
        if not record_ids or not changes:
            return 0
        if "id" in changes:
            raise StorageError("Record ids are immutable through update(); use rekey()")
        self._check_columns(table, changes.keys())
        columns = list(changes.keys())
        assignments = ",".join(f"{c} = ?" for c in columns)
        ids = list(record_ids)
        params = [self._to_sql_value(changes[c]) for c in columns] + ids
        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE {table} SET {assignments} WHERE id IN ({','.join('?' * len(ids))})",
                params,
            )
            count = cursor.rowcount
        if count and table in SYNCED_TABLES and changes.get("synced") is False:
            self._notify_dirty(table)
        return count

    def mark_dirty(self, table: str, record_id: str, changes: Optional[Dict[str, Any]] = None) -> bool:
        """Apply a sync-relevant change.

        ``changes``, ``updated_at = now`` and ``synced = false`` are written
        by a single UPDATE, so a record can never be dirty with a stale
        timestamp or fresh without being dirty.
        """
        return self.bulk_mark_dirty(table, [record_id], changes) > 0

    def bulk_mark_dirty(
        self, table: str, record_ids: Sequence[str], changes: Optional[Dict[str, Any]] = None
    ) -> int:
        if table not in SYNCED_TABLES:
            raise StorageError(f"{table} does not carry sync state")
        patch = dict(changes or {})
        patch["updated_at"] = self.timestamp()
        patch["synced"] = False
        return self.bulk_update(table, record_ids, patch)

    def rekey(self, table: str, old_id: str, new_id: str) -> bool:
        """Change a record's id in place. Only used to adopt a remote identity."""
        self._check_table(table)
        with self._connect() as conn:
            cursor = conn.execute(f"UPDATE {table} SET id = ? WHERE id = ?", (new_id, old_id))
            return cursor.rowcount > 0

    def delete(self, table: str, record_id: str) -> bool:
        """Delete one record. Returns False if it did not exist."""
        return self.bulk_delete(table, [record_id]) > 0

    def bulk_delete(self, table: str, record_ids: Sequence[str]) -> int:
        self._check_table(table)
        ids = list(record_ids)
        if not ids:
            return 0
        with self._connect() as conn:
            cursor = conn.execute(
                f"DELETE FROM {table} WHERE id IN ({','.join('?' * len(ids))})", ids
            )
            return cursor.rowcount

    # === Scans ===

    def find(
        self,
        table: str,
        where: Optional[Dict[str, Any]] = None,
        predicate: Optional[Callable[[Any], bool]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Any]:
        """Filtered scan.

        ``where`` is an equality filter (None matches NULL, a list matches
        any of its values); ``predicate`` further filters decoded records.
        Ties in ``order_by`` fall back to insertion order.
        """
        self._check_table(table)
        clause, params = self._build_where(table, where)
        sql = f"SELECT * FROM {table}{clause}"
        if order_by:
            self._check_columns(table, [order_by])
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY {order_by} {direction}, rowid {direction}"
        else:
            sql += " ORDER BY rowid"
        if limit is not None and predicate is None:
            sql += " LIMIT ?"
            params.append(int(limit))

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()

        records = [self._row_to_record(table, row) for row in rows]
        if predicate is not None:
            records = [r for r in records if predicate(r)]
            if limit is not None:
                records = records[: int(limit)]
        return records

    def first(self, table: str, **kwargs) -> Optional[Any]:
        """First record of a filtered scan, or None."""
        kwargs["limit"] = 1
        records = self.find(table, **kwargs)
        return records[0] if records else None

    def count(self, table: str, where: Optional[Dict[str, Any]] = None) -> int:
        self._check_table(table)
        clause, params = self._build_where(table, where)
        with self._connect() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {table}{clause}", params).fetchone()[0]

    def get_dirty(self, table: str) -> List[Any]:
        """All records the remote store has not seen in their current version."""
        if table not in SYNCED_TABLES:
            raise StorageError(f"{table} does not carry sync state")
        return self.find(table, where={"synced": False}, order_by="updated_at")

    def latest_child(self, table: str, parent_column: str, parent_id: str) -> Optional[Any]:
        """Most recent record for a parent, by descending created_at."""
        return self.first(
            table, where={parent_column: parent_id}, order_by="created_at", descending=True
        )

    # === Deletes With Tombstones ===

    def delete_with_tombstones(self, deletions: Sequence[Tuple[str, Sequence[str]]]) -> int:
        """Delete records and remember them for the remote store, atomically.

        ``deletions`` is applied in order, so dependents should be listed
        before their parent. Returns the number of local rows removed.
        """
        removed = 0
        now = self.timestamp()
        with self._connect() as conn:
            for table, record_ids in deletions:
                if table not in SYNCED_TABLES:
                    raise StorageError(f"{table} does not carry sync state")
                ids = list(record_ids)
                if not ids:
                    continue
                placeholders = ",".join("?" * len(ids))
                ids = [
                    row["id"]
                    for row in conn.execute(
                        f"SELECT id FROM {table} WHERE id IN ({placeholders})", ids
                    ).fetchall()
                ]
                if not ids:
                    continue
                placeholders = ",".join("?" * len(ids))
                cursor = conn.execute(f"DELETE FROM {table} WHERE id IN ({placeholders})", ids)
                removed += cursor.rowcount
                conn.executemany(
                    """INSERT INTO pending_deletes (table_name, record_id, queued_at)
                       VALUES (?, ?, ?)
                       ON CONFLICT(table_name, record_id) DO UPDATE SET
                           queued_at = excluded.queued_at""",
                    [(table, record_id, now) for record_id in ids],
                )
        if removed:
            self._notify_dirty(deletions[0][0])
        return removed

    def get_pending_deletes(self, table: str) -> List[str]:
        """Ids deleted locally but not yet deleted remotely."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT record_id FROM pending_deletes WHERE table_name = ? ORDER BY queued_at",
                (table,),
            ).fetchall()
        return [row["record_id"] for row in rows]

    def has_pending_delete(self, table: str, record_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM pending_deletes WHERE table_name = ? AND record_id = ?",
                (table, record_id),
            ).fetchone()
        return row is not None

    def clear_pending_deletes(self, table: str, record_ids: Sequence[str]) -> int:
        ids = list(record_ids)
        if not ids:
            return 0
        with self._connect() as conn:
            cursor = conn.execute(
                f"""DELETE FROM pending_deletes
                    WHERE table_name = ? AND record_id IN ({','.join('?' * len(ids))})""",
                [table, *ids],
            )
            return cursor.rowcount

    def count_pending_deletes(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM pending_deletes").fetchone()[0]

    # === Sync Metadata ===

    def get_sync_meta(self, key: str) -> Optional[str]:
        """Get a sync metadata value."""
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM sync_meta WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_sync_meta(self, key: str, value: str) -> None:
        """Set a sync metadata value."""
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO sync_meta (key, value, updated_at) VALUES (?, ?, ?)",
                (key, value, self.timestamp()),
            )

    def delete_sync_meta(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM sync_meta WHERE key = ?", (key,))

    # === Stats ===

    def get_stats(self) -> Dict[str, int]:
        """Row counts per collection."""
        return {table: self.count(table) for table in sorted(TABLE_COLUMNS)}
