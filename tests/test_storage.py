"""Tests for the SQLite local store.

Tests:
- Point get, insert, partial update, delete
- Filtered scans (NULL matching, IN lists, predicates, ordering)
- Dirty marking writes timestamp and flag together
- Dirty-write notifications
- Tombstoned deletes
- Sync metadata
- Schema migration of older databases
"""

import sqlite3
import stat

import pytest

from finishstrong.protocols import StorageError
from finishstrong.storage.schema import (
    ENTRIES,
    EXERCISES,
    PARSE_QUEUE,
    SCHEMA_VERSION,
    SESSIONS,
)
from finishstrong.storage.sqlite import SQLiteStorage
from finishstrong.types import Exercise, QueueItem, Session


def make_session(clock, session_id="s1", **overrides):
    stamp = clock.iso()
    values = dict(
        id=session_id,
        name="Morning Workout",
        date="2026-03-14",
        started_at=stamp,
        created_at=stamp,
        updated_at=stamp,
    )
    values.update(overrides)
    return Session(**values)


class TestPointOperations:
    """Get, insert, update and delete by id."""

    def test_insert_and_get(self, storage, clock):
        storage.insert(SESSIONS, make_session(clock))

        session = storage.get(SESSIONS, "s1")
        assert session.name == "Morning Workout"
        assert session.ended_at is None
        assert session.synced is False

    def test_timestamp_follows_clock(self, storage, clock):
        assert storage.timestamp() == clock.iso()
        clock.advance(minutes=5)
        assert storage.timestamp() == clock.iso()

    def test_get_missing_returns_none(self, storage):
        assert storage.get(SESSIONS, "nope") is None

    def test_insert_duplicate_id_raises(self, storage, clock):
        storage.insert(SESSIONS, make_session(clock))
        with pytest.raises(sqlite3.IntegrityError):
            storage.insert(SESSIONS, make_session(clock))

    def test_update_merges_fields(self, storage, clock):
        storage.insert(SESSIONS, make_session(clock, notes="legs"))

        assert storage.update(SESSIONS, "s1", {"name": "Leg Day"}) is True

        session = storage.get(SESSIONS, "s1")
        assert session.name == "Leg Day"
        assert session.notes == "legs"

    def test_update_missing_returns_false(self, storage):
        assert storage.update(SESSIONS, "nope", {"name": "x"}) is False

    def test_update_cannot_change_id(self, storage, clock):
        storage.insert(SESSIONS, make_session(clock))
        with pytest.raises(StorageError):
            storage.update(SESSIONS, "s1", {"id": "s2"})

    def test_update_rejects_unknown_column(self, storage, clock):
        storage.insert(SESSIONS, make_session(clock))
        with pytest.raises(StorageError):
            storage.update(SESSIONS, "s1", {"colour": "red"})

    def test_unknown_table_rejected(self, storage):
        with pytest.raises(StorageError):
            storage.get("workouts", "x")

    def test_wrong_record_type_rejected(self, storage, clock):
        with pytest.raises(StorageError):
            storage.insert(ENTRIES, make_session(clock))

    def test_delete(self, storage, clock):
        storage.insert(SESSIONS, make_session(clock))
        assert storage.delete(SESSIONS, "s1") is True
        assert storage.delete(SESSIONS, "s1") is False
        assert storage.get(SESSIONS, "s1") is None

    def test_rekey(self, storage):
        storage.insert(EXERCISES, Exercise(id="old", name="squat", display_name="Squat"))
        assert storage.rekey(EXERCISES, "old", "new") is True
        assert storage.get(EXERCISES, "old") is None
        assert storage.get(EXERCISES, "new").name == "squat"


class TestScans:
    """Filtered scans used by the managers and the sync engine."""

    def test_where_none_matches_null(self, storage, clock):
        storage.insert(SESSIONS, make_session(clock, "a"))
        storage.insert(SESSIONS, make_session(clock, "b", ended_at=clock.iso()))

        active = storage.find(SESSIONS, where={"ended_at": None})
        assert [s.id for s in active] == ["a"]

    def test_where_list_matches_any(self, storage, clock):
        for session_id in ("a", "b", "c"):
            storage.insert(SESSIONS, make_session(clock, session_id))

        found = storage.find(SESSIONS, where={"id": ["a", "c"]})
        assert sorted(s.id for s in found) == ["a", "c"]
        assert storage.find(SESSIONS, where={"id": []}) == []

    def test_predicate_and_limit(self, storage, clock):
        for session_id in ("a", "b", "c", "d"):
            storage.insert(SESSIONS, make_session(clock, session_id))

        found = storage.find(SESSIONS, predicate=lambda s: s.id != "a", limit=2)
        assert [s.id for s in found] == ["b", "c"]

    def test_order_ties_fall_back_to_insertion(self, storage, clock):
        for session_id in ("z", "y", "x"):
            storage.insert(SESSIONS, make_session(clock, session_id))

        found = storage.find(SESSIONS, order_by="started_at")
        assert [s.id for s in found] == ["z", "y", "x"]

    def test_latest_child(self, storage, clock, sessions, entries, bench):
        session = sessions.create_session("2026-03-14")
        entries.create_entry(bench.id, session.id, reps=5)
        clock.advance(minutes=5)
        newest = entries.create_entry(bench.id, session.id, reps=8)

        assert storage.latest_child(ENTRIES, "session_id", session.id).id == newest.id

    def test_queue_status_scan(self, storage, clock):
        storage.insert(PARSE_QUEUE, QueueItem(id="q1", raw_input="a", created_at=clock.iso()))
        storage.insert(
            PARSE_QUEUE,
            QueueItem(id="q2", raw_input="b", status="parsed", created_at=clock.iso()),
        )
        assert storage.count(PARSE_QUEUE, {"status": "pending"}) == 1


class TestDirtyMarking:
    """Sync-relevant writes bump updated_at and clear synced together."""

    def test_mark_dirty_sets_timestamp_and_flag(self, storage, clock):
        storage.insert(SESSIONS, make_session(clock, synced=True))
        clock.advance(minutes=10)

        assert storage.mark_dirty(SESSIONS, "s1", {"notes": "felt strong"}) is True

        session = storage.get(SESSIONS, "s1")
        assert session.notes == "felt strong"
        assert session.synced is False
        assert session.updated_at == clock.iso()

    def test_get_dirty(self, storage, clock):
        storage.insert(SESSIONS, make_session(clock, "clean", synced=True))
        storage.insert(SESSIONS, make_session(clock, "dirty"))

        assert [s.id for s in storage.get_dirty(SESSIONS)] == ["dirty"]

    def test_exercises_carry_no_sync_state(self, storage):
        storage.insert(EXERCISES, Exercise(id="e1", name="squat", display_name="Squat"))
        with pytest.raises(StorageError):
            storage.mark_dirty(EXERCISES, "e1")
        with pytest.raises(StorageError):
            storage.get_dirty(EXERCISES)


class TestDirtyListeners:
    """Listeners hear about writes that leave records dirty."""

    def test_dirty_insert_notifies(self, storage, clock):
        heard = []
        storage.add_dirty_listener(heard.append)

        storage.insert(SESSIONS, make_session(clock))

        assert heard == [SESSIONS]

    def test_synced_writes_do_not_notify(self, storage, clock):
        heard = []
        storage.insert(SESSIONS, make_session(clock))
        storage.add_dirty_listener(heard.append)

        storage.put(SESSIONS, make_session(clock, synced=True))
        storage.bulk_update(SESSIONS, ["s1"], {"synced": True})

        assert heard == []

    def test_mark_dirty_notifies(self, storage, clock):
        storage.insert(SESSIONS, make_session(clock, synced=True))
        heard = []
        storage.add_dirty_listener(heard.append)

        storage.mark_dirty(SESSIONS, "s1", {"name": "Renamed"})

        assert heard == [SESSIONS]

    def test_removed_listener_is_silent(self, storage, clock):
        heard = []
        storage.add_dirty_listener(heard.append)
        storage.remove_dirty_listener(heard.append)

        storage.insert(SESSIONS, make_session(clock))

        assert heard == []


class TestTombstones:
    """Deletes that still have to reach the remote store."""

    def test_delete_records_tombstones(self, storage, clock):
        storage.insert(SESSIONS, make_session(clock))

        removed = storage.delete_with_tombstones([(SESSIONS, ["s1"])])

        assert removed == 1
        assert storage.get(SESSIONS, "s1") is None
        assert storage.get_pending_deletes(SESSIONS) == ["s1"]
        assert storage.has_pending_delete(SESSIONS, "s1")

    def test_missing_ids_are_not_tombstoned(self, storage):
        assert storage.delete_with_tombstones([(SESSIONS, ["ghost"])]) == 0
        assert storage.count_pending_deletes() == 0

    def test_clear_pending_deletes(self, storage, clock):
        storage.insert(SESSIONS, make_session(clock))
        storage.delete_with_tombstones([(SESSIONS, ["s1"])])

        assert storage.clear_pending_deletes(SESSIONS, ["s1"]) == 1
        assert storage.get_pending_deletes(SESSIONS) == []

    def test_tombstoned_delete_notifies(self, storage, clock):
        storage.insert(SESSIONS, make_session(clock, synced=True))
        heard = []
        storage.add_dirty_listener(heard.append)

        storage.delete_with_tombstones([(SESSIONS, ["s1"])])

        assert heard == [SESSIONS]


class TestSyncMeta:
    def test_roundtrip(self, storage):
        assert storage.get_sync_meta("last_pull") is None
        storage.set_sync_meta("last_pull", "2026-03-14T09:30:00+00:00")
        assert storage.get_sync_meta("last_pull") == "2026-03-14T09:30:00+00:00"
        storage.delete_sync_meta("last_pull")
        assert storage.get_sync_meta("last_pull") is None


class TestSchema:
    """Database initialization and migration."""

    def test_fresh_database_has_version(self, storage):
        with storage._connect() as conn:
            version = conn.execute("SELECT version FROM schema_version").fetchone()[0]
        assert version == SCHEMA_VERSION == 1

    def test_database_file_is_private(self, storage):
        mode = stat.S_IMODE(storage.db_path.stat().st_mode)
        assert mode == 0o600

    def test_migrates_ownerless_tables(self, tmp_path, clock):
        db_path = tmp_path / "old.db"
        conn = sqlite3.connect(db_path)
        conn.executescript(
            """
            CREATE TABLE sessions (
                id TEXT PRIMARY KEY, name TEXT NOT NULL, date TEXT NOT NULL,
                started_at TEXT NOT NULL, ended_at TEXT, notes TEXT,
                created_at TEXT NOT NULL, updated_at TEXT NOT NULL,
                synced INTEGER NOT NULL DEFAULT 0
            );
            CREATE TABLE entries (
                id TEXT PRIMARY KEY, exercise_id TEXT NOT NULL, session_id TEXT NOT NULL,
                weight REAL, unit TEXT, reps INTEGER, sets INTEGER, notes TEXT,
                created_at TEXT NOT NULL, updated_at TEXT NOT NULL,
                synced INTEGER NOT NULL DEFAULT 0
            );
            INSERT INTO sessions VALUES
                ('old', 'Evening Workout', '2026-01-01', 't', NULL, NULL, 't', 't', 1);
            """
        )
        conn.commit()
        conn.close()

        storage = SQLiteStorage(db_path, now_fn=clock)

        session = storage.get(SESSIONS, "old")
        assert session.user_id is None
        assert session.synced is True
        storage.insert(SESSIONS, make_session(clock, "new", user_id="u"))
        assert storage.get(SESSIONS, "new").user_id == "u"

    def test_stats(self, storage, bench):
        stats = storage.get_stats()
        assert stats[EXERCISES] == 1
        assert stats[SESSIONS] == 0
