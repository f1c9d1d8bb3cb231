"""
Pytest fixtures and test configuration for finishstrong tests.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from finishstrong.auth import AuthState
from finishstrong.config import get_settings
from finishstrong.protocols import RemoteStoreError
from finishstrong.storage.entries import EntryManager
from finishstrong.storage.exercises import resolve_exercise
from finishstrong.storage.schema import ENTRIES, EXERCISES, SESSIONS
from finishstrong.storage.sessions import SessionManager
from finishstrong.storage.sqlite import SQLiteStorage
from finishstrong.types import InterpretationResult, isoformat, parse_datetime

TEST_USER = "user-1"
TEST_EMAIL = "lifter@example.com"


class Clock:
    """Controllable clock handed to SQLiteStorage as ``now_fn``."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current

    def iso(self, **offset) -> str:
        """ISO string for now plus an optional offset."""
        return isoformat(self.current + timedelta(**offset))


class FakeRemoteStore:
    """In-memory RemoteStore that records every call.

    ``fail(operation, table)`` makes the next matching calls raise.
    Setting ``gate`` to an ``asyncio.Event`` holds upserts until it is set;
    ``upsert_started`` is set as soon as an upsert begins waiting.
    """

    def __init__(self):
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {
            EXERCISES: {},
            SESSIONS: {},
            ENTRIES: {},
        }
        self.upserts: List[Tuple[str, List[str]]] = []
        self.deletes: List[Tuple[str, List[str]]] = []
        self.selects: List[Tuple[str, Optional[str]]] = []
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.gate: Optional[asyncio.Event] = None
        self.upsert_started = asyncio.Event()

    def fail(self, operation: str, table: str, exc: Optional[Exception] = None) -> None:
        self.failures[(operation, table)] = exc or RemoteStoreError(table, operation, "boom")

    def heal(self) -> None:
        self.failures.clear()

    def seed(self, table: str, row: Dict[str, Any]) -> None:
        """Place a row on the remote side without recording a call."""
        self.tables[table][row["id"]] = dict(row)

    def _maybe_fail(self, operation: str, table: str) -> None:
        exc = self.failures.get((operation, table))
        if exc is not None:
            raise exc

    async def upsert(self, table: str, rows: List[Dict[str, Any]]) -> None:
        self.upsert_started.set()
        if self.gate is not None:
            await self.gate.wait()
        self._maybe_fail("upsert", table)
        for row in rows:
            self.tables[table][row["id"]] = dict(row)
        self.upserts.append((table, [row["id"] for row in rows]))

    async def select_since(self, table: str, since: Optional[str]) -> List[Dict[str, Any]]:
        self.selects.append((table, since))
        self._maybe_fail("select", table)
        rows = [dict(row) for row in self.tables[table].values()]
        if since is None:
            return rows
        cutoff = parse_datetime(since)
        return [
            row
            for row in rows
            if row.get("updated_at") and parse_datetime(row["updated_at"]) > cutoff
        ]

    async def delete(self, table: str, ids: List[str]) -> None:
        self._maybe_fail("delete", table)
        for record_id in ids:
            self.tables[table].pop(record_id, None)
        self.deletes.append((table, list(ids)))

    def upserted_ids(self, table: str) -> List[str]:
        return [record_id for t, ids in self.upserts if t == table for record_id in ids]


class FakeInterpreter:
    """Interpreter answering from a script keyed by raw input.

    A scripted value may be an ``InterpretationResult`` or an exception to
    raise. Unscripted input fails.
    """

    def __init__(self, script: Optional[Dict[str, Any]] = None):
        self.script: Dict[str, Any] = dict(script or {})
        self.calls: List[str] = []

    async def interpret(self, raw_input: str) -> InterpretationResult:
        self.calls.append(raw_input)
        answer = self.script.get(raw_input)
        if answer is None:
            return InterpretationResult(success=False, error=f"Could not parse {raw_input!r}")
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.fixture(autouse=True)
def utc_local_time(monkeypatch):
    """Pin local time to UTC so calendar days and session names are stable."""
    if not hasattr(time, "tzset"):
        yield
        return
    monkeypatch.setenv("TZ", "UTC")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


@pytest.fixture
def clock():
    """Clock pinned to mid-morning UTC."""
    return Clock(datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def storage(temp_db, clock):
    """Create a SQLiteStorage instance driven by the test clock."""
    storage = SQLiteStorage(temp_db, now_fn=clock)
    yield storage
    storage.close()


@pytest.fixture
def sessions(storage):
    return SessionManager(storage)


@pytest.fixture
def entries(storage):
    return EntryManager(storage)


@pytest.fixture
def bench(storage):
    """The bench press exercise."""
    return resolve_exercise(storage, "Bench Press")


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def interpreter():
    return FakeInterpreter()


@pytest.fixture
def auth_state():
    """Auth state already signed in as the test user."""
    return AuthState(TEST_USER, TEST_EMAIL)


@pytest.fixture
def signed_out():
    return AuthState()


@pytest.fixture
def clean_settings(tmp_path, monkeypatch):
    """Isolate Settings from the developer's environment."""
    for var in (
        "FINISHSTRONG_SUPABASE_URL",
        "FINISHSTRONG_SUPABASE_KEY",
        "FINISHSTRONG_INTERPRETER_URL",
        "FINISHSTRONG_DB_PATH",
        "FINISHSTRONG_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("FINISHSTRONG_HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield tmp_path / "home"
    get_settings.cache_clear()
