"""Tests for the FinishStrong facade and the Supabase remote store adapter.

Tests:
- Logging free text end to end into the local store
- Push/pull through the facade against an in-memory remote
- Claiming offline records when a user signs in
- Missing collaborators raise with a configuration hint
- SupabaseRemoteStore query building and error wrapping
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from postgrest.exceptions import APIError

from finishstrong import FinishStrong
from finishstrong.protocols import FinishStrongError, RemoteStoreError
from finishstrong.storage.remote import SupabaseRemoteStore, create_supabase_client
from finishstrong.storage.schema import ENTRIES, EXERCISES, SESSIONS
from finishstrong.types import InterpretationResult, Observation, QueueStatus

BENCH = InterpretationResult(
    success=True,
    data=[Observation(exercise="bench press", weight=80, unit="kg", reps=5, sets=3)],
)


@pytest.fixture
def fs(storage, remote, interpreter, auth_state):
    interpreter.script["bench 80kg 5x3"] = BENCH
    return FinishStrong(
        storage,
        remote=remote,
        interpreter=interpreter,
        auth_state=auth_state,
        auto_push=False,
    )


class TestLogging:
    @pytest.mark.asyncio
    async def test_log_creates_entry_in_active_session(self, fs):
        item, result = await fs.log("bench 80kg 5x3")

        assert item.status == QueueStatus.PARSED.value
        assert result.processed == 1
        session = fs.active_session()
        [entry] = fs.session_entries(session.id)
        assert (entry.weight, entry.unit, entry.reps, entry.sets) == (80, "kg", 5, 3)
        assert entry.user_id == fs.auth_state.user_id

    @pytest.mark.asyncio
    async def test_failed_log_reports_error(self, fs):
        item, result = await fs.log("qwerty")

        assert item.status == QueueStatus.FAILED.value
        assert item.error
        assert result.failed == 1
        assert fs.queue_items(status=QueueStatus.FAILED.value)[0].id == item.id

    @pytest.mark.asyncio
    async def test_end_active_session(self, fs):
        await fs.log("bench 80kg 5x3")

        assert fs.end_session() is True
        assert fs.active_session() is None
        assert fs.end_session() is False

    def test_status(self, fs, storage):
        fs.seed()
        fs.enqueue("bench 80kg 5x3")

        status = fs.status()

        assert status["user_id"] == fs.auth_state.user_id
        assert status["counts"][EXERCISES] == 30
        assert status["queue"][QueueStatus.PENDING.value] == 1
        assert status["sync"]["authenticated"] is True
        assert status["db_path"] == str(storage.db_path)


class TestSync:
    @pytest.mark.asyncio
    async def test_push_sends_logged_workout(self, fs, remote):
        await fs.log("bench 80kg 5x3")

        result = await fs.push()

        assert len(result.sessions) == 1
        assert len(result.entries) == 1
        assert remote.upserted_ids(SESSIONS) == result.sessions
        assert fs.status()["sync"]["dirty_entries"] == 0

    @pytest.mark.asyncio
    async def test_sync_pushes_then_pulls(self, fs, remote):
        await fs.log("bench 80kg 5x3")

        pushed, pulled = await fs.sync()

        assert pushed.total >= 2
        assert not pulled.skipped
        assert fs.sync_engine.get_last_pull() == pulled.cursor

    @pytest.mark.asyncio
    async def test_auto_push_schedules_after_logging(self, storage, remote, interpreter, auth_state):
        interpreter.script["bench 80kg 5x3"] = BENCH
        fs = FinishStrong(
            storage,
            remote=remote,
            interpreter=interpreter,
            auth_state=auth_state,
            debounce_seconds=60,
        )

        await fs.log("bench 80kg 5x3")

        assert fs.sync_engine.is_push_scheduled
        await fs.aclose()
        assert not fs.sync_engine.is_push_scheduled
        assert remote.upserts == []


class TestAssociationOnSignIn:
    @pytest.mark.asyncio
    async def test_offline_records_claimed_and_pushed(self, storage, remote, interpreter, signed_out):
        interpreter.script["bench 80kg 5x3"] = BENCH
        fs = FinishStrong(
            storage, remote=remote, interpreter=interpreter, auth_state=signed_out, auto_push=False
        )
        await fs.log("bench 80kg 5x3")
        assert (await fs.push()).is_empty

        signed_out.set_user("user-9", "nine@example.com")

        [entry] = fs.entries.list_entries()
        assert entry.user_id == "user-9"
        assert fs.active_session().user_id == "user-9"
        result = await fs.push()
        assert result.entries == [entry.id]
        assert remote.tables[ENTRIES][entry.id]["user_id"] == "user-9"

    @pytest.mark.asyncio
    async def test_aclose_detaches_association(self, fs, storage, sessions):
        await fs.aclose()
        session = sessions.create_session("2026-03-14")

        fs.auth_state.set_user("someone-new")

        assert sessions.get_session(session.id).user_id is None


class TestMissingCollaborators:
    @pytest.mark.asyncio
    async def test_logging_needs_interpreter(self, storage):
        fs = FinishStrong(storage)

        with pytest.raises(FinishStrongError, match="FINISHSTRONG_INTERPRETER_URL"):
            await fs.log("bench")
        assert fs.queue is None

    @pytest.mark.asyncio
    async def test_sync_needs_remote(self, storage):
        fs = FinishStrong(storage)

        with pytest.raises(FinishStrongError, match="FINISHSTRONG_SUPABASE_URL"):
            await fs.push()
        assert fs.status()["sync"] is None

    @pytest.mark.asyncio
    async def test_from_settings_local_only(self, clean_settings):
        async with await FinishStrong.from_settings() as fs:
            assert fs.remote is None
            assert fs.interpreter is None
            assert fs.storage.db_path == clean_settings / "finishstrong.db"


def query_chain(result=None, error=None):
    """MagicMock standing in for a postgrest request builder."""
    query = MagicMock()
    for name in ("select", "upsert", "delete", "gt", "order", "range", "in_"):
        getattr(query, name).return_value = query
    if error is not None:
        query.execute = AsyncMock(side_effect=error)
    else:
        query.execute = AsyncMock(return_value=MagicMock(data=result or []))
    return query


def supabase_client(query):
    client = MagicMock()
    client.table.return_value = query
    return client


class TestSupabaseRemoteStore:
    @pytest.mark.asyncio
    async def test_upsert_on_id(self):
        query = query_chain()
        store = SupabaseRemoteStore(supabase_client(query))

        await store.upsert(SESSIONS, [{"id": "s1"}])

        store.client.table.assert_called_once_with("sessions")
        query.upsert.assert_called_once_with([{"id": "s1"}], on_conflict="id")
        query.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_empty_writes_skip_network(self):
        query = query_chain()
        store = SupabaseRemoteStore(supabase_client(query))

        await store.upsert(ENTRIES, [])
        await store.delete(ENTRIES, [])

        query.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_select_since_filters_and_orders(self):
        query = query_chain(result=[{"id": "e1"}])
        store = SupabaseRemoteStore(supabase_client(query))

        rows = await store.select_since(ENTRIES, "2026-03-14T09:30:00+00:00")

        assert rows == [{"id": "e1"}]
        query.gt.assert_called_once_with("updated_at", "2026-03-14T09:30:00+00:00")
        query.range.assert_called_once_with(0, 999)

    @pytest.mark.asyncio
    async def test_full_select_has_no_filter(self):
        query = query_chain()
        store = SupabaseRemoteStore(supabase_client(query))

        await store.select_since(EXERCISES, None)

        query.gt.assert_not_called()

    @pytest.mark.asyncio
    async def test_select_pages_until_short_page(self):
        query = query_chain()
        query.execute = AsyncMock(
            side_effect=[
                MagicMock(data=[{"id": "a"}, {"id": "b"}]),
                MagicMock(data=[{"id": "c"}]),
            ]
        )
        store = SupabaseRemoteStore(supabase_client(query), page_size=2)

        rows = await store.select_since(SESSIONS, None)

        assert [r["id"] for r in rows] == ["a", "b", "c"]
        assert [c.args for c in query.range.call_args_list] == [(0, 1), (2, 3)]

    @pytest.mark.asyncio
    async def test_delete_by_ids(self):
        query = query_chain()
        store = SupabaseRemoteStore(supabase_client(query))

        await store.delete(ENTRIES, ["e1", "e2"])

        query.in_.assert_called_once_with("id", ["e1", "e2"])

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            APIError({"message": "permission denied", "code": "42501"}),
            httpx.ConnectError("offline"),
        ],
    )
    async def test_errors_wrapped(self, error):
        store = SupabaseRemoteStore(supabase_client(query_chain(error=error)))

        with pytest.raises(RemoteStoreError):
            await store.upsert(SESSIONS, [{"id": "s1"}])

    @pytest.mark.asyncio
    async def test_unreplicated_table_rejected(self):
        store = SupabaseRemoteStore(supabase_client(query_chain()))

        with pytest.raises(ValueError):
            await store.select_since("parse_queue", None)

    @pytest.mark.asyncio
    async def test_client_requires_url_and_key(self):
        with pytest.raises(ValueError):
            await create_supabase_client("", "key")
