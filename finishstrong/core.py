"""
FinishStrong - offline-first workout logging.

The ``FinishStrong`` class wires the local store, session and entry
managers, ingestion queue, sync engine and auth into one object. Every
write lands locally first; replication is a side effect that never blocks
or fails a local write.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from finishstrong.association import association_listener
from finishstrong.auth import AuthState, SupabaseAuth
from finishstrong.config import Settings, get_settings
from finishstrong.ingestion import IngestionQueue
from finishstrong.interpreter import HttpInterpreter
from finishstrong.protocols import FinishStrongError, Interpreter, RemoteStore
from finishstrong.storage.entries import EntryManager
from finishstrong.storage.exercises import seed_exercises
from finishstrong.storage.remote import SupabaseRemoteStore, create_supabase_client
from finishstrong.storage.schema import PARSE_QUEUE
from finishstrong.storage.sessions import DEFAULT_STALE_AFTER, SessionManager
from finishstrong.storage.sqlite import SQLiteStorage
from finishstrong.storage.sync_engine import DEFAULT_DEBOUNCE_SECONDS, SyncEngine
from finishstrong.types import (
    DrainResult,
    Entry,
    PullResult,
    PushResult,
    QueueItem,
    QueueStatus,
    Session,
)

logger = logging.getLogger(__name__)


class FinishStrong:
    """Main interface for logging workouts and keeping them in sync.

    Args:
        storage: The local store.
        remote: Remote store for replication. Without one, push/pull raise.
        interpreter: Free-text interpreter. Without one, logging raises.
        auth_state: Signed-in identity; a signed-out state is created if None.
        auth: Optional ``SupabaseAuth`` for sign-in/sign-out.
        debounce_seconds: Quiet period before an automatic push.
        stale_after: Inactivity gap after which a session is rotated.
        auto_push: Schedule a debounced push after every dirtying write.
    """

    def __init__(
        self,
        storage: SQLiteStorage,
        remote: Optional[RemoteStore] = None,
        interpreter: Optional[Interpreter] = None,
        auth_state: Optional[AuthState] = None,
        auth: Optional[SupabaseAuth] = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        auto_push: bool = True,
    ):
        self.storage = storage
        self.auth_state = auth_state or AuthState()
        self.auth = auth
        self.remote = remote
        self.interpreter = interpreter

        self.sessions = SessionManager(storage, stale_after=stale_after)
        self.entries = EntryManager(storage)

        self.sync_engine: Optional[SyncEngine] = None
        if remote is not None:
            self.sync_engine = SyncEngine(
                storage,
                remote,
                self.auth_state.is_authenticated,
                debounce_seconds=debounce_seconds,
                auto_push=auto_push,
            )

        self.queue: Optional[IngestionQueue] = None
        if interpreter is not None:
            self.queue = IngestionQueue(
                storage,
                self.sessions,
                self.entries,
                interpreter,
                sync_engine=self.sync_engine,
                user_id_fn=lambda: self.auth_state.user_id,
            )

        self._association_listener = association_listener(storage)
        self.auth_state.add_listener(self._association_listener)

        logger.debug(
            f"FinishStrong initialized with db {storage.db_path}, "
            f"remote: {remote is not None}, interpreter: {interpreter is not None}"
        )

    @classmethod
    async def from_settings(cls, settings: Optional[Settings] = None) -> "FinishStrong":
        """Build every component from configuration and restore any saved session."""
        settings = settings or get_settings()
        storage = SQLiteStorage(settings.resolve_db_path())
        auth_state = AuthState()

        remote = None
        auth = None
        if settings.remote_configured:
            client = await create_supabase_client(settings.supabase_url, settings.supabase_key)
            remote = SupabaseRemoteStore(client)
            auth = SupabaseAuth(client, auth_state, settings.credentials_path)

        interpreter = None
        if settings.interpreter_url:
            interpreter = HttpInterpreter(
                settings.interpreter_url, timeout=settings.interpreter_timeout
            )

        instance = cls(
            storage,
            remote=remote,
            interpreter=interpreter,
            auth_state=auth_state,
            auth=auth,
            debounce_seconds=settings.debounce_seconds,
            stale_after=timedelta(hours=settings.stale_after_hours),
        )
        if auth is not None:
            await auth.restore()
        return instance

    async def __aenter__(self) -> "FinishStrong":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # === Requirements ===

    def _require_queue(self) -> IngestionQueue:
        if self.queue is None:
            raise FinishStrongError(
                "No interpreter configured; set FINISHSTRONG_INTERPRETER_URL"
            )
        return self.queue

    def _require_sync(self) -> SyncEngine:
        if self.sync_engine is None:
            raise FinishStrongError(
                "Remote sync is not configured; set FINISHSTRONG_SUPABASE_URL "
                "and FINISHSTRONG_SUPABASE_KEY"
            )
        return self.sync_engine

    # === Logging Workouts ===

    def enqueue(self, raw_input: str) -> QueueItem:
        return self._require_queue().enqueue(raw_input)

    async def drain(self) -> DrainResult:
        return await self._require_queue().drain_pending()

    async def log(self, raw_input: str) -> Tuple[QueueItem, DrainResult]:
        """Queue free text and drain the queue.

        Returns the item as it stands after the drain, plus the drain counts.
        """
        queue = self._require_queue()
        item = queue.enqueue(raw_input)
        result = await queue.drain_pending()
        return queue.get_item(item.id) or item, result

    def queue_items(self, status: Optional[str] = None, limit: Optional[int] = None) -> List[QueueItem]:
        return self._require_queue().list_items(status=status, limit=limit)

    # === Sync ===

    async def push(self) -> PushResult:
        return await self._require_sync().push()

    async def pull(self) -> PullResult:
        return await self._require_sync().pull()

    async def sync(self) -> Tuple[PushResult, PullResult]:
        return await self._require_sync().sync()

    # === Sessions ===

    def active_session(self) -> Optional[Session]:
        """Today's active session, without creating or rotating one."""
        return self.sessions.get_active_session(self.sessions.today())

    def list_sessions(self, date: Optional[str] = None) -> List[Session]:
        return self.sessions.list_sessions(date)

    def session_entries(self, session_id: str) -> List[Entry]:
        return self.sessions.get_session_entries(session_id)

    def end_session(self, session_id: Optional[str] = None) -> bool:
        """End a session, today's active one when no id is given."""
        if session_id is None:
            active = self.active_session()
            if active is None:
                return False
            session_id = active.id
        return self.sessions.end_session(session_id)

    def update_session(self, session_id: str, **fields: Any) -> bool:
        return self.sessions.update_session(session_id, **fields)

    def delete_session(self, session_id: str) -> int:
        return self.sessions.delete_session(session_id)

    # === Entries ===

    def update_entry(self, entry_id: str, **fields: Any) -> bool:
        return self.entries.update_entry(entry_id, **fields)

    def delete_entry(self, entry_id: str) -> bool:
        return self.entries.delete_entry(entry_id)

    # === Maintenance ===

    def seed(self) -> int:
        return seed_exercises(self.storage)

    def status(self) -> Dict[str, Any]:
        """Local counts, queue backlog, identity and sync state."""
        status: Dict[str, Any] = {
            "db_path": str(self.storage.db_path),
            "user_id": self.auth_state.user_id,
            "email": self.auth_state.email,
            "counts": self.storage.get_stats(),
            "queue": {
                state.value: self.storage.count(PARSE_QUEUE, {"status": state.value})
                for state in QueueStatus
            },
            "sync": self.sync_engine.status() if self.sync_engine else None,
        }
        return status

    async def aclose(self) -> None:
        """Cancel any armed push, wait for running ones and close clients."""
        self.auth_state.remove_listener(self._association_listener)
        if self.sync_engine is not None:
            await self.sync_engine.aclose()
        if isinstance(self.interpreter, HttpInterpreter):
            await self.interpreter.aclose()
        self.storage.close()
