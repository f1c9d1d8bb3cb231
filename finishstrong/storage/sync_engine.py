"""Sync engine for finishstrong storage.

SyncEngine replicates the local store to the remote store and back:

- push: exercises (in full), dirty sessions, dirty entries, then pending
  remote deletes, each phase confirmed before its local flags are cleared;
  a rejected exercise push merges the remote catalogue and retries once
- debounced push: dirtying writes arm a cancellable timer; a write inside
  the quiet period re-arms it
- pull: everything changed remotely since the persisted cursor, merged
  last-writer-wins by ``updated_at``

Push and pull are each single-flight per engine instance. They are not
exclusive of each other; a push racing a pull on the same record settles
on the next pull through the timestamp comparison.

Clock skew between devices is not corrected. When two offline devices edit
the same record, the edit with the later device clock wins.
"""

import asyncio
import contextlib
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from finishstrong.protocols import RemoteStore, RemoteStoreError
from finishstrong.types import Exercise, PullResult, PushResult, parse_datetime

from .exercises import get_exercise_by_name
from .schema import ENTRIES, EXERCISES, SESSIONS
from .serializers import FROM_WIRE, TO_WIRE, exercise_from_wire
from .sqlite import SQLiteStorage

logger = logging.getLogger(__name__)

# sync_meta key holding the pull high-water mark
LAST_PULL_KEY = "last_pull"

DEFAULT_DEBOUNCE_SECONDS = 2.0

# Later phases reference ids established by earlier ones
PUSH_PHASES: Tuple[str, ...] = (SESSIONS, ENTRIES)
PULL_ORDER: Tuple[str, ...] = (EXERCISES, SESSIONS, ENTRIES)
# Dependents are deleted remotely before their parents
DELETE_ORDER: Tuple[str, ...] = (ENTRIES, SESSIONS)

# Merge outcomes for a single pulled row
APPLIED = "applied"
KEPT_LOCAL = "kept_local"
SKIPPED = "skipped"


class SyncEngine:
    """Push/pull replication between the local store and a remote store.

    Args:
        storage: The local store.
        remote: Any ``RemoteStore`` implementation.
        is_authenticated: Returns True while a user is signed in. Push and
            pull are no-ops otherwise.
        debounce_seconds: Quiet period before a scheduled push runs.
        auto_push: Register for dirty-write notifications so every dirtying
            write schedules a debounced push.
    """

    def __init__(
        self,
        storage: SQLiteStorage,
        remote: RemoteStore,
        is_authenticated: Callable[[], bool],
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        auto_push: bool = True,
    ):
        self._storage = storage
        self._remote = remote
        self._is_authenticated = is_authenticated
        self.debounce_seconds = debounce_seconds

        self._push_in_flight = False
        self._pull_in_flight = False
        self._timer: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()

        if auto_push:
            storage.add_dirty_listener(self.schedule_push)

    # === State ===

    @property
    def push_in_flight(self) -> bool:
        return self._push_in_flight

    @property
    def pull_in_flight(self) -> bool:
        return self._pull_in_flight

    @property
    def is_push_scheduled(self) -> bool:
        """True while a debounced push is armed and still waiting."""
        return self._timer is not None and not self._timer.done()

    def get_last_pull(self) -> Optional[str]:
        return self._storage.get_sync_meta(LAST_PULL_KEY)

    def status(self) -> Dict[str, Any]:
        """Snapshot of outstanding sync work."""
        return {
            "authenticated": bool(self._is_authenticated()),
            "dirty_sessions": self._storage.count(SESSIONS, {"synced": False}),
            "dirty_entries": self._storage.count(ENTRIES, {"synced": False}),
            "pending_deletes": self._storage.count_pending_deletes(),
            "last_pull": self.get_last_pull(),
            "push_scheduled": self.is_push_scheduled,
            "push_in_flight": self._push_in_flight,
            "pull_in_flight": self._pull_in_flight,
        }

    # === Push ===

    async def push(self) -> PushResult:
        """Send local changes to the remote store.

        Returns an empty result without touching the remote when a push is
        already running or no user is signed in. Remote errors propagate;
        records whose phase failed stay dirty for the next push.
        """
        if self._push_in_flight:
            logger.debug("Push already in flight, skipping")
            return PushResult()
        if not self._is_authenticated():
            logger.debug("Not signed in, skipping push")
            return PushResult()

        self._push_in_flight = True
        try:
            result = await self._push()
        finally:
            self._push_in_flight = False

        if result.is_empty:
            logger.debug("Push complete, nothing to send")
        else:
            logger.info(
                f"Push complete: {len(result.exercises)} exercises, "
                f"{len(result.sessions)} sessions, {len(result.entries)} entries, "
                f"{len(result.deleted)} deletes"
            )
        return result

    async def _push(self) -> PushResult:
        result = PushResult()

        # Exercises go in full: the set is small and deduplicated remotely by name
        exercises = self._storage.find(EXERCISES, order_by="name")
        if exercises:
            try:
                await self._remote.upsert(EXERCISES, [TO_WIRE[EXERCISES](e) for e in exercises])
            except RemoteStoreError as e:
                logger.warning(f"Exercise push rejected, reconciling with remote catalogue: {e}")
                if not await self._reconcile_exercises():
                    raise
                exercises = self._storage.find(EXERCISES, order_by="name")
                await self._remote.upsert(EXERCISES, [TO_WIRE[EXERCISES](e) for e in exercises])
            result.exercises = [e.id for e in exercises]

        for table in PUSH_PHASES:
            dirty = self._storage.get_dirty(table)
            if not dirty:
                logger.debug(f"No dirty {table} to push")
                continue
            await self._remote.upsert(table, [TO_WIRE[table](record) for record in dirty])
            self._mark_pushed(table, dirty)
            setattr(result, table, [record.id for record in dirty])

        for table in DELETE_ORDER:
            ids = self._storage.get_pending_deletes(table)
            if not ids:
                continue
            await self._remote.delete(table, ids)
            self._storage.clear_pending_deletes(table, ids)
            result.deleted.extend(ids)

        return result

    async def _reconcile_exercises(self) -> int:
        """Merge the full remote catalogue into the local one.

        A name created on another device under a different id is adopted
        here, so the retried exercise push no longer collides. Returns the
        number of local exercises inserted or re-keyed.
        """
        rows = await self._remote.select_since(EXERCISES, None)
        return sum(1 for row in rows if self._merge_exercise(row))

    def _mark_pushed(self, table: str, pushed: Sequence[Any]) -> int:
        """Clear the dirty flag on records the remote confirmed.

        A record rewritten locally while its upsert was awaited carries a
        newer ``updated_at`` than the pushed copy and stays dirty.
        """
        pushed_at = {record.id: record.updated_at for record in pushed}
        current = self._storage.find(table, where={"id": list(pushed_at)})
        confirmed = [r.id for r in current if r.updated_at == pushed_at[r.id]]
        return self._storage.bulk_update(table, confirmed, {"synced": True})

    # === Debounced Push ===

    def schedule_push(self, table: Optional[str] = None) -> None:
        """Arm (or re-arm) the debounced push.

        Registered as the store's dirty listener. Without a running event
        loop there is nothing to schedule on; the change waits for the next
        explicit sync.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running event loop, not scheduling push for {table or 'change'}")
            return

        self.cancel_scheduled_push()
        self._timer = self._track(loop.create_task(self._debounce()))

    def cancel_scheduled_push(self) -> bool:
        """Cancel an armed push that has not started yet."""
        timer = self._timer
        self._timer = None
        if timer is None or timer.done():
            return False
        timer.cancel()
        return True

    async def flush_scheduled_push(self) -> Optional[PushResult]:
        """Run an armed push now instead of waiting out the quiet period.

        Errors are handled as on the timer path. Returns None when nothing
        was armed.
        """
        if not self.cancel_scheduled_push():
            return None
        return await self._run_debounced_push()

    async def _debounce(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        # Past the quiet period the push is no longer cancellable
        if self._timer is asyncio.current_task():
            self._timer = None
        await self._run_debounced_push()

    async def _run_debounced_push(self) -> Optional[PushResult]:
        try:
            return await self.push()
        except Exception as e:
            logger.error(f"Debounced push failed: {e}", exc_info=True)
            return None

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # === Pull ===

    async def pull(self) -> PullResult:
        """Fetch remote changes since the last successful pull and merge them.

        The cursor is the store's clock at pull start and is only advanced
        when every collection was fetched. A fetch error propagates and the
        next pull retries the same window.
        """
        if self._pull_in_flight:
            logger.debug("Pull already in flight, skipping")
            return PullResult(skipped=True, cursor=self.get_last_pull())
        if not self._is_authenticated():
            logger.debug("Not signed in, skipping pull")
            return PullResult(skipped=True, cursor=self.get_last_pull())

        self._pull_in_flight = True
        try:
            result = await self._pull()
        finally:
            self._pull_in_flight = False

        logger.info(
            f"Pull complete: {result.exercises} exercises, {result.sessions} sessions, "
            f"{result.entries} entries applied, {result.kept_local} kept local"
        )
        return result

    async def _pull(self) -> PullResult:
        started_at = self._storage.timestamp()
        since = self.get_last_pull()
        if since is None:
            logger.debug("No pull cursor, fetching everything")

        result = PullResult()
        for table in PULL_ORDER:
            rows = await self._remote.select_since(table, since)
            if table == EXERCISES:
                result.exercises = sum(1 for row in rows if self._merge_exercise(row))
                continue
            for row in rows:
                outcome = self._merge_row(table, row)
                if outcome == APPLIED:
                    setattr(result, table, getattr(result, table) + 1)
                elif outcome == KEPT_LOCAL:
                    result.kept_local += 1

        self._storage.set_sync_meta(LAST_PULL_KEY, started_at)
        result.cursor = started_at
        return result

    def _merge_row(self, table: str, row: Dict[str, Any]) -> str:
        """Apply one remote session or entry, last writer wins.

        Ties keep the local copy. Records with a pending remote delete are
        never brought back.
        """
        try:
            remote = FROM_WIRE[table](row)
        except (KeyError, TypeError) as e:
            logger.warning(f"Skipping malformed {table} row {row.get('id')}: {e}")
            return SKIPPED

        if self._storage.has_pending_delete(table, remote.id):
            logger.debug(f"Skipping {table}:{remote.id}, deleted locally")
            return SKIPPED

        local = self._storage.get(table, remote.id)
        if local is None:
            self._storage.put(table, remote)
            return APPLIED

        remote_ts = parse_datetime(remote.updated_at)
        local_ts = parse_datetime(local.updated_at)
        if remote_ts is not None and (local_ts is None or remote_ts > local_ts):
            self._storage.put(table, remote)
            return APPLIED
        return KEPT_LOCAL

    def _merge_exercise(self, row: Dict[str, Any]) -> bool:
        """Insert an unknown exercise, or adopt its id for a same-named local one."""
        try:
            remote = exercise_from_wire(row)
        except (KeyError, TypeError) as e:
            logger.warning(f"Skipping malformed exercises row {row.get('id')}: {e}")
            return False

        if self._storage.get(EXERCISES, remote.id) is not None:
            return False

        local = get_exercise_by_name(self._storage, remote.name)
        if local is None:
            self._storage.insert(EXERCISES, remote)
            return True

        self._adopt_exercise_id(local, remote.id)
        return True

    def _adopt_exercise_id(self, local: Exercise, remote_id: str) -> List[str]:
        """Give a local exercise the remote id and repoint its entries."""
        self._storage.rekey(EXERCISES, local.id, remote_id)
        entry_ids = [
            entry.id for entry in self._storage.find(ENTRIES, where={"exercise_id": local.id})
        ]
        if entry_ids:
            self._storage.bulk_mark_dirty(ENTRIES, entry_ids, {"exercise_id": remote_id})
        logger.info(
            f"Exercise '{local.name}' adopted remote id {remote_id}, "
            f"repointed {len(entry_ids)} entries"
        )
        return entry_ids

    # === Sync ===

    async def sync(self) -> Tuple[PushResult, PullResult]:
        """Push, then pull."""
        pushed = await self.push()
        pulled = await self.pull()
        return pushed, pulled

    async def aclose(self) -> None:
        """Stop listening for writes, cancel the timer and wait for running pushes."""
        self._storage.remove_dirty_listener(self.schedule_push)
        self.cancel_scheduled_push()
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
