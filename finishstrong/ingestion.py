"""Ingestion queue: free text in, entries out.

Submissions are stored as ``pending`` queue items and interpreted later by
``drain_pending``. Each item ends up ``parsed`` (its observations committed
as entries in the day's active session) or ``failed`` (with a readable
error). One bad item never stops the rest of a drain.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from finishstrong.protocols import Interpreter
from finishstrong.storage.entries import EntryManager
from finishstrong.storage.exercises import resolve_exercise
from finishstrong.storage.schema import PARSE_QUEUE
from finishstrong.storage.sessions import SessionManager
from finishstrong.storage.sqlite import SQLiteStorage
from finishstrong.storage.sync_engine import SyncEngine
from finishstrong.types import (
    DrainResult,
    Entry,
    Observation,
    QueueItem,
    QueueStatus,
    Unit,
    generate_id,
)
from finishstrong.validation import validate_observation, validate_raw_input

logger = logging.getLogger(__name__)


class IngestionQueue:
    """Durable queue of raw submissions awaiting interpretation.

    Args:
        storage: The local store.
        sessions: Resolves the active session entries attach to.
        entries: Creates entries.
        interpreter: Any ``Interpreter`` implementation.
        sync_engine: Optional engine whose debounced push is armed after
            each parsed item.
        user_id_fn: Returns the signed-in user id (or None) to stamp on new
            sessions and entries.
    """

    def __init__(
        self,
        storage: SQLiteStorage,
        sessions: SessionManager,
        entries: EntryManager,
        interpreter: Interpreter,
        sync_engine: Optional[SyncEngine] = None,
        user_id_fn: Optional[Callable[[], Optional[str]]] = None,
    ):
        self._storage = storage
        self._sessions = sessions
        self._entries = entries
        self._interpreter = interpreter
        self._sync_engine = sync_engine
        self._user_id_fn = user_id_fn
        self._draining = False

    @property
    def is_draining(self) -> bool:
        return self._draining

    # === Queue Items ===

    def enqueue(self, raw_input: str) -> QueueItem:
        """Append a pending item. Interpretation happens on the next drain."""
        if not isinstance(raw_input, str):
            raise ValueError("Input is required")
        item = QueueItem(
            id=generate_id(),
            raw_input=raw_input,
            status=QueueStatus.PENDING.value,
            created_at=self._storage.timestamp(),
        )
        self._storage.insert(PARSE_QUEUE, item)
        logger.debug(f"Queued {item.id}")
        return item

    def get_item(self, item_id: str) -> Optional[QueueItem]:
        return self._storage.get(PARSE_QUEUE, item_id)

    def get_pending(self) -> List[QueueItem]:
        """Pending items in enqueue order."""
        return self._storage.find(
            PARSE_QUEUE, where={"status": QueueStatus.PENDING.value}, order_by="created_at"
        )

    def list_items(self, status: Optional[str] = None, limit: Optional[int] = None) -> List[QueueItem]:
        where = {"status": status} if status else None
        return self._storage.find(
            PARSE_QUEUE, where=where, order_by="created_at", descending=True, limit=limit
        )

    def mark_parsed(self, item_id: str) -> bool:
        return self._storage.update(
            PARSE_QUEUE,
            item_id,
            {
                "status": QueueStatus.PARSED.value,
                "processed_at": self._storage.timestamp(),
                "error": None,
            },
        )

    def mark_failed(self, item_id: str, error: str) -> bool:
        return self._storage.update(
            PARSE_QUEUE,
            item_id,
            {
                "status": QueueStatus.FAILED.value,
                "processed_at": self._storage.timestamp(),
                "error": error or "Unknown error",
            },
        )

    # === Drain ===

    async def drain_pending(self) -> DrainResult:
        """Interpret and commit every pending item, oldest first.

        Single-flight: a call made while a drain is running returns a zero
        result immediately.
        """
        if self._draining:
            logger.debug("Drain already in progress, skipping")
            return DrainResult()

        self._draining = True
        try:
            result = DrainResult()
            for item in self.get_pending():
                try:
                    committed = await self._process_item(item)
                except Exception as e:
                    logger.warning(f"Queue item {item.id} failed: {e}", exc_info=True)
                    self.mark_failed(item.id, str(e) or type(e).__name__)
                    committed = False
                if committed:
                    result.processed += 1
                else:
                    result.failed += 1
        finally:
            self._draining = False

        if result.processed or result.failed:
            logger.info(f"Drain complete: {result.processed} parsed, {result.failed} failed")
        return result

    async def _process_item(self, item: QueueItem) -> bool:
        """Interpret one item and commit its observations.

        Returns False after recording a failure the interpreter reported or
        an observation that fails validation.
        """
        try:
            raw_input = validate_raw_input(item.raw_input)
        except ValueError as e:
            logger.warning(f"Queue item {item.id} rejected: {e}")
            self.mark_failed(item.id, str(e))
            return False

        interpretation = await self._interpreter.interpret(raw_input)
        if not interpretation.success:
            error = interpretation.error or "Failed to parse"
            logger.warning(f"Queue item {item.id} could not be interpreted: {error}")
            self.mark_failed(item.id, error)
            return False

        if interpretation.data:
            try:
                specs = _entry_specs(interpretation.data)
            except ValueError as e:
                logger.warning(f"Queue item {item.id} rejected: {e}")
                self.mark_failed(item.id, str(e))
                return False
            self._commit(specs)
        else:
            logger.debug(f"Queue item {item.id} produced no observations")

        self.mark_parsed(item.id)
        if self._sync_engine is not None:
            self._sync_engine.schedule_push()
        return True

    def _commit(self, specs: List[Dict[str, Any]]) -> List[Entry]:
        """Write checked observations as entries in the day's active session."""
        user_id = self._user_id_fn() if self._user_id_fn else None
        session = self._sessions.get_or_create_active_session(self._sessions.today(), user_id)
        for spec in specs:
            spec["exercise_id"] = resolve_exercise(self._storage, spec.pop("exercise")).id
        return self._entries.create_entries(session.id, specs, user_id=user_id)


def _entry_specs(observations: List[Observation]) -> List[Dict[str, Any]]:
    """Validate every observation and fill in unit and set defaults.

    Raises:
        ValueError: On the first invalid observation; nothing is written.
    """
    specs = []
    for index, raw in enumerate(observations, start=1):
        observation = validate_observation(raw, index)
        unit = observation.unit
        if observation.weight is None:
            unit = None
        elif unit is None:
            unit = Unit.KG.value
        sets = observation.sets
        if sets is None and observation.reps is not None:
            sets = 1
        specs.append(
            {
                "exercise": observation.exercise,
                "weight": observation.weight,
                "unit": unit,
                "reps": observation.reps,
                "sets": sets,
            }
        )
    return specs
