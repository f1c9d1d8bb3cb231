"""Entry operations: create, edit, delete.

Every write here goes through the store's dirty-marking path so the change
is picked up by the next push.
"""

import logging
from typing import Any, Dict, List, Optional

from finishstrong.types import VALID_UNIT_VALUES, Entry, generate_id

from .schema import ENTRIES, SESSIONS
from .sqlite import SQLiteStorage

logger = logging.getLogger(__name__)

UPDATABLE_ENTRY_FIELDS = frozenset({"weight", "unit", "reps", "sets", "notes"})


class EntryManager:
    """Entry reads and writes against the local store."""

    def __init__(self, storage: SQLiteStorage):
        self._storage = storage

    def get_entry(self, entry_id: str) -> Optional[Entry]:
        return self._storage.get(ENTRIES, entry_id)

    def list_entries(self, session_id: Optional[str] = None) -> List[Entry]:
        where = {"session_id": session_id} if session_id else None
        return self._storage.find(ENTRIES, where=where, order_by="created_at")

    def create_entry(
        self,
        exercise_id: str,
        session_id: str,
        *,
        weight: Optional[float] = None,
        unit: Optional[str] = None,
        reps: Optional[int] = None,
        sets: Optional[int] = None,
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Entry:
        """Insert a new dirty entry.

        Raises:
            ValueError: If the session does not exist or the weight/unit
                pair is inconsistent.
        """
        self._require_session(session_id)
        entry = self._build_entry(
            exercise_id,
            session_id,
            weight=weight,
            unit=unit,
            reps=reps,
            sets=sets,
            notes=notes,
            user_id=user_id,
            stamp=self._storage.timestamp(),
        )
        self._storage.insert(ENTRIES, entry)
        return entry

    def create_entries(
        self,
        session_id: str,
        specs: List[Dict[str, Any]],
        user_id: Optional[str] = None,
    ) -> List[Entry]:
        """Insert several entries into one session in a single transaction.

        Each spec holds ``exercise_id`` plus any of weight, unit, reps, sets
        and notes. Every spec is checked before anything is written, so a bad
        one leaves the store untouched.
        """
        self._require_session(session_id)
        stamp = self._storage.timestamp()
        created = [
            self._build_entry(
                spec["exercise_id"],
                session_id,
                weight=spec.get("weight"),
                unit=spec.get("unit"),
                reps=spec.get("reps"),
                sets=spec.get("sets"),
                notes=spec.get("notes"),
                user_id=user_id,
                stamp=stamp,
            )
            for spec in specs
        ]
        self._storage.bulk_insert(ENTRIES, created)
        return created

    def _require_session(self, session_id: str) -> None:
        if self._storage.get(SESSIONS, session_id) is None:
            raise ValueError(f"Session {session_id} does not exist")

    def _build_entry(
        self,
        exercise_id: str,
        session_id: str,
        *,
        weight: Optional[float],
        unit: Optional[str],
        reps: Optional[int],
        sets: Optional[int],
        notes: Optional[str],
        user_id: Optional[str],
        stamp: str,
    ) -> Entry:
        weight, unit = _check_weight_unit(weight, unit)
        return Entry(
            id=generate_id(),
            exercise_id=exercise_id,
            session_id=session_id,
            weight=weight,
            unit=unit,
            reps=reps,
            sets=sets,
            notes=notes,
            created_at=stamp,
            updated_at=stamp,
            synced=False,
            user_id=user_id,
        )

    def update_entry(self, entry_id: str, **fields: Any) -> bool:
        """Patch weight, unit, reps, sets or notes on an entry.

        Returns False if the entry does not exist.

        Raises:
            ValueError: For unknown fields or an inconsistent weight/unit pair.
        """
        unknown = set(fields) - UPDATABLE_ENTRY_FIELDS
        if unknown:
            raise ValueError(f"Cannot update entry field(s): {', '.join(sorted(unknown))}")
        if not fields:
            return False

        changes: Dict[str, Any] = dict(fields)
        if "weight" in changes or "unit" in changes:
            current = self.get_entry(entry_id)
            if current is None:
                return False
            weight = changes.get("weight", current.weight)
            unit = changes.get("unit", current.unit)
            if "weight" in changes and changes["weight"] is None and "unit" not in changes:
                unit = None
            changes["weight"], changes["unit"] = _check_weight_unit(weight, unit)

        return self._storage.mark_dirty(ENTRIES, entry_id, changes)

    def delete_entry(self, entry_id: str) -> bool:
        """Delete an entry locally and queue its remote delete."""
        removed = self._storage.delete_with_tombstones([(ENTRIES, [entry_id])])
        return removed > 0


def _check_weight_unit(weight: Optional[float], unit: Optional[str]):
    """Weight and unit are both set or both null (bodyweight)."""
    if unit is not None and unit not in VALID_UNIT_VALUES:
        raise ValueError(f"Unit must be one of {sorted(VALID_UNIT_VALUES)} or None, got {unit!r}")
    if weight is None:
        if unit is not None:
            raise ValueError("Unit given without a weight")
        return None, None
    if unit is None:
        raise ValueError("Weight given without a unit")
    return weight, unit
