"""Session lifecycle management.

Decides which session new entries attach to. Per calendar day:

    none   --create_session-------------------------> active
    active --get_or_create_active_session (stale)---> ended + new active
    active --end_session----------------------------> ended (terminal)

At most one active session per day is kept procedurally here; the store
has no uniqueness constraint for it. A session is stale when its latest
activity (newest entry, or its start when it has none) is more than
``stale_after`` old.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from finishstrong.types import Entry, Session, generate_id, parse_datetime
from finishstrong.utils import get_auto_session_name, local_date

from .schema import ENTRIES, SESSIONS
from .sqlite import SQLiteStorage

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = timedelta(hours=2)

UPDATABLE_SESSION_FIELDS = frozenset({"name", "date", "notes"})

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class SessionManager:
    """Creates, rotates, ends, edits and deletes sessions.

    Args:
        storage: The local store.
        stale_after: Inactivity gap after which an active session is rotated.
    """

    def __init__(self, storage: SQLiteStorage, stale_after: timedelta = DEFAULT_STALE_AFTER):
        self._storage = storage
        self.stale_after = stale_after

    def today(self) -> str:
        """Local calendar day for the store's clock."""
        return local_date(self._storage.now())

    # === Lookup ===

    def get_session(self, session_id: str) -> Optional[Session]:
        return self._storage.get(SESSIONS, session_id)

    def get_active_session(self, date: str) -> Optional[Session]:
        """The active (not ended) session for a day, if any."""
        return self._storage.first(
            SESSIONS,
            where={"date": date, "ended_at": None},
            order_by="started_at",
            descending=True,
        )

    def list_sessions(self, date: Optional[str] = None) -> List[Session]:
        where = {"date": date} if date else None
        return self._storage.find(SESSIONS, where=where, order_by="started_at")

    def get_session_entries(self, session_id: str) -> List[Entry]:
        return self._storage.find(ENTRIES, where={"session_id": session_id}, order_by="created_at")

    # === Lifecycle ===

    def create_session(self, date: str, user_id: Optional[str] = None) -> Session:
        """Start a new active session on ``date``, named for the time of day."""
        now = self._storage.now()
        stamp = self._storage.timestamp()
        session = Session(
            id=generate_id(),
            name=get_auto_session_name(now),
            date=date,
            started_at=stamp,
            ended_at=None,
            created_at=stamp,
            updated_at=stamp,
            synced=False,
            user_id=user_id,
        )
        self._storage.insert(SESSIONS, session)
        logger.debug(f"Created session {session.id} ({session.name}) for {date}")
        return session

    def last_activity(self, session: Session) -> Optional[datetime]:
        """Creation time of the newest entry, or the session start if it has none."""
        latest = self._storage.latest_child(ENTRIES, "session_id", session.id)
        if latest is not None:
            return parse_datetime(latest.created_at)
        return parse_datetime(session.started_at)

    def is_session_stale(self, session: Session, now: Optional[datetime] = None) -> bool:
        """True when the session has been idle for longer than ``stale_after``."""
        last = self.last_activity(session)
        if last is None:
            return False
        moment = now or self._storage.now()
        return moment - last > self.stale_after

    def get_or_create_active_session(self, date: str, user_id: Optional[str] = None) -> Session:
        """Return the live session for ``date``, rotating it out if stale.

        A stale session is ended and a brand-new one is created for the same
        day; a fresh session is returned unchanged.
        """
        existing = self.get_active_session(date)
        if existing is None:
            return self.create_session(date, user_id)

        if not self.is_session_stale(existing):
            return existing

        logger.warning(
            f"Session {existing.id} idle for more than {self.stale_after}, starting a new one"
        )
        self.end_session(existing.id)
        return self.create_session(date, user_id)

    def end_session(self, session_id: str) -> bool:
        """Mark a session as ended.

        Returns False if the session does not exist or has already ended.
        """
        session = self.get_session(session_id)
        if session is None or session.ended_at is not None:
            return False
        return self._storage.mark_dirty(SESSIONS, session_id, {"ended_at": self._storage.timestamp()})

    # === Edits ===

    def update_session(self, session_id: str, **fields: Any) -> bool:
        """Patch ``name``, ``date`` or ``notes`` on any session, active or ended.

        Raises:
            ValueError: For unknown fields or a malformed date.
        """
        unknown = set(fields) - UPDATABLE_SESSION_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session field(s): {', '.join(sorted(unknown))}")
        if not fields:
            return False

        changes: Dict[str, Any] = dict(fields)
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValueError("Session name cannot be empty")
        if "date" in changes and not _DATE_RE.match(changes["date"] or ""):
            raise ValueError(f"Session date must be YYYY-MM-DD, got {changes['date']!r}")

        return self._storage.mark_dirty(SESSIONS, session_id, changes)

    def delete_session(self, session_id: str) -> int:
        """Delete a session and every entry that references it.

        Entries go first, then the session, in one transaction; both are
        tombstoned for the remote store.

        Returns:
            Number of entries removed with the session.
        """
        entry_ids = [
            entry.id for entry in self._storage.find(ENTRIES, where={"session_id": session_id})
        ]
        removed = self._storage.delete_with_tombstones(
            [(ENTRIES, entry_ids), (SESSIONS, [session_id])]
        )
        if removed:
            logger.debug(f"Deleted session {session_id} with {len(entry_ids)} entries")
        return len(entry_ids)
