"""
Shared record types for finishstrong.

All domain dataclasses live here: the four locally persisted collections
(exercises, entries, sessions, parse queue items) plus the result types
returned by push, pull and queue drains. Timestamps are carried as ISO-8601
strings, exactly as they are stored locally and sent over the wire.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# === Shared Utility Functions ===


def generate_id() -> str:
    """Generate an opaque record identifier."""
    return str(uuid.uuid4())


def parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse an ISO datetime string into an aware UTC datetime.

    Accepts the trailing ``Z`` form returned by PostgREST. Naive values are
    assumed to be UTC. Returns None for empty or unparseable input.
    """
    if not s:
        return None
    try:
        parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def isoformat(dt: datetime) -> str:
    """Format a datetime the way records store it (UTC, ISO-8601)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


# === Enums ===


class QueueStatus(str, Enum):
    """Processing state of a parse queue item.

    ``parsed`` and ``failed`` are terminal.
    """

    PENDING = "pending"
    PARSED = "parsed"
    FAILED = "failed"


TERMINAL_QUEUE_STATUSES = frozenset({QueueStatus.PARSED.value, QueueStatus.FAILED.value})


class Unit(str, Enum):
    """Weight unit for an entry. Bodyweight movements carry no unit."""

    KG = "kg"
    LBS = "lbs"


VALID_UNIT_VALUES = frozenset(u.value for u in Unit)

DEFAULT_EXERCISE_TYPE = "strength"


# === Records ===


@dataclass
class Exercise:
    """An exercise, keyed for humans by its normalized ``name``."""

    id: str
    name: str  # normalized: lowercase with underscores
    display_name: str
    type: str = DEFAULT_EXERCISE_TYPE


@dataclass
class Entry:
    """A single logged set group, owned by exactly one session."""

    id: str
    exercise_id: str
    session_id: str
    weight: Optional[float] = None
    unit: Optional[str] = None  # "kg", "lbs" or None (bodyweight)
    reps: Optional[int] = None
    sets: Optional[int] = None
    notes: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    synced: bool = False
    user_id: Optional[str] = None


@dataclass
class Session:
    """A contiguous bout of activity on one calendar day.

    ``ended_at is None`` marks the session as active.
    """

    id: str
    name: str
    date: str  # local calendar day, YYYY-MM-DD
    started_at: str
    ended_at: Optional[str] = None
    notes: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    synced: bool = False
    user_id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.ended_at is None


@dataclass
class QueueItem:
    """A raw free-text submission awaiting interpretation."""

    id: str
    raw_input: str
    status: str = QueueStatus.PENDING.value
    created_at: str = ""
    processed_at: Optional[str] = None
    error: Optional[str] = None


# === Interpreter Types ===


@dataclass
class Observation:
    """One structured exercise observation returned by the interpreter."""

    exercise: str
    weight: Optional[float] = None
    unit: Optional[str] = None
    reps: Optional[int] = None
    sets: Optional[int] = None


@dataclass
class InterpretationResult:
    """Outcome of interpreting one raw input."""

    success: bool
    data: List[Observation] = field(default_factory=list)
    error: Optional[str] = None


# === Result Types ===


@dataclass
class PushResult:
    """Ids confirmed by the remote store during one push cycle."""

    exercises: List[str] = field(default_factory=list)
    sessions: List[str] = field(default_factory=list)
    entries: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.exercises) + len(self.sessions) + len(self.entries) + len(self.deleted)

    @property
    def is_empty(self) -> bool:
        return self.total == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exercises": list(self.exercises),
            "sessions": list(self.sessions),
            "entries": list(self.entries),
            "deleted": list(self.deleted),
        }


@dataclass
class PullResult:
    """Per-collection counts for one pull cycle."""

    exercises: int = 0
    sessions: int = 0
    entries: int = 0
    kept_local: int = 0  # remote copies rejected by last-writer-wins
    skipped: bool = False  # True when the pull was a no-op (in flight / signed out)
    cursor: Optional[str] = None  # high-water mark after this pull

    @property
    def pulled(self) -> int:
        return self.exercises + self.sessions + self.entries

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exercises": self.exercises,
            "sessions": self.sessions,
            "entries": self.entries,
            "kept_local": self.kept_local,
            "skipped": self.skipped,
            "cursor": self.cursor,
        }


@dataclass
class DrainResult:
    """Counts for one drain of the parse queue."""

    processed: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"processed": self.processed, "failed": self.failed}


@dataclass
class AssociationResult:
    """Records claimed by a user on sign-in."""

    user_id: str
    sessions: int = 0
    entries: int = 0

    @property
    def total(self) -> int:
        return self.sessions + self.entries
