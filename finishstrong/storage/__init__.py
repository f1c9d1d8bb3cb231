"""finishstrong storage.

Local-first storage using SQLite, plus the Supabase replica and the
engine that keeps the two in step.
"""

from .entries import EntryManager
from .exercises import resolve_exercise, seed_exercises
from .remote import SupabaseRemoteStore
from .schema import ENTRIES, EXERCISES, PARSE_QUEUE, SESSIONS
from .sessions import SessionManager
from .sqlite import SQLiteStorage
from .sync_engine import LAST_PULL_KEY, SyncEngine

__all__ = [
    "ENTRIES",
    "EXERCISES",
    "LAST_PULL_KEY",
    "PARSE_QUEUE",
    "SESSIONS",
    "EntryManager",
    "SQLiteStorage",
    "SessionManager",
    "SupabaseRemoteStore",
    "SyncEngine",
    "resolve_exercise",
    "seed_exercises",
]
