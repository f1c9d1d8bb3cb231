"""Claim records created while signed out.

Sessions and entries written before sign-in have no owner. On sign-in they
are given the new user's id and marked dirty so the next push uploads
them under that identity. Owned records are never touched, which makes
the claim idempotent.
"""

import logging
from typing import Optional

from finishstrong.auth import AuthListener
from finishstrong.storage.schema import ENTRIES, SESSIONS
from finishstrong.storage.sqlite import SQLiteStorage
from finishstrong.types import AssociationResult

logger = logging.getLogger(__name__)


def associate_unowned_records(storage: SQLiteStorage, user_id: str) -> AssociationResult:
    """Give every ownerless session and entry to ``user_id``."""
    if not user_id:
        raise ValueError("user_id is required")

    result = AssociationResult(user_id=user_id)
    for table in (SESSIONS, ENTRIES):
        ids = [record.id for record in storage.find(table, where={"user_id": None})]
        if not ids:
            continue
        count = storage.bulk_mark_dirty(table, ids, {"user_id": user_id})
        setattr(result, table, count)

    if result.total:
        logger.info(
            f"Associated {result.sessions} sessions and {result.entries} entries with {user_id}"
        )
    return result


def association_listener(storage: SQLiteStorage) -> AuthListener:
    """AuthState listener that claims unowned records on each sign-in."""

    def on_auth_change(previous: Optional[str], current: Optional[str]) -> None:
        if current is None or current == previous:
            return
        associate_unowned_records(storage, current)

    return on_auth_change
