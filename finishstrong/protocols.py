"""
finishstrong Protocol Definitions
=================================

Interface contracts for the collaborators the sync core consumes but does
not own:

- RemoteStore:  per-collection upsert/select/delete against the replica.
- Interpreter:  free text in, structured exercise observations out.

Error handling philosophy:
- Local store failures propagate unchanged (sqlite3.Error)
- Store contract violations raise StorageError
- Remote failures raise RemoteStoreError to the caller of push/pull
- Interpreter failures never escape a drain; they become failed queue items
- Not being signed in is not an error for push/pull; it is a no-op
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from finishstrong.types import InterpretationResult

# === Errors ===


class FinishStrongError(Exception):
    """Base exception for all finishstrong errors."""

    pass


class StorageError(FinishStrongError):
    """Raised when a local store call violates the store contract."""

    pass


class RemoteStoreError(FinishStrongError):
    """Raised when the remote store rejects or cannot serve a request."""

    def __init__(self, table: str, operation: str, message: str) -> None:
        super().__init__(f"Remote {operation} on {table} failed: {message}")
        self.table = table
        self.operation = operation


class InterpreterError(FinishStrongError):
    """Raised by interpreter clients for transport-level failures."""

    pass


class NotAuthenticatedError(FinishStrongError):
    """Raised by auth operations that need a signed-in user."""

    pass


# === Collaborator Protocols ===


@runtime_checkable
class RemoteStore(Protocol):
    """Replica target for the sync engine.

    Rows crossing this boundary use the flat snake_case wire shape produced
    by ``finishstrong.storage.serializers``. Every call is authorized by the
    caller's signed-in identity (row-level security on the remote side).
    """

    async def upsert(self, table: str, rows: list[dict[str, Any]]) -> None:
        """Insert or replace rows by ``id``. Idempotent."""
        ...

    async def select_since(self, table: str, since: Optional[str]) -> list[dict[str, Any]]:
        """Return all rows with ``updated_at > since`` (all rows when since is None)."""
        ...

    async def delete(self, table: str, ids: list[str]) -> None:
        """Delete rows by id. Deleting a missing id is not an error."""
        ...


@runtime_checkable
class Interpreter(Protocol):
    """Turns raw free text into structured exercise observations."""

    async def interpret(self, raw_input: str) -> InterpretationResult:
        """Interpret one raw input.

        Implementations report failure through ``InterpretationResult``
        rather than raising.
        """
        ...
