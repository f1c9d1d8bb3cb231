"""Supabase-backed remote store.

Thin adapter from the ``RemoteStore`` protocol to PostgREST calls made
through the Supabase async client. Row-level security on the remote side
scopes every call to the signed-in user, so the same client instance must
be the one ``SupabaseAuth`` signs in with.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client

from finishstrong.protocols import RemoteStoreError

from .schema import ENTRIES, EXERCISES, SESSIONS

logger = logging.getLogger(__name__)

# =============================================================================
# Table Names
# =============================================================================

EXERCISES_TABLE = "exercises"
SESSIONS_TABLE = "sessions"
ENTRIES_TABLE = "entries"

REMOTE_TABLES: Dict[str, str] = {
    EXERCISES: EXERCISES_TABLE,
    SESSIONS: SESSIONS_TABLE,
    ENTRIES: ENTRIES_TABLE,
}

# PostgREST caps responses (1000 rows by default); pull in pages of this size
PAGE_SIZE = 1000


async def create_supabase_client(url: str, key: str) -> AsyncClient:
    """Create a Supabase async client for a project URL and publishable key."""
    if not url or not key:
        raise ValueError("Both a Supabase URL and key are required")
    return await acreate_client(url, key)


class SupabaseRemoteStore:
    """RemoteStore implementation over the Supabase async client.

    Args:
        client: A Supabase ``AsyncClient``; shared with ``SupabaseAuth``.
        page_size: Rows fetched per select request.
    """

    def __init__(self, client: AsyncClient, page_size: int = PAGE_SIZE):
        self._client = client
        self._page_size = page_size

    @property
    def client(self) -> AsyncClient:
        return self._client

    def _remote_table(self, table: str) -> str:
        try:
            return REMOTE_TABLES[table]
        except KeyError:
            raise ValueError(f"{table} is not replicated") from None

    async def upsert(self, table: str, rows: List[Dict[str, Any]]) -> None:
        """Insert or replace rows by id."""
        if not rows:
            return
        name = self._remote_table(table)
        try:
            await self._client.table(name).upsert(rows, on_conflict="id").execute()
        except (APIError, httpx.HTTPError) as exc:
            raise RemoteStoreError(table, "upsert", str(exc)) from exc
        logger.debug(f"Upserted {len(rows)} row(s) into {name}")

    async def select_since(self, table: str, since: Optional[str]) -> List[Dict[str, Any]]:
        """Fetch every row updated strictly after ``since`` (all rows if None)."""
        name = self._remote_table(table)
        rows: List[Dict[str, Any]] = []
        start = 0
        while True:
            query = self._client.table(name).select("*")
            if since:
                query = query.gt("updated_at", since)
            query = query.order("updated_at").order("id").range(start, start + self._page_size - 1)
            try:
                response = await query.execute()
            except (APIError, httpx.HTTPError) as exc:
                raise RemoteStoreError(table, "select", str(exc)) from exc

            page = list(response.data or [])
            rows.extend(page)
            if len(page) < self._page_size:
                break
            start += self._page_size

        logger.debug(f"Selected {len(rows)} row(s) from {name} since {since}")
        return rows

    async def delete(self, table: str, ids: List[str]) -> None:
        """Delete rows by id."""
        if not ids:
            return
        name = self._remote_table(table)
        try:
            await self._client.table(name).delete().in_("id", list(ids)).execute()
        except (APIError, httpx.HTTPError) as exc:
            raise RemoteStoreError(table, "delete", str(exc)) from exc
        logger.debug(f"Deleted {len(ids)} row(s) from {name}")
