"""Authentication state and Supabase sign-in.

``AuthState`` is the single source of truth for "who is signed in" inside
a process. The sync engine asks it before every push and pull, and sign-in
side effects (claiming records created while signed out) hang off its
listeners.

``SupabaseAuth`` drives it from the Supabase auth API and persists tokens
so a later process can restore the session.
"""

import logging
from pathlib import Path
from typing import Any, Callable, List, Optional

import httpx
from supabase import AsyncClient, AuthError

from finishstrong.config import clear_credentials, load_credentials, save_credentials
from finishstrong.protocols import NotAuthenticatedError

logger = logging.getLogger(__name__)

AuthListener = Callable[[Optional[str], Optional[str]], None]


class AuthState:
    """Current signed-in identity with change notifications.

    Listeners are called with ``(previous_user_id, current_user_id)`` after
    every change, in registration order.
    """

    def __init__(self, user_id: Optional[str] = None, email: Optional[str] = None):
        self._user_id = user_id
        self._email = email
        self._listeners: List[AuthListener] = []

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def email(self) -> Optional[str]:
        return self._email

    def is_authenticated(self) -> bool:
        return self._user_id is not None

    def add_listener(self, listener: AuthListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: AuthListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_user(self, user_id: Optional[str], email: Optional[str] = None) -> bool:
        """Switch identity. Returns False (and notifies nobody) if unchanged."""
        self._email = email if user_id else None
        if user_id == self._user_id:
            return False
        previous = self._user_id
        self._user_id = user_id
        logger.debug(f"Auth state changed: {previous} -> {user_id}")
        for listener in list(self._listeners):
            listener(previous, user_id)
        return True

    def clear(self) -> bool:
        return self.set_user(None)


class SupabaseAuth:
    """Email/password auth against Supabase, with token persistence.

    Args:
        client: The Supabase client also used by the remote store, so that
            its requests carry the signed-in user's token.
        state: The ``AuthState`` to keep current.
        credentials_path: Where tokens are persisted (mode 0600).
    """

    def __init__(self, client: AsyncClient, state: AuthState, credentials_path: Path):
        self._client = client
        self._state = state
        self.credentials_path = Path(credentials_path)

    @property
    def state(self) -> AuthState:
        return self._state

    async def sign_in(self, email: str, password: str) -> str:
        """Sign in and persist the session. Returns the user id.

        Raises:
            NotAuthenticatedError: If the credentials are rejected.
        """
        try:
            response = await self._client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except (AuthError, httpx.HTTPError) as e:
            raise NotAuthenticatedError(f"Sign-in failed: {e}") from e

        return self._accept(response)

    async def restore(self) -> Optional[str]:
        """Resume the persisted session, if any. Returns the user id or None.

        A session the server no longer accepts leaves the user signed out;
        the persisted tokens are kept so a later restore can retry.
        """
        creds = load_credentials(self.credentials_path)
        if not creds:
            return None
        access_token = creds.get("access_token")
        refresh_token = creds.get("refresh_token")
        if not access_token or not refresh_token:
            logger.debug("Persisted credentials have no tokens, staying signed out")
            return None

        try:
            response = await self._client.auth.set_session(access_token, refresh_token)
        except (AuthError, httpx.HTTPError) as e:
            logger.warning(f"Could not restore session: {e}")
            return None

        return self._accept(response)

    async def sign_out(self) -> None:
        """Sign out remotely (best effort) and forget the local session.

        Raises:
            NotAuthenticatedError: If nobody is signed in.
        """
        if not self._state.is_authenticated():
            raise NotAuthenticatedError("Not signed in")

        try:
            await self._client.auth.sign_out()
        except (AuthError, httpx.HTTPError) as e:
            logger.error(f"Remote sign-out failed: {e}", exc_info=True)

        clear_credentials(self.credentials_path)
        self._state.clear()

    def _accept(self, response: Any) -> str:
        session = getattr(response, "session", None)
        user = getattr(response, "user", None) or getattr(session, "user", None)
        if session is None or user is None:
            raise NotAuthenticatedError("Auth server returned no session")

        save_credentials(
            self.credentials_path,
            {
                "access_token": session.access_token,
                "refresh_token": session.refresh_token,
                "user_id": user.id,
                "email": user.email,
            },
        )
        self._state.set_user(user.id, user.email)
        logger.info(f"Signed in as {user.email or user.id}")
        return user.id
