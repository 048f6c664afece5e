import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from ordertrack.config import settings
from ordertrack.core.errors import (
    AuthError,
    NetworkError,
    SessionUnavailable,
    UNEXPECTED_ERROR_MESSAGE,
    friendly_auth_message,
    is_network_error,
    translate_error,
)
from ordertrack.modules.auth.storage import FileSessionStorage
from ordertrack.modules.profiles.schemas import SignUpMetadata

logger = logging.getLogger(__name__)

SessionListener = Callable[[str, Any], None]

SESSION_HINTS = ("session", "auth", "jwt", "token")


def session_key(session: Any) -> Optional[Tuple[Optional[str], Optional[str]]]:
    if session is None:
        return None
    user = getattr(session, "user", None)
    return (getattr(user, "id", None), getattr(session, "access_token", None))


def is_session_error(exc: BaseException) -> bool:
    """True for failures caused by a missing, expired or corrupted session."""
    if "auth" in type(exc).__name__.lower():
        return True
    message = (getattr(exc, "message", None) or str(exc)).lower()
    return any(hint in message for hint in SESSION_HINTS)


class SessionManager:
    """Owns the current Supabase auth session and fans out its changes."""

    def __init__(self, supabase: Any, storage: Optional[FileSessionStorage] = None, timeout: Optional[float] = None):
        self.supabase = supabase
        self.storage = storage
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self._session: Any = None
        self._listeners: List[SessionListener] = []
        self._subscription: Any = None

    @property
    def session(self) -> Any:
        return self._session

    @property
    def user(self) -> Any:
        return getattr(self._session, "user", None)

    async def _auth_call(self, awaitable: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if is_network_error(e):
                raise translate_error(e) from e
            logger.warning(f"Auth call failed: {type(e).__name__}: {e}")
            raise AuthError(friendly_auth_message(e)) from e

    async def get_initial_session(self) -> Any:
        """
        Read the persisted session. Raises SessionUnavailable instead of crashing callers.

        A sign-in or sign-out that lands while the read is in flight wins; the
        stale read is dropped and the current session returned.
        """
        known = session_key(self._session)
        try:
            session = await asyncio.wait_for(self.supabase.auth.get_session(), timeout=self.timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Could not restore session: {type(e).__name__}: {e}")
            raise SessionUnavailable() from e
        if session_key(self._session) != known:
            logger.info("Session changed while restoring; keeping the newer one")
            return self._session
        self._set_session("INITIAL_SESSION", session, notify=False)
        return session

    # -- listeners ---------------------------------------------------------

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register ``listener(event, session)`` for sign-in, sign-out and token
        refresh. The current state is read with ``get_initial_session``;
        listeners only see changes. Returns the unsubscribe function.
        """
        self._attach()
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _attach(self) -> None:
        if self._subscription is not None:
            return
        try:
            self._subscription = self.supabase.auth.on_auth_state_change(self._handle_auth_event)
        except Exception as e:
            logger.warning(f"Could not listen to auth state changes: {e}")

    def _handle_auth_event(self, event: str, session: Any) -> None:
        self._set_session(str(event), session)

    def _set_session(self, event: str, session: Any, notify: bool = True) -> None:
        changed = session_key(session) != session_key(self._session)
        self._session = session
        if notify and changed:
            logger.info(f"Session event: {event}")
            for listener in list(self._listeners):
                try:
                    listener(event, session)
                except Exception:
                    logger.exception("Session listener failed")

    def close(self) -> None:
        self._listeners.clear()
        if self._subscription is not None:
            try:
                self._subscription.unsubscribe()
            except Exception as e:
                logger.warning(f"Failed to detach auth listener: {e}")
            self._subscription = None

    # -- operations --------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> Any:
        response = await self._auth_call(
            self.supabase.auth.sign_in_with_password({"email": email, "password": password})
        )
        if not getattr(response, "user", None) or not getattr(response, "session", None):
            raise AuthError(UNEXPECTED_ERROR_MESSAGE)
        self._set_session("SIGNED_IN", response.session)
        logger.info(f"Signed in {email}")
        return response.session

    async def sign_up(self, email: str, password: str, metadata: SignUpMetadata) -> Any:
        """Create the identity; the profile row is made by a backend trigger from this metadata."""
        response = await self._auth_call(
            self.supabase.auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": metadata.model_dump()},
            })
        )
        if not getattr(response, "user", None):
            raise AuthError(UNEXPECTED_ERROR_MESSAGE)
        if getattr(response, "session", None):
            self._set_session("SIGNED_IN", response.session)
        logger.info(f"Registered {email}")
        return response.user

    async def sign_out(self) -> Optional[str]:
        """
        Clear the local session first, then tell the backend.

        Session/auth related backend failures come back as a warning string;
        anything else is raised. Local state is signed out either way.
        """
        self._set_session("SIGNED_OUT", None)
        if self.storage is not None:
            try:
                await self.storage.clear()
            except OSError as e:
                logger.warning(f"Could not clear persisted session: {e}")
        try:
            await asyncio.wait_for(self.supabase.auth.sign_out(), timeout=self.timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if is_session_error(e):
                logger.warning(f"Logout warning: {e}")
                return "You have been signed out locally; the server session could not be ended."
            logger.error(f"Logout error: {e}")
            if is_network_error(e):
                raise NetworkError() from e
            raise AuthError(friendly_auth_message(e)) from e
        logger.info("Signed out")
        return None

    async def reset_password(self, email: str) -> None:
        options = {}
        if settings.password_reset_redirect_url:
            options["redirect_to"] = settings.password_reset_redirect_url
        await self._auth_call(self.supabase.auth.reset_password_for_email(email, options))
