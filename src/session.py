"""Session store and application context.

``AppContext`` wires the remote accessor, session storage, reading cache
and notification bus together; consumers receive it explicitly instead of
importing module-level state.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace

from src.api_client import BPBuddyAPI
from src.errors import AuthError, BPBuddyError, NetworkError, ValidationError
from src.models import Session, User
from src.notifier import NotificationBus
from src.reading_cache import ReadingCache
from src.session_storage import REMEMBER_EMAIL_KEY, USER_DATA_KEY, SessionStorage

logger = logging.getLogger(__name__)


def _auth_error(error: NetworkError, fallback: str) -> AuthError:
    """Translate a failed auth call into an AuthError with a reason."""
    message = str(error) or fallback
    if error.status_code is None:
        return AuthError(message, reason="network")
    if error.status_code == 401:
        return AuthError(message, reason="invalid_credentials")
    if error.status_code == 409 or "already exists" in message.lower():
        return AuthError(message, reason="conflict")
    return AuthError(message, reason="invalid_credentials")


def _auth_payload(data: dict, fallback: str) -> tuple[User, str]:
    """Unpack ``{"user": ..., "token": ...}`` from a successful auth call."""
    try:
        return User.from_api(data["user"]), data["token"]
    except (KeyError, TypeError) as e:
        logger.error(f"Malformed auth response: {e!r}")
        message = f"{fallback}: invalid server response"
        raise AuthError(message, reason="invalid_credentials") from e


class SessionStore:
    """Authentication state for one process.

    Every state transition notifies the bus.
    """

    def __init__(
        self,
        api: BPBuddyAPI,
        storage: SessionStorage,
        cache: ReadingCache,
        bus: NotificationBus,
    ):
        self._api = api
        self._storage = storage
        self._cache = cache
        self._bus = bus
        self._state = Session()

    @property
    def state(self) -> Session:
        """Snapshot of the current session."""
        return replace(self._state)

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    @property
    def user(self) -> User | None:
        return self._state.user

    def _set_loading(self) -> None:
        self._state.is_loading = True
        self._state.error = None
        self._bus.notify()

    def _authenticated(self, user: User, token: str) -> None:
        self._api.token = token
        self._state.is_authenticated = True
        self._state.user = user
        self._state.token = token
        self._cache.load_for_user(user.user_id)

    def _finish(self) -> None:
        self._state.is_loading = False
        self._bus.notify()

    def login(self, email: str, password: str, remember_me: bool = False) -> Session:
        """Authenticate against the backend and load the user's readings.

        Raises:
            ValidationError: If email or password is empty
            AuthError: Invalid credentials or backend unreachable
        """
        if not email or not password:
            raise ValidationError("Email and password are required")

        logger.info(f"Starting login for {email}")
        self._set_loading()
        try:
            try:
                data = self._api.login(email, password)
            except NetworkError as e:
                raise _auth_error(e, "Login failed") from e

            user, token = _auth_payload(data, "Login failed")
            self._storage.save_session(token, user.to_api())
            if remember_me:
                self._storage.set(REMEMBER_EMAIL_KEY, email)
            else:
                self._storage.remove(REMEMBER_EMAIL_KEY)

            self._authenticated(user, token)
            logger.info(f"Login successful for {user.email}")
        except AuthError as e:
            logger.error(f"Login failed for {email}: {e}")
            self._state.error = str(e)
            raise
        finally:
            self._finish()
        return self.state

    def register(
        self,
        email: str,
        password: str,
        name: str,
        profile: dict | None = None,
    ) -> Session:
        """Create an account and sign in with it.

        Raises:
            ValidationError: If email, password or name is empty
            AuthError: ``reason == "conflict"`` when the email is taken
        """
        if not email or not password or not name:
            raise ValidationError("Email, password, and name are required")

        self._set_loading()
        try:
            try:
                data = self._api.register(email, password, name, profile)
            except NetworkError as e:
                raise _auth_error(e, "Registration failed") from e

            user, token = _auth_payload(data, "Registration failed")
            self._storage.save_session(token, user.to_api())
            self._authenticated(user, token)
            logger.info(f"Registration successful for {user.email}")
        except AuthError as e:
            logger.error(f"Registration failed for {email}: {e}")
            self._state.error = str(e)
            raise
        finally:
            self._finish()
        return self.state

    def logout(self) -> None:
        """Sign out locally; the server is told on a best-effort basis."""
        self._set_loading()
        try:
            if self._state.is_authenticated and self._api.token:
                try:
                    self._api.logout()
                except BPBuddyError as e:
                    logger.warning(f"Server logout failed, continuing with local logout: {e}")

            self._storage.clear_session()
            self._cache.clear()
            self._api.token = None
            self._state = Session(is_loading=True)
            logger.info("Logout successful")
        finally:
            self._finish()

    def restore(self) -> Session:
        """Rebuild the session from persisted token and user.

        The token is trusted as stored: it is not verified with the
        server, so an expired token surfaces on the first failing call.
        """
        self._set_loading()
        try:
            stored = self._storage.load_session()
            if stored is None:
                logger.debug("No stored session")
            else:
                token, user_data = stored
                try:
                    user = User.from_api(user_data)
                except KeyError as e:
                    logger.warning(f"Stored user is missing {e}, ignoring stored session")
                else:
                    self._authenticated(user, token)
                    logger.info(f"Restored session for {user.email}")
        finally:
            self._finish()
        return self.state

    def verify(self) -> dict:
        """Ask the backend whether the current token is still valid.

        Raises:
            AuthError: ``reason == "invalid_token"`` if rejected
        """
        if not self._api.token:
            raise AuthError("User not authenticated", reason="not_authenticated")
        try:
            return self._api.verify()
        except NetworkError as e:
            reason = "network" if e.status_code is None else "invalid_token"
            raise AuthError(str(e), reason=reason) from e

    def update_profile(self, updates: dict) -> User:
        """Merge profile updates on the backend and in the local user.

        Raises:
            AuthError: If not authenticated or the backend rejects the call
        """
        if not self._state.is_authenticated or self._state.user is None:
            raise AuthError("User not authenticated", reason="not_authenticated")

        self._set_loading()
        try:
            try:
                self._api.update_profile(updates)
            except NetworkError as e:
                raise _auth_error(e, "Profile update failed") from e

            user = replace(self._state.user, profile={**self._state.user.profile, **updates})
            self._storage.set(USER_DATA_KEY, json.dumps(user.to_api()))
            self._state.user = user
            logger.info("Profile updated successfully")
            return user
        except AuthError as e:
            self._state.error = str(e)
            raise
        finally:
            self._finish()

    def remembered_email(self) -> str | None:
        return self._storage.get(REMEMBER_EMAIL_KEY)

    def clear_error(self) -> None:
        self._state.error = None
        self._bus.notify()


class AppContext:
    """Explicitly constructed container for one client process."""

    def __init__(
        self,
        api: BPBuddyAPI,
        storage: SessionStorage,
        bus: NotificationBus | None = None,
    ):
        self.api = api
        self.storage = storage
        self.bus = bus if bus is not None else NotificationBus()
        self.cache = ReadingCache(api, self.bus)
        self.session = SessionStore(api, storage, self.cache, self.bus)

    @classmethod
    def from_config(cls, config: dict) -> AppContext:
        """Build a context from the ``api`` and ``storage`` config sections."""
        api_config = config.get("api", {})
        storage_config = config.get("storage", {})
        api = BPBuddyAPI(
            base_url=api_config.get("base_url", "http://localhost:3001"),
            timeout=api_config.get("timeout"),
        )
        storage = SessionStorage(storage_config.get("database_path", "./data/bp_buddy.db"))
        return cls(api, storage)

    def subscribe(self, listener):
        return self.bus.subscribe(listener)
