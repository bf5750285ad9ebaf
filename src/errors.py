"""Exception hierarchy shared by the client core, CLI and backend."""


class BPBuddyError(Exception):
    """Base class for all BP Buddy errors."""


class ValidationError(BPBuddyError):
    """Required field missing or malformed; raised before any network call."""


class AuthError(BPBuddyError):
    """Authentication failed or the session is not usable.

    Attributes:
        reason: One of "invalid_credentials", "conflict", "invalid_token",
            "network" or "not_authenticated"
    """

    def __init__(self, message: str, reason: str = "invalid_credentials"):
        super().__init__(message)
        self.reason = reason


class NetworkError(BPBuddyError):
    """Request failed or the server was unreachable.

    Attributes:
        status_code: HTTP status of the failed response, None for transport errors
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(BPBuddyError):
    """Referenced entity does not exist."""
