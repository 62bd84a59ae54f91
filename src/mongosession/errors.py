from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mongosession.models import Session


class SessionError(Exception):
    """Base class for session store errors.

    Errors raised while loading a session carry a usable fresh session in
    ``session`` so callers can continue with a new, empty session instead of
    aborting the request.
    """

    def __init__(self, message: str, session: Session | None = None) -> None:
        super().__init__(message)
        self.session = session


class ConfigurationError(SessionError):
    """Raised when the store cannot be configured (e.g. no cookie keys)."""


class StoreSetupError(SessionError):
    """Raised when the expiry index cannot be ensured at startup."""


class CookieDecodeError(SessionError):
    """Raised when no codec can verify and decode a cookie value."""

    def __init__(self, message: str = "Cookie could not be decoded", errors: list[Exception] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class SessionNotFoundError(SessionError):
    """Raised when a session record does not exist or has expired."""

    def __init__(self, message: str = "Session not found", session: Session | None = None) -> None:
        super().__init__(message, session)


class InvalidSessionIdError(SessionError):
    """Raised when a session identifier is not a valid database key."""


class SessionValueError(SessionError):
    """Raised when session values cannot be stored."""


class DatabaseError(SessionError):
    """Raised when a MongoDB operation fails while loading or saving a session."""
