from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.requests import Request

from mongosession.errors import SessionError

if TYPE_CHECKING:
    from starlette.responses import Response

    from mongosession.models import Session
    from mongosession.store import MongoStore

_STATE_KEY = "mongosession_registry"


class SessionRegistry:
    """Sessions loaded during a single request, keyed by cookie name.

    A load error is cached with its session and raised again on every later
    lookup, so the session is decoded at most once per request.
    """

    def __init__(self, request: Request) -> None:
        self._request = request
        self._sessions: dict[str, tuple[Session, SessionError | None]] = {}

    @classmethod
    def of(cls, request: Request) -> SessionRegistry:
        """Return the registry attached to the request, creating it on first use."""
        registry = getattr(request.state, _STATE_KEY, None)
        if registry is None:
            registry = cls(request)
            setattr(request.state, _STATE_KEY, registry)
        return registry

    async def get(self, store: MongoStore, name: str) -> Session:
        if name not in self._sessions:
            try:
                session = await store.new(self._request, name)
            except SessionError as exc:
                if exc.session is None:
                    raise
                self._sessions[name] = (exc.session, exc)
            else:
                self._sessions[name] = (session, None)

        session, error = self._sessions[name]
        if error is not None:
            raise error
        return session

    async def save_all(self, response: Response) -> None:
        """Persist every registered session, stopping at the first failure."""
        for session, _ in self._sessions.values():
            await session.save(self._request, response)
