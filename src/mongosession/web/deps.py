from typing import Annotated, cast

import structlog
from fastapi import Depends, Request

from mongosession.errors import CookieDecodeError, InvalidSessionIdError, SessionNotFoundError
from mongosession.models import Session
from mongosession.store import MongoStore

logger = structlog.get_logger(__name__)


async def get_store(request: Request) -> MongoStore:
    return cast(MongoStore, request.app.state.session_store)


StoreDep = Annotated[MongoStore, Depends(get_store)]


class SessionDependency:
    """FastAPI dependency returning the request's session for a cookie name.

    A cookie that cannot be verified or points to a missing record starts a
    new session. Database errors propagate.
    """

    def __init__(self, name: str) -> None:
        self.name = name

    async def __call__(self, request: Request, store: StoreDep) -> Session:
        try:
            return await store.get(request, self.name)
        except (CookieDecodeError, SessionNotFoundError, InvalidSessionIdError) as exc:
            if exc.session is None:
                raise
            logger.info("session_reset", name=self.name, reason=str(exc))
            return exc.session
