from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any
from urllib.parse import urlparse

from fastapi import FastAPI
from pymongo import AsyncMongoClient

from mongosession.config import StoreConfig
from mongosession.store import MongoStore


@asynccontextmanager
async def session_lifespan(app: FastAPI, config: StoreConfig) -> AsyncGenerator[MongoStore]:
    """Open MongoDB, start the session store and expose it on ``app.state.session_store``.

    Enter it from the application's own lifespan to combine it with other
    startup work, or use ``make_lifespan`` when the store is all there is.
    """
    client: AsyncMongoClient[dict[str, Any]] = AsyncMongoClient(
        config.database_url, uuidRepresentation="standard", tz_aware=True
    )
    try:
        database = client.get_database(urlparse(config.database_url).path[1:] or "sessions")
        store = await MongoStore.create(database.get_collection(config.collection), config=config)
        app.state.session_store = store
        yield store
    finally:
        await client.aclose()


def make_lifespan(config: StoreConfig) -> Callable[[FastAPI], AbstractAsyncContextManager[None]]:
    """Return a lifespan that can be passed straight to ``FastAPI(lifespan=...)``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        async with session_lifespan(app, config):
            yield

    return lifespan
