"""Shared pytest fixtures."""

import pytest
import pytest_asyncio
from helpers import AUTH_KEY, ENC_KEY, FakeCollection

from mongosession.config import StoreConfig
from mongosession.store import MongoStore


@pytest.fixture
def collection() -> FakeCollection:
    return FakeCollection()


@pytest.fixture
def config() -> StoreConfig:
    return StoreConfig(_env_file=None)


@pytest_asyncio.fixture
async def store(collection: FakeCollection, config: StoreConfig) -> MongoStore:
    return await MongoStore.create(collection, 240, [AUTH_KEY, ENC_KEY], config=config)  # type: ignore[arg-type]
