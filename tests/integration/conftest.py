"""Fixtures for API integration tests.

The full application stack (middleware, routers, exception handlers) runs
in-process through httpx. The database is an in-memory MongoDB from
mongomock-motor, prepared with the same index setup and seed data the
service uses, and injected via FastAPI dependency overrides.
"""

from collections.abc import AsyncGenerator, Generator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pytest_mock import MockerFixture, MockType

from src.api.main import create_app
from src.core.config import get_settings
from src.core.context import RequestContext
from src.infrastructure.constants import USERS_COLLECTION
from src.infrastructure.database.connection import (
    get_connection_manager,
    reset_connection_manager,
)
from src.infrastructure.database.dependencies import get_user_repository
from src.infrastructure.database.indexes import initialize_database
from src.infrastructure.database.repository import UserRepository
from src.infrastructure.database.seed import seed_users


@pytest.fixture(autouse=True)
def integration_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """Start each test from default settings with tracing off."""
    monkeypatch.setenv("OBSERVABILITY_CONFIG__ENABLE_TRACING", "false")
    monkeypatch.delenv("K_SERVICE", raising=False)
    get_settings.cache_clear()
    RequestContext.clear()
    reset_connection_manager()
    yield
    get_settings.cache_clear()
    RequestContext.clear()
    reset_connection_manager()


@pytest.fixture
async def database() -> AsyncIOMotorDatabase:
    """A fresh in-memory database with the users collection and indexes."""
    db = AsyncMongoMockClient()["centivo_integration"]
    await initialize_database(db, USERS_COLLECTION)
    return db


@pytest.fixture
async def users_collection(database: AsyncIOMotorDatabase) -> AsyncIOMotorCollection:
    """The users collection loaded with the sample users."""
    collection = database[USERS_COLLECTION]
    await seed_users(collection)
    return collection


@pytest.fixture
async def seeded_ids(users_collection: AsyncIOMotorCollection) -> dict[str, str]:
    """Map of sample user name to its id."""
    documents = await users_collection.find({}).to_list(length=None)
    return {doc["name"]: str(doc["_id"]) for doc in documents}


@pytest.fixture
def mock_manager(mocker: MockerFixture) -> MockType:
    """A connection manager whose health check succeeds."""
    manager = mocker.Mock()
    manager.check_health = mocker.AsyncMock(return_value=True)
    return manager


@pytest.fixture
def app(
    users_collection: AsyncIOMotorCollection, mock_manager: MockType
) -> FastAPI:
    """The application wired to the in-memory collection."""
    application = create_app()
    application.dependency_overrides[get_user_repository] = lambda: UserRepository(
        users_collection
    )
    application.dependency_overrides[get_connection_manager] = lambda: mock_manager
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """HTTP client for the application.

    Unhandled exceptions are returned as 500 responses rather than raised.
    """
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
