"""Fixtures for database unit tests.

The motor client is replaced by MagicMock objects built by a fake client
factory, so connection logic runs without a MongoDB server.
"""

from collections.abc import Callable
from typing import Any

import pytest
from pytest_mock import MockerFixture, MockType

from src.core.config import Settings
from src.infrastructure.database.connection import ConnectionManager


@pytest.fixture
def ping(mocker: MockerFixture) -> MockType:
    """The admin ping shared by every fake client."""
    return mocker.AsyncMock(return_value={"ok": 1.0})


@pytest.fixture
def database(mocker: MockerFixture) -> MockType:
    """A fake database handle."""
    db = mocker.MagicMock()
    db.name = "centivo_unit"
    db.command = mocker.AsyncMock(return_value={"ok": 1.0})
    return db


@pytest.fixture
def make_client(
    mocker: MockerFixture, ping: MockType, database: MockType
) -> Callable[..., MockType]:
    """Build fake motor clients that resolve to ``database``."""

    def _make(*_args: Any, **_kwargs: Any) -> MockType:
        client = mocker.MagicMock()
        client.admin.command = ping
        client.__getitem__.return_value = database
        client.get_default_database.return_value = database
        client.topology_description.has_readable_server.return_value = True
        return client

    return _make


@pytest.fixture
def client_factory(
    mocker: MockerFixture, make_client: Callable[..., MockType]
) -> MockType:
    """Client factory returning a fresh fake client per call."""
    return mocker.Mock(side_effect=make_client)


@pytest.fixture
def sleep(mocker: MockerFixture) -> MockType:
    """Sleep replacement that returns immediately."""
    return mocker.AsyncMock(return_value=None)


@pytest.fixture
def manager(
    mock_settings: Settings, client_factory: MockType, sleep: MockType
) -> ConnectionManager:
    """A connection manager wired to the fake client factory."""
    return ConnectionManager(mock_settings, client_factory=client_factory, sleep=sleep)


@pytest.fixture
def collection(mocker: MockerFixture) -> MockType:
    """A fake users collection with async driver methods."""
    coll = mocker.MagicMock()
    coll.name = "users"
    coll.find_one = mocker.AsyncMock(return_value=None)
    coll.count_documents = mocker.AsyncMock(return_value=0)
    coll.insert_one = mocker.AsyncMock()
    coll.insert_many = mocker.AsyncMock()
    coll.delete_many = mocker.AsyncMock()
    coll.create_index = mocker.AsyncMock()
    return coll
