"""Integration tests for application startup and shutdown."""

import pytest
from fastapi import FastAPI
from pymongo.errors import OperationFailure
from pytest_mock import MockerFixture, MockType

from src.api.main import lifespan
from src.core.exceptions import DatabaseConnectionError


@pytest.fixture
def manager(mocker: MockerFixture) -> MockType:
    """Connection manager used by the lifespan."""
    mock = mocker.Mock()
    mock.connect = mocker.AsyncMock(return_value=mocker.Mock(name="db"))
    mock.close = mocker.AsyncMock()
    mocker.patch("src.api.main.get_connection_manager", return_value=mock)
    return mock


@pytest.fixture
def mock_initialize(mocker: MockerFixture) -> MockType:
    """Patch index initialization."""
    return mocker.patch("src.api.main.initialize_database")


@pytest.mark.integration
@pytest.mark.timeout(5)
class TestLifespan:
    """Test the lifespan context."""

    async def test_startup_and_shutdown(
        self, manager: MockType, mock_initialize: MockType
    ) -> None:
        """Test indexes are ensured at startup and the client closed on exit."""
        async with lifespan(FastAPI()):
            mock_initialize.assert_awaited_once_with(
                manager.connect.return_value, "users"
            )
            manager.close.assert_not_awaited()

        manager.close.assert_awaited_once()

    async def test_connection_failure_is_fatal(
        self, manager: MockType, mock_initialize: MockType
    ) -> None:
        """Test a failed first connect aborts startup and stops retrying."""
        manager.connect.side_effect = DatabaseConnectionError(
            "Failed to connect to MongoDB"
        )

        with pytest.raises(
            RuntimeError, match="Database connection failed: Failed to connect"
        ):
            async with lifespan(FastAPI()):
                pytest.fail("startup should not complete")

        manager.close.assert_awaited_once()
        mock_initialize.assert_not_awaited()

    async def test_joined_attempt_failed(
        self, manager: MockType, mock_initialize: MockType
    ) -> None:
        """Test startup fails when the joined connection attempt failed."""
        manager.connect.return_value = None

        with pytest.raises(RuntimeError, match="Database connection failed"):
            async with lifespan(FastAPI()):
                pytest.fail("startup should not complete")

        manager.close.assert_awaited_once()

    async def test_index_failure(
        self, manager: MockType, mock_initialize: MockType
    ) -> None:
        """Test index errors abort startup after closing the connection."""
        mock_initialize.side_effect = OperationFailure("index conflict")

        with pytest.raises(OperationFailure):
            async with lifespan(FastAPI()):
                pytest.fail("startup should not complete")

        manager.close.assert_awaited_once()
