"""Unit tests for RequestLoggingMiddleware."""

import itertools

import pytest
from pytest_mock import MockerFixture, MockType
from starlette.requests import Request
from starlette.responses import Response

from src.api.middleware.request_logging import RequestLoggingMiddleware
from src.core.config import LogConfig


def _request(path: str = "/users") -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "query_string": b"minAge=30",
        "headers": [(b"user-agent", b"pytest")],
        "client": ("10.0.0.1", 1234),
    }
    return Request(scope)


@pytest.fixture
def mock_logger(mocker: MockerFixture) -> MockType:
    """Patch the middleware's logger."""
    return mocker.patch("src.api.middleware.request_logging.logger")


@pytest.mark.unit
class TestRequestLoggingMiddleware:
    """Test request logging."""

    async def test_logs_start_and_completion(
        self, mocker: MockerFixture, mock_logger: MockType
    ) -> None:
        """Test both lines are logged with request context."""
        middleware = RequestLoggingMiddleware(mocker.Mock(), log_config=LogConfig())
        call_next = mocker.AsyncMock(return_value=Response(status_code=200))

        await middleware.dispatch(_request(), call_next)

        mock_logger.contextualize.assert_called_once_with(
            method="GET", path="/users", client_host="10.0.0.1", user_agent="pytest"
        )
        messages = [call.args[0] for call in mock_logger.info.call_args_list]
        assert messages == ["Request started", "Request completed"]
        assert mock_logger.info.call_args_list[0].kwargs["query_params"] == {
            "minAge": "30"
        }
        assert mock_logger.info.call_args.kwargs["status_code"] == 200
        mock_logger.warning.assert_not_called()

    async def test_excluded_path_is_silent(
        self, mocker: MockerFixture, mock_logger: MockType
    ) -> None:
        """Test the health check is not logged."""
        middleware = RequestLoggingMiddleware(mocker.Mock(), log_config=LogConfig())
        call_next = mocker.AsyncMock(return_value=Response(status_code=200))

        await middleware.dispatch(_request("/health"), call_next)

        mock_logger.info.assert_not_called()
        call_next.assert_awaited_once()

    async def test_slow_request_warning(
        self, mocker: MockerFixture, mock_logger: MockType
    ) -> None:
        """Test requests above the threshold are flagged."""
        mocker.patch(
            "src.api.middleware.request_logging.time.perf_counter",
            side_effect=itertools.chain([0.0], itertools.repeat(2.5)),
        )
        middleware = RequestLoggingMiddleware(mocker.Mock(), log_config=LogConfig())
        call_next = mocker.AsyncMock(return_value=Response(status_code=200))

        await middleware.dispatch(_request(), call_next)

        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.kwargs["duration_ms"] == 2500.0

    async def test_failure_is_logged_and_reraised(
        self, mocker: MockerFixture, mock_logger: MockType
    ) -> None:
        """Test downstream exceptions are logged then propagated."""
        middleware = RequestLoggingMiddleware(mocker.Mock(), log_config=LogConfig())
        call_next = mocker.AsyncMock(side_effect=RuntimeError("boom"))

        with pytest.raises(RuntimeError, match="boom"):
            await middleware.dispatch(_request(), call_next)

        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.kwargs["error_type"] == "RuntimeError"
