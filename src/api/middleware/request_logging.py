"""HTTP request logging with slow request detection.

Each request produces a start and a completion line carrying method, path,
status and duration. Paths listed in ``LogConfig.excluded_paths`` (the
health check by default) are served silently.
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.api.constants import MAX_USER_AGENT_LENGTH
from src.core.config import LogConfig
from src.core.constants import MILLISECONDS_PER_SECOND


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access log with start, completion and slow-request lines.

    Thresholds and excluded paths come from ``LogConfig``.
    """

    def __init__(self, app: ASGIApp, *, log_config: LogConfig) -> None:
        super().__init__(app)
        self.slow_request_threshold_ms = log_config.slow_request_threshold_ms
        self.excluded_paths = set(log_config.excluded_paths)

    @staticmethod
    def _client_host(request: Request) -> str:
        return request.client.host if request.client else "unknown"

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Log around ``call_next``; downstream exceptions are logged and re-raised."""
        if request.url.path in self.excluded_paths:
            return await call_next(request)

        user_agent = request.headers.get("user-agent", "unknown")
        with logger.contextualize(
            method=request.method,
            path=request.url.path,
            client_host=self._client_host(request),
            user_agent=user_agent[:MAX_USER_AGENT_LENGTH],
        ):
            logger.info(
                "Request started",
                query_params=dict(request.query_params) or None,
            )
            start_time = time.perf_counter()

            try:
                response = await call_next(request)
            except Exception as exc:
                elapsed = time.perf_counter() - start_time
                duration_ms = elapsed * MILLISECONDS_PER_SECOND
                logger.error(
                    "Request failed",
                    duration_ms=round(duration_ms, 2),
                    error_type=type(exc).__name__,
                )
                raise

            duration_ms = (time.perf_counter() - start_time) * MILLISECONDS_PER_SECOND
            logger.info(
                "Request completed",
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )
            if duration_ms > self.slow_request_threshold_ms:
                logger.warning(
                    "Slow request detected",
                    duration_ms=round(duration_ms, 2),
                    threshold_ms=self.slow_request_threshold_ms,
                )

            return response
