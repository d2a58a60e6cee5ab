"""Application factory and lifecycle for the Centivo Users API.

``create_app`` wires logging, tracing, exception handlers, middleware and
routers together. ``lifespan`` opens the MongoDB connection and ensures the
indexes exist before the first request is accepted, and releases the client
on shutdown.

Starlette runs middleware in reverse order of registration, so the last one
added below (CORS) sees each request first.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from src.api.constants import CORRELATION_ID_HEADER, REQUEST_ID_HEADER
from src.api.middleware.error_handler import register_exception_handlers
from src.api.middleware.request_context import RequestContextMiddleware
from src.api.middleware.request_logging import RequestLoggingMiddleware
from src.api.middleware.security_headers import SecurityHeadersMiddleware
from src.api.routes import health_router, users_router
from src.api.utils.responses import ORJSONResponse
from src.core.config import Settings, get_settings
from src.core.exceptions import DatabaseConnectionError
from src.core.logging import setup_logging
from src.core.observability import instrument_app, setup_tracing
from src.infrastructure.database.connection import get_connection_manager
from src.infrastructure.database.indexes import initialize_database


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
    """Connect to MongoDB and ensure indexes before serving requests.

    Raises:
        RuntimeError: If the database cannot be reached during startup. The
            manager is closed first so no reconnect loop outlives the app.
    """
    settings = get_settings()
    manager = get_connection_manager()

    try:
        db = await manager.connect()
        if db is None:
            msg = "Database connection failed: concurrent attempt did not succeed"
            raise RuntimeError(msg)
        await initialize_database(db, settings.mongo_config.users_collection)
    except DatabaseConnectionError as e:
        logger.error("Database connection failed during startup: {}", e)
        await manager.close()
        msg = f"Database connection failed: {e.message}"
        raise RuntimeError(msg) from e
    except Exception:
        await manager.close()
        raise

    logger.info(
        "{} v{} ready to serve",
        app_instance.title,
        app_instance.version,
    )

    try:
        yield
    finally:
        logger.info("Shutting down, closing database connection")
        await manager.close()
        logger.info("Shutdown finished")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application. ``settings`` defaults to ``get_settings()``."""
    if settings is None:
        settings = get_settings()

    setup_logging(settings)
    setup_tracing(settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # Exception handlers go in before any middleware
    register_exception_handlers(application)

    # 4. Access log, innermost
    application.add_middleware(RequestLoggingMiddleware, log_config=settings.log_config)

    # 3. Correlation and request IDs
    application.add_middleware(RequestContextMiddleware)

    # 2. Security headers
    application.add_middleware(
        SecurityHeadersMiddleware, hsts_enabled=settings.environment == "production"
    )

    # 1. CORS, outermost so preflight requests are answered first
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[CORRELATION_ID_HEADER, REQUEST_ID_HEADER],
    )

    application.include_router(health_router)
    application.include_router(users_router)

    instrument_app(application, settings)

    return application


app = create_app()
