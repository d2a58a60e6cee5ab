"""Health and service information endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, status
from loguru import logger

from src.api.schemas.health import DatabaseHealth, HealthResponse
from src.api.utils.responses import ORJSONResponse
from src.core.config import Settings, get_settings
from src.infrastructure.database.dependencies import ConnectionManagerDep

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    response_model_exclude_none=True,
    responses={
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": HealthResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": HealthResponse},
    },
)
async def health(manager: ConnectionManagerDep) -> ORJSONResponse:
    """Health check endpoint for monitoring and container orchestration.

    Returns 200 when the database answers a ping, 503 when it does not and
    500 if the check itself fails.
    """
    try:
        connected = await manager.check_health()
    except Exception as e:  # noqa: BLE001 - any failure is reported as status "error"
        logger.opt(exception=e).error("Health check failed")
        report = HealthResponse(
            status="error", message="Health check failed", error=str(e)
        )
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        if connected:
            report = HealthResponse(
                status="ok",
                message="API is running",
                database=DatabaseHealth(
                    connected=True, message="Database connection is healthy"
                ),
            )
            status_code = status.HTTP_200_OK
        else:
            logger.warning("Database health check failed, reporting degraded")
            report = HealthResponse(
                status="degraded",
                message="API is running but database connection is not healthy",
                database=DatabaseHealth(
                    connected=False, message="Database connection failed"
                ),
            )
            status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ORJSONResponse(
        status_code=status_code,
        content=report.model_dump(mode="json", exclude_none=True),
    )


@router.get("/info")
async def info(
    app_settings: Annotated[Settings, Depends(get_settings)],
) -> dict[str, Any]:
    """Get application information.

    Returns:
        dict[str, Any]: Application name, version, environment and debug flag.
    """
    return {
        "app_name": app_settings.app_name,
        "version": app_settings.app_version,
        "environment": app_settings.environment,
        "debug": app_settings.debug,
    }
