"""Response body of the health endpoint."""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field


class DatabaseHealth(BaseModel):
    """Database part of the health report."""

    connected: bool
    message: str


class HealthResponse(BaseModel):
    """Health report.

    ``database`` is present for ``ok`` and ``degraded``; ``error`` only when
    the health check itself failed.
    """

    status: Literal["ok", "degraded", "error"]
    message: str
    database: DatabaseHealth | None = None
    error: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
