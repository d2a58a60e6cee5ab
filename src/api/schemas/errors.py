"""Error response schema shared by every exception handler.

All error responses carry ``error: true`` and a client-safe ``message``.
The remaining fields identify the failure for programmatic handling and
for finding the matching log lines.
"""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standardized error response model for API errors."""

    error: Literal[True] = Field(
        default=True,
        description="Always true for error responses",
    )

    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=[
            "Invalid user ID format",
            "User not found or does not meet age requirements",
        ],
    )

    error_code: str = Field(
        ...,
        description="Unique error code identifying the error type",
        examples=["VALIDATION_ERROR", "NOT_FOUND", "CONFLICT"],
    )

    path: str = Field(
        ...,
        description="Request path that produced the error",
        examples=["/users/65f1c0ffee0000000000abcd"],
    )

    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details (e.g., field-specific validation errors)",
        examples=[
            {"validation_errors": {"limit": ["Input should be a valid integer"]}}
        ],
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when the error occurred (with timezone)",
        examples=["2024-06-14T12:00:00+00:00"],
    )

    correlation_id: str | None = Field(
        default=None,
        description="Request correlation ID for tracing and debugging",
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    )

    request_id: str | None = Field(
        default=None,
        description="Unique request identifier",
        examples=["req-550e8400-e29b-41d4-a716-446655440000"],
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "error": True,
                    "message": "User not found or does not meet age requirements",
                    "error_code": "NOT_FOUND",
                    "path": "/users/65f1c0ffee0000000000abcd",
                    "timestamp": "2024-06-14T12:00:00+00:00",
                    "correlation_id": "550e8400-e29b-41d4-a716-446655440000",
                    "request_id": "req-660e8400-e29b-41d4-a716-446655440000",
                },
                {
                    "error": True,
                    "message": "A user with this email already exists",
                    "error_code": "CONFLICT",
                    "path": "/users",
                    "timestamp": "2024-06-14T12:00:01+00:00",
                },
            ]
        }
    }
