"""Application exception hierarchy.

Every error the service raises on purpose derives from ``CentivoError``,
which carries a machine-readable code, a severity, optional context for the
logs and a fingerprint used to group occurrences of the same failure.

The API layer maps each subclass to an HTTP status code, so data access code
raises domain errors and never builds responses itself:

- ``ValidationError`` -> 400
- ``ConflictError`` -> 400
- ``NotFoundError`` -> 404
- ``ServerError`` -> 500
- ``DatabaseConnectionError`` -> 503
"""

import hashlib
import traceback
from enum import Enum
from typing import Any

# Innermost stack frames considered when fingerprinting
FINGERPRINT_FRAMES = 5


class ErrorCode(Enum):
    """Error identifiers returned to clients in ``error_code``."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Anything the service did not anticipate."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Malformed id, missing field or wrongly typed value."""

    NOT_FOUND = "NOT_FOUND"
    """No such record, or the record is hidden."""

    CONFLICT = "CONFLICT"
    """The resource collides with an existing one (e.g. duplicate email)."""

    DATABASE_UNAVAILABLE = "DATABASE_UNAVAILABLE"
    """The database connection is not established or could not be opened."""


class Severity(Enum):
    """How loudly an error should be reported."""

    LOW = "LOW"
    """Caused by the client; logged as a warning."""

    MEDIUM = "MEDIUM"
    """Unusual but handled."""

    HIGH = "HIGH"
    """A request could not be served because of the service itself."""

    CRITICAL = "CRITICAL"
    """The service cannot reach its database."""


class CentivoError(Exception):
    """Base class for application errors.

    Args:
        error_code: ErrorCode member or a free-form code string.
        message: Text shown to the client.
        severity: Reporting level, MEDIUM unless a subclass says otherwise.
        context: Extra key/value pairs for the logs. Sanitized before logging.
        cause: Lower-level exception being wrapped; becomes ``__cause__``.
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        if isinstance(error_code, ErrorCode):
            error_code = error_code.value
        self.error_code = error_code
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause
        # Drop this frame so the trace ends where the error was raised
        self.stack_trace = traceback.format_stack()[:-1]
        self.fingerprint = self._generate_fingerprint()

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def _generate_fingerprint(self) -> str:
        """Short hash of the error class, its code and the raising location.

        Only the innermost project frames count, so two errors raised from the
        same line share a fingerprint regardless of their message.
        """
        parts = [type(self).__name__, self.error_code]
        for frame in self.stack_trace[-FINGERPRINT_FRAMES:]:
            if "src/" in frame and "site-packages" not in frame:
                parts.append(frame.strip().splitlines()[0])

        digest = hashlib.sha256(":".join(parts).encode())
        return digest.hexdigest()[:16]

    @property
    def is_expected(self) -> bool:
        """Whether this error is part of normal operation (LOW or MEDIUM)."""
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        fields = [
            f"error_code='{self.error_code}'",
            f"message='{self.message}'",
            f"severity={self.severity.value}",
        ]
        if self.context:
            fields.append(f"context={self.context}")
        return f"{type(self).__name__}({', '.join(fields)})"


class ValidationError(CentivoError):
    """Invalid client input.

    Used for malformed identifiers, missing required fields and values of
    the wrong type.
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.VALIDATION_ERROR,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class NotFoundError(CentivoError):
    """The requested record does not exist or may not be shown.

    Records hidden by the visibility rule are reported with this error too,
    so callers cannot tell them apart from missing ones.
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.NOT_FOUND,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class ConflictError(CentivoError):
    """A write collided with an existing record."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.CONFLICT,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class ServerError(CentivoError):
    """The database failed unexpectedly while serving a request.

    The default message is generic. Driver details go in
    ``cause`` and ``context``, which are logged but never returned.
    """

    def __init__(
        self,
        message: str = "Internal Server Error",
        error_code: str | ErrorCode = ErrorCode.INTERNAL_ERROR,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.HIGH, context, cause)


class DatabaseConnectionError(CentivoError):
    """A connection to the database could not be opened."""

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.DATABASE_UNAVAILABLE,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.CRITICAL, context, cause)


class DatabaseNotInitializedError(DatabaseConnectionError):
    """The database handle was requested before any connection succeeded."""

    def __init__(
        self,
        message: str = "Database not initialized. Call connect() first.",
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
