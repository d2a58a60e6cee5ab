"""Global exception handlers for the FastAPI application.

Every failure, whether raised by a route, by request validation or by the
router itself, is rendered as an ``ErrorResponse``. Internal details such
as stack traces and driver messages stay in the logs.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException

from src.api.constants import INTERNAL_SERVER_ERROR_MESSAGE
from src.api.schemas.errors import ErrorResponse
from src.api.utils.responses import ORJSONResponse
from src.core.context import RequestContext
from src.core.error_context import sanitize_error_context
from src.core.exceptions import (
    CentivoError,
    ConflictError,
    DatabaseConnectionError,
    ErrorCode,
    NotFoundError,
    ValidationError,
)

# Checked in order, so subclasses must precede their bases
STATUS_CODES: tuple[tuple[type[CentivoError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (DatabaseConnectionError, status.HTTP_503_SERVICE_UNAVAILABLE),
)

HTTP_ERROR_CODES: dict[int, ErrorCode] = {
    status.HTTP_400_BAD_REQUEST: ErrorCode.VALIDATION_ERROR,
    status.HTTP_404_NOT_FOUND: ErrorCode.NOT_FOUND,
    status.HTTP_405_METHOD_NOT_ALLOWED: ErrorCode.NOT_FOUND,
}


def status_code_for(exc: CentivoError) -> int:
    """Map an application exception to its HTTP status code."""
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_response(
    request: Request,
    status_code: int,
    error_code: str,
    message: str,
    details: dict[str, object] | None = None,
) -> Response:
    error_response = ErrorResponse(
        message=message,
        error_code=error_code,
        path=request.url.path,
        details=details,
        correlation_id=RequestContext.get_correlation_id(),
        request_id=RequestContext.get_request_id(),
    )
    return ORJSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json"),
    )


async def centivo_error_handler(request: Request, exc: Exception) -> Response:
    """Handle CentivoError exceptions.

    Args:
        request: The FastAPI request that caused the exception
        exc: The CentivoError exception to handle

    Returns:
        Response: ORJSONResponse with error details

    Raises:
        TypeError: If exc is not a CentivoError instance
    """
    if not isinstance(exc, CentivoError):
        raise TypeError(f"Expected CentivoError, got {type(exc).__name__}")

    status_code = status_code_for(exc)
    error_context = sanitize_error_context(
        exc,
        {
            "request_method": request.method,
            "request_path": request.url.path,
            "status_code": status_code,
        },
    )

    log = logger.warning if exc.is_expected else logger.error
    log(
        "Handling {}: {}",
        type(exc).__name__,
        exc.message,
        fingerprint=exc.fingerprint,
        severity=exc.severity.value,
        **error_context,
    )

    return _error_response(request, status_code, exc.error_code, exc.message)


async def validation_error_handler(request: Request, exc: Exception) -> Response:
    """Handle FastAPI RequestValidationError exceptions.

    Field-level messages are grouped under ``details.validation_errors``.

    Raises:
        TypeError: If exc is not a RequestValidationError instance
    """
    if not isinstance(exc, RequestValidationError):
        raise TypeError(f"Expected RequestValidationError, got {type(exc).__name__}")

    field_errors: dict[str, list[str]] = {}
    for error in exc.errors():
        field_path = error.get("loc", ())
        field_name = ".".join(str(loc) for loc in field_path[1:]) or "root"
        message = error.get("msg", "Invalid value")
        field_errors.setdefault(field_name, []).append(message)

    logger.warning(
        "Request validation failed",
        status_code=status.HTTP_400_BAD_REQUEST,
        validation_errors=field_errors,
    )

    return _error_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        ErrorCode.VALIDATION_ERROR.value,
        "Request validation failed",
        details={"validation_errors": field_errors},
    )


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle Starlette HTTPException.

    Unmatched routes are reported as ``Not Found - <path>``.

    Raises:
        TypeError: If exc is not an HTTPException instance
    """
    if not isinstance(exc, HTTPException):
        raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")

    message = str(exc.detail)
    if exc.status_code == status.HTTP_404_NOT_FOUND and message == "Not Found":
        message = f"Not Found - {request.url.path}"

    error_code = HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)

    logger.warning(
        "HTTP exception",
        status=exc.status_code,
        method=request.method,
        path=request.url.path,
        detail=exc.detail,
    )

    response = _error_response(request, exc.status_code, error_code.value, message)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle any other exception with a generic 500 response.

    The exception and its stack trace are logged; the client only sees
    ``Internal Server Error``.
    """
    error_context = sanitize_error_context(
        exc,
        {
            "request_method": request.method,
            "request_path": request.url.path,
        },
    )

    logger.opt(exception=exc).error(
        "Unhandled exception: {}", type(exc).__name__, **error_context
    )

    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.INTERNAL_ERROR.value,
        INTERNAL_SERVER_ERROR_MESSAGE,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(CentivoError, centivo_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Exception handlers registered")
