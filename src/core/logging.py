"""Structured logging for the Centivo Users API.

All output goes through Loguru. Records from libraries that use the standard
``logging`` module (uvicorn, the MongoDB driver) are intercepted and routed
to the same sink, so a single formatter governs the whole process.

Formatter types:
- **console**: Human-readable with inline context (development)
- **json**: Generic structured format (self-hosted, production)
- **gcp**: Google Cloud Logging format with trace integration
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from typing import Any, Final, cast

from loguru import logger

from src.core.config import Settings, get_settings
from src.core.constants import REDACTED
from src.core.error_context import is_sensitive_field


class _LoggingState:
    """Tracks whether logging has been configured."""

    def __init__(self) -> None:
        self.configured = False


_state = _LoggingState()

DEFAULT_LOG_FORMAT: Final[str] = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "{message}"
)
CORRELATION_ID_DISPLAY_LENGTH: Final[int] = 8
MAX_FIELD_VALUE_LENGTH: Final[int] = 100

# Fields shown first, in this order, by the console formatter
PRIORITY_FIELDS: Final[tuple[str, ...]] = (
    "correlation_id",
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "retry_count",
)

# Standard library loggers that are noisy at INFO
QUIET_LOGGERS: Final[dict[str, int]] = {
    "pymongo": logging.WARNING,
    "urllib3.connectionpool": logging.WARNING,
}


def _escape(value: object) -> str:
    """Escape braces so Loguru does not treat them as format fields."""
    return str(value).replace("{", "{{").replace("}", "}}")


def _format_priority_field(field: str, value: object) -> str:
    if field == "correlation_id" and len(str(value)) > CORRELATION_ID_DISPLAY_LENGTH:
        value = str(value)[:CORRELATION_ID_DISPLAY_LENGTH]
    elif field == "duration_ms":
        value = f"{value}ms"
    elif field == "status_code":
        status = str(value)
        if status.startswith("2"):
            return f"<green>{status}</green>"
        if status.startswith("4"):
            return f"<red>{status}</red>"
        if status.startswith("5"):
            return f"<red><bold>{status}</bold></red>"
    return _escape(value)


def _format_extra_field(key: str, value: object) -> str:
    str_value = str(value)
    if is_sensitive_field(key):
        str_value = REDACTED
    elif len(str_value) > MAX_FIELD_VALUE_LENGTH:
        str_value = str_value[: MAX_FIELD_VALUE_LENGTH - 3] + "..."
    return f"{_escape(key)}={_escape(str_value)}"


def _format_context_fields(extra: dict[str, Any]) -> list[str]:
    """Render bound fields as markup, PRIORITY_FIELDS first in fixed order."""
    parts = [
        f"<yellow>{_format_priority_field(field, extra[field])}</yellow>"
        for field in PRIORITY_FIELDS
        if extra.get(field) is not None
    ]
    parts.extend(
        f"<dim>{_format_extra_field(key, value)}</dim>"
        for key, value in extra.items()
        if key not in PRIORITY_FIELDS and not key.startswith("_") and value is not None
    )
    return parts


def format_console_with_context(record: dict[str, Any]) -> str:
    """Loguru format callable for development output.

    Produces ``time | level | location | [context] | message``. If the record
    cannot be rendered the plain DEFAULT_LOG_FORMAT is used instead.
    """
    try:
        timestamp = record["time"].strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        parts = [
            f"<green>{timestamp}</green>",
            f"<level>{record['level'].name: <8}</level>",
            f"<cyan>{record['name']}:{record['function']}:{record['line']}</cyan>",
        ]

        context_parts = _format_context_fields(record.get("extra", {}))
        if context_parts:
            parts.append(" ".join(f"[{part}]" for part in context_parts))

        parts.append(_escape(record.get("message", "")))
        if record.get("exception"):
            parts.append("\n{exception}")

        return " | ".join(parts) + "\n"
    except (AttributeError, TypeError, ValueError, KeyError):
        return DEFAULT_LOG_FORMAT + "\n"


class InterceptHandler(logging.Handler):
    """``logging.Handler`` that re-emits stdlib records through Loguru.

    Uvicorn access records also get the method, path and correlation ID of
    the request bound as context.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip frames inside the logging module itself
        frame, depth = sys._getframe(6), 6
        while frame and frame.f_code.co_filename == logging.__file__:
            if frame.f_back is None:
                break
            frame = frame.f_back
            depth += 1

        extra: dict[str, Any] = {}
        if record.name == "uvicorn.access" and hasattr(record, "scope"):
            scope = record.scope
            extra["method"] = scope.get("method", "")
            extra["path"] = scope.get("path", "")
            headers = dict(scope.get("headers", []))
            correlation_id = headers.get(b"x-correlation-id", b"").decode("utf-8")
            if correlation_id:
                extra["correlation_id"] = correlation_id

        logger.opt(depth=depth, exception=record.exc_info).bind(**extra).log(
            level, record.getMessage()
        )


def _filtered_extra(record: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in record.get("extra", {}).items() if not k.startswith("_")}


def serialize_for_json(record: dict[str, Any]) -> str:
    """One JSON object per line with the bound context merged in."""
    log_entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "function": record["function"],
        "line": record["line"],
    }
    log_entry.update(_filtered_extra(record))

    if exc := record.get("exception"):
        log_entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value) if exc.value else None,
        }

    return json.dumps(log_entry, default=str) + "\n"


GCP_SEVERITY: Final[dict[str, str]] = {
    "TRACE": "DEBUG",
    "DEBUG": "DEBUG",
    "INFO": "INFO",
    "SUCCESS": "INFO",
    "WARNING": "WARNING",
    "ERROR": "ERROR",
    "CRITICAL": "CRITICAL",
}


def serialize_for_gcp(record: dict[str, Any]) -> str:
    """One Cloud Logging structured entry per line.

    The correlation ID becomes the trace field and the request ID a label;
    remaining context goes into ``jsonPayload``. Source location is attached
    to errors. See https://cloud.google.com/logging/docs/structured-logging
    """
    settings = get_settings()
    log_entry: dict[str, Any] = {
        "severity": GCP_SEVERITY.get(record["level"].name, "INFO"),
        "message": record["message"],
        "timestamp": record["time"].isoformat(),
        "serviceContext": {
            "service": settings.app_name,
            "version": settings.app_version,
        },
    }

    labels = {"function": record["function"], "line": str(record["line"])}
    extra = _filtered_extra(record)
    if correlation_id := extra.pop("correlation_id", None):
        log_entry["logging.googleapis.com/trace"] = correlation_id
    if request_id := extra.pop("request_id", None):
        labels["request_id"] = request_id
    if fingerprint := extra.get("fingerprint"):
        labels["error_fingerprint"] = str(fingerprint)[:8]
    if extra:
        log_entry["jsonPayload"] = extra
    log_entry["logging.googleapis.com/labels"] = labels

    if record.get("exception") or record["level"].name in {"ERROR", "CRITICAL"}:
        log_entry["logging.googleapis.com/sourceLocation"] = {
            "file": record["file"].path,
            "line": str(record["line"]),
            "function": record["function"],
        }

    return json.dumps(log_entry, default=str) + "\n"


LOG_FORMATTERS: dict[str, Callable[[dict[str, Any]], str] | None] = {
    "console": None,
    "json": serialize_for_json,
    "gcp": serialize_for_gcp,
}


def _intercept_stdlib_logging() -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers = [InterceptHandler()]
        uvicorn_logger.propagate = False

    for logger_name, level in QUIET_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(level)


def setup_logging(settings: Settings) -> None:
    """Replace Loguru sinks with one stdout sink and capture stdlib logging.

    Idempotent: later calls return immediately.
    """
    if _state.configured:
        return

    logger.remove()

    formatter_type = settings.log_config.log_formatter_type or "console"
    formatter = LOG_FORMATTERS.get(formatter_type)

    if formatter is None:
        logger.add(
            sys.stdout,
            format=cast("Any", format_console_with_context),
            level=settings.log_config.log_level,
            enqueue=True,
            colorize=True,
            diagnose=settings.debug,
            backtrace=settings.debug,
        )
    else:
        structured_formatter = formatter

        def structured_sink(message: Any) -> None:
            sys.stdout.write(structured_formatter(message.record))
            sys.stdout.flush()

        logger.add(
            structured_sink,
            level=settings.log_config.log_level,
            enqueue=True,
            diagnose=False,
            backtrace=False,
        )

    _intercept_stdlib_logging()

    logger.info(
        "Logging to stdout using the {} formatter",
        formatter_type,
        log_level=settings.log_config.log_level,
    )
    _state.configured = True
