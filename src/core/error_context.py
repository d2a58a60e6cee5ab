"""Redaction of sensitive values before they reach logs or responses.

Field names are matched against a built-in pattern and the extra names in
``LogConfig.sensitive_fields``. Matching values are replaced with
``[REDACTED]``; nested containers are walked recursively.

Besides plain dictionaries this module cleans MongoDB filters (operator
keys pass through, values are checked) and connection URIs (the user-info
part is stripped).

Inputs are never mutated; every function returns a cleaned copy.
"""

from __future__ import annotations

import re
from functools import lru_cache
from re import Pattern
from typing import Any, Final

from src.core.config import get_settings
from src.core.constants import REDACTED

SanitizableValue = (
    str | int | float | bool | None | dict[str, Any] | list[Any] | tuple[Any, ...]
)

DEFAULT_SENSITIVE_PATTERN: Final[Pattern[str]] = re.compile(
    r"(password|passwd|pwd|secret|token|api[_-]?key|apikey|auth|authorization|"
    r"credential|private[_-]?key|access[_-]?key|secret[_-]?key|session|"
    r"ssn|social[_-]?security|pin|cvv|cvc|card[_-]?number|connection[_-]?string)",
    re.IGNORECASE,
)

# Containers nested deeper than this are redacted wholesale
MAX_DEPTH: Final[int] = 10


@lru_cache(maxsize=1)
def _get_sensitive_fields() -> tuple[str, ...]:
    """Configured extra field names, lower-cased."""
    return tuple(name.lower() for name in get_settings().log_config.sensitive_fields)


def is_sensitive_field(field_name: str) -> bool:
    """Return True when ``field_name`` looks like it holds a secret.

    A name is sensitive if the built-in pattern matches anywhere in it, or if
    it contains one of the configured names (case-insensitive).
    """
    if DEFAULT_SENSITIVE_PATTERN.search(field_name):
        return True

    lowered = field_name.lower()
    return any(name in lowered for name in _get_sensitive_fields())


def sanitize_value(
    value: SanitizableValue, field_name: str = "", depth: int = 0
) -> SanitizableValue:
    """Redact ``value`` if ``field_name`` is sensitive, recursing into containers.

    Args:
        value: Value to clean.
        field_name: Key the value was stored under, if any.
        depth: Nesting level of ``value``; past MAX_DEPTH everything is redacted.

    Returns:
        SanitizableValue: A cleaned copy for containers, REDACTED, or ``value``.
    """
    if depth > MAX_DEPTH or (field_name and is_sensitive_field(field_name)):
        return REDACTED

    child_depth = depth + 1
    if isinstance(value, dict):
        return {
            key: sanitize_value(item, key, child_depth) for key, item in value.items()
        }
    if isinstance(value, list):
        return [sanitize_value(item, "", child_depth) for item in value]
    if isinstance(value, tuple):
        return tuple(sanitize_value(item, "", child_depth) for item in value)

    return value


def sanitize_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``data`` with sensitive keys redacted at every level."""
    return {key: sanitize_value(value, key) for key, value in data.items()}


def sanitize_error_context(
    error: Exception, context: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Describe ``error`` for a log record without leaking secrets.

    The result holds the exception type and message, the cleaned ``context``
    and, under ``error_attributes``, the exception's public attributes.
    """
    details: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }

    if context:
        details.update(sanitize_dict(context))

    public_attrs = {
        name: value
        for name, value in getattr(error, "__dict__", {}).items()
        if not name.startswith("_") and name != "stack_trace"
    }
    if public_attrs:
        details["error_attributes"] = sanitize_dict(public_attrs)

    return details


def sanitize_query(query: object) -> object:
    """Sanitize a MongoDB filter or document for safe logging.

    Operator keys such as ``$gt`` pass through; values stored under
    sensitive field names are redacted at any depth. Anything that is not a
    mapping is replaced by REDACTED.
    """
    if query is None:
        return None

    if isinstance(query, dict):
        return sanitize_dict({str(k): v for k, v in query.items()})

    return REDACTED


def redact_uri(uri: str) -> str:
    """Strip credentials from a connection URI.

    Examples:
        >>> redact_uri("mongodb://admin:hunter2@db:27017/centivo")
        'mongodb://[REDACTED]@db:27017/centivo'
        >>> redact_uri("mongodb://localhost:27017/centivo")
        'mongodb://localhost:27017/centivo'
    """
    scheme, separator, rest = uri.partition("://")
    if not separator or "@" not in rest:
        return uri
    return f"{scheme}://{REDACTED}@{rest.rsplit('@', 1)[1]}"
