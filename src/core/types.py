"""Type aliases for dynamic data structures throughout the application.

This module centralizes type definitions for data that cannot be statically
typed, such as MongoDB documents and query filters, giving them a clear
semantic name.
"""

from typing import Any

# JSON-compatible type that represents any valid JSON value
type JsonValue = (
    dict[str, "JsonValue"] | list["JsonValue"] | str | int | float | bool | None
)

# A document as stored in or returned from MongoDB
type Document = dict[str, Any]

# MongoDB query filter, e.g. {"age": {"$gt": 21}}
type QueryFilter = dict[str, Any]
