"""JSON rendering for API responses.

``ORJSONResponse`` is the default response class of the application.
``serialize_document`` turns a MongoDB document into something both
Pydantic and orjson can render, with ``_id`` as its 24-hex string form.
"""

from typing import Any

import orjson
from bson import ObjectId
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.core.types import Document, JsonValue


def _default(value: object) -> JsonValue:
    if isinstance(value, ObjectId):
        return str(value)
    msg = f"Type is not JSON serializable: {type(value).__name__}"
    raise TypeError(msg)


class ORJSONResponse(JSONResponse):
    """FastAPI Response class using orjson for JSON serialization.

    ObjectIds that reach the renderer are written as strings.
    """

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401 - accepts any JSON-serializable content
        """Render the content as JSON using orjson."""
        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json", by_alias=True)

        return orjson.dumps(content, default=_default, option=orjson.OPT_SORT_KEYS)


def serialize_document(document: Document) -> dict[str, Any]:
    """Convert ObjectId values in a document to strings.

    Args:
        document: A document as returned by the driver.

    Returns:
        dict[str, Any]: A shallow copy safe for JSON rendering.

    Examples:
        >>> oid = ObjectId("65f1c0ffee0000000000abcd")
        >>> serialize_document({"_id": oid, "age": 30})
        {'_id': '65f1c0ffee0000000000abcd', 'age': 30}
    """
    return {
        key: str(value) if isinstance(value, ObjectId) else value
        for key, value in document.items()
    }
