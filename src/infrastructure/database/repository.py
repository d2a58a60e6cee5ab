"""Data access for the users collection.

``UserRepository`` translates domain operations into MongoDB queries. It
enforces the visibility rule (readers only ever see users strictly older
than the threshold) and email uniqueness, and remaps driver failures onto
the application's exception hierarchy.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from bson import ObjectId
from loguru import logger
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from src.core.constants import (
    AGE_VISIBILITY_THRESHOLD,
    BSON_INT64_MAX,
    BSON_INT64_MIN,
    DEFAULT_LIST_LIMIT,
    DEFAULT_MIN_AGE,
)
from src.core.error_context import sanitize_query
from src.core.exceptions import ConflictError, ServerError, ValidationError

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorCollection

    from src.core.types import Document, QueryFilter

REQUIRED_USER_FIELDS = ("name", "email", "age")
TEXT_USER_FIELDS = ("name", "email")


class UserRepository:
    """Repository for user documents.

    Args:
        collection: The motor collection holding users.
        visibility_threshold: Users with ``age`` at or below this value are
            never returned by ``find_by_id``.

    Example:
        repository = UserRepository(manager.get_collection())
        user = await repository.find_by_id("65f1c0ffee0000000000abcd")
    """

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        visibility_threshold: int = AGE_VISIBILITY_THRESHOLD,
    ) -> None:
        self.collection = collection
        self.visibility_threshold = visibility_threshold

    async def find_by_id(self, user_id: str) -> Document | None:
        """Retrieve a visible user by id.

        Args:
            user_id: 24-character hex string of the user's ObjectId.

        Returns:
            Document | None: The user, or None if absent or not visible.

        Raises:
            ValidationError: If ``user_id`` is not a valid ObjectId.
            ServerError: If the database query fails.
        """
        if not ObjectId.is_valid(user_id):
            raise ValidationError(
                "Invalid user ID format", context={"user_id": user_id}
            )

        query: QueryFilter = {
            "_id": ObjectId(user_id),
            "age": {"$gt": self.visibility_threshold},
        }
        logger.debug("Fetching user by ID: {}", user_id)

        try:
            user: Document | None = await self.collection.find_one(query)
        except PyMongoError as e:
            raise self._server_error("find_by_id", query, e) from e

        if user is None:
            logger.debug("User not found or not visible - ID: {}", user_id)
        return user

    async def find_by_age_filter(
        self, min_age: int = DEFAULT_MIN_AGE, limit: int = DEFAULT_LIST_LIMIT
    ) -> list[Document]:
        """List users older than ``min_age``, youngest first.

        Args:
            min_age: Exclusive lower bound on age.
            limit: Maximum number of users to return.

        Returns:
            list[Document]: At most ``limit`` users sorted ascending by age.
        """
        query: QueryFilter = {"age": {"$gt": min_age}}
        logger.debug("Listing users with age > {} (limit {})", min_age, limit)

        try:
            cursor = self.collection.find(query).sort("age", ASCENDING).limit(limit)
            users: list[Document] = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise self._server_error("find_by_age_filter", query, e) from e

        logger.debug("Retrieved {} users", len(users))
        return users

    async def count_by_age_filter(self, min_age: int = DEFAULT_MIN_AGE) -> int:
        """Count users older than ``min_age``, regardless of any page limit."""
        query: QueryFilter = {"age": {"$gt": min_age}}

        try:
            count: int = await self.collection.count_documents(query)
        except PyMongoError as e:
            raise self._server_error("count_by_age_filter", query, e) from e

        logger.debug("Counted {} users with age > {}", count, min_age)
        return count

    async def create(self, user_data: dict[str, Any]) -> Document:
        """Insert a new user.

        The email pre-check is not atomic with the insert. A concurrent
        create with the same email is caught by the unique index instead and
        reported the same way.

        Args:
            user_data: The user fields. Attributes beyond name, email and age
                are stored as given.

        Returns:
            Document: The stored user including its ``_id``.

        Raises:
            ValidationError: If a required field is missing, name or email is
                not a string, or age is not a number BSON can store.
            ConflictError: If a user with the same email exists.
            ServerError: If the database write fails.
        """
        document = dict(user_data)

        if any(document.get(field) in (None, "") for field in REQUIRED_USER_FIELDS):
            raise ValidationError(
                "Name, email, and age are required fields",
                context={"fields": sorted(document)},
            )
        for field in TEXT_USER_FIELDS:
            if not isinstance(document[field], str):
                raise ValidationError(
                    "Name and email must be strings",
                    context={"field": field, "type": type(document[field]).__name__},
                )
        document["age"] = _normalize_age(document["age"])

        email = document["email"]
        try:
            existing = await self.collection.find_one({"email": email})
        except PyMongoError as e:
            raise self._server_error("create", {"email": email}, e) from e
        if existing is not None:
            raise ConflictError("A user with this email already exists")

        try:
            result = await self.collection.insert_one(document)
        except DuplicateKeyError as e:
            raise ConflictError(
                "A user with this email already exists", cause=e
            ) from e
        except PyMongoError as e:
            raise self._server_error("create", {"email": email}, e) from e

        document["_id"] = result.inserted_id
        logger.info("Created user with ID: {}", result.inserted_id)
        return document

    @staticmethod
    def _server_error(
        operation: str, query: QueryFilter, error: PyMongoError
    ) -> ServerError:
        logger.error(
            "Database error during {}: {}",
            operation,
            error,
            operation=operation,
            query=sanitize_query(query),
        )
        return ServerError(context={"operation": operation}, cause=error)


def _normalize_age(age: object) -> int | float:
    """Validate that age is a JSON number. Integral floats become ints.

    Integral values outside the signed 64-bit range are rejected.
    """
    if isinstance(age, bool) or not isinstance(age, int | float):
        raise ValidationError("Age must be a number", context={"age": repr(age)})
    if isinstance(age, float):
        if not math.isfinite(age):
            raise ValidationError("Age must be a number", context={"age": repr(age)})
        if not age.is_integer():
            return age
        age = int(age)
    if not BSON_INT64_MIN <= age <= BSON_INT64_MAX:
        raise ValidationError("Age is out of range", context={"age": repr(age)})
    return age
