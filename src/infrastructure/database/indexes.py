"""Idempotent creation of the users collection and its indexes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from src.infrastructure.constants import (
    AGE_INDEX_NAME,
    EMAIL_INDEX_NAME,
    USERS_COLLECTION,
)

if TYPE_CHECKING:
    from motor.motor_asyncio import AsyncIOMotorDatabase


async def initialize_database(
    db: AsyncIOMotorDatabase, collection_name: str = USERS_COLLECTION
) -> None:
    """Ensure the users collection and its indexes exist.

    Creates the collection if it is missing, then an ascending index on
    ``age`` and a unique sparse index on ``email``. Running it again is a
    no-op.

    Args:
        db: The database handle.
        collection_name: Name of the users collection.

    Raises:
        PyMongoError: Any driver failure, after it has been logged.
    """
    try:
        existing = await db.list_collection_names()
        if collection_name not in existing:
            await db.create_collection(collection_name)
            logger.info("Created collection {}", collection_name)

        collection = db[collection_name]
        await collection.create_index(
            [("age", ASCENDING)], name=AGE_INDEX_NAME, sparse=False
        )
        await collection.create_index(
            [("email", ASCENDING)], name=EMAIL_INDEX_NAME, unique=True, sparse=True
        )
    except PyMongoError as e:
        logger.error("Failed to initialize database indexes: {}", e)
        raise

    logger.info(
        "Indexes ensured on {}: {}, {}",
        collection_name,
        AGE_INDEX_NAME,
        EMAIL_INDEX_NAME,
    )
