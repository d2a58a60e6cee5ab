"""Replace the users collection with a fixed sample data set.

Run with ``python -m src.infrastructure.database.seed``. Existing users are
deleted first.
"""

from __future__ import annotations

import asyncio
import copy
import sys
from typing import TYPE_CHECKING, Any, Final

from loguru import logger

from src.core.config import get_settings
from src.core.exceptions import DatabaseConnectionError
from src.core.logging import setup_logging
from src.infrastructure.database.connection import ConnectionManager
from src.infrastructure.database.indexes import initialize_database

if TYPE_CHECKING:
    from bson import ObjectId
    from motor.motor_asyncio import AsyncIOMotorCollection

# Ages straddle the visibility threshold: 19, 20 and 21 stay hidden, 22 shows
SAMPLE_USERS: Final[tuple[dict[str, Any], ...]] = (
    {"name": "John Doe", "email": "john@example.com", "age": 30,
     "occupation": "Software Engineer"},
    {"name": "Jane Smith", "email": "jane@example.com", "age": 25,
     "occupation": "Product Manager"},
    {"name": "Bob Johnson", "email": "bob@example.com", "age": 35,
     "occupation": "Data Scientist"},
    {"name": "Alice Brown", "email": "alice@example.com", "age": 19,
     "occupation": "Student"},
    {"name": "Charlie Wilson", "email": "charlie@example.com", "age": 21,
     "occupation": "Intern"},
    {"name": "David Miller", "email": "david@example.com", "age": 22,
     "occupation": "Junior Developer"},
    {"name": "Emily Davis", "email": "emily@example.com", "age": 28,
     "occupation": "UX Designer"},
    {"name": "Frank Thomas", "email": "frank@example.com", "age": 42,
     "occupation": "Project Manager"},
    {"name": "Grace Lee", "email": "grace@example.com", "age": 31,
     "occupation": "Marketing Specialist"},
    {"name": "Henry Wilson", "email": "henry@example.com", "age": 20,
     "occupation": "Intern"},
)  # fmt: skip


async def seed_users(collection: AsyncIOMotorCollection) -> list[ObjectId]:
    """Delete every user, then insert ``SAMPLE_USERS``.

    Returns:
        list[ObjectId]: Ids of the inserted users, in ``SAMPLE_USERS`` order.
    """
    deleted = await collection.delete_many({})
    logger.info("Cleared {} existing users", deleted.deleted_count)

    users = [copy.deepcopy(user) for user in SAMPLE_USERS]
    result = await collection.insert_many(users)
    logger.info("Inserted {} users", len(result.inserted_ids))

    for user, inserted_id in zip(SAMPLE_USERS, result.inserted_ids, strict=True):
        logger.info("{} (age: {}): {}", user["name"], user["age"], inserted_id)

    return list(result.inserted_ids)


async def main() -> int:
    """Seed the configured database. Returns the process exit code."""
    settings = get_settings()
    setup_logging(settings)

    manager = ConnectionManager(settings)
    try:
        db = await manager.connect()
        if db is None:
            return 1
        await initialize_database(db, settings.mongo_config.users_collection)
        await seed_users(manager.get_collection())
    except DatabaseConnectionError as e:
        logger.error("Seeding failed: {}", e)
        return 1
    finally:
        await manager.close()

    logger.info("Database seeded successfully")
    return 0


def cli() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
