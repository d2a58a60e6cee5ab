"""FastAPI dependency injection for database access.

Route handlers declare ``UserRepositoryDep`` and receive a repository bound
to the collection of the current database handle. The handle is looked up
per request, so a reconnection is picked up without restarting the app.
"""

from typing import Annotated

from fastapi import Depends

from src.infrastructure.database.connection import (
    ConnectionManager,
    get_connection_manager,
)
from src.infrastructure.database.repository import UserRepository

ConnectionManagerDep = Annotated[ConnectionManager, Depends(get_connection_manager)]


def get_user_repository(manager: ConnectionManagerDep) -> UserRepository:
    """Provide a ``UserRepository`` for the current request.

    Raises:
        DatabaseNotInitializedError: If no database handle is available.
    """
    return UserRepository(manager.get_collection())


UserRepositoryDep = Annotated[UserRepository, Depends(get_user_repository)]
