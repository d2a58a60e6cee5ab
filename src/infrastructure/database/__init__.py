"""MongoDB access layer built on the motor async driver.

Core components:
- **connection**: Connection lifecycle, health checks and reconnection
- **indexes**: Idempotent collection and index setup
- **repository**: User queries with the visibility rule
- **dependencies**: FastAPI dependency injection helpers
- **seed**: Sample data loader
"""

from src.infrastructure.database.connection import (
    ConnectionManager,
    ConnectionState,
    backoff_delay_ms,
    get_connection_manager,
    reset_connection_manager,
)
from src.infrastructure.database.dependencies import (
    ConnectionManagerDep,
    UserRepositoryDep,
    get_user_repository,
)
from src.infrastructure.database.indexes import initialize_database
from src.infrastructure.database.repository import UserRepository

__all__ = [
    "ConnectionManager",
    "ConnectionManagerDep",
    "ConnectionState",
    "UserRepository",
    "UserRepositoryDep",
    "backoff_delay_ms",
    "get_connection_manager",
    "get_user_repository",
    "initialize_database",
    "reset_connection_manager",
]
