"""API routers mounted by the application factory."""

from src.api.routes.health import router as health_router
from src.api.routes.users import router as users_router

__all__ = ["health_router", "users_router"]
