"""HTTP endpoints, one router per concern."""

from .health import router as health_router
from .uploads import router as uploads_router
from .confirm import router as confirm_router
from .stats import router as stats_router
from .readings import router as readings_router
from .users import router as users_router

__all__ = [
    "health_router",
    "uploads_router",
    "confirm_router",
    "stats_router",
    "readings_router",
    "users_router",
]
