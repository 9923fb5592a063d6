"""API routes package."""

from .routes_users import router as users_router
from .routes_regions import router as regions_router
from .routes_supply import router as supply_router
from .routes_ws import router as ws_router

__all__ = [
    "users_router",
    "regions_router",
    "supply_router",
    "ws_router",
]
