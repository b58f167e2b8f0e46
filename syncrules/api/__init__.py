"""API routes."""

from .accounts import router as accounts_router
from .folders import router as folders_router
from .groups import router as groups_router
from .permissions import router as permissions_router
from .projects import router as projects_router
from .rules import router as rules_router
from .users import router as users_router

__all__ = [
    "accounts_router",
    "folders_router",
    "groups_router",
    "permissions_router",
    "projects_router",
    "rules_router",
    "users_router",
]
