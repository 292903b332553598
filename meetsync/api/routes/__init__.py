"""API routes

Aggregates every route module into a single router mounted under /api.
"""

from fastapi import APIRouter

from .availability import router as availability_router
from .meetings import router as meetings_router
from .notifications import router as notifications_router
from .permissions import router as permissions_router
from .users import router as users_router


api_router = APIRouter(prefix="/api")

api_router.include_router(users_router, tags=["users"])
api_router.include_router(availability_router, prefix="/availability", tags=["availability"])
api_router.include_router(meetings_router, prefix="/meetings", tags=["meetings"])
api_router.include_router(permissions_router, prefix="/permissions", tags=["permissions"])
api_router.include_router(notifications_router, prefix="/notifications", tags=["notifications"])

__all__ = ["api_router"]
