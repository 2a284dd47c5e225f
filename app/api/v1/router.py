"""Main v1 API router that aggregates all sub-routers."""

from fastapi import APIRouter

from .auth import router as auth_router
from .users import router as users_router
from .stories import router as stories_router
from .comments import router as comments_router
from .notifications import router as notifications_router
from .subscriptions import router as subscriptions_router
from .ai import router as ai_router
from .export import router as export_router
from .mentor import router as mentor_router
from .admin import router as admin_router
from .health import router as health_router

# Main v1 router
router = APIRouter(prefix="/api/v1")

# Include all sub-routers with appropriate prefixes
router.include_router(auth_router, prefix="/auth", tags=["Auth"])
router.include_router(users_router, prefix="/users", tags=["Users"])
router.include_router(stories_router, prefix="/stories", tags=["Stories"])
router.include_router(comments_router, prefix="/comments", tags=["Comments"])
router.include_router(notifications_router, prefix="/notifications", tags=["Notifications"])
router.include_router(subscriptions_router, prefix="/subscriptions", tags=["Subscriptions"])
router.include_router(ai_router, prefix="/ai", tags=["AI"])
router.include_router(export_router, prefix="/export", tags=["Export"])
router.include_router(mentor_router, prefix="/mentor", tags=["Mentor"])
router.include_router(admin_router, prefix="/admin", tags=["Admin"])
router.include_router(health_router, prefix="/health", tags=["Health"])

__all__ = ["router"]
