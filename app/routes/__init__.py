"""API routes for the engagement engine."""

from .analytics import router as analytics_router
from .content import router as content_router
from .engagement import router as engagement_router
from .health import router as health_router
from .tracking import router as tracking_router

__all__ = [
    "analytics_router",
    "content_router",
    "engagement_router",
    "health_router",
    "tracking_router",
]
