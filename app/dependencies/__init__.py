"""
FastAPI dependencies for the engagement engine API.

Usage:
    from app.dependencies import get_engine

    @router.get("/content/{content_id}")
    async def get_content(content_id: str, engine: AnalyticsEngine = Depends(get_engine)):
        ...
"""

from fastapi import Request

from engagement_engine.engine import AnalyticsEngine


def get_engine(request: Request) -> AnalyticsEngine:
    """The AnalyticsEngine built once by ``create_app``."""
    return request.app.state.engine


__all__ = ["get_engine"]
