"""
Health check endpoint.
"""

import logging
from typing import Any, Dict

import sentry_sdk
from fastapi import APIRouter, Depends

from engagement_engine import __version__
from engagement_engine.config import get_settings
from engagement_engine.engine import AnalyticsEngine
from engagement_engine.utils.dates import utc_now

from ..dependencies import get_engine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def get_sentry_status() -> Dict[str, Any]:
    """Current Sentry configuration status."""
    settings = get_settings()
    try:
        client = sentry_sdk.get_client()
        return {
            "configured": settings.sentry.is_configured,
            "active": client.is_active(),
            "environment": settings.sentry.sentry_environment,
        }
    except Exception as e:
        logger.warning(f"Sentry status check failed: {e}")
        return {"configured": settings.sentry.is_configured, "active": False}


@router.get(
    "/health",
    summary="Service health check",
    description="""
Health check endpoint for monitoring and load balancers.

Returns the service version, the environment, Sentry status and the number
of tracked visitors and content items.
    """,
)
async def health_check(engine: AnalyticsEngine = Depends(get_engine)) -> Dict[str, Any]:
    settings = get_settings()
    sentry_status = get_sentry_status()

    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "version": settings.sentry.sentry_release or __version__,
        "environment": settings.security.environment,
        "services": {
            "sentry": {
                "status": "up" if sentry_status.get("active") else (
                    "unconfigured" if not sentry_status.get("configured") else "down"
                ),
            },
        },
        "store": engine.stats(),
    }
