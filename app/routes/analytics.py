"""
Dashboard analytics endpoints.

Provides the content overview, daily content trends and aggregated visitor
engagement metrics for a timeframe (week, month or quarter).
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from engagement_engine.engine import AnalyticsEngine

from ..dependencies import get_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"])

TIMEFRAME_QUERY = Query(default=None, description="week, month or quarter")


@router.get("/content")
async def get_content_analytics(
    timeframe: Optional[str] = TIMEFRAME_QUERY,
    engine: AnalyticsEngine = Depends(get_engine),
) -> Dict[str, Any]:
    return engine.get_content_analytics(timeframe).to_dict()


@router.get("/content/trends")
async def get_content_trends(
    timeframe: Optional[str] = TIMEFRAME_QUERY,
    engine: AnalyticsEngine = Depends(get_engine),
) -> Dict[str, Any]:
    return engine.get_content_trends(timeframe).to_dict()


@router.get("/engagement")
async def get_engagement_metrics(
    timeframe: Optional[str] = TIMEFRAME_QUERY,
    engine: AnalyticsEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Aggregated visitor metrics across everyone active in the timeframe."""
    return engine.get_aggregated_metrics(timeframe).to_dict()
