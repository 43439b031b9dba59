"""
Per-visitor engagement endpoints.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Path

from engagement_engine.engine import AnalyticsEngine

from ..dependencies import get_engine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/engagement", tags=["engagement"])


@router.get("/{user_id}/insights")
async def get_engagement_insights(
    user_id: str = Path(..., min_length=1, max_length=128, pattern=r"^[A-Za-z0-9_.:-]+$"),
    engine: AnalyticsEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """
    Score, behavior, segment, prediction and recommendations for a visitor.

    An unknown visitor gets an empty insights document, not a 404.
    """
    return engine.get_engagement_insights(user_id).to_dict()
