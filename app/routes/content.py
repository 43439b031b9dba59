"""
Content registry endpoints.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Path

from engagement_engine.engine import AnalyticsEngine

from ..dependencies import get_engine
from ..models.requests import ContentUpsertRequest, SEOUpdateRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/content", tags=["content"])

CONTENT_ID_PATH = Path(..., min_length=1, max_length=128, pattern=r"^[A-Za-z0-9_.:-]+$")


@router.put("/{content_id}")
async def upsert_content(
    body: ContentUpsertRequest,
    content_id: str = CONTENT_ID_PATH,
    engine: AnalyticsEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """
    Register a content item or update its descriptive fields.

    Counters already tracked for the item are kept.
    """
    metrics = engine.upsert_content(
        content_id=content_id,
        url=body.url,
        title=body.title,
        content_type=body.type,
        category=body.category,
        publish_date=body.publish_date,
    )
    return {"success": True, "content": metrics.to_dict()}


@router.put("/{content_id}/seo")
async def update_seo_metrics(
    body: SEOUpdateRequest,
    content_id: str = CONTENT_ID_PATH,
    engine: AnalyticsEngine = Depends(get_engine),
) -> Dict[str, Any]:
    engine.update_seo_metrics(content_id, body.to_reading())
    return {"success": True, "content": engine.get_content(content_id).to_dict()}


@router.get("/{content_id}")
async def get_content(
    content_id: str = CONTENT_ID_PATH,
    engine: AnalyticsEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Current metrics, score and recommendations for one content item."""
    return engine.get_content(content_id).to_dict()
