"""
Tracking endpoints.

Ingest page views, engagement events and conversions for a content item,
and raw visitor interactions. Every event may carry an ``event_id``; an id
that was already tracked is acknowledged without being tracked again. An
event that is rejected leaves its id free for a retry.
"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

from fastapi import APIRouter, Depends, Path

from engagement_engine.engine import AnalyticsEngine

from ..dependencies import get_engine
from ..models.requests import (
    ConversionRequest,
    EngagementRequest,
    InteractionRequest,
    PageViewRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/track", tags=["tracking"])

CONTENT_ID_PATH = Path(..., min_length=1, max_length=128, pattern=r"^[A-Za-z0-9_.:-]+$")

DUPLICATE = {"success": True, "duplicate": True}

T = TypeVar("T")


def _track_once(
    engine: AnalyticsEngine,
    event_id: Optional[str],
    track: Callable[[], T],
) -> Tuple[bool, Optional[T]]:
    duplicate, result = engine.track_once(event_id, track)
    if duplicate:
        logger.info(f"Ignoring replayed event {event_id}")
    return duplicate, result


@router.post("/page-view/{content_id}")
async def track_page_view(
    body: PageViewRequest,
    content_id: str = CONTENT_ID_PATH,
    engine: AnalyticsEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Track a page view; the response says whether it counted as unique."""
    duplicate, unique = _track_once(
        engine, body.event_id, lambda: engine.track_page_view(content_id, body.to_data())
    )
    if duplicate:
        return DUPLICATE
    return {"success": True, "content_id": content_id, "unique": unique}


@router.post("/engagement/{content_id}")
async def track_engagement(
    body: EngagementRequest,
    content_id: str = CONTENT_ID_PATH,
    engine: AnalyticsEngine = Depends(get_engine),
) -> Dict[str, Any]:
    def track():
        event = body.to_event()
        engine.track_engagement(content_id, event)
        return event

    duplicate, event = _track_once(engine, body.event_id, track)
    if duplicate:
        return DUPLICATE
    return {"success": True, "content_id": content_id, "type": event.type.value}


@router.post("/conversion/{content_id}")
async def track_conversion(
    body: ConversionRequest,
    content_id: str = CONTENT_ID_PATH,
    engine: AnalyticsEngine = Depends(get_engine),
) -> Dict[str, Any]:
    def track():
        event = body.to_event()
        engine.track_conversion(content_id, event)
        return event

    duplicate, event = _track_once(engine, body.event_id, track)
    if duplicate:
        return DUPLICATE
    return {"success": True, "content_id": content_id, "goal": event.goal.value}


@router.post("/interaction")
async def track_interaction(
    body: InteractionRequest,
    engine: AnalyticsEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Track a raw visitor interaction and return the updated score."""
    def track():
        interaction = body.to_event()
        return interaction, engine.track_interaction(body.user_id, body.session_id, interaction)

    duplicate, tracked = _track_once(engine, body.event_id, track)
    if duplicate:
        return DUPLICATE
    interaction, score = tracked
    return {
        "success": True,
        "user_id": body.user_id,
        "interaction_id": interaction.id,
        "score": score.to_dict(),
    }
