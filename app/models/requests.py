"""
Pydantic request models for the tracking and content endpoints.

Each model validates the wire shape and converts itself into the engine's
immutable event type. Enum membership, payload shapes and numeric ranges of
tracked events are checked by the engine, so an unknown event type surfaces
as INVALID_EVENT_TYPE and a bad payload as a 400 rather than a generic 422.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from engagement_engine.types.events import (
    ContentConversionEvent,
    ContentEngagementEvent,
    ContentQualityReading,
    InteractionEvent,
    OrganicReading,
    PageViewData,
    RankingReading,
    TechnicalReading,
    create_interaction,
)

MAX_ID_LENGTH = 128
MAX_URL_LENGTH = 2048

ID_PATTERN = r"^[A-Za-z0-9_.:-]+$"


class PageViewRequest(BaseModel):
    """Request model for a content page view."""

    url: str = Field(..., min_length=1, max_length=MAX_URL_LENGTH)
    session_id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH, pattern=ID_PATTERN)
    user_id: Optional[str] = Field(default=None, max_length=MAX_ID_LENGTH, pattern=ID_PATTERN)
    user_agent: str = Field(default="", max_length=512)
    referrer: Optional[str] = Field(default=None, max_length=MAX_URL_LENGTH)
    timestamp: Optional[datetime] = None
    event_id: Optional[str] = Field(default=None, max_length=MAX_ID_LENGTH, pattern=ID_PATTERN)

    def to_data(self) -> PageViewData:
        return PageViewData(
            url=self.url,
            session_id=self.session_id,
            timestamp=self.timestamp,
            user_agent=self.user_agent,
            referrer=self.referrer,
            user_id=self.user_id,
        )


class EngagementRequest(BaseModel):
    """Request model for a content engagement event."""

    type: str = Field(..., min_length=1, max_length=32)
    session_id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH, pattern=ID_PATTERN)
    depth: Optional[float] = None
    is_internal_link: bool = False
    platform: Optional[str] = Field(default=None, max_length=64)
    seconds: Optional[float] = None
    element: str = Field(default="", max_length=256)
    timestamp: Optional[datetime] = None
    event_id: Optional[str] = Field(default=None, max_length=MAX_ID_LENGTH, pattern=ID_PATTERN)

    def to_event(self) -> ContentEngagementEvent:
        return ContentEngagementEvent(
            type=self.type.strip().lower(),
            session_id=self.session_id,
            timestamp=self.timestamp,
            depth=self.depth,
            is_internal_link=self.is_internal_link,
            platform=self.platform,
            seconds=self.seconds,
            element=self.element,
        )


class ConversionRequest(BaseModel):
    """Request model for a conversion reported against a content item."""

    goal: str = Field(..., min_length=1, max_length=32)
    session_id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH, pattern=ID_PATTERN)
    user_id: Optional[str] = Field(default=None, max_length=MAX_ID_LENGTH, pattern=ID_PATTERN)
    attribution: str = Field(default="last_touch", max_length=32)
    value: Optional[float] = Field(default=None, ge=0)
    timestamp: Optional[datetime] = None
    event_id: Optional[str] = Field(default=None, max_length=MAX_ID_LENGTH, pattern=ID_PATTERN)

    def to_event(self) -> ContentConversionEvent:
        return ContentConversionEvent(
            goal=self.goal,
            session_id=self.session_id,
            timestamp=self.timestamp,
            attribution=self.attribution,
            value=self.value,
            user_id=self.user_id,
        )


class InteractionRequest(BaseModel):
    """Request model for a raw visitor interaction."""

    user_id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH, pattern=ID_PATTERN)
    session_id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH, pattern=ID_PATTERN)
    type: str = Field(..., min_length=1, max_length=32)
    page: str = Field(..., min_length=1, max_length=MAX_URL_LENGTH)
    element: str = Field(default="", max_length=256)
    duration: Optional[float] = None
    value: Optional[float] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None
    event_id: Optional[str] = Field(default=None, max_length=MAX_ID_LENGTH, pattern=ID_PATTERN)

    def to_event(self) -> InteractionEvent:
        return create_interaction(
            self.type.strip().lower(),
            page=self.page,
            element=self.element,
            timestamp=self.timestamp,
            duration=self.duration,
            value=self.value,
            payload=self.payload,
            event_id=self.event_id,
        )


class ContentUpsertRequest(BaseModel):
    """Request model for registering or updating a content item."""

    url: Optional[str] = Field(default=None, max_length=MAX_URL_LENGTH)
    title: Optional[str] = Field(default=None, max_length=500)
    type: Optional[str] = Field(default=None, max_length=32)
    category: Optional[str] = Field(default=None, max_length=100)
    publish_date: Optional[datetime] = None


class RankingModel(BaseModel):
    keyword: str = Field(..., min_length=1, max_length=200)
    position: int = Field(..., ge=1)
    previous_position: int = Field(..., ge=0)


class OrganicModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    impressions: int = Field(default=0, ge=0)
    clicks: int = Field(default=0, ge=0)
    ctr: float = Field(default=0.0, ge=0, le=100)
    average_position: float = Field(default=0.0, ge=0)


class TechnicalModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    load_time: float = Field(default=0.0, ge=0)
    mobile_score: float = Field(default=0.0, ge=0, le=100)
    lcp: float = Field(default=0.0, ge=0)
    fid: float = Field(default=0.0, ge=0)
    cls: float = Field(default=0.0, ge=0)


class SEOUpdateRequest(BaseModel):
    """Request model for an SEO and Core Web Vitals reading."""

    rankings: Optional[List[RankingModel]] = None
    organic: Optional[OrganicModel] = None
    technical: Optional[TechnicalModel] = None
    timestamp: Optional[datetime] = None

    def to_reading(self) -> ContentQualityReading:
        rankings = None
        if self.rankings is not None:
            rankings = tuple(RankingReading(**r.model_dump()) for r in self.rankings)
        return ContentQualityReading(
            rankings=rankings,
            organic=OrganicReading(**self.organic.model_dump()) if self.organic else None,
            technical=TechnicalReading(**self.technical.model_dump()) if self.technical else None,
            timestamp=self.timestamp,
        )
