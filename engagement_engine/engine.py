"""
Analytics engine.

AnalyticsEngine is constructed once at start-up and wires the visitor and
content services to the dashboard facade. It is the only object the HTTP
layer talks to.

Content events are also folded into the visitor they came from. The
visitor id is the event's user id, else the user previously seen on the
same session, else the session id itself. Both the session map and the
replay-protection ids are bounded by the engine settings.
"""

import copy
import logging
import threading
import time
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Dict, Optional, Set, Tuple, TypeVar, Union

from .analytics.content_service import ContentService
from .analytics.dashboard_service import DashboardService
from .analytics.engagement_service import EngagementService
from .config import Settings, get_settings
from .types.content import (
    ContentAnalytics,
    ContentMetrics,
    ContentTrends,
    ContentType,
    Timeframe,
    parse_timeframe,
)
from .types.engagement import (
    AggregatedEngagementMetrics,
    EngagementInsights,
    EngagementScore,
    VisitorEngagement,
)
from .types.events import (
    ClickPayload,
    ContentConversionEvent,
    ContentEngagementEvent,
    ContentEngagementType,
    ContentQualityReading,
    InteractionEvent,
    InteractionType,
    PageViewData,
    PageViewPayload,
    ResourcePayload,
    ScrollPayload,
    SharePayload,
    create_conversion,
    create_interaction,
)
from .utils.dates import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Content engagement types that also count as visitor interactions
VISITOR_INTERACTIONS: Dict[ContentEngagementType, InteractionType] = {
    ContentEngagementType.SCROLL: InteractionType.SCROLL,
    ContentEngagementType.CLICK: InteractionType.CLICK,
    ContentEngagementType.SHARE: InteractionType.SHARE,
    ContentEngagementType.DOWNLOAD: InteractionType.DOWNLOAD,
    ContentEngagementType.BOOKMARK: InteractionType.BOOKMARK,
}


class AnalyticsEngine:
    """
    Ingestion and query API for content and visitor engagement.

    Args:
        settings: Application settings; the cached settings when omitted.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        engine_settings = self.settings.engine

        self.engagement = EngagementService(settings=engine_settings)
        self.content = ContentService(settings=engine_settings)
        self.dashboard = DashboardService(self.content, self.engagement, settings=engine_settings)

        self._session_users: "OrderedDict[str, str]" = OrderedDict()
        self._seen_events: "OrderedDict[str, float]" = OrderedDict()
        self._pending_events: Set[str] = set()
        self._lock = threading.Lock()

    # =========================================================================
    # Replay protection and identity
    # =========================================================================

    def _forget_expired_events(self) -> None:
        """Drop event ids past the replay window or over the size cap. Caller holds the lock."""
        engine = self.settings.engine
        cutoff = time.monotonic() - engine.dedup_window_minutes * 60
        while self._seen_events:
            oldest = next(iter(self._seen_events.values()))
            if oldest >= cutoff and len(self._seen_events) <= engine.dedup_max_events:
                break
            self._seen_events.popitem(last=False)

    def track_once(self, event_id: Optional[str], track: Callable[[], T]) -> Tuple[bool, Optional[T]]:
        """
        Run ``track`` unless ``event_id`` was already tracked.

        The id is remembered only after ``track`` returns, so an event that
        fails validation can be retried under the same id. A replay that
        arrives while the first attempt is still running counts as a
        duplicate. Ids are remembered for ``dedup_window_minutes``.

        Returns:
            (duplicate, result of ``track`` or None for a duplicate)
        """
        if not event_id:
            return False, track()

        with self._lock:
            self._forget_expired_events()
            if event_id in self._seen_events or event_id in self._pending_events:
                return True, None
            self._pending_events.add(event_id)

        tracked = False
        try:
            result = track()
            tracked = True
        finally:
            with self._lock:
                self._pending_events.discard(event_id)
                if tracked:
                    self._seen_events[event_id] = time.monotonic()
                    self._forget_expired_events()
        return False, result

    def resolve_visitor(self, session_id: str, user_id: Optional[str] = None) -> str:
        """Visitor id for an event; sessions are remembered most recently used first."""
        with self._lock:
            if user_id:
                self._session_users[session_id] = user_id
                self._session_users.move_to_end(session_id)
                while len(self._session_users) > self.settings.engine.max_tracked_sessions:
                    self._session_users.popitem(last=False)
                return user_id
            if session_id in self._session_users:
                self._session_users.move_to_end(session_id)
                return self._session_users[session_id]
            return session_id

    def _timeframe(self, timeframe: Optional[Union[str, Timeframe]]) -> Timeframe:
        if timeframe is None:
            return self.settings.engine.default_timeframe
        return parse_timeframe(timeframe)

    # =========================================================================
    # Ingestion
    # =========================================================================

    def track_page_view(self, content_id: str, data: PageViewData) -> bool:
        """
        Track a page view of a content item.

        Returns:
            True if the view counted as unique.
        """
        interaction = create_interaction(
            InteractionType.PAGE_VIEW,
            page=data.url,
            timestamp=data.timestamp,
            payload=PageViewPayload(
                url=data.url,
                referrer=data.referrer,
                user_agent=data.user_agent or None,
            ),
        )
        unique = self.content.track_page_view(content_id, data)

        visitor_id = self.resolve_visitor(data.session_id, data.user_id)
        self.engagement.track_interaction(visitor_id, interaction, data.session_id)
        return unique

    def _visitor_interaction(
        self,
        content_id: str,
        event: ContentEngagementEvent,
    ) -> Optional[InteractionEvent]:
        interaction_type = VISITOR_INTERACTIONS.get(event.type)
        if interaction_type is None:
            return None

        if interaction_type == InteractionType.SCROLL:
            payload = ScrollPayload(depth=event.depth)
        elif interaction_type == InteractionType.CLICK:
            payload = ClickPayload(is_internal_link=event.is_internal_link, target=event.element or None)
        elif interaction_type == InteractionType.SHARE:
            payload = SharePayload(platform=event.platform)
        else:
            payload = ResourcePayload(resource=content_id)

        return create_interaction(
            interaction_type,
            page=self.content.url_for(content_id),
            element=event.element,
            timestamp=event.timestamp,
            payload=payload,
        )

    def track_engagement(self, content_id: str, event: ContentEngagementEvent) -> None:
        interaction = self._visitor_interaction(content_id, event)
        self.content.track_engagement(content_id, event)
        if interaction is None:
            return

        visitor_id = self.resolve_visitor(event.session_id)
        self.engagement.track_interaction(visitor_id, interaction, event.session_id)

    def track_conversion(self, content_id: str, event: ContentConversionEvent) -> None:
        conversion = create_conversion(
            event.goal,
            value=event.value,
            attribution=event.attribution,
            timestamp=event.timestamp,
            session_id=event.session_id,
            content_id=content_id,
        )
        self.content.track_conversion(content_id, event)

        visitor_id = self.resolve_visitor(event.session_id, event.user_id)
        self.engagement.track_conversion(visitor_id, conversion)

    def track_interaction(
        self,
        user_id: str,
        session_id: str,
        interaction: InteractionEvent,
    ) -> EngagementScore:
        """
        Track a raw visitor interaction.

        Returns:
            The visitor's updated engagement score.
        """
        visitor_id = self.resolve_visitor(session_id, user_id)
        engagement = self.engagement.track_interaction(visitor_id, interaction, session_id)
        return copy.deepcopy(engagement.score)

    def upsert_content(
        self,
        content_id: Optional[str] = None,
        url: Optional[str] = None,
        title: Optional[str] = None,
        content_type: Optional[Union[str, ContentType]] = None,
        category: Optional[str] = None,
        publish_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> ContentMetrics:
        return self.content.upsert_content(
            content_id=content_id,
            url=url,
            title=title,
            content_type=content_type,
            category=category,
            publish_date=publish_date,
            now=now,
        )

    def update_seo_metrics(self, content_id: str, reading: ContentQualityReading) -> None:
        self.content.update_seo_metrics(content_id, reading)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_content(self, content_id: str, now: Optional[datetime] = None) -> ContentMetrics:
        return self.content.get_content(content_id, now=now)

    def get_content_analytics(
        self,
        timeframe: Optional[Union[str, Timeframe]] = None,
        now: Optional[datetime] = None,
    ) -> ContentAnalytics:
        return self.dashboard.content_analytics(self._timeframe(timeframe), now)

    def get_content_trends(
        self,
        timeframe: Optional[Union[str, Timeframe]] = None,
        now: Optional[datetime] = None,
    ) -> ContentTrends:
        return self.dashboard.trends(self._timeframe(timeframe), now)

    def get_engagement_insights(
        self,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> EngagementInsights:
        return self.engagement.get_engagement_insights(user_id, now=now or utc_now())

    def get_aggregated_metrics(
        self,
        timeframe: Optional[Union[str, Timeframe]] = None,
        now: Optional[datetime] = None,
    ) -> AggregatedEngagementMetrics:
        return self.dashboard.aggregated_metrics(self._timeframe(timeframe), now)

    def get_engagement(self, user_id: str) -> Optional[VisitorEngagement]:
        return self.engagement.get_engagement(user_id)

    def stats(self) -> Dict[str, int]:
        return {"visitors": len(self.engagement.store), "content": len(self.content.store)}
