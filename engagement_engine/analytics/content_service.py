"""
Content metrics service.

This module provides:
- Content registration and metadata updates
- Page view, engagement and conversion tracking per content item
- SEO and Core Web Vitals updates
- Snapshots with derived rates, performance score and recommendations

Ingestion keeps raw counters and a small tally per session, so tracking an
event costs the same however long the content has been live. Rates (bounce
rate, completion, click-through, conversion rate) are derived from those
tallies when a snapshot is taken. The raw tracking history behind the daily
trends is kept for a retention window only.
"""

import copy
import logging
import re
import statistics
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Deque, Dict, Iterable, List, Optional, Union

from ..config import EngineSettings
from ..exceptions import UnknownAggregateError
from ..scoring.content_scorer import score_content, score_content_engagement
from ..storage.memory_store import InMemoryStore
from ..types.content import (
    ContentMetrics,
    ContentType,
    CoreWebVitals,
    KeywordRanking,
    OrganicMetrics,
    RankingTrend,
    TechnicalMetrics,
    TrendDirection,
)
from ..types.events import (
    Attribution,
    ContentConversionEvent,
    ContentEngagementEvent,
    ContentEngagementType,
    ContentQualityReading,
    PageViewData,
    RankingReading,
    parse_enum,
)
from ..utils.dates import ensure_utc
from ..utils.numbers import safe_ratio
from .recommendation_engine import recommend

logger = logging.getLogger(__name__)

PAGE_VIEW = "page_view"
CONVERSION = "conversion"

# Scroll depth at which a reader counts as considering the content
CONSIDERATION_DEPTH = 75
CONSIDERATION_TYPES = frozenset({
    ContentEngagementType.SHARE.value,
    ContentEngagementType.COMMENT.value,
    ContentEngagementType.DOWNLOAD.value,
    ContentEngagementType.BOOKMARK.value,
})

VIEW_TREND_DAYS = 7
VIEW_TREND_BAND = 0.10


@dataclass(frozen=True)
class TrackingRecord:
    """One entry of a content item's tracking history."""

    kind: str
    session_id: str
    timestamp: datetime
    user_id: Optional[str] = None
    value: float = 0.0
    detail: Optional[str] = None


@dataclass
class SessionTally:
    """What one session has done with one content item."""

    page_views: int = 0
    last_view: Optional[datetime] = None
    # Anything besides page views, conversions included
    other_events: bool = False
    engaged: bool = False
    considered: bool = False
    dwell: Optional[float] = None
    max_depth: Optional[float] = None


@dataclass
class ContentRecord:
    """Stored aggregate: the metrics, per-session tallies and recent history."""

    metrics: ContentMetrics
    sessions: Dict[str, SessionTally] = field(default_factory=dict)
    viewers: Dict[str, datetime] = field(default_factory=dict)
    history: Deque[TrackingRecord] = field(default_factory=deque)
    internal_clicks: int = 0
    conversions: int = 0
    newest: Optional[datetime] = None

    def tally(self, session_id: str) -> SessionTally:
        return self.sessions.setdefault(session_id, SessionTally())


def generate_content_id(url: str) -> str:
    slug = re.sub(r"[^a-zA-Z0-9]", "_", url).strip("_")
    return f"content_{slug or 'untitled'}"


def ranking_trend(position: int, previous_position: int) -> RankingTrend:
    """A smaller position is a better ranking."""
    if position < previous_position:
        return RankingTrend.UP
    if position > previous_position:
        return RankingTrend.DOWN
    return RankingTrend.STABLE


class ContentService:
    """
    Ingestion and snapshots for content performance.

    Args:
        store: Content store; a fresh in-memory store when omitted.
        settings: Engine tunables (unique-view window, history retention).
    """

    def __init__(
        self,
        store: Optional[InMemoryStore[ContentRecord]] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.settings = settings or EngineSettings()
        self.store: InMemoryStore[ContentRecord] = store or InMemoryStore("content")
        self.unique_view_window = timedelta(minutes=self.settings.unique_view_window_minutes)
        self.retention = timedelta(days=self.settings.history_retention_days)

    def _record(self, content_id: str, url: str = "") -> ContentRecord:
        return self.store.get_or_create(
            content_id,
            lambda: ContentRecord(
                metrics=ContentMetrics(id=content_id, url=url),
                history=deque(maxlen=self.settings.history_max_records),
            ),
        )

    @staticmethod
    def _touch(metrics: ContentMetrics, timestamp: datetime) -> None:
        # Content first seen through tracking is dated from its first event
        if metrics.publish_date is None:
            metrics.publish_date = timestamp
        if metrics.last_updated is None or timestamp > metrics.last_updated:
            metrics.last_updated = timestamp

    def _remember(self, record: ContentRecord, entry: TrackingRecord) -> None:
        """Append to the history, dropping what falls behind the retention window."""
        if record.newest is None or entry.timestamp > record.newest:
            record.newest = entry.timestamp
        cutoff = record.newest - self.retention
        if entry.timestamp >= cutoff:
            record.history.append(entry)
        while record.history and record.history[0].timestamp < cutoff:
            record.history.popleft()

    # =========================================================================
    # Content registration
    # =========================================================================

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
        """
        Create a content item or update its metadata.

        Counters survive updates; only the fields passed in change. Without
        an id, one is derived from the URL.

        Returns:
            Snapshot of the stored content.
        """
        content_id = content_id or generate_content_id(url or "")
        now = ensure_utc(now)

        with self.store.lock(content_id):
            metrics = self._record(content_id, url or "").metrics
            if url is not None:
                metrics.url = url
            if title is not None:
                metrics.title = title
            if content_type is not None:
                metrics.type = parse_enum(ContentType, content_type, "type")
            if category is not None:
                metrics.category = category
            if publish_date is not None:
                metrics.publish_date = ensure_utc(publish_date)
            elif metrics.publish_date is None:
                metrics.publish_date = now
            metrics.last_updated = now

        logger.info(f"Upserted content {content_id} ({metrics.type.value})")
        return self.get_content(content_id, now=now)

    # =========================================================================
    # Tracking
    # =========================================================================

    def track_page_view(self, content_id: str, data: PageViewData) -> bool:
        """
        Count a page view.

        Returns:
            True when the view counted as unique, i.e. the session had not
            viewed this content within the unique-view window.
        """
        with self.store.lock(content_id):
            record = self._record(content_id, data.url)
            metrics = record.metrics
            if not metrics.url:
                metrics.url = data.url

            views = metrics.performance.views
            views.total += 1

            # Late arrivals compare against the session's latest view too
            tally = record.tally(data.session_id)
            tally.page_views += 1
            unique = (
                tally.last_view is None
                or abs(data.timestamp - tally.last_view) >= self.unique_view_window
            )
            if tally.last_view is None or data.timestamp > tally.last_view:
                tally.last_view = data.timestamp

            if unique:
                views.unique += 1
                viewer = data.user_id or data.session_id
                if viewer in record.viewers:
                    views.returning += 1
                record.viewers[viewer] = data.timestamp

            self._remember(
                record,
                TrackingRecord(
                    kind=PAGE_VIEW,
                    session_id=data.session_id,
                    timestamp=data.timestamp,
                    user_id=data.user_id,
                    detail=data.referrer,
                ),
            )
            self._touch(metrics, data.timestamp)
            return unique

    def track_engagement(self, content_id: str, event: ContentEngagementEvent) -> None:
        with self.store.lock(content_id):
            record = self._record(content_id)
            metrics = record.metrics
            interactions = metrics.engagement.interactions
            value = 0.0
            detail = None

            if event.type == ContentEngagementType.SCROLL:
                value = float(event.depth)
                actions = metrics.engagement.user_actions
                actions.scroll_depth = max(actions.scroll_depth, value)
            elif event.type == ContentEngagementType.CLICK:
                detail = "internal" if event.is_internal_link else "external"
            elif event.type == ContentEngagementType.SHARE:
                interactions.shares += 1
                shareability = metrics.performance.shareability
                shareability.total_shares += 1
                if event.platform:
                    detail = event.platform
                    by_platform = shareability.shares_by_platform
                    by_platform[event.platform] = by_platform.get(event.platform, 0) + 1
            elif event.type == ContentEngagementType.COMMENT:
                interactions.comments += 1
            elif event.type == ContentEngagementType.LIKE:
                interactions.likes += 1
            elif event.type == ContentEngagementType.DOWNLOAD:
                interactions.downloads += 1
            elif event.type == ContentEngagementType.BOOKMARK:
                interactions.bookmarks += 1
            elif event.type == ContentEngagementType.DWELL:
                value = float(event.seconds)

            tally = record.tally(event.session_id)
            tally.other_events = tally.engaged = True
            if event.type == ContentEngagementType.SCROLL:
                tally.max_depth = value if tally.max_depth is None else max(tally.max_depth, value)
            elif event.type == ContentEngagementType.DWELL:
                tally.dwell = (tally.dwell or 0.0) + value
            if event.type.value in CONSIDERATION_TYPES or (
                event.type == ContentEngagementType.SCROLL and value >= CONSIDERATION_DEPTH
            ):
                tally.considered = True
            if event.type == ContentEngagementType.CLICK and event.is_internal_link:
                record.internal_clicks += 1

            self._remember(
                record,
                TrackingRecord(
                    kind=event.type.value,
                    session_id=event.session_id,
                    timestamp=event.timestamp,
                    value=value,
                    detail=detail,
                ),
            )
            self._touch(metrics, event.timestamp)

    def track_conversion(self, content_id: str, event: ContentConversionEvent) -> None:
        with self.store.lock(content_id):
            record = self._record(content_id)
            conversion = record.metrics.conversion

            goals = conversion.goals
            setattr(goals, event.goal.value, getattr(goals, event.goal.value) + 1)

            attribution = conversion.attribution
            if event.attribution == Attribution.FIRST_TOUCH:
                attribution.first_touch += 1
            elif event.attribution == Attribution.LAST_TOUCH:
                attribution.last_touch += 1
            else:
                attribution.assisted += 1

            value = float(event.value or 0.0)
            conversion.total_value = round(conversion.total_value + value, 2)
            record.tally(event.session_id).other_events = True
            record.conversions += 1

            self._remember(
                record,
                TrackingRecord(
                    kind=CONVERSION,
                    session_id=event.session_id,
                    timestamp=event.timestamp,
                    user_id=event.user_id,
                    value=value,
                    detail=event.goal.value,
                ),
            )
            self._touch(record.metrics, event.timestamp)

    def update_seo_metrics(self, content_id: str, reading: ContentQualityReading) -> None:
        """Replace the SEO blocks present in ``reading``; absent blocks stay."""
        with self.store.lock(content_id):
            metrics = self._record(content_id).metrics
            seo = metrics.seo

            if reading.rankings is not None:
                seo.rankings = [self._ranking(r) for r in reading.rankings]
            if reading.organic is not None:
                seo.organic = OrganicMetrics(
                    impressions=reading.organic.impressions,
                    clicks=reading.organic.clicks,
                    ctr=reading.organic.ctr,
                    average_position=reading.organic.average_position,
                )
            if reading.technical is not None:
                technical = reading.technical
                seo.technical = TechnicalMetrics(
                    load_time=technical.load_time,
                    mobile_score=technical.mobile_score,
                    core_web_vitals=CoreWebVitals(
                        lcp=technical.lcp, fid=technical.fid, cls=technical.cls
                    ),
                )

            self._touch(metrics, ensure_utc(reading.timestamp))
        logger.debug(f"Updated SEO metrics for {content_id}")

    @staticmethod
    def _ranking(reading: RankingReading) -> KeywordRanking:
        return KeywordRanking(
            keyword=reading.keyword,
            position=reading.position,
            previous_position=reading.previous_position,
            trend=ranking_trend(reading.position, reading.previous_position),
        )

    # =========================================================================
    # Snapshots
    # =========================================================================

    def get_content(self, content_id: str, now: Optional[datetime] = None) -> ContentMetrics:
        """
        Snapshot of one content item with derived fields filled in.

        Unknown content yields a default snapshot that is not stored.
        """
        try:
            with self.store.lock(content_id):
                stored = self.store.get(content_id)
                record = ContentRecord(
                    metrics=copy.deepcopy(stored.metrics),
                    sessions={sid: copy.copy(t) for sid, t in stored.sessions.items()},
                    history=deque(stored.history),
                    internal_clicks=stored.internal_clicks,
                    conversions=stored.conversions,
                )
        except UnknownAggregateError:
            record = ContentRecord(metrics=ContentMetrics(id=content_id))

        return self._derive(record, ensure_utc(now))

    def url_for(self, content_id: str) -> str:
        """Stored URL of a content item, falling back to its id."""
        try:
            return self.store.get(content_id).metrics.url or content_id
        except UnknownAggregateError:
            return content_id

    def snapshots(self, now: Optional[datetime] = None) -> List[ContentMetrics]:
        now = ensure_utc(now)
        return [self.get_content(content_id, now) for content_id in self.store.ids()]

    def history(self, content_id: Optional[str] = None) -> List[TrackingRecord]:
        """Retained tracking history of one item, or of every item when no id is given."""
        content_ids = [content_id] if content_id else self.store.ids()
        records: List[TrackingRecord] = []
        for cid in content_ids:
            try:
                with self.store.lock(cid):
                    records.extend(self.store.get(cid).history)
            except UnknownAggregateError:
                continue
        return records

    def _derive(self, record: ContentRecord, now: datetime) -> ContentMetrics:
        metrics = record.metrics
        performance = metrics.performance
        actions = metrics.engagement.user_actions
        views = performance.views

        sessions = list(record.sessions.values())
        viewing = [t for t in sessions if t.page_views]

        # Time on page
        dwell = [t.dwell for t in sessions if t.dwell is not None]
        performance.time_on_page.average = round(statistics.mean(dwell), 2) if dwell else 0.0
        performance.time_on_page.median = round(statistics.median(dwell), 2) if dwell else 0.0

        bounced = sum(1 for t in viewing if t.page_views <= 1 and not t.other_events)
        performance.time_on_page.bounce_rate = round(safe_ratio(bounced, len(viewing)) * 100, 2)

        # Reading progress
        depths = [t.max_depth for t in sessions if t.max_depth is not None]
        performance.reading_progress.average_completion = (
            round(statistics.mean(depths), 2) if depths else 0.0
        )
        performance.reading_progress.drop_off_points = sorted({d for d in depths if d < 100})

        performance.shareability.viral_coefficient = round(
            safe_ratio(performance.shareability.total_shares, views.unique), 2
        )
        views.trend = self._view_trend(record.history, now)

        # User actions
        actions.click_through_rate = round(
            min(100.0, safe_ratio(record.internal_clicks, views.total) * 100), 2
        )
        actions.conversion_rate = round(
            min(100.0, safe_ratio(record.conversions, views.unique) * 100), 2
        )
        actions.return_visitor_rate = round(safe_ratio(views.returning, views.unique) * 100, 2)

        # Funnel
        funnel = metrics.conversion.funnel
        funnel.awareness = views.unique
        funnel.interest = sum(1 for t in viewing if t.engaged)
        funnel.consideration = sum(1 for t in viewing if t.considered)
        funnel.conversion = record.conversions

        # Quality signals and scores
        signals = metrics.engagement.quality_signals
        signals.dwell_time = performance.time_on_page.average
        signals.page_value = round(safe_ratio(metrics.conversion.total_value, views.unique), 2)
        signals.engagement_score = score_content_engagement(metrics)

        metrics.performance_score = score_content(metrics)
        metrics.recommendations = recommend(metrics)
        return metrics

    @staticmethod
    def _view_trend(history: Iterable[TrackingRecord], now: datetime) -> TrendDirection:
        """Page views of the last week against the week before."""
        window = timedelta(days=VIEW_TREND_DAYS)
        recent = previous = 0
        for record in history:
            if record.kind != PAGE_VIEW:
                continue
            age = now - record.timestamp
            if timedelta(0) <= age < window:
                recent += 1
            elif window <= age < 2 * window:
                previous += 1

        if recent > previous * (1 + VIEW_TREND_BAND):
            return TrendDirection.INCREASING
        if recent < previous * (1 - VIEW_TREND_BAND):
            return TrendDirection.DECREASING
        return TrendDirection.STABLE
