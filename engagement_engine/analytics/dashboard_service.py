"""
Dashboard service for analytics aggregation.

This module provides:
- Content overview (totals, top and under performers) for a timeframe
- Daily view, engagement and conversion trends from the tracking history
- Content insights (best types, keywords, gaps, opportunities)
- Aggregated visitor engagement metrics

Every rollup takes an explicit ``now``; when omitted the current UTC time
is used.
"""

import logging
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from ..config import EngineSettings
from ..types.content import (
    ContentAnalytics,
    ContentInsights,
    ContentMetrics,
    ContentOverview,
    ContentTrends,
    ContentType,
    Priority,
    Timeframe,
    TrendDirection,
    TrendPoint,
    parse_timeframe,
)
from ..types.engagement import AggregatedEngagementMetrics, VisitorEngagement
from ..utils.dates import ensure_utc
from ..utils.logging import Timer
from ..utils.numbers import safe_ratio
from .content_service import CONVERSION, PAGE_VIEW, ContentService
from .engagement_service import EngagementService
from .recommendation_engine import system_recommendations

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

# Content types every portfolio site is expected to carry
CORE_CONTENT_TYPES = (ContentType.BLOG_POST, ContentType.CASE_STUDY, ContentType.SERVICE_PAGE)

# Keywords ranked beyond this position count as a content gap
GAP_POSITION = 20

MAX_OPPORTUNITIES = 10
MAX_KEYWORDS = 10
TOP_BEHAVIORS = 5


def in_window(timestamp: Optional[datetime], timeframe: Timeframe, now: datetime) -> bool:
    if timestamp is None:
        return False
    return now - timedelta(days=timeframe.days) <= timestamp <= now


def rank_by_performance(contents: Sequence[ContentMetrics]) -> List[ContentMetrics]:
    """Performance score descending; ties go to the most recently updated."""
    by_recency = sorted(contents, key=lambda c: c.last_updated or _EPOCH, reverse=True)
    return sorted(by_recency, key=lambda c: c.performance_score, reverse=True)


def window_dates(timeframe: Timeframe, now: datetime) -> List[date]:
    """One date per day of the window, oldest first, ending today."""
    today = now.date()
    return [today - timedelta(days=offset) for offset in range(timeframe.days - 1, -1, -1)]


class DashboardService:
    """
    Read-side facade over the content and engagement services.

    Args:
        content: Content service to read snapshots and history from.
        engagement: Engagement service to read visitors from.
        settings: Engine tunables (overview size).
    """

    def __init__(
        self,
        content: ContentService,
        engagement: EngagementService,
        settings: Optional[EngineSettings] = None,
    ):
        self.content = content
        self.engagement = engagement
        self.settings = settings or EngineSettings()

    def _content_in_window(self, timeframe: Timeframe, now: datetime) -> List[ContentMetrics]:
        return [
            c for c in self.content.snapshots(now) if in_window(c.publish_date, timeframe, now)
        ]

    # =========================================================================
    # Content analytics
    # =========================================================================

    def overview(
        self,
        timeframe: Union[str, Timeframe],
        now: Optional[datetime] = None,
    ) -> ContentOverview:
        timeframe = parse_timeframe(timeframe)
        now = ensure_utc(now)
        return self._overview(self._content_in_window(timeframe, now))

    def _overview(self, contents: List[ContentMetrics]) -> ContentOverview:
        size = self.settings.overview_size
        ranked = rank_by_performance(contents)
        average = safe_ratio(
            sum(c.engagement.quality_signals.engagement_score for c in contents), len(contents)
        )
        return ContentOverview(
            total_content=len(contents),
            total_views=sum(c.performance.views.total for c in contents),
            average_engagement=round(average, 2),
            top_performers=ranked[:size],
            under_performers=list(reversed(ranked[-size:])) if ranked else [],
        )

    def trends(
        self,
        timeframe: Union[str, Timeframe],
        now: Optional[datetime] = None,
    ) -> ContentTrends:
        """
        Daily counts over the window, zero-filled.

        ``views`` counts page views, ``engagement`` counts engagement events
        and ``conversions`` counts conversions, by the day they happened.
        """
        timeframe = parse_timeframe(timeframe)
        now = ensure_utc(now)
        days = window_dates(timeframe, now)
        first_day = days[0]

        counts: Dict[str, Counter] = defaultdict(Counter)
        for record in self.content.history():
            day = record.timestamp.date()
            if day < first_day or record.timestamp > now:
                continue
            if record.kind == PAGE_VIEW:
                counts["views"][day] += 1
            elif record.kind == CONVERSION:
                counts["conversions"][day] += 1
            else:
                counts["engagement"][day] += 1

        def series(name: str) -> List[TrendPoint]:
            return [TrendPoint(date=d.isoformat(), value=counts[name][d]) for d in days]

        return ContentTrends(
            views=series("views"),
            engagement=series("engagement"),
            conversions=series("conversions"),
        )

    def insights(self, contents: List[ContentMetrics]) -> ContentInsights:
        by_type: Dict[ContentType, List[int]] = defaultdict(list)
        for content in contents:
            by_type[content.type].append(content.performance_score)
        best_types = sorted(
            (
                {"type": content_type.value, "avg_score": round(sum(s) / len(s), 2)}
                for content_type, s in by_type.items()
            ),
            key=lambda item: item["avg_score"],
            reverse=True,
        )

        keywords: Dict[str, Dict[str, Any]] = {}
        for content in contents:
            for ranking in content.seo.rankings:
                current = keywords.get(ranking.keyword)
                if current is None or ranking.position < current["position"]:
                    keywords[ranking.keyword] = {
                        "keyword": ranking.keyword,
                        "position": ranking.position,
                        "traffic": content.seo.organic.clicks,
                    }
        top_keywords = sorted(keywords.values(), key=lambda k: (k["position"], k["keyword"]))

        gaps = [
            f"No {content_type.value.replace('_', ' ')} content in this period"
            for content_type in CORE_CONTENT_TYPES
            if content_type not in by_type
        ]
        gaps.extend(
            f"No page ranks well for '{k['keyword']}' (position {k['position']})"
            for k in top_keywords
            if k["position"] > GAP_POSITION
        )

        opportunities = [
            rec
            for content in contents
            for rec in content.recommendations
            if rec.priority == Priority.HIGH
        ]

        return ContentInsights(
            best_performing_types=best_types,
            top_keywords=top_keywords[:MAX_KEYWORDS],
            content_gaps=gaps,
            optimization_opportunities=opportunities[:MAX_OPPORTUNITIES],
        )

    def content_analytics(
        self,
        timeframe: Union[str, Timeframe],
        now: Optional[datetime] = None,
    ) -> ContentAnalytics:
        timeframe = parse_timeframe(timeframe)
        now = ensure_utc(now)
        with Timer(f"content_analytics[{timeframe.value}]", logger):
            contents = self._content_in_window(timeframe, now)
            return ContentAnalytics(
                timeframe=timeframe,
                overview=self._overview(contents),
                trends=self.trends(timeframe, now),
                insights=self.insights(contents),
            )

    # =========================================================================
    # Visitor analytics
    # =========================================================================

    def aggregated_metrics(
        self,
        timeframe: Union[str, Timeframe],
        now: Optional[datetime] = None,
    ) -> AggregatedEngagementMetrics:
        """Rollup over visitors active within the window."""
        timeframe = parse_timeframe(timeframe)
        now = ensure_utc(now)

        visitors = [
            v for v in self.engagement.snapshot(now) if in_window(v.last_activity, timeframe, now)
        ]

        metrics = AggregatedEngagementMetrics(timeframe=timeframe.value)
        if not visitors:
            return metrics

        count = len(visitors)
        metrics.total_users = count
        metrics.average_engagement_score = round(
            sum(v.score.overall for v in visitors) / count, 2
        )
        metrics.segment_distribution = dict(
            sorted(Counter(v.segment.primary.value for v in visitors).items())
        )
        metrics.lifecycle_distribution = dict(
            sorted(Counter(v.lifecycle.value for v in visitors).items())
        )
        metrics.top_behaviors = self._top_behaviors(visitors)
        metrics.conversion_metrics = self._conversion_metrics(visitors)
        metrics.trends = {
            direction.value: round(
                sum(1 for v in visitors if v.score.trend == direction) / count * 100, 2
            )
            for direction in TrendDirection
        }
        metrics.recommendations = system_recommendations(visitors)
        return metrics

    @staticmethod
    def _top_behaviors(visitors: List[VisitorEngagement]) -> List[str]:
        totals: Counter = Counter()
        for visitor in visitors:
            totals.update(visitor.behavior.interaction_counts)
        ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
        return [name for name, _ in ranked[:TOP_BEHAVIORS]]

    @staticmethod
    def _conversion_metrics(visitors: List[VisitorEngagement]) -> Dict[str, float]:
        conversions = [c for v in visitors for c in v.conversions]
        converted = sum(1 for v in visitors if v.conversions)
        total_value = sum(c.value for c in conversions)
        return {
            "total_conversions": len(conversions),
            "conversion_rate": round(safe_ratio(converted, len(visitors)) * 100, 2),
            "total_value": round(total_value, 2),
            "average_value": round(safe_ratio(total_value, len(conversions)), 2),
        }
