"""
Tests for dashboard rollups over content and visitors.
"""

import os
import sys
import unittest
from datetime import datetime, timedelta, timezone

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from engagement_engine.analytics.content_service import ContentService
from engagement_engine.analytics.dashboard_service import (
    DashboardService,
    in_window,
    rank_by_performance,
    window_dates,
)
from engagement_engine.analytics.engagement_service import EngagementService
from engagement_engine.config import EngineSettings
from engagement_engine.exceptions import InvalidTimeframeError
from engagement_engine.types.content import ContentMetrics, Timeframe
from engagement_engine.types.events import (
    ContentConversionEvent,
    ContentEngagementEvent,
    ContentQualityReading,
    OrganicReading,
    PageViewData,
    RankingReading,
    create_conversion,
    create_interaction,
)

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    return NOW + timedelta(minutes=minutes)


class TestWindowHelpers(unittest.TestCase):
    def test_in_window(self):
        self.assertTrue(in_window(NOW - timedelta(days=7), Timeframe.WEEK, NOW))
        self.assertFalse(in_window(NOW - timedelta(days=8), Timeframe.WEEK, NOW))
        self.assertFalse(in_window(NOW + timedelta(seconds=1), Timeframe.WEEK, NOW))
        self.assertFalse(in_window(None, Timeframe.QUARTER, NOW))

    def test_window_dates(self):
        days = window_dates(Timeframe.WEEK, NOW)
        self.assertEqual(len(days), 7)
        self.assertEqual(days[-1], NOW.date())
        self.assertEqual(days[0], (NOW - timedelta(days=6)).date())

    def test_rank_ties_go_to_most_recent(self):
        older = ContentMetrics(id="older", performance_score=50, last_updated=NOW - timedelta(days=1))
        newer = ContentMetrics(id="newer", performance_score=50, last_updated=NOW)
        best = ContentMetrics(id="best", performance_score=70, last_updated=NOW - timedelta(days=3))
        ranked = rank_by_performance([older, newer, best])
        self.assertEqual([c.id for c in ranked], ["best", "newer", "older"])


class TestDashboardService(unittest.TestCase):
    """Tests for DashboardService."""

    def setUp(self):
        settings = EngineSettings(overview_size=2)
        self.content = ContentService(settings=settings)
        self.engagement = EngagementService(settings=settings)
        self.dashboard = DashboardService(self.content, self.engagement, settings=settings)

    def populate_content(self):
        # strong: read, scrolled and converted; bounced: one lone view; blank: never viewed
        self.content.upsert_content("strong", url="/blog/strong", content_type="blog_post", now=NOW)
        self.content.track_page_view("strong", PageViewData(url="/blog/strong", session_id="s1", timestamp=NOW))
        for event in (
            ContentEngagementEvent(type="scroll", session_id="s1", timestamp=at(1), depth=90),
            ContentEngagementEvent(type="dwell", session_id="s1", timestamp=at(2), seconds=120),
            ContentEngagementEvent(type="share", session_id="s1", timestamp=at(3), platform="x"),
        ):
            self.content.track_engagement("strong", event)
        self.content.track_conversion(
            "strong",
            ContentConversionEvent(goal="demo", session_id="s1", timestamp=at(4), value=100),
        )

        self.content.upsert_content("bounced", url="/services/web", content_type="service_page", now=NOW)
        self.content.track_page_view(
            "bounced",
            PageViewData(url="/services/web", session_id="s2", timestamp=NOW - timedelta(days=1)),
        )

        self.content.upsert_content("blank", url="/about", content_type="about_page", now=NOW)

        self.content.upsert_content(
            "stale", url="/blog/stale", content_type="blog_post", now=NOW - timedelta(days=40)
        )

    def test_overview(self):
        self.populate_content()
        overview = self.dashboard.overview("month", now=at(10))

        self.assertEqual(overview.total_content, 3)
        self.assertEqual(overview.total_views, 2)
        self.assertEqual([c.id for c in overview.top_performers], ["strong", "blank"])
        self.assertEqual([c.id for c in overview.under_performers], ["bounced", "blank"])

    def test_overview_window(self):
        self.populate_content()
        self.assertEqual(self.dashboard.overview("quarter", now=at(10)).total_content, 4)

    def test_overview_empty(self):
        overview = self.dashboard.overview(Timeframe.WEEK, now=NOW)
        self.assertEqual(overview.total_content, 0)
        self.assertEqual(overview.average_engagement, 0.0)
        self.assertEqual(overview.under_performers, [])

    def test_trends(self):
        self.populate_content()
        trends = self.dashboard.trends("week", now=at(10))

        self.assertEqual(len(trends.views), 7)
        self.assertEqual(trends.views[-1].date, NOW.date().isoformat())
        self.assertEqual(trends.views[-1].value, 1)
        self.assertEqual(trends.views[-2].value, 1)
        self.assertEqual(trends.engagement[-1].value, 3)
        self.assertEqual(trends.conversions[-1].value, 1)
        self.assertEqual(sum(p.value for p in trends.views[:-2]), 0)

    def test_trends_ignore_future_events(self):
        self.content.track_page_view("post", PageViewData(url="/", session_id="s1", timestamp=at(30)))
        trends = self.dashboard.trends("week", now=NOW)
        self.assertEqual(trends.views[-1].value, 0)

    def test_invalid_timeframe(self):
        with self.assertRaises(InvalidTimeframeError):
            self.dashboard.trends("fortnight", now=NOW)
        with self.assertRaises(InvalidTimeframeError):
            self.dashboard.aggregated_metrics("24h", now=NOW)

    def test_insights(self):
        self.populate_content()
        self.content.update_seo_metrics(
            "strong",
            ContentQualityReading(
                rankings=(
                    RankingReading(keyword="react agency", position=3, previous_position=5),
                    RankingReading(keyword="3d web", position=31, previous_position=28),
                ),
                organic=OrganicReading(impressions=500, clicks=25, ctr=5.0, average_position=3.0),
                timestamp=at(5),
            ),
        )
        insights = self.dashboard.content_analytics("month", now=at(10)).insights

        self.assertEqual(insights.best_performing_types[0]["type"], "blog_post")
        self.assertEqual(
            [k["keyword"] for k in insights.top_keywords], ["react agency", "3d web"]
        )
        self.assertEqual(insights.top_keywords[0]["traffic"], 25)
        self.assertIn("No case study content in this period", insights.content_gaps)
        self.assertIn("No page ranks well for '3d web' (position 31)", insights.content_gaps)

    def test_window_follows_publish_date(self):
        self.content.upsert_content(
            "evergreen", url="/blog/evergreen", publish_date=NOW - timedelta(days=400), now=NOW
        )
        self.content.track_page_view(
            "evergreen",
            PageViewData(url="/blog/evergreen", session_id="s1", timestamp=NOW - timedelta(days=1)),
        )
        self.content.track_page_view(
            "found", PageViewData(url="/blog/found", session_id="s2", timestamp=NOW - timedelta(days=2))
        )

        overview = self.dashboard.overview("week", now=NOW)
        self.assertEqual(overview.total_content, 1)
        self.assertEqual(overview.total_views, 1)
        self.assertEqual(self.content.get_content("found", now=NOW).publish_date, NOW - timedelta(days=2))

    def test_content_analytics_dict(self):
        self.populate_content()
        data = self.dashboard.content_analytics(Timeframe.MONTH, now=at(10)).to_dict()
        self.assertEqual(data["timeframe"], "month")
        self.assertEqual(len(data["trends"]["views"]), 30)
        self.assertEqual(data["overview"]["total_content"], 3)

    def test_aggregated_metrics(self):
        for i in range(3):
            event = create_interaction("page_view", page=f"/blog/{i}", timestamp=at(i))
            self.engagement.track_interaction("reader", event, "r1")
        self.engagement.track_interaction(
            "buyer", create_interaction("demo_view", page="/projects/demo", timestamp=at(1)), "b1"
        )
        self.engagement.track_conversion(
            "buyer", create_conversion("consultation", value=2000, timestamp=at(2), session_id="b1")
        )
        old = create_interaction("page_view", page="/", timestamp=NOW - timedelta(days=60))
        self.engagement.track_interaction("gone", old, "g1")

        metrics = self.dashboard.aggregated_metrics("week", now=at(10))

        self.assertEqual(metrics.timeframe, "week")
        self.assertEqual(metrics.total_users, 2)
        self.assertEqual(metrics.lifecycle_distribution, {"client": 1, "new_visitor": 1})
        self.assertEqual(metrics.top_behaviors[0], "page_view")
        self.assertEqual(metrics.conversion_metrics["total_conversions"], 1)
        self.assertEqual(metrics.conversion_metrics["conversion_rate"], 50.0)
        self.assertEqual(metrics.conversion_metrics["total_value"], 2000.0)
        self.assertAlmostEqual(sum(metrics.trends.values()), 100.0)

    def test_aggregated_metrics_do_not_store_churn(self):
        event = create_interaction("page_view", page="/", timestamp=NOW)
        self.engagement.track_interaction("v1", event, "s1")

        later = NOW + timedelta(days=85)
        metrics = self.dashboard.aggregated_metrics("quarter", now=NOW + timedelta(days=90))
        self.assertEqual(metrics.lifecycle_distribution, {"churned": 1})
        self.assertEqual(self.engagement.get_engagement("v1").lifecycle.value, "new_visitor")

        # 85 idle days is not a churn-length gap, whatever was queried before
        event = create_interaction("page_view", page="/blog/a", timestamp=later)
        engagement = self.engagement.track_interaction("v1", event, "s1")
        self.assertNotEqual(engagement.lifecycle.value, "churned")

    def test_aggregated_metrics_empty(self):
        metrics = self.dashboard.aggregated_metrics("quarter", now=NOW)
        self.assertEqual(metrics.total_users, 0)
        self.assertEqual(metrics.recommendations, [])


if __name__ == "__main__":
    unittest.main()
