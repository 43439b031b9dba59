"""
API route tests.

Drives the tracking, content, analytics, engagement and health endpoints
through the FastAPI test client against a fresh engine per test.
"""

import os
import sys
import unittest

os.environ["ENVIRONMENT"] = "development"
os.environ["SENTRY_DSN"] = ""

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from fastapi.testclient import TestClient

from engagement_engine.engine import AnalyticsEngine
from server import create_app


class RouteTestCase(unittest.TestCase):
    """Base class: a test client bound to a fresh engine."""

    def setUp(self):
        self.engine = AnalyticsEngine()
        self.client = TestClient(create_app(engine=self.engine))

    def page_view(self, content_id="post", session_id="s1", user_id="alice", **extra):
        body = {"url": "/blog/post", "session_id": session_id, "user_id": user_id}
        body.update(extra)
        return self.client.post(f"/track/page-view/{content_id}", json=body)


class TestHealthRoutes(RouteTestCase):
    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["status"], "healthy")
        self.assertEqual(data["services"]["sentry"]["status"], "unconfigured")
        self.assertEqual(data["store"], {"visitors": 0, "content": 0})

    def test_root(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["message"], "Engagement Engine API")


class TestTrackingRoutes(RouteTestCase):
    def test_page_view(self):
        response = self.page_view()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True, "content_id": "post", "unique": True})

        again = self.page_view()
        self.assertFalse(again.json()["unique"])
        self.assertEqual(self.engine.get_content("post").performance.views.total, 2)

    def test_replayed_event_is_acknowledged_once(self):
        first = self.page_view(event_id="evt-1")
        second = self.page_view(event_id="evt-1")

        self.assertEqual(first.json()["unique"], True)
        self.assertEqual(second.json(), {"success": True, "duplicate": True})
        self.assertEqual(self.engine.get_content("post").performance.views.total, 1)

    def test_engagement(self):
        self.page_view()
        response = self.client.post(
            "/track/engagement/post",
            json={"type": "Scroll", "session_id": "s1", "depth": 80},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["type"], "scroll")
        self.assertEqual(self.engine.get_content("post").engagement.user_actions.scroll_depth, 80)

    def test_engagement_unknown_type(self):
        response = self.client.post(
            "/track/engagement/post", json={"type": "wave", "session_id": "s1"}
        )
        self.assertEqual(response.status_code, 400)
        data = response.json()
        self.assertFalse(data["success"])
        self.assertEqual(data["error_code"], "INVALID_EVENT_TYPE")
        self.assertIn("scroll", data["details"]["allowed"])

    def test_engagement_scroll_without_depth(self):
        response = self.client.post(
            "/track/engagement/post", json={"type": "scroll", "session_id": "s1"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["details"]["field"], "depth")

    def test_conversion(self):
        self.page_view()
        response = self.client.post(
            "/track/conversion/post",
            json={"goal": "consultation", "session_id": "s1", "value": 2500},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["goal"], "consultation")
        self.assertEqual(self.engine.get_engagement("alice").lifecycle.value, "client")

    def test_conversion_rejects_negative_value(self):
        response = self.client.post(
            "/track/conversion/post",
            json={"goal": "demo", "session_id": "s1", "value": -5},
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error_code"], "VALIDATION_ERROR")

    def test_interaction(self):
        response = self.client.post(
            "/track/interaction",
            json={
                "user_id": "bob",
                "session_id": "s2",
                "type": "calculator_use",
                "page": "/tools/calculator",
                "payload": {"widget": "cost_calculator", "action": "calculate"},
            },
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["user_id"], "bob")
        self.assertTrue(data["interaction_id"])
        self.assertGreater(data["score"]["overall"], 0)

    def test_interaction_unknown_type(self):
        response = self.client.post(
            "/track/interaction",
            json={"user_id": "bob", "session_id": "s2", "type": "teleport", "page": "/"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error_code"], "INVALID_EVENT_TYPE")

    def test_interaction_payload_mismatch(self):
        response = self.client.post(
            "/track/interaction",
            json={
                "user_id": "bob",
                "session_id": "s2",
                "type": "share",
                "page": "/blog/post",
                "payload": {"depth": 40},
            },
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error_code"], "INVALID_PAYLOAD")

    def interaction(self, **extra):
        body = {"user_id": "bob", "session_id": "s2", "type": "demo_view", "page": "/projects/demo"}
        body.update(extra)
        return self.client.post("/track/interaction", json=body)

    def test_interaction_duration_out_of_range(self):
        for duration in (1e20, 90000, -1):
            response = self.interaction(duration=duration)
            self.assertEqual(response.status_code, 400, duration)
            self.assertEqual(response.json()["details"]["field"], "duration")
        self.assertIsNone(self.engine.get_engagement("bob"))

    def test_interaction_wrong_payload_types(self):
        for depth in ("deep", None, True):
            response = self.interaction(type="scroll", payload={"depth": depth})
            self.assertEqual(response.status_code, 400, depth)
            data = response.json()
            self.assertEqual(data["error_code"], "INVALID_PAYLOAD")
            self.assertEqual(data["details"]["field"], "payload.depth")
        self.assertIsNone(self.engine.get_engagement("bob"))

    def test_interaction_unknown_payload_key(self):
        response = self.interaction(type="scroll", payload={"depth": 40, "speed": 3})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error_code"], "INVALID_PAYLOAD")

    def test_rejected_event_id_can_be_retried(self):
        rejected = self.interaction(type="teleport", event_id="evt-9")
        self.assertEqual(rejected.status_code, 400)

        retried = self.interaction(event_id="evt-9", duration=30)
        self.assertEqual(retried.status_code, 200)
        self.assertNotIn("duplicate", retried.json())
        self.assertIsNotNone(self.engine.get_engagement("bob"))

        replayed = self.interaction(event_id="evt-9", duration=30)
        self.assertEqual(replayed.json(), {"success": True, "duplicate": True})

    def test_invalid_content_id(self):
        response = self.client.post(
            "/track/page-view/bad id!", json={"url": "/", "session_id": "s1"}
        )
        self.assertEqual(response.status_code, 422)


class TestContentRoutes(RouteTestCase):
    def test_upsert_and_get(self):
        response = self.client.put(
            "/content/post",
            json={"url": "/blog/post", "title": "Post", "type": "case_study", "category": "3d"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["content"]["type"], "case_study")

        self.page_view()
        data = self.client.get("/content/post").json()
        self.assertEqual(data["title"], "Post")
        self.assertEqual(data["category"], "3d")
        self.assertEqual(data["performance"]["views"]["total"], 1)
        self.assertIn("performance_score", data)

    def test_upsert_unknown_type(self):
        response = self.client.put("/content/post", json={"type": "podcast"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error_code"], "VALIDATION_ERROR")

    def test_unknown_content_gets_defaults(self):
        response = self.client.get("/content/ghost")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["performance"]["views"]["total"], 0)

    def test_seo_update(self):
        response = self.client.put(
            "/content/post/seo",
            json={
                "rankings": [{"keyword": "react", "position": 2, "previous_position": 6}],
                "organic": {"impressions": 800, "clicks": 40, "ctr": 5.0, "average_position": 2.0},
                "technical": {"load_time": 1.1, "mobile_score": 95, "lcp": 1.9, "fid": 50, "cls": 0.02},
            },
        )
        self.assertEqual(response.status_code, 200)
        seo = response.json()["content"]["seo"]
        self.assertEqual(seo["rankings"][0]["trend"], "up")
        self.assertEqual(seo["technical"]["core_web_vitals"]["lcp"], 1.9)


class TestAnalyticsRoutes(RouteTestCase):
    def test_content_analytics(self):
        self.page_view()
        response = self.client.get("/analytics/content", params={"timeframe": "week"})
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["timeframe"], "week")
        self.assertEqual(data["overview"]["total_views"], 1)

    def test_default_timeframe(self):
        response = self.client.get("/analytics/content/trends")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["views"]), 30)

    def test_invalid_timeframe(self):
        response = self.client.get("/analytics/engagement", params={"timeframe": "24h"})
        self.assertEqual(response.status_code, 400)
        data = response.json()
        self.assertEqual(data["error_code"], "INVALID_TIMEFRAME")
        self.assertEqual(data["details"]["allowed"], ["week", "month", "quarter"])

    def test_long_timeframe_name(self):
        for path in ("/analytics/content", "/analytics/content/trends", "/analytics/engagement"):
            response = self.client.get(path, params={"timeframe": "quarterly"})
            self.assertEqual(response.status_code, 400, path)
            self.assertEqual(response.json()["error_code"], "INVALID_TIMEFRAME")

    def test_engagement_metrics(self):
        self.page_view(user_id="alice")
        self.page_view(user_id="bob", session_id="s2")
        data = self.client.get("/analytics/engagement", params={"timeframe": "Month"}).json()
        self.assertEqual(data["timeframe"], "month")
        self.assertEqual(data["total_users"], 2)
        self.assertEqual(data["lifecycle_distribution"], {"new_visitor": 2})


class TestEngagementRoutes(RouteTestCase):
    def test_insights(self):
        self.page_view()
        response = self.client.get("/engagement/alice/insights")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["user_id"], "alice")
        self.assertGreater(data["score"]["overall"], 0)
        self.assertEqual(data["segment"]["lifecycle"], "new_visitor")
        self.assertIn("churn_risk", data["prediction"])

    def test_unknown_visitor(self):
        response = self.client.get("/engagement/nobody/insights")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["score"]["overall"], 0)
        self.assertEqual(data["prediction"]["churn_risk"], 50)
        self.assertEqual(data["insights"], [])


# =============================================================================
# Fixture-based tests
# =============================================================================


def test_health_counts_tracked_aggregates(client, engine):
    client.post("/track/page-view/post", json={"url": "/blog/post", "session_id": "s1"})
    data = client.get("/health").json()
    assert data["store"] == engine.stats() == {"visitors": 1, "content": 1}


def test_visitor_scored_through_page_views(client):
    for page in ("a", "b", "c"):
        client.post(
            f"/track/page-view/{page}",
            json={"url": f"/blog/{page}", "session_id": "s1", "user_id": "carol"},
        )
    data = client.get("/engagement/carol/insights").json()
    assert data["behavior"]["session"]["page_views"] == 3
    assert data["behavior"]["navigation"]["navigation_path"] == ["/blog/a", "/blog/b", "/blog/c"]


if __name__ == "__main__":
    unittest.main()
