"""
Tests for the heuristic predictor.
"""

import os
import sys
import unittest
from datetime import datetime, timedelta, timezone

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from engagement_engine.prediction import optimal_contact_time, predict
from engagement_engine.prediction.predictor import (
    predict_churn_risk,
    predict_conversion_probability,
    predict_lifetime_value,
    predict_next_visit_probability,
)
from engagement_engine.segmentation import InactivityPolicy
from engagement_engine.types.engagement import (
    EngagementPrediction,
    EngagementScore,
    LifecycleStage,
    ScoreComponents,
    SessionState,
    VisitorEngagement,
)
from engagement_engine.types.events import create_conversion, create_interaction

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_visitor(overall: int = 40, potential: int = 30, sessions: int = 1, hours=(9,)) -> VisitorEngagement:
    engagement = VisitorEngagement(user_id="v1", session_id="s0", first_seen=NOW, last_activity=NOW)
    for i in range(sessions):
        engagement.sessions[f"s{i}"] = SessionState(id=f"s{i}", started_at=NOW, ended_at=NOW)
    for hour in hours:
        engagement.interactions.append(
            create_interaction("page_view", page="/", timestamp=NOW.replace(hour=hour) - timedelta(days=1))
        )
    engagement.score = EngagementScore(
        overall=overall,
        components=ScoreComponents(conversion_potential=potential),
    )
    return engagement


class TestProbabilities(unittest.TestCase):
    """Tests for the individual forecasts."""

    def test_conversion_probability(self):
        # 0.5 * 40 + 0.3 * 30 = 29
        self.assertEqual(predict_conversion_probability(make_visitor()), 29)

    def test_conversion_bonus_and_clamp(self):
        visitor = make_visitor(overall=100, potential=100)
        visitor.conversions.append(create_conversion("demo", timestamp=NOW))
        self.assertEqual(predict_conversion_probability(visitor), 100)

    def test_churn_risk_neutral_without_now(self):
        self.assertEqual(predict_churn_risk(make_visitor()), 50)

    def test_churn_risk_blends_idle_time_and_score(self):
        visitor = make_visitor(overall=40)
        visitor.last_activity = NOW - timedelta(days=45)
        # 0.6 * 50 + 0.4 * 60 = 54
        self.assertEqual(predict_churn_risk(visitor, NOW), 54)

    def test_churn_risk_uses_policy(self):
        visitor = make_visitor(overall=100)
        visitor.last_activity = NOW - timedelta(days=10)
        self.assertEqual(predict_churn_risk(visitor, NOW, InactivityPolicy(inactivity_days=10)), 60)

    def test_churned_visitor_is_full_risk(self):
        visitor = make_visitor()
        visitor.lifecycle = LifecycleStage.CHURNED
        self.assertEqual(predict_churn_risk(visitor), 100)

    def test_next_visit_probability(self):
        self.assertEqual(predict_next_visit_probability(make_visitor(overall=50)), 40)
        # returns are capped at five
        self.assertEqual(predict_next_visit_probability(make_visitor(overall=50, sessions=9)), 80)

    def test_lifetime_value(self):
        visitor = make_visitor()
        visitor.journey.estimated_value = 1200
        self.assertEqual(predict_lifetime_value(visitor, 30), 2700.0)
        self.assertEqual(predict_lifetime_value(visitor, 30, base_project_value=10000), 4200.0)


class TestOptimalContactTime(unittest.TestCase):
    """Tests for optimal_contact_time."""

    def test_no_interactions(self):
        visitor = make_visitor(hours=())
        self.assertIsNone(optimal_contact_time(visitor, NOW))

    def test_busiest_hour_later_today(self):
        visitor = make_visitor(hours=(15, 15, 9))
        self.assertEqual(optimal_contact_time(visitor, NOW), NOW.replace(hour=15))

    def test_busiest_hour_already_passed(self):
        visitor = make_visitor(hours=(9, 9, 15))
        self.assertEqual(optimal_contact_time(visitor, NOW), NOW.replace(hour=9) + timedelta(days=1))

    def test_ties_go_to_earliest_hour(self):
        visitor = make_visitor(hours=(18, 14))
        self.assertEqual(optimal_contact_time(visitor, NOW).hour, 14)


class TestPredict(unittest.TestCase):
    """Tests for predict."""

    def test_unknown_visitor_defaults(self):
        prediction = predict(None)
        self.assertEqual(prediction, EngagementPrediction())
        self.assertEqual(prediction.churn_risk, 50)
        self.assertEqual(prediction.next_visit_probability, 20)

    def test_full_prediction(self):
        visitor = make_visitor(overall=80, potential=60, sessions=2, hours=(10, 10))
        visitor.behavior.session.page_views = 6
        prediction = predict(visitor, now=NOW)
        self.assertEqual(prediction.conversion_probability, 58)
        self.assertEqual(prediction.churn_risk, 8)
        self.assertEqual(prediction.next_visit_probability, 60)
        self.assertEqual(prediction.optimal_contact_time, NOW.replace(hour=10) + timedelta(days=1))
        self.assertEqual(prediction.predicted_lifetime_value, 2900.0)
        self.assertEqual(
            [a.action for a in prediction.recommended_actions],
            ["Offer the project cost calculator or a live demo", "Invite a newsletter signup"],
        )

    def test_probabilities_stay_in_range(self):
        for overall in (0, 33, 100):
            for sessions in (1, 4, 20):
                prediction = predict(make_visitor(overall=overall, potential=overall, sessions=sessions), now=NOW)
                for value in (
                    prediction.conversion_probability,
                    prediction.churn_risk,
                    prediction.next_visit_probability,
                ):
                    self.assertGreaterEqual(value, 0)
                    self.assertLessEqual(value, 100)


if __name__ == "__main__":
    unittest.main()
