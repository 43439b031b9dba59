"""
Tests for the recommendation engine.
"""

import os
import sys
import unittest
from datetime import datetime, timezone

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from engagement_engine.analytics import (
    behavioral_insights,
    next_best_action,
    opportunities,
    optimization_recommendations,
    recommend,
    recommend_actions,
    system_recommendations,
)
from engagement_engine.types.content import (
    ContentMetrics,
    ContentType,
    KeywordRanking,
    Priority,
    RecommendationType,
)
from engagement_engine.types.engagement import (
    EngagementPrediction,
    JourneyStage,
    LifecycleStage,
    NextActionType,
    ScoreComponents,
    TopicDomain,
    TopicInterest,
    VisitorEngagement,
)
from engagement_engine.types.events import create_conversion, create_interaction

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def make_visitor(page_views: int = 1, stage: JourneyStage = JourneyStage.AWARENESS) -> VisitorEngagement:
    engagement = VisitorEngagement(user_id="v1", session_id="s1", first_seen=NOW, last_activity=NOW)
    engagement.interactions.append(create_interaction("page_view", page="/", timestamp=NOW))
    engagement.behavior.session.page_views = page_views
    engagement.behavior.session.session_count = 1
    engagement.journey.stage = stage
    return engagement


def types_of(recommendations):
    return [r.type for r in recommendations]


class TestContentRecommendations(unittest.TestCase):
    """Tests for recommend."""

    def test_default_content(self):
        result = recommend(ContentMetrics(id="c1"))
        self.assertEqual(
            types_of(result),
            [RecommendationType.IMPROVE_HEADLINE, RecommendationType.IMPROVE_READABILITY],
        )

    def test_is_deterministic(self):
        content = ContentMetrics(id="c1", type=ContentType.CASE_STUDY)
        content.performance.time_on_page.bounce_rate = 75
        content.seo.technical.mobile_score = 40
        first = recommend(content)
        self.assertEqual(first, recommend(content))

    def test_high_priority_first_in_battery_order(self):
        content = ContentMetrics(id="c1", type=ContentType.SERVICE_PAGE)
        content.seo.technical.load_time = 4.2
        content.performance.time_on_page.bounce_rate = 80
        result = recommend(content)
        self.assertEqual(
            types_of(result),
            [
                RecommendationType.IMPROVE_HEADLINE,
                RecommendationType.IMPROVE_LOADING_SPEED,
                RecommendationType.ADD_CTA,
                RecommendationType.IMPROVE_CONTENT_STRUCTURE,
                RecommendationType.IMPROVE_READABILITY,
            ],
        )
        priorities = [r.priority for r in result]
        self.assertEqual(priorities[:3], [Priority.HIGH] * 3)

    def test_healthy_content_gets_nothing(self):
        content = ContentMetrics(id="c1")
        content.seo.organic.ctr = 4
        content.engagement.user_actions.scroll_depth = 75
        self.assertEqual(recommend(content), [])

    def test_seo_and_technical_rules(self):
        content = ContentMetrics(id="c1")
        content.seo.organic.ctr = 4
        content.engagement.user_actions.scroll_depth = 75
        content.seo.technical.mobile_score = 45
        content.seo.technical.core_web_vitals.lcp = 3.1
        content.seo.rankings.append(KeywordRanking(keyword="react consulting", position=14, previous_position=18))
        self.assertEqual(
            set(types_of(recommend(content))),
            {
                RecommendationType.ENHANCE_MOBILE_EXPERIENCE,
                RecommendationType.OPTIMIZE_IMAGES,
                RecommendationType.OPTIMIZE_FOR_KEYWORDS,
            },
        )

    def test_low_priority_rules(self):
        content = ContentMetrics(id="c1", type=ContentType.LANDING_PAGE)
        content.seo.organic.ctr = 4
        content.engagement.user_actions.scroll_depth = 75
        content.performance.views.total = 150
        result = recommend(content)
        self.assertEqual(
            types_of(result),
            [RecommendationType.ADD_INTERNAL_LINKS, RecommendationType.ADD_SOCIAL_PROOF],
        )


class TestVisitorRecommendations(unittest.TestCase):
    """Tests for the per-visitor recommendation functions."""

    def test_next_best_action_follows_stage(self):
        action = next_best_action(make_visitor(stage=JourneyStage.INTENT))
        self.assertEqual(action.type, NextActionType.CONTACT_PROMPT)
        self.assertEqual(action.expected_impact, 65)

    def test_next_best_action_for_unknown_visitor(self):
        self.assertIsNone(next_best_action(None))

    def test_next_best_action_is_a_copy(self):
        first = next_best_action(make_visitor())
        first.message = "changed"
        self.assertNotEqual(next_best_action(make_visitor()).message, "changed")

    def test_recommend_actions_ordering(self):
        visitor = make_visitor(page_views=4)
        visitor.behavior.content.topic_interests = [
            TopicInterest(topic="cloud", score=60, time_spent=0, interactions=6, domain=TopicDomain.CLOUD)
        ]
        prediction = EngagementPrediction(conversion_probability=65, churn_risk=75)
        actions = recommend_actions(visitor, prediction)
        self.assertEqual(
            [a.action for a in actions],
            [
                "Schedule a consultation call",
                "Send a re-engagement email with recent work",
                "Share a cloud case study",
                "Invite a newsletter signup",
            ],
        )

    def test_warm_lead(self):
        actions = recommend_actions(make_visitor(), EngagementPrediction(conversion_probability=35, churn_risk=10))
        self.assertEqual([a.priority for a in actions], [2])

    def test_optimization_recommendations(self):
        visitor = make_visitor()
        visitor.score.components = ScoreComponents(
            time_on_site=75, page_depth=20, interaction_rate=60, return_frequency=10, conversion_potential=40
        )
        advice = optimization_recommendations(visitor)
        self.assertEqual(len(advice), 2)
        self.assertIn("internal links", advice[0])

    def test_insights_and_opportunities(self):
        visitor = make_visitor()
        visitor.behavior.navigation.scroll_depth = {"/a": 40, "/b": 81}
        visitor.segment.lifecycle = LifecycleStage.QUALIFIED_LEAD
        insights = behavioral_insights(visitor)
        self.assertIn("Browses mostly on desktop", insights)
        self.assertIn("Scrolls through 61% of a page on average", insights)
        self.assertIn("Qualified lead ready for a proposal", opportunities(visitor))

    def test_empty_visitor_gets_nothing(self):
        empty = VisitorEngagement(user_id="v", session_id="s", first_seen=NOW, last_activity=NOW)
        self.assertEqual(optimization_recommendations(empty), [])
        self.assertEqual(behavioral_insights(empty), [])
        self.assertEqual(opportunities(None), [])


class TestSystemRecommendations(unittest.TestCase):
    """Tests for system_recommendations."""

    def test_empty_population(self):
        self.assertEqual(system_recommendations([]), [])

    def test_low_engagement_population(self):
        visitors = [make_visitor() for _ in range(5)]
        for v in visitors:
            v.behavior.session.bounce_rate = 100
            v.behavior.device.type = "mobile"
        visitors[0].segment.lifecycle = LifecycleStage.CHURNED
        visitors[1].segment.lifecycle = LifecycleStage.CHURNED
        result = system_recommendations(visitors)
        self.assertEqual(len(result), 5)

    def test_healthy_population(self):
        visitors = [make_visitor() for _ in range(4)]
        for v in visitors:
            v.score.overall = 70
            v.behavior.session.bounce_rate = 20
            v.conversions.append(create_conversion("newsletter", timestamp=NOW))
        self.assertEqual(system_recommendations(visitors), [])


if __name__ == "__main__":
    unittest.main()
