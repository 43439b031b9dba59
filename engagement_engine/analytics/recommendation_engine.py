"""
Recommendation engine for content and visitors.

This engine provides:
- A fixed battery of content recommendations (SEO, technical, engagement,
  conversion), ordered by priority
- Recommended actions and the next best action for a visitor
- Optimization suggestions, behavioral insights and opportunities per visitor
- System-wide recommendations for the aggregated engagement metrics

Every function here is deterministic for a given input.
"""

import logging
from collections import Counter
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple

from ..types.content import (
    PRIORITY_ORDER,
    ContentMetrics,
    ContentRecommendation,
    ContentType,
    Effort,
    Priority,
    RecommendationCategory,
    RecommendationType,
)
from ..types.engagement import (
    ActionTiming,
    EngagementPrediction,
    JourneyStage,
    LifecycleStage,
    NextAction,
    NextActionType,
    RecommendedAction,
    VisitorEngagement,
)
from ..utils.numbers import round_half_up, safe_ratio

logger = logging.getLogger(__name__)


# =============================================================================
# Content recommendations
# =============================================================================

CONVERSION_PAGE_TYPES = frozenset({ContentType.SERVICE_PAGE, ContentType.LANDING_PAGE})

Rule = Tuple[Callable[[ContentMetrics], bool], ContentRecommendation]


def _rule(
    check: Callable[[ContentMetrics], bool],
    type: RecommendationType,
    priority: Priority,
    description: str,
    expected_impact: str,
    effort: Effort,
    category: RecommendationCategory,
) -> Rule:
    return check, ContentRecommendation(
        type=type,
        priority=priority,
        description=description,
        expected_impact=expected_impact,
        effort=effort,
        category=category,
    )


CONTENT_RULES: List[Rule] = [
    _rule(
        lambda c: c.seo.organic.ctr < 2,
        RecommendationType.IMPROVE_HEADLINE,
        Priority.HIGH,
        "Low click-through rate suggests the title needs optimization",
        "Increase CTR by 20-40%",
        Effort.LOW,
        RecommendationCategory.SEO,
    ),
    _rule(
        lambda c: c.seo.technical.load_time > 3,
        RecommendationType.IMPROVE_LOADING_SPEED,
        Priority.HIGH,
        "Page load time is above 3 seconds, affecting SEO and user experience",
        "Improve rankings and reduce bounce rate",
        Effort.MEDIUM,
        RecommendationCategory.TECHNICAL,
    ),
    _rule(
        lambda c: c.performance.time_on_page.bounce_rate > 70,
        RecommendationType.IMPROVE_CONTENT_STRUCTURE,
        Priority.MEDIUM,
        "High bounce rate indicates content structure needs improvement",
        "Reduce bounce rate by 15-25%",
        Effort.MEDIUM,
        RecommendationCategory.ENGAGEMENT,
    ),
    _rule(
        lambda c: c.engagement.user_actions.scroll_depth < 50,
        RecommendationType.IMPROVE_READABILITY,
        Priority.MEDIUM,
        "Low scroll depth suggests content is not engaging enough",
        "Increase engagement by 20%",
        Effort.MEDIUM,
        RecommendationCategory.ENGAGEMENT,
    ),
    _rule(
        lambda c: c.type == ContentType.SERVICE_PAGE and c.conversion.goals.contact_form == 0,
        RecommendationType.ADD_CTA,
        Priority.HIGH,
        "Service page has no contact form conversions - add compelling CTAs",
        "Generate 2-5 leads per month",
        Effort.LOW,
        RecommendationCategory.CONVERSION,
    ),
    _rule(
        lambda c: 0 < c.seo.technical.mobile_score < 60,
        RecommendationType.ENHANCE_MOBILE_EXPERIENCE,
        Priority.MEDIUM,
        "Mobile score is below 60 - layout and tap targets need work",
        "Reduce mobile bounce rate by 10-20%",
        Effort.MEDIUM,
        RecommendationCategory.TECHNICAL,
    ),
    _rule(
        lambda c: c.seo.technical.core_web_vitals.lcp > 2.5,
        RecommendationType.OPTIMIZE_IMAGES,
        Priority.MEDIUM,
        "Largest Contentful Paint is above 2.5 seconds - compress and lazy-load images",
        "Bring LCP into the good range",
        Effort.LOW,
        RecommendationCategory.TECHNICAL,
    ),
    _rule(
        lambda c: any(r.position > 10 for r in c.seo.rankings),
        RecommendationType.OPTIMIZE_FOR_KEYWORDS,
        Priority.MEDIUM,
        "Tracked keywords rank beyond the first page of results",
        "Move keywords onto page one",
        Effort.MEDIUM,
        RecommendationCategory.SEO,
    ),
    _rule(
        lambda c: (
            c.performance.views.total >= 50
            and c.engagement.user_actions.click_through_rate < 1
        ),
        RecommendationType.ADD_INTERNAL_LINKS,
        Priority.LOW,
        "Readers rarely follow links to other pages - add contextual internal links",
        "Increase pages per session",
        Effort.LOW,
        RecommendationCategory.ENGAGEMENT,
    ),
    _rule(
        lambda c: (
            c.type in CONVERSION_PAGE_TYPES
            and c.performance.views.total >= 100
            and c.engagement.user_actions.conversion_rate < 1
        ),
        RecommendationType.ADD_SOCIAL_PROOF,
        Priority.LOW,
        "Well-visited page converts under 1% - add testimonials and case results",
        "Lift conversion rate by 10-30%",
        Effort.MEDIUM,
        RecommendationCategory.CONVERSION,
    ),
]


def recommend(content: ContentMetrics) -> List[ContentRecommendation]:
    """
    Run the recommendation battery against one content item.

    Args:
        content: Content snapshot with derived rates filled in.

    Returns:
        Matching recommendations, high priority first. Within a priority the
        battery order is kept.
    """
    recommendations = [rec for check, rec in CONTENT_RULES if check(content)]
    return sorted(recommendations, key=lambda r: -PRIORITY_ORDER[r.priority])


# =============================================================================
# Visitor recommendations
# =============================================================================

NEXT_ACTIONS = {
    JourneyStage.AWARENESS: NextAction(
        type=NextActionType.CONTENT_RECOMMENDATION,
        priority="medium",
        timing=ActionTiming.IMMEDIATE,
        message="Suggest related articles to deepen interest",
        expected_impact=20,
    ),
    JourneyStage.INTEREST: NextAction(
        type=NextActionType.RESOURCE_DOWNLOAD,
        priority="medium",
        timing=ActionTiming.NEXT_VISIT,
        message="Offer a downloadable guide on the topics they read",
        expected_impact=35,
    ),
    JourneyStage.CONSIDERATION: NextAction(
        type=NextActionType.DEMO_OFFER,
        priority="high",
        timing=ActionTiming.IMMEDIATE,
        message="Invite them to an interactive project demo",
        expected_impact=50,
    ),
    JourneyStage.INTENT: NextAction(
        type=NextActionType.CONTACT_PROMPT,
        priority="high",
        timing=ActionTiming.IMMEDIATE,
        message="Prompt for a free consultation while intent is high",
        expected_impact=65,
    ),
    JourneyStage.EVALUATION: NextAction(
        type=NextActionType.CONTACT_PROMPT,
        priority="high",
        timing=ActionTiming.IMMEDIATE,
        message="Follow the demo with a tailored project proposal",
        expected_impact=70,
    ),
    JourneyStage.PURCHASE: NextAction(
        type=NextActionType.CONTENT_RECOMMENDATION,
        priority="low",
        timing=ActionTiming.FOLLOW_UP,
        message="Share onboarding resources and project updates",
        expected_impact=30,
    ),
    JourneyStage.RETENTION: NextAction(
        type=NextActionType.CONTACT_PROMPT,
        priority="medium",
        timing=ActionTiming.FOLLOW_UP,
        message="Ask for a testimonial or referral",
        expected_impact=40,
    ),
}

CHURN_ALERT = 70
HOT_LEAD = 60
WARM_LEAD = 30


def next_best_action(engagement: Optional[VisitorEngagement]) -> Optional[NextAction]:
    """Next step for the visitor's journey stage; None for an unknown visitor."""
    if engagement is None or not engagement.interactions:
        return None
    return replace(NEXT_ACTIONS[engagement.journey.stage])


def recommend_actions(
    engagement: VisitorEngagement,
    prediction: EngagementPrediction,
) -> List[RecommendedAction]:
    """
    Concrete follow-ups for a visitor, most urgent first.

    Args:
        engagement: The visitor aggregate.
        prediction: Probabilities already computed for the visitor.

    Returns:
        Actions sorted by priority (1 = most urgent), then expected impact.
    """
    actions: List[RecommendedAction] = []
    behavior = engagement.behavior

    if prediction.churn_risk >= CHURN_ALERT:
        actions.append(
            RecommendedAction(
                action="Send a re-engagement email with recent work",
                priority=1,
                expected_impact=45,
                effort="low",
                timeline="immediate",
            )
        )

    if prediction.conversion_probability >= HOT_LEAD:
        actions.append(
            RecommendedAction(
                action="Schedule a consultation call",
                priority=1,
                expected_impact=80,
                effort="medium",
                timeline="within 24 hours",
            )
        )
    elif prediction.conversion_probability >= WARM_LEAD:
        actions.append(
            RecommendedAction(
                action="Offer the project cost calculator or a live demo",
                priority=2,
                expected_impact=55,
                effort="low",
                timeline="next visit",
            )
        )

    if not engagement.conversions and behavior.session.page_views >= 3:
        actions.append(
            RecommendedAction(
                action="Invite a newsletter signup",
                priority=3,
                expected_impact=30,
                effort="low",
                timeline="next visit",
            )
        )

    interests = behavior.content.topic_interests
    if interests:
        actions.append(
            RecommendedAction(
                action=f"Share a {interests[0].topic} case study",
                priority=3,
                expected_impact=35,
                effort="low",
                timeline="within a week",
            )
        )

    return sorted(actions, key=lambda a: (a.priority, -a.expected_impact))


COMPONENT_ADVICE = [
    ("time_on_site", 50, "Surface related content to extend time on site"),
    ("page_depth", 40, "Add internal links so visitors explore more pages"),
    ("interaction_rate", 40, "Add interactive elements such as calculators or demos"),
    ("return_frequency", 30, "Encourage return visits with a newsletter or content series"),
    ("conversion_potential", 30, "Add clearer calls to action on high-intent pages"),
]


def optimization_recommendations(engagement: Optional[VisitorEngagement]) -> List[str]:
    """One suggestion per weak score component."""
    if engagement is None or not engagement.interactions:
        return []
    components = engagement.score.components
    return [
        advice
        for name, threshold, advice in COMPONENT_ADVICE
        if getattr(components, name) < threshold
    ]


def behavioral_insights(engagement: Optional[VisitorEngagement]) -> List[str]:
    if engagement is None or not engagement.interactions:
        return []

    behavior = engagement.behavior
    insights = [f"Browses mostly on {behavior.device.type}"]

    sessions = behavior.session.session_count
    if sessions > 1:
        insights.append(f"Returning visitor across {sessions} sessions")
    if behavior.session.bounce_rate >= 50:
        insights.append(f"Bounces in {round_half_up(behavior.session.bounce_rate)}% of sessions")

    depths = list(behavior.navigation.scroll_depth.values())
    if depths:
        average_depth = round_half_up(safe_ratio(sum(depths), len(depths)))
        insights.append(f"Scrolls through {average_depth}% of a page on average")

    if behavior.content.preferred_content_types:
        preferred = behavior.content.preferred_content_types[0].type.value
        insights.append(f"Prefers {preferred.replace('_', ' ')} content")
    if behavior.content.topic_interests:
        insights.append(f"Most interested in {behavior.content.topic_interests[0].topic}")

    return insights


def opportunities(engagement: Optional[VisitorEngagement]) -> List[str]:
    if engagement is None or not engagement.interactions:
        return []

    found: List[str] = []
    lifecycle = engagement.segment.lifecycle

    if lifecycle == LifecycleStage.ENGAGED_PROSPECT:
        found.append("Engaged prospect ready for a demo offer")
    elif lifecycle == LifecycleStage.QUALIFIED_LEAD:
        found.append("Qualified lead ready for a proposal")
    elif lifecycle == LifecycleStage.CLIENT:
        found.append("Existing client open to follow-on work")
    elif lifecycle == LifecycleStage.CHURNED:
        found.append("Lapsed visitor worth a win-back campaign")

    recoverable = [d for d in engagement.journey.drop_off_points if d.recoverable]
    if recoverable:
        found.append(f"Recover {len(recoverable)} abandoned session(s)")

    for interest in engagement.behavior.content.topic_interests[:2]:
        if interest.score >= 50:
            found.append(f"Strong interest in {interest.domain.value} services")

    return found


def system_recommendations(visitors: Sequence[VisitorEngagement]) -> List[str]:
    """Site-wide suggestions derived from a population of visitors."""
    if not visitors:
        return []

    recommendations: List[str] = []
    count = len(visitors)

    average_score = safe_ratio(sum(v.score.overall for v in visitors), count)
    if average_score < 40:
        recommendations.append("Average engagement is low - refresh top landing content")

    average_bounce = safe_ratio(sum(v.behavior.session.bounce_rate for v in visitors), count)
    if average_bounce > 60:
        recommendations.append("Most sessions bounce - strengthen entry pages and internal linking")

    converted = sum(1 for v in visitors if v.conversions)
    if safe_ratio(converted, count) * 100 < 2:
        recommendations.append("Fewer than 2% of visitors convert - test stronger calls to action")

    devices = Counter(v.behavior.device.type for v in visitors)
    if safe_ratio(devices.get("mobile", 0), count) > 0.5:
        recommendations.append("Most visitors are on mobile - prioritize the mobile experience")

    churned = sum(1 for v in visitors if v.segment.lifecycle == LifecycleStage.CHURNED)
    if safe_ratio(churned, count) > 0.2:
        recommendations.append("Over 20% of visitors have churned - run a re-engagement campaign")

    return recommendations
