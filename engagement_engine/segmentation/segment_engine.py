"""
Rule-based visitor segmentation.

Segment definitions are evaluated in a fixed priority order; the first one
whose criteria all hold becomes the primary segment and every other match
is secondary. Lifecycle stages only move forward, except for ``churned``,
which any stage short of ``advocate`` falls into once the supplied
inactivity policy says so, and which is never left again.

Everything here is deterministic: no clock is read, and the A/B test group
comes from a stable hash of the visitor id.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from ..types.engagement import (
    LIFECYCLE_ORDER,
    CharacteristicSource,
    EngagementScore,
    LifecycleStage,
    PersonalizationProfile,
    SegmentCharacteristic,
    SegmentType,
    SegmentValue,
    UserSegment,
    ValueTier,
    VisitorEngagement,
)
from ..types.events import ConversionGoal, ConversionKind, InteractionType
from ..utils.dates import ensure_utc
from ..utils.numbers import clamp, round_half_up, safe_ratio

logger = logging.getLogger(__name__)


# =============================================================================
# Inactivity policy
# =============================================================================


@dataclass(frozen=True)
class InactivityPolicy:
    """When a visitor counts as gone. Owned by the caller, not the engine."""

    inactivity_days: int = 90

    def idle_days(self, last_activity: datetime, now: datetime) -> float:
        delta = ensure_utc(now) - ensure_utc(last_activity)
        return max(0.0, delta.total_seconds() / 86400)

    def is_inactive(self, last_activity: datetime, now: datetime) -> bool:
        return self.idle_days(last_activity, now) >= self.inactivity_days


DEFAULT_POLICY = InactivityPolicy()


# =============================================================================
# Segment definitions
# =============================================================================


@dataclass(frozen=True)
class SegmentDefinition:
    """
    Criteria a visitor must meet for one segment.

    Unset criteria are ignored. ``page_keywords`` matches when any visited
    page contains any of the keywords.
    """

    segment: SegmentType
    description: str
    min_score: Optional[int] = None
    min_duration: Optional[float] = None
    min_page_views: Optional[int] = None
    min_conversions: Optional[int] = None
    max_conversions: Optional[int] = None
    min_sessions: Optional[int] = None
    required_interactions: Dict[InteractionType, int] = field(default_factory=dict)
    page_keywords: Tuple[str, ...] = ()

    def matches(self, engagement: VisitorEngagement, score: EngagementScore) -> bool:
        behavior = engagement.behavior
        conversions = len(engagement.conversions)

        if self.min_score is not None and score.overall < self.min_score:
            return False
        if self.min_duration is not None and behavior.session.duration < self.min_duration:
            return False
        if self.min_page_views is not None and behavior.session.page_views < self.min_page_views:
            return False
        if self.min_conversions is not None and conversions < self.min_conversions:
            return False
        if self.max_conversions is not None and conversions > self.max_conversions:
            return False
        if self.min_sessions is not None and behavior.session.session_count < self.min_sessions:
            return False
        for interaction_type, minimum in self.required_interactions.items():
            if behavior.interaction_counts.get(interaction_type.value, 0) < minimum:
                return False
        if self.page_keywords:
            pages = [p.lower() for p in behavior.navigation.navigation_path]
            if not any(keyword in page for page in pages for keyword in self.page_keywords):
                return False
        return True


# Evaluation order is priority order.
SEGMENT_DEFINITIONS: List[SegmentDefinition] = [
    SegmentDefinition(
        segment=SegmentType.HIGH_VALUE,
        description="High-value prospects with strong engagement",
        min_score=80,
        min_duration=300,
        min_page_views=5,
        min_conversions=1,
    ),
    SegmentDefinition(
        segment=SegmentType.POTENTIAL_CLIENT,
        description="Potential clients showing buying intent",
        min_score=60,
        required_interactions={
            InteractionType.CALCULATOR_USE: 1,
            InteractionType.DEMO_VIEW: 1,
        },
    ),
    SegmentDefinition(
        segment=SegmentType.DECISION_MAKER,
        description="Visitors comparing services and pricing",
        min_score=50,
        min_page_views=3,
        page_keywords=("/pricing", "/services", "/case-studies"),
    ),
    SegmentDefinition(
        segment=SegmentType.TECHNICAL_EVALUATOR,
        description="Visitors digging into implementation detail",
        min_score=40,
        required_interactions={InteractionType.RICH_INTERACTION: 1},
        page_keywords=("/docs", "/documentation", "/projects", "/api"),
    ),
    SegmentDefinition(
        segment=SegmentType.RESEARCHER,
        description="Readers working through long-form content without converting",
        min_page_views=5,
        max_conversions=0,
        page_keywords=("/blog", "/research", "/insights"),
    ),
    SegmentDefinition(
        segment=SegmentType.PARTNER,
        description="Agencies and vendors exploring collaboration",
        min_sessions=2,
        page_keywords=("/partners", "/partnership", "/collaborate"),
    ),
    SegmentDefinition(
        segment=SegmentType.RECRUITER,
        description="Recruiters reviewing experience and downloading a resume",
        required_interactions={InteractionType.DOWNLOAD: 1},
        page_keywords=("/about", "/resume", "/experience"),
    ),
    SegmentDefinition(
        segment=SegmentType.STUDENT,
        description="Learners following tutorials",
        max_conversions=0,
        page_keywords=("/tutorials", "/learn", "/education"),
    ),
    SegmentDefinition(
        segment=SegmentType.COMPETITOR,
        description="Repeat visitors studying offerings without engaging",
        min_sessions=3,
        min_page_views=8,
        max_conversions=0,
        page_keywords=("/pricing", "/services"),
    ),
]


# =============================================================================
# Lifecycle
# =============================================================================

ENGAGED_SCORE = 50
QUALIFIED_SCORE = 60
ADVOCATE_SHARES = 2


def candidate_stage(engagement: VisitorEngagement, score: EngagementScore) -> LifecycleStage:
    """Highest lifecycle stage the current signals justify."""
    conversions = engagement.conversions
    goals = {c.goal for c in conversions}
    macro = any(c.kind == ConversionKind.MACRO for c in conversions)
    shares = engagement.behavior.interaction_counts.get(InteractionType.SHARE.value, 0)

    if ConversionGoal.CONSULTATION in goals:
        if shares >= ADVOCATE_SHARES:
            return LifecycleStage.ADVOCATE
        return LifecycleStage.CLIENT
    if macro or (conversions and score.overall >= QUALIFIED_SCORE):
        return LifecycleStage.QUALIFIED_LEAD
    if score.overall >= ENGAGED_SCORE or engagement.high_value_interactions >= 2:
        return LifecycleStage.ENGAGED_PROSPECT
    if len(engagement.sessions) >= 2:
        return LifecycleStage.RETURNING_VISITOR
    return LifecycleStage.NEW_VISITOR


def advance_lifecycle(
    current: LifecycleStage,
    candidate: LifecycleStage,
    inactive: bool = False,
) -> LifecycleStage:
    """
    Apply one lifecycle transition.

    ``churned`` is absorbing and ``advocate`` can no longer churn. Otherwise
    the stage moves to the later of current and candidate.
    """
    if current == LifecycleStage.CHURNED:
        return current
    if inactive and current != LifecycleStage.ADVOCATE:
        return LifecycleStage.CHURNED
    if LIFECYCLE_ORDER.index(candidate) > LIFECYCLE_ORDER.index(current):
        return candidate
    return current


# =============================================================================
# Value and personalization
# =============================================================================


def value_tier(score: int) -> ValueTier:
    if score >= 80:
        return ValueTier.PLATINUM
    if score >= 60:
        return ValueTier.GOLD
    if score >= 40:
        return ValueTier.SILVER
    return ValueTier.BRONZE


def calculate_segment_value(
    engagement: VisitorEngagement,
    score: EngagementScore,
    now: Optional[datetime] = None,
    policy: Optional[InactivityPolicy] = None,
) -> SegmentValue:
    conversion_value = sum(c.value for c in engagement.conversions)
    value_score = round_half_up(0.7 * score.overall + 0.3 * min(100.0, conversion_value))
    potential = round_half_up(
        (100 - score.overall) * score.components.conversion_potential / 100
    )

    if now is None:
        risk = 50
    else:
        policy = policy or DEFAULT_POLICY
        idle = policy.idle_days(engagement.last_activity, now)
        risk = round_half_up(clamp(safe_ratio(idle, policy.inactivity_days) * 100))

    return SegmentValue(
        score=int(clamp(value_score)),
        tier=value_tier(value_score),
        potential=int(clamp(potential)),
        risk=int(risk),
    )


def extract_characteristics(
    engagement: VisitorEngagement,
    score: EngagementScore,
) -> List[SegmentCharacteristic]:
    behavior = engagement.behavior
    characteristics = [
        SegmentCharacteristic(
            name="engagement_score",
            value=score.overall,
            confidence=1.0,
            source=CharacteristicSource.BEHAVIORAL,
        ),
        SegmentCharacteristic(
            name="session_count",
            value=behavior.session.session_count,
            confidence=1.0,
            source=CharacteristicSource.BEHAVIORAL,
        ),
        SegmentCharacteristic(
            name="has_converted",
            value=bool(engagement.conversions),
            confidence=1.0,
            source=CharacteristicSource.BEHAVIORAL,
        ),
        SegmentCharacteristic(
            name="device_type",
            value=behavior.device.type,
            confidence=0.9 if engagement.user_agent else 0.3,
            source=CharacteristicSource.BEHAVIORAL,
        ),
    ]

    preferences = behavior.content.preferred_content_types
    if preferences:
        top = preferences[0]
        characteristics.append(
            SegmentCharacteristic(
                name="preferred_content_type",
                value=top.type.value,
                confidence=round(top.score / 100, 2),
                source=CharacteristicSource.INFERRED,
            )
        )

    interests = behavior.content.topic_interests
    if interests:
        top_interest = interests[0]
        characteristics.append(
            SegmentCharacteristic(
                name="primary_interest",
                value=top_interest.domain.value,
                confidence=round(min(1.0, top_interest.score / 100), 2),
                source=CharacteristicSource.INFERRED,
            )
        )

    return characteristics


def assign_test_group(user_id: str, experiment: str, variants: Tuple[str, ...] = ("a", "b")) -> str:
    """Stable A/B bucket; identical across processes and restarts."""
    digest = hashlib.sha256(f"{experiment}:{user_id}".encode("utf-8")).hexdigest()
    return f"{experiment}_{variants[int(digest[:8], 16) % len(variants)]}"


LIFECYCLE_CTAS: Dict[LifecycleStage, str] = {
    LifecycleStage.NEW_VISITOR: "subscribe_newsletter",
    LifecycleStage.RETURNING_VISITOR: "download_resource",
    LifecycleStage.ENGAGED_PROSPECT: "request_demo",
    LifecycleStage.QUALIFIED_LEAD: "book_consultation",
    LifecycleStage.CLIENT: "start_project",
    LifecycleStage.ADVOCATE: "leave_testimonial",
    LifecycleStage.CHURNED: "reengagement_offer",
}


def create_personalization(
    engagement: VisitorEngagement,
    lifecycle: LifecycleStage,
) -> PersonalizationProfile:
    behavior = engagement.behavior
    preferences = behavior.content.preferred_content_types
    interests = behavior.content.topic_interests

    profile = PersonalizationProfile()
    profile.preferences = {
        "preferred_content_type": preferences[0].type.value if preferences else None,
        "device_type": behavior.device.type,
        "primary_domain": interests[0].domain.value if interests else None,
    }
    profile.recommendations = [
        f"Explore more {interest.topic} content" for interest in interests[:3]
    ]
    profile.customizations = {
        "cta": LIFECYCLE_CTAS[lifecycle],
        "layout": "compact" if behavior.device.type == "mobile" else "full",
    }
    profile.test_groups = [
        assign_test_group(engagement.user_id, "cta_copy"),
        assign_test_group(engagement.user_id, "hero_layout"),
    ]
    return profile


# =============================================================================
# Segment engine
# =============================================================================


class SegmentEngine:
    """
    Assigns segments, value tiers and lifecycle stages.

    Args:
        definitions: Segment definitions in priority order.
        policy: Default inactivity policy when a call supplies none.
    """

    def __init__(
        self,
        definitions: Optional[List[SegmentDefinition]] = None,
        policy: Optional[InactivityPolicy] = None,
    ):
        self.definitions = list(definitions or SEGMENT_DEFINITIONS)
        self.policy = policy or DEFAULT_POLICY

    def matching_segments(
        self,
        engagement: VisitorEngagement,
        score: EngagementScore,
    ) -> List[SegmentType]:
        matched: List[SegmentType] = []
        for definition in self.definitions:
            if definition.segment not in matched and definition.matches(engagement, score):
                matched.append(definition.segment)
        return matched

    def lifecycle(
        self,
        engagement: VisitorEngagement,
        score: EngagementScore,
        now: Optional[datetime] = None,
        policy: Optional[InactivityPolicy] = None,
        inactive: bool = False,
    ) -> LifecycleStage:
        policy = policy or self.policy
        if now is not None and policy.is_inactive(engagement.last_activity, now):
            inactive = True
        return advance_lifecycle(
            engagement.lifecycle,
            candidate_stage(engagement, score),
            inactive=inactive,
        )

    def segment(
        self,
        engagement: Optional[VisitorEngagement],
        now: Optional[datetime] = None,
        policy: Optional[InactivityPolicy] = None,
        score: Optional[EngagementScore] = None,
        inactive: bool = False,
    ) -> UserSegment:
        """
        Segment one visitor.

        Args:
            engagement: The visitor aggregate, or None for a never-seen visitor.
            now: Reference time for inactivity; without it risk is neutral
                and nobody churns.
            policy: Inactivity policy overriding the engine default.
            score: Score to segment on; defaults to the aggregate's score.
            inactive: The visitor has just returned after a churn-length gap.

        Returns:
            UserSegment. A missing visitor gets the default new_visitor,
            bronze segment.
        """
        if engagement is None:
            return UserSegment()

        score = score or engagement.score
        lifecycle = self.lifecycle(engagement, score, now, policy, inactive)
        matched = self.matching_segments(engagement, score)

        primary: Union[SegmentType, LifecycleStage] = matched[0] if matched else lifecycle
        return UserSegment(
            primary=primary,
            secondary=matched[1:],
            characteristics=extract_characteristics(engagement, score),
            value=calculate_segment_value(engagement, score, now, policy or self.policy),
            lifecycle=lifecycle,
            personalization=create_personalization(engagement, lifecycle),
        )
