"""
Type definitions for visitor engagement.

VisitorEngagement is the aggregate root per visitor. Everything else in
this module is either a piece of that aggregate (behavior, journey, session
bookkeeping) or a derived result (score, segment, prediction, insights)
that is recomputed from it.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Union

from ..utils.serialization import to_plain
from .content import TrendDirection
from .events import ConversionEvent, InteractionEvent


# =============================================================================
# Enums
# =============================================================================


class JourneyStage(str, Enum):
    AWARENESS = "awareness"
    INTEREST = "interest"
    CONSIDERATION = "consideration"
    INTENT = "intent"
    EVALUATION = "evaluation"
    PURCHASE = "purchase"
    RETENTION = "retention"


# Most recent overall scores kept per visitor
SCORE_HISTORY_SIZE = 20

# Fixed contribution of each journey stage to conversion potential.
JOURNEY_STAGE_SCORES: Dict[JourneyStage, int] = {
    JourneyStage.AWARENESS: 0,
    JourneyStage.INTEREST: 10,
    JourneyStage.CONSIDERATION: 20,
    JourneyStage.INTENT: 30,
    JourneyStage.EVALUATION: 40,
    JourneyStage.PURCHASE: 50,
    JourneyStage.RETENTION: 60,
}


class SegmentType(str, Enum):
    HIGH_VALUE = "high_value"
    POTENTIAL_CLIENT = "potential_client"
    TECHNICAL_EVALUATOR = "technical_evaluator"
    DECISION_MAKER = "decision_maker"
    RESEARCHER = "researcher"
    COMPETITOR = "competitor"
    STUDENT = "student"
    RECRUITER = "recruiter"
    PARTNER = "partner"


class LifecycleStage(str, Enum):
    """Lifecycle stages in progression order; ``churned`` sits outside it."""

    NEW_VISITOR = "new_visitor"
    RETURNING_VISITOR = "returning_visitor"
    ENGAGED_PROSPECT = "engaged_prospect"
    QUALIFIED_LEAD = "qualified_lead"
    CLIENT = "client"
    ADVOCATE = "advocate"
    CHURNED = "churned"


LIFECYCLE_ORDER: List[LifecycleStage] = [
    LifecycleStage.NEW_VISITOR,
    LifecycleStage.RETURNING_VISITOR,
    LifecycleStage.ENGAGED_PROSPECT,
    LifecycleStage.QUALIFIED_LEAD,
    LifecycleStage.CLIENT,
    LifecycleStage.ADVOCATE,
]


class ValueTier(str, Enum):
    PLATINUM = "platinum"
    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"


class PreferredContentType(str, Enum):
    BLOG = "blog"
    CASE_STUDY = "case_study"
    DEMO = "demo"
    DOCUMENTATION = "documentation"
    VIDEO = "video"
    INTERACTIVE = "interactive"


class TopicDomain(str, Enum):
    FULL_STACK = "full-stack"
    CLOUD = "cloud"
    DATA = "data"
    UX_UI = "ux-ui"
    CONSULTING = "consulting"


class TouchPointType(str, Enum):
    ORGANIC = "organic"
    DIRECT = "direct"
    REFERRAL = "referral"
    SOCIAL = "social"
    EMAIL = "email"
    PAID = "paid"


class DropOffReason(str, Enum):
    TIMEOUT = "timeout"
    NAVIGATION = "navigation"
    ERROR = "error"
    DISTRACTION = "distraction"


class NextActionType(str, Enum):
    CONTENT_RECOMMENDATION = "content_recommendation"
    CONTACT_PROMPT = "contact_prompt"
    DEMO_OFFER = "demo_offer"
    RESOURCE_DOWNLOAD = "resource_download"


class ActionTiming(str, Enum):
    IMMEDIATE = "immediate"
    NEXT_VISIT = "next_visit"
    FOLLOW_UP = "follow_up"


class CharacteristicSource(str, Enum):
    BEHAVIORAL = "behavioral"
    DECLARED = "declared"
    INFERRED = "inferred"


# =============================================================================
# Engagement score
# =============================================================================


@dataclass
class ScoreComponents:
    time_on_site: int = 0
    page_depth: int = 0
    interaction_rate: int = 0
    return_frequency: int = 0
    conversion_potential: int = 0


@dataclass
class EngagementScore:
    """Composite 0-100 engagement score with its five components."""

    overall: int = 0
    components: ScoreComponents = field(default_factory=ScoreComponents)
    trend: TrendDirection = TrendDirection.STABLE
    percentile: float = 0.0
    last_calculated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall,
            "components": to_plain(self.components),
            "trend": self.trend.value,
            "percentile": self.percentile,
            "last_calculated": to_plain(self.last_calculated),
        }


# =============================================================================
# Behavior
# =============================================================================


@dataclass
class SessionBehavior:
    duration: float = 0.0  # seconds, summed over sessions
    page_views: int = 0
    bounce_rate: float = 100.0
    exit_page: str = ""
    entry_page: str = ""
    referral_source: str = "direct"
    session_count: int = 0


@dataclass
class ClickPoint:
    x: int
    y: int
    element: str
    timestamp: datetime
    page: str


@dataclass
class NavigationBehavior:
    scroll_depth: Dict[str, float] = field(default_factory=dict)
    click_heatmap: List[ClickPoint] = field(default_factory=list)
    time_per_page: Dict[str, float] = field(default_factory=dict)
    navigation_path: List[str] = field(default_factory=list)


@dataclass
class ContentPreference:
    type: PreferredContentType
    score: float
    frequency: int


@dataclass
class TopicInterest:
    topic: str
    score: float
    time_spent: float
    interactions: int
    domain: TopicDomain


@dataclass
class ContentBehavior:
    reading_speed: int = 200  # words per minute
    content_completion: Dict[str, float] = field(default_factory=dict)
    preferred_content_types: List[ContentPreference] = field(default_factory=list)
    topic_interests: List[TopicInterest] = field(default_factory=list)


@dataclass
class DeviceInfo:
    type: str = "desktop"
    screen_size: str = "1920x1080"
    browser: str = "unknown"
    os: str = "unknown"
    connection_speed: str = "medium"


@dataclass
class UserBehavior:
    session: SessionBehavior = field(default_factory=SessionBehavior)
    navigation: NavigationBehavior = field(default_factory=NavigationBehavior)
    content: ContentBehavior = field(default_factory=ContentBehavior)
    device: DeviceInfo = field(default_factory=DeviceInfo)
    time_on_page_average: float = 0.0
    interaction_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": to_plain(self.session),
            "navigation": to_plain(self.navigation),
            "content": to_plain(self.content),
            "device": to_plain(self.device),
            "time_on_page_average": self.time_on_page_average,
            "interaction_counts": dict(self.interaction_counts),
        }


# =============================================================================
# Journey
# =============================================================================


@dataclass
class TouchPoint:
    id: str
    type: TouchPointType
    source: str
    timestamp: datetime
    page: str
    value: float = 0.0


@dataclass
class DropOffPoint:
    page: str
    timestamp: datetime
    reason: DropOffReason
    recoverable: bool
    element: Optional[str] = None


@dataclass
class NextAction:
    type: NextActionType
    priority: str
    timing: ActionTiming
    message: str
    expected_impact: int


@dataclass
class UserJourney:
    stage: JourneyStage = JourneyStage.AWARENESS
    touchpoints: List[TouchPoint] = field(default_factory=list)
    conversion_events: List[ConversionEvent] = field(default_factory=list)
    drop_off_points: List[DropOffPoint] = field(default_factory=list)
    next_best_action: Optional[NextAction] = None
    journey_score: int = 0
    estimated_value: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "touchpoints": to_plain(self.touchpoints),
            "conversion_events": [c.to_dict() for c in self.conversion_events],
            "drop_off_points": to_plain(self.drop_off_points),
            "next_best_action": to_plain(self.next_best_action),
            "journey_score": self.journey_score,
            "estimated_value": self.estimated_value,
        }


# =============================================================================
# Segmentation
# =============================================================================


@dataclass
class SegmentCharacteristic:
    name: str
    value: Union[str, float, bool]
    confidence: float
    source: CharacteristicSource


@dataclass
class SegmentValue:
    score: int = 0
    tier: ValueTier = ValueTier.BRONZE
    potential: int = 0
    risk: int = 50


@dataclass
class PersonalizationProfile:
    preferences: Dict[str, Any] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)
    customizations: Dict[str, Any] = field(default_factory=dict)
    test_groups: List[str] = field(default_factory=list)


@dataclass
class UserSegment:
    """
    Segment assignment for one visitor.

    ``primary`` is a SegmentType when a definition matched, otherwise the
    neutral segment named after the lifecycle stage.
    """

    primary: Union[SegmentType, LifecycleStage] = LifecycleStage.NEW_VISITOR
    secondary: List[SegmentType] = field(default_factory=list)
    characteristics: List[SegmentCharacteristic] = field(default_factory=list)
    value: SegmentValue = field(default_factory=SegmentValue)
    lifecycle: LifecycleStage = LifecycleStage.NEW_VISITOR
    personalization: PersonalizationProfile = field(default_factory=PersonalizationProfile)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary": self.primary.value,
            "secondary": [s.value for s in self.secondary],
            "characteristics": to_plain(self.characteristics),
            "value": to_plain(self.value),
            "lifecycle": self.lifecycle.value,
            "personalization": to_plain(self.personalization),
        }


# =============================================================================
# Prediction
# =============================================================================


@dataclass
class RecommendedAction:
    action: str
    priority: int
    expected_impact: int
    effort: str
    timeline: str


@dataclass
class EngagementPrediction:
    """Heuristic forecasts; every probability is a percentage (0-100)."""

    conversion_probability: int = 0
    churn_risk: int = 50
    next_visit_probability: int = 20
    recommended_actions: List[RecommendedAction] = field(default_factory=list)
    optimal_contact_time: Optional[datetime] = None
    predicted_lifetime_value: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return to_plain(
            {
                "conversion_probability": self.conversion_probability,
                "churn_risk": self.churn_risk,
                "next_visit_probability": self.next_visit_probability,
                "recommended_actions": self.recommended_actions,
                "optimal_contact_time": self.optimal_contact_time,
                "predicted_lifetime_value": self.predicted_lifetime_value,
            }
        )


# =============================================================================
# Aggregate root
# =============================================================================


@dataclass
class SessionState:
    """Bookkeeping for one browsing session of a visitor."""

    id: str
    started_at: datetime
    ended_at: datetime
    page_views: int = 0
    entry_page: str = ""
    exit_page: str = ""
    referrer: Optional[str] = None
    converted: bool = False


@dataclass
class BehaviorTally:
    """
    Running totals kept next to the behavior so that folding in one more
    event never rescans the visitor's history.
    """

    session_seconds: float = 0.0
    bounced_sessions: int = 0
    time_on_pages: float = 0.0
    high_value_interactions: int = 0
    content_types: Dict[PreferredContentType, int] = field(default_factory=dict)
    topic_interactions: Dict[TopicDomain, int] = field(default_factory=dict)
    topic_seconds: Dict[TopicDomain, float] = field(default_factory=dict)


@dataclass
class VisitorEngagement:
    """
    All tracked state for one visitor.

    Created on the first tracked event and recomputed after every event or
    conversion. ``session_id`` is the current session; ``sessions`` keeps
    every session seen, in first-seen order.
    """

    user_id: str
    session_id: str
    first_seen: datetime
    last_activity: datetime
    sessions: Dict[str, SessionState] = field(default_factory=dict)
    interactions: List[InteractionEvent] = field(default_factory=list)
    conversions: List[ConversionEvent] = field(default_factory=list)
    score: EngagementScore = field(default_factory=EngagementScore)
    behavior: UserBehavior = field(default_factory=UserBehavior)
    journey: UserJourney = field(default_factory=UserJourney)
    segment: UserSegment = field(default_factory=UserSegment)
    lifecycle: LifecycleStage = LifecycleStage.NEW_VISITOR
    score_history: Deque[int] = field(default_factory=lambda: deque(maxlen=SCORE_HISTORY_SIZE))
    user_agent: str = ""
    # Parallel to behavior.navigation.navigation_path
    path_timestamps: List[datetime] = field(default_factory=list)
    tally: BehaviorTally = field(default_factory=BehaviorTally)

    @property
    def session_ids(self) -> List[str]:
        return list(self.sessions)

    @property
    def high_value_interactions(self) -> int:
        return self.tally.high_value_interactions

    def add_interaction(self, event: InteractionEvent) -> None:
        self.interactions.append(event)
        if event.is_high_value:
            self.tally.high_value_interactions += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "session_id": self.session_id,
            "session_ids": self.session_ids,
            "interactions": [i.to_dict() for i in self.interactions],
            "conversions": [c.to_dict() for c in self.conversions],
            "score": self.score.to_dict(),
            "behavior": self.behavior.to_dict(),
            "journey": self.journey.to_dict(),
            "segment": self.segment.to_dict(),
            "lifecycle": self.lifecycle.value,
            "score_history": list(self.score_history),
            "first_seen": self.first_seen.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }


# =============================================================================
# Query results
# =============================================================================


@dataclass
class EngagementInsights:
    user_id: str = ""
    score: EngagementScore = field(default_factory=EngagementScore)
    behavior: UserBehavior = field(default_factory=UserBehavior)
    segment: UserSegment = field(default_factory=UserSegment)
    prediction: EngagementPrediction = field(default_factory=EngagementPrediction)
    recommendations: List[str] = field(default_factory=list)
    insights: List[str] = field(default_factory=list)
    opportunities: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "score": self.score.to_dict(),
            "behavior": self.behavior.to_dict(),
            "segment": self.segment.to_dict(),
            "prediction": self.prediction.to_dict(),
            "recommendations": list(self.recommendations),
            "insights": list(self.insights),
            "opportunities": list(self.opportunities),
        }


@dataclass
class AggregatedEngagementMetrics:
    timeframe: str
    total_users: int = 0
    average_engagement_score: float = 0.0
    segment_distribution: Dict[str, int] = field(default_factory=dict)
    lifecycle_distribution: Dict[str, int] = field(default_factory=dict)
    top_behaviors: List[str] = field(default_factory=list)
    conversion_metrics: Dict[str, float] = field(default_factory=dict)
    trends: Dict[str, float] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return to_plain(
            {
                "timeframe": self.timeframe,
                "total_users": self.total_users,
                "average_engagement_score": self.average_engagement_score,
                "segment_distribution": self.segment_distribution,
                "lifecycle_distribution": self.lifecycle_distribution,
                "top_behaviors": self.top_behaviors,
                "conversion_metrics": self.conversion_metrics,
                "trends": self.trends,
                "recommendations": self.recommendations,
            }
        )
