"""
Type definitions for the engagement engine.
"""

from .content import (
    ContentAnalytics,
    ContentMetrics,
    ContentRecommendation,
    ContentType,
    Priority,
    RecommendationCategory,
    RecommendationType,
    Timeframe,
    TrendDirection,
    parse_timeframe,
)
from .engagement import (
    AggregatedEngagementMetrics,
    EngagementInsights,
    EngagementPrediction,
    EngagementScore,
    JourneyStage,
    LifecycleStage,
    SegmentType,
    UserBehavior,
    UserJourney,
    UserSegment,
    ValueTier,
    VisitorEngagement,
)
from .events import (
    ContentConversionEvent,
    ContentEngagementEvent,
    ContentEngagementType,
    ContentQualityReading,
    ConversionEvent,
    ConversionGoal,
    InteractionEvent,
    InteractionType,
    PageViewData,
    create_conversion,
    create_interaction,
)

__all__ = [
    # Event model
    "ContentConversionEvent",
    "ContentEngagementEvent",
    "ContentEngagementType",
    "ContentQualityReading",
    "ConversionEvent",
    "ConversionGoal",
    "InteractionEvent",
    "InteractionType",
    "PageViewData",
    "create_conversion",
    "create_interaction",
    # Visitor side
    "AggregatedEngagementMetrics",
    "EngagementInsights",
    "EngagementPrediction",
    "EngagementScore",
    "JourneyStage",
    "LifecycleStage",
    "SegmentType",
    "UserBehavior",
    "UserJourney",
    "UserSegment",
    "ValueTier",
    "VisitorEngagement",
    # Content side
    "ContentAnalytics",
    "ContentMetrics",
    "ContentRecommendation",
    "ContentType",
    "Priority",
    "RecommendationCategory",
    "RecommendationType",
    "Timeframe",
    "TrendDirection",
    "parse_timeframe",
]
