"""
Visitor engagement scoring.

Five components are scored on fixed threshold ladders and combined with
fixed weights into a 0-100 composite:

    time_on_site        0.20
    page_depth          0.20
    interaction_rate    0.25
    return_frequency    0.15
    conversion_potential 0.20

Ladders compare with ``<``, so a value sitting exactly on a boundary lands
in the next bucket up. Scoring is pure: ``now`` is only stamped on the
result.
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from ..types.content import TrendDirection
from ..types.engagement import (
    EngagementScore,
    ScoreComponents,
    UserBehavior,
    VisitorEngagement,
)
from ..types.events import InteractionEvent
from ..utils.numbers import clamp, round_half_up, safe_ratio

COMPONENT_WEIGHTS: Dict[str, float] = {
    "time_on_site": 0.20,
    "page_depth": 0.20,
    "interaction_rate": 0.25,
    "return_frequency": 0.15,
    "conversion_potential": 0.20,
}

# (exclusive upper bound, score); anything past the last bound scores 100
TIME_ON_SITE_LADDER: List[Tuple[float, int]] = [(30, 10), (60, 25), (180, 50), (300, 75)]
PAGE_DEPTH_LADDER: List[Tuple[float, int]] = [(2, 20), (4, 40), (7, 60), (10, 80)]
INTERACTION_RATE_LADDER: List[Tuple[float, int]] = [(0.5, 20), (1, 40), (2, 60), (3, 80)]
RETURN_FREQUENCY_LADDER: List[Tuple[float, int]] = [(2, 10), (4, 30), (7, 50), (10, 70)]

CONVERSION_POINTS = 20
HIGH_VALUE_INTERACTION_POINTS = 10

# Minimum change in the overall score that counts as a trend
TREND_THRESHOLD = 5


def _ladder(value: float, ladder: List[Tuple[float, int]], top: int = 100) -> int:
    for bound, score in ladder:
        if value < bound:
            return score
    return top


def score_time_on_site(duration: float) -> int:
    """Score total session time in seconds."""
    return _ladder(duration, TIME_ON_SITE_LADDER)


def score_page_depth(page_views: int) -> int:
    return _ladder(page_views, PAGE_DEPTH_LADDER)


def score_interaction_rate(interaction_count: int, duration: float) -> int:
    """
    Score interactions per minute.

    A visitor with no measured time has no rate and scores 0.
    """
    if duration <= 0:
        return 0
    rate = safe_ratio(interaction_count, duration / 60)
    return _ladder(rate, INTERACTION_RATE_LADDER)


def score_return_frequency(session_count: int) -> int:
    return _ladder(session_count, RETURN_FREQUENCY_LADDER)


def score_conversion_potential(
    conversions: int,
    high_value_interactions: int,
    journey_score: int,
) -> int:
    """Conversions, high-value interactions and journey progress, capped at 100."""
    score = (
        conversions * CONVERSION_POINTS
        + high_value_interactions * HIGH_VALUE_INTERACTION_POINTS
        + journey_score
    )
    return int(min(score, 100))


def calculate_overall(components: ScoreComponents) -> int:
    """Weighted sum of the clamped components, rounded half up."""
    overall = sum(
        clamp(getattr(components, name)) * weight
        for name, weight in COMPONENT_WEIGHTS.items()
    )
    return int(clamp(round_half_up(overall)))


def calculate_trend(overall: int, previous: Optional[int]) -> TrendDirection:
    if previous is None:
        return TrendDirection.STABLE
    delta = overall - previous
    if delta >= TREND_THRESHOLD:
        return TrendDirection.INCREASING
    if delta <= -TREND_THRESHOLD:
        return TrendDirection.DECREASING
    return TrendDirection.STABLE


def calculate_percentile(score: int, population: Optional[Sequence[int]]) -> float:
    """
    Share of the population scoring strictly below ``score``, as a percentage.

    An empty population puts everyone at the median.
    """
    if not population:
        return 50.0
    below = sum(1 for other in population if other < score)
    return round(below / len(population) * 100, 2)


def score_visitor(
    behavior: UserBehavior,
    interactions: Sequence[InteractionEvent],
    conversions: int = 0,
    journey_score: int = 0,
    previous: Optional[int] = None,
    population: Optional[Sequence[int]] = None,
    now: Optional[datetime] = None,
    high_value: Optional[int] = None,
) -> EngagementScore:
    """
    Score one visitor.

    Args:
        behavior: Aggregated behavior of the visitor.
        interactions: Every interaction recorded for the visitor.
        conversions: Number of conversions recorded.
        journey_score: Fixed score of the visitor's journey stage.
        previous: The visitor's previous overall score, for the trend.
        population: Overall scores of the other visitors, for the percentile.
        now: Timestamp for ``last_calculated``.
        high_value: Number of high-value interactions when the caller
            already keeps it; counted from ``interactions`` otherwise.

    Returns:
        EngagementScore. A visitor with no interactions and no session time
        gets the all-zero default.
    """
    duration = behavior.session.duration
    if not interactions and duration <= 0:
        return EngagementScore(last_calculated=now)

    if high_value is None:
        high_value = sum(1 for i in interactions if i.is_high_value)
    components = ScoreComponents(
        time_on_site=score_time_on_site(duration),
        page_depth=score_page_depth(behavior.session.page_views),
        interaction_rate=score_interaction_rate(len(interactions), duration),
        return_frequency=score_return_frequency(behavior.session.session_count),
        conversion_potential=score_conversion_potential(conversions, high_value, journey_score),
    )
    overall = calculate_overall(components)

    return EngagementScore(
        overall=overall,
        components=components,
        trend=calculate_trend(overall, previous),
        percentile=calculate_percentile(overall, population),
        last_calculated=now,
    )


def score_engagement(
    engagement: VisitorEngagement,
    population: Optional[Sequence[int]] = None,
    now: Optional[datetime] = None,
) -> EngagementScore:
    """Score a visitor aggregate against its own score history."""
    previous = engagement.score_history[-1] if engagement.score_history else None
    return score_visitor(
        behavior=engagement.behavior,
        interactions=engagement.interactions,
        conversions=len(engagement.conversions),
        journey_score=engagement.journey.journey_score,
        previous=previous,
        population=population,
        now=now,
        high_value=engagement.high_value_interactions,
    )
