"""
Content performance scoring.

This module provides scoring algorithms for:
- Engagement (time on page, scroll depth, interactions, bounce rate)
- SEO (average position, click-through rate, Core Web Vitals)
- Conversion (goal completions)
- Technical health (load time, mobile score)

Each category is rounded to an integer in [0, 100] before the weighted
composite is taken. All functions are pure.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from ..types.content import ContentMetrics, CoreWebVitals
from ..utils.numbers import clamp, round_half_up

DEFAULT_WEIGHTS: Dict[str, float] = {
    "engagement": 0.40,
    "seo": 0.30,
    "conversion": 0.20,
    "technical": 0.10,
}

# Core Web Vitals thresholds: (good, needs improvement)
LCP_THRESHOLDS = (2.5, 4.0)  # seconds
FID_THRESHOLDS = (100.0, 300.0)  # milliseconds
CLS_THRESHOLDS = (0.1, 0.25)

GOOD_VITAL_POINTS = 33.33
FAIR_VITAL_POINTS = 16.67


@dataclass(frozen=True)
class ContentScoreBreakdown:
    """Category scores and the weighted performance score."""

    engagement: int
    seo: int
    conversion: int
    technical: int
    performance: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "engagement": self.engagement,
            "seo": self.seo,
            "conversion": self.conversion,
            "technical": self.technical,
            "performance": self.performance,
        }


def _vital_points(value: float, thresholds) -> float:
    good, fair = thresholds
    if value <= good:
        return GOOD_VITAL_POINTS
    if value <= fair:
        return FAIR_VITAL_POINTS
    return 0.0


def score_core_web_vitals(vitals: Optional[CoreWebVitals]) -> int:
    """
    Score LCP, FID and CLS against the Core Web Vitals thresholds.

    Each good metric earns a third of the score and each metric needing
    improvement earns a sixth. Missing vitals score 0.
    """
    if vitals is None:
        return 0
    points = (
        _vital_points(vitals.lcp, LCP_THRESHOLDS)
        + _vital_points(vitals.fid, FID_THRESHOLDS)
        + _vital_points(vitals.cls, CLS_THRESHOLDS)
    )
    return int(clamp(round_half_up(points)))


def score_content_engagement(content: ContentMetrics) -> int:
    """
    Score how readers engage with the content.

    Three minutes on page, full scroll depth and ten interactions each max
    out their share; bounce rate counts inversely.
    """
    performance = content.performance
    engagement = content.engagement

    score = min(performance.time_on_page.average / 180, 1) * 30
    score += clamp(engagement.user_actions.scroll_depth) / 100 * 25
    score += min(engagement.interactions.total / 10, 1) * 25
    score += (1 - min(performance.time_on_page.bounce_rate / 100, 1)) * 20

    return int(clamp(round_half_up(score)))


def score_seo(content: ContentMetrics) -> int:
    """
    Score search visibility.

    Position only counts once the content ranks (average position > 0);
    a 5% click-through rate maxes out its share.
    """
    seo = content.seo
    score = 0.0

    position = seo.organic.average_position
    if position > 0:
        score += max(0.0, (11 - min(position, 10)) / 10) * 40

    score += min(max(seo.organic.ctr, 0.0) / 5, 1) * 30
    score += score_core_web_vitals(seo.technical.core_web_vitals) * 0.3

    return int(clamp(round_half_up(score)))


def score_conversion(content: ContentMetrics) -> int:
    """Ten goal completions of any kind max out the conversion score."""
    return int(min(content.conversion.goals.total * 10, 100))


def score_technical(content: ContentMetrics) -> int:
    technical = content.seo.technical
    score = max(0.0, (5 - min(technical.load_time, 5)) / 5) * 50
    score += clamp(technical.mobile_score) / 100 * 50
    return int(clamp(round_half_up(score)))


def get_overall_score(
    breakdown: Dict[str, int],
    weights: Optional[Dict[str, float]] = None,
) -> int:
    """
    Calculate the weighted performance score from category scores.

    Args:
        breakdown: Category name to score.
        weights: Optional custom weights (must sum to 1.0).

    Returns:
        Weighted performance score (0-100).
    """
    weights = weights or DEFAULT_WEIGHTS
    overall = sum(breakdown[name] * weight for name, weight in weights.items())
    return int(clamp(round_half_up(overall)))


def score_breakdown(
    content: ContentMetrics,
    weights: Optional[Dict[str, float]] = None,
) -> ContentScoreBreakdown:
    categories = {
        "engagement": score_content_engagement(content),
        "seo": score_seo(content),
        "conversion": score_conversion(content),
        "technical": score_technical(content),
    }
    return ContentScoreBreakdown(
        performance=get_overall_score(categories, weights),
        **categories,
    )


def score_content(content: ContentMetrics) -> int:
    """Performance score for one content item, an integer in [0, 100]."""
    return score_breakdown(content).performance


class ContentScorer:
    """
    Content scorer with configurable category weights.

    The module-level functions use the default 40/30/20/10 weighting; this
    class exists for callers that weight categories differently.
    """

    def __init__(self, weights: Optional[Dict[str, float]] = None):
        self.weights = dict(weights or DEFAULT_WEIGHTS)
        if abs(sum(self.weights.values()) - 1.0) > 1e-6:
            raise ValueError("Content score weights must sum to 1.0")

    def score(self, content: ContentMetrics) -> int:
        return score_breakdown(content, self.weights).performance

    def breakdown(self, content: ContentMetrics) -> ContentScoreBreakdown:
        return score_breakdown(content, self.weights)
