"""
Scoring module.

Visitor engagement scores and content performance scores, both on a
0-100 scale.
"""

from .content_scorer import (
    ContentScoreBreakdown,
    ContentScorer,
    get_overall_score,
    score_breakdown,
    score_content,
    score_content_engagement,
    score_conversion,
    score_core_web_vitals,
    score_seo,
    score_technical,
)
from .engagement_scorer import (
    calculate_overall,
    calculate_percentile,
    calculate_trend,
    score_engagement,
    score_visitor,
)

__all__ = [
    "ContentScoreBreakdown",
    "ContentScorer",
    "get_overall_score",
    "score_breakdown",
    "score_content",
    "score_content_engagement",
    "score_conversion",
    "score_core_web_vitals",
    "score_seo",
    "score_technical",
    "calculate_overall",
    "calculate_percentile",
    "calculate_trend",
    "score_engagement",
    "score_visitor",
]
