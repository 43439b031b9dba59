"""
Analytics module.

Recommendation rules live here next to the services that use them. The
services themselves are imported from their modules directly, e.g.
``from engagement_engine.analytics.content_service import ContentService``.
"""

from .recommendation_engine import (
    CONTENT_RULES,
    behavioral_insights,
    next_best_action,
    opportunities,
    optimization_recommendations,
    recommend,
    recommend_actions,
    system_recommendations,
)

__all__ = [
    "CONTENT_RULES",
    "behavioral_insights",
    "next_best_action",
    "opportunities",
    "optimization_recommendations",
    "recommend",
    "recommend_actions",
    "system_recommendations",
]
