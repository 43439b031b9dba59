"""
Heuristic engagement predictions.

The predictor has the shape of a model (visitor in, probabilities out) but
is a weighted-factor heuristic. Every probability is a percentage clamped
to [0, 100]. Visitors with nothing tracked get the neutral defaults:
conversion 0, churn 50, next visit 20, lifetime value 0.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

from ..analytics.recommendation_engine import recommend_actions
from ..segmentation.segment_engine import DEFAULT_POLICY, InactivityPolicy
from ..types.engagement import EngagementPrediction, LifecycleStage, VisitorEngagement
from ..utils.dates import ensure_utc
from ..utils.numbers import clamp, round_half_up, safe_ratio

logger = logging.getLogger(__name__)

DEFAULT_BASE_PROJECT_VALUE = 5000.0

CONVERTED_BONUS = 20
RETURN_SESSION_POINTS = 8
MAX_COUNTED_RETURNS = 5


def predict_conversion_probability(engagement: VisitorEngagement) -> int:
    score = engagement.score
    probability = 0.5 * score.overall + 0.3 * score.components.conversion_potential
    if engagement.conversions:
        probability += CONVERTED_BONUS
    return round_half_up(clamp(probability))


def predict_churn_risk(
    engagement: VisitorEngagement,
    now: Optional[datetime] = None,
    policy: Optional[InactivityPolicy] = None,
) -> int:
    """
    Blend of inactivity and low engagement.

    Without a reference time there is no inactivity signal and the risk
    stays neutral. A churned visitor is at full risk.
    """
    if engagement.lifecycle == LifecycleStage.CHURNED:
        return 100
    if now is None:
        return 50

    policy = policy or DEFAULT_POLICY
    idle = policy.idle_days(engagement.last_activity, now)
    idle_pct = clamp(safe_ratio(idle, policy.inactivity_days) * 100)
    return round_half_up(clamp(0.6 * idle_pct + 0.4 * (100 - engagement.score.overall)))


def predict_next_visit_probability(engagement: VisitorEngagement) -> int:
    returns = min(max(len(engagement.sessions) - 1, 0), MAX_COUNTED_RETURNS)
    probability = 20 + RETURN_SESSION_POINTS * returns + 0.4 * engagement.score.overall
    return round_half_up(clamp(probability))


def optimal_contact_time(
    engagement: VisitorEngagement,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    Next occurrence (UTC) of the hour the visitor is most active in.

    Ties go to the earliest hour. The search starts at ``now`` or, without
    it, at the visitor's last activity.
    """
    if not engagement.interactions:
        return None

    hours = Counter(ensure_utc(i.timestamp).hour for i in engagement.interactions)
    busiest = max(sorted(hours), key=lambda hour: hours[hour])

    reference = ensure_utc(now if now is not None else engagement.last_activity)
    candidate = reference.replace(hour=busiest, minute=0, second=0, microsecond=0)
    if candidate <= reference:
        candidate += timedelta(days=1)
    return candidate


def predict_lifetime_value(
    engagement: VisitorEngagement,
    conversion_probability: int,
    base_project_value: float = DEFAULT_BASE_PROJECT_VALUE,
) -> float:
    """Value already realized plus the expected value of a future project."""
    expected = conversion_probability / 100 * base_project_value
    return round(engagement.journey.estimated_value + expected, 2)


def predict(
    engagement: Optional[VisitorEngagement],
    now: Optional[datetime] = None,
    policy: Optional[InactivityPolicy] = None,
    base_project_value: float = DEFAULT_BASE_PROJECT_VALUE,
) -> EngagementPrediction:
    """
    Predict a visitor's next moves.

    Args:
        engagement: The visitor aggregate, or None for an unknown visitor.
        now: Reference time for churn risk and contact time.
        policy: Inactivity policy used for churn risk.
        base_project_value: Value of a typical project, for lifetime value.

    Returns:
        EngagementPrediction with recommended actions attached.
    """
    if engagement is None or not engagement.interactions:
        return EngagementPrediction()

    conversion_probability = predict_conversion_probability(engagement)
    prediction = EngagementPrediction(
        conversion_probability=conversion_probability,
        churn_risk=predict_churn_risk(engagement, now, policy),
        next_visit_probability=predict_next_visit_probability(engagement),
        optimal_contact_time=optimal_contact_time(engagement, now),
        predicted_lifetime_value=predict_lifetime_value(
            engagement, conversion_probability, base_project_value
        ),
    )
    prediction.recommended_actions = recommend_actions(engagement, prediction)
    return prediction
