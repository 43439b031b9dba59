"""
Visitor engagement service.

Owns the visitor store and keeps every VisitorEngagement consistent: each
tracked interaction or conversion is folded in by the behavior aggregator
and then rescored, resegmented and given a fresh next best action, all
under the visitor's lock.

The stored lifecycle is a function of the event stream alone. An event
arriving after a gap the inactivity policy counts as churn moves the
visitor to ``churned`` when it is ingested. Queries with a ``now`` see the
lifecycle as of that moment on a copy and never write it back.
"""

import copy
import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional

from ..config import EngineSettings
from ..exceptions import UnknownAggregateError
from ..prediction.predictor import predict
from ..scoring.engagement_scorer import score_engagement
from ..segmentation.segment_engine import InactivityPolicy, SegmentEngine
from ..storage.memory_store import InMemoryStore
from ..tracking.behavior_aggregator import BehaviorAggregator
from ..types.engagement import EngagementInsights, VisitorEngagement
from ..types.events import ConversionEvent, InteractionEvent
from ..utils.dates import utc_now
from .recommendation_engine import (
    behavioral_insights,
    next_best_action,
    opportunities,
    optimization_recommendations,
)

logger = logging.getLogger(__name__)

MAX_SCORE = 100


class ScoreDistribution:
    """
    Latest overall score of every scored visitor, kept as a histogram.

    Overall scores are whole numbers in [0, 100], so ranking a visitor
    against everyone else costs the same however many visitors there are.
    """

    def __init__(self):
        self._counts: List[int] = [0] * (MAX_SCORE + 1)
        self._scores: Dict[str, int] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._scores)

    def update(self, visitor_id: str, score: int) -> float:
        """
        Record ``score`` as the visitor's latest.

        Returns:
            Share of the other scored visitors strictly below ``score``, as
            a percentage; 50 when nobody else has been scored.
        """
        with self._lock:
            previous = self._scores.get(visitor_id)
            if previous is not None:
                self._counts[previous] -= 1
            others = len(self._scores) - (previous is not None)
            below = sum(self._counts[:score])
            self._counts[score] += 1
            self._scores[visitor_id] = score

        if not others:
            return 50.0
        return round(below / others * 100, 2)


class EngagementService:
    """
    Ingestion and queries for visitor engagement.

    Args:
        store: Visitor store; a fresh in-memory store when omitted.
        settings: Engine tunables (inactivity window, project value).
    """

    def __init__(
        self,
        store: Optional[InMemoryStore[VisitorEngagement]] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.settings = settings or EngineSettings()
        self.store: InMemoryStore[VisitorEngagement] = store or InMemoryStore("visitor")
        self.policy = InactivityPolicy(inactivity_days=self.settings.inactivity_days)
        self.aggregator = BehaviorAggregator(self.store)
        self.segments = SegmentEngine(policy=self.policy)

        self.population = ScoreDistribution()
        for visitor in self.store.values():
            if visitor.score_history:
                self.population.update(visitor.user_id, visitor.score.overall)

    # =========================================================================
    # Ingestion
    # =========================================================================

    def track_interaction(
        self,
        visitor_id: str,
        event: InteractionEvent,
        session_id: Optional[str] = None,
    ) -> VisitorEngagement:
        with self.store.lock(visitor_id):
            inactive = self._returns_after_gap(visitor_id, event.timestamp)
            engagement = self.aggregator.record_interaction(visitor_id, event, session_id)
            self._rescore(engagement, inactive)
            logger.debug(
                f"Tracked {event.type.value} for visitor {visitor_id}: "
                f"score={engagement.score.overall}"
            )
            return engagement

    def track_conversion(self, visitor_id: str, conversion: ConversionEvent) -> VisitorEngagement:
        with self.store.lock(visitor_id):
            inactive = self._returns_after_gap(visitor_id, conversion.timestamp)
            engagement = self.aggregator.record_conversion(visitor_id, conversion)
            self._rescore(engagement, inactive)
            logger.info(
                f"Conversion {conversion.goal.value} for visitor {visitor_id}: "
                f"lifecycle={engagement.lifecycle.value}"
            )
            return engagement

    def start_session(
        self,
        visitor_id: str,
        session_id: str,
        timestamp: Optional[datetime] = None,
    ) -> VisitorEngagement:
        with self.store.lock(visitor_id):
            inactive = timestamp is not None and self._returns_after_gap(visitor_id, timestamp)
            engagement = self.aggregator.start_session(visitor_id, session_id, timestamp)
            self._rescore(engagement, inactive)
            return engagement

    def _returns_after_gap(self, visitor_id: str, timestamp: datetime) -> bool:
        """Whether an event at ``timestamp`` follows a churn-length silence. Caller holds the lock."""
        if visitor_id not in self.store:
            return False
        return self.policy.is_inactive(self.store.get(visitor_id).last_activity, timestamp)

    def _rescore(self, engagement: VisitorEngagement, inactive: bool = False) -> None:
        """Recompute score, segment and next best action. Caller holds the lock."""
        score = score_engagement(engagement, now=utc_now())
        score.percentile = self.population.update(engagement.user_id, score.overall)
        engagement.score = score
        engagement.score_history.append(score.overall)

        engagement.segment = self.segments.segment(engagement, inactive=inactive)
        engagement.lifecycle = engagement.segment.lifecycle
        engagement.journey.next_best_action = next_best_action(engagement)

    # =========================================================================
    # Queries
    # =========================================================================

    def _as_of(self, engagement: VisitorEngagement, now: Optional[datetime]) -> VisitorEngagement:
        """Resegment a copy with the inactivity policy applied at ``now``."""
        if now is not None:
            engagement.segment = self.segments.segment(engagement, now=now)
            engagement.lifecycle = engagement.segment.lifecycle
        return engagement

    def get_engagement(
        self,
        visitor_id: str,
        now: Optional[datetime] = None,
    ) -> Optional[VisitorEngagement]:
        """
        Deep copy of the visitor aggregate, or None if never tracked.

        With ``now`` the copy's segment and lifecycle reflect inactivity up
        to that moment; the stored aggregate is left as it is.
        """
        try:
            with self.store.lock(visitor_id):
                engagement = copy.deepcopy(self.store.get(visitor_id))
        except UnknownAggregateError:
            return None
        return self._as_of(engagement, now)

    def snapshot(self, now: Optional[datetime] = None) -> List[VisitorEngagement]:
        """Consistent copies of every visitor, ordered by id."""
        visitors = []
        for visitor_id in self.store.ids():
            with self.store.lock(visitor_id):
                engagement = copy.deepcopy(self.store.get(visitor_id))
            visitors.append(self._as_of(engagement, now))
        return visitors

    def get_engagement_insights(
        self,
        visitor_id: str,
        now: Optional[datetime] = None,
    ) -> EngagementInsights:
        """
        Full picture of one visitor.

        Args:
            visitor_id: Visitor to describe.
            now: Reference time for churn and contact-time predictions.

        Returns:
            EngagementInsights. An unknown visitor gets the defaults.
        """
        engagement = self.get_engagement(visitor_id, now=now)
        if engagement is None:
            logger.debug(f"No engagement recorded for {visitor_id}; returning defaults")
            return EngagementInsights(user_id=visitor_id)

        prediction = predict(
            engagement,
            now=now,
            policy=self.policy,
            base_project_value=self.settings.base_project_value,
        )
        return EngagementInsights(
            user_id=visitor_id,
            score=engagement.score,
            behavior=engagement.behavior,
            segment=engagement.segment,
            prediction=prediction,
            recommendations=optimization_recommendations(engagement),
            insights=behavioral_insights(engagement),
            opportunities=opportunities(engagement),
        )
