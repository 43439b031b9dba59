"""
Behavior aggregation for visitor engagement.

Folds the append-only event stream of a visitor into its UserBehavior and
UserJourney. Counters only grow: page views add one, scroll depth keeps the
maximum per page, time per page accumulates, the click heat-map appends and
the navigation path keeps timestamp order even for late arrivals. Derived
ratios (bounce rate, average time on page) are refreshed after every event
from running totals, so the cost of an event does not grow with history.

De-duplication by event id is the caller's job; replaying an event here
counts it twice.
"""

import bisect
import copy
import logging
import re
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

from ..exceptions import UnknownAggregateError
from ..storage.memory_store import InMemoryStore
from ..types.engagement import (
    JOURNEY_STAGE_SCORES,
    BehaviorTally,
    ClickPoint,
    ContentPreference,
    DeviceInfo,
    DropOffPoint,
    DropOffReason,
    JourneyStage,
    PreferredContentType,
    SessionState,
    TopicDomain,
    TopicInterest,
    TouchPoint,
    TouchPointType,
    UserBehavior,
    UserJourney,
    VisitorEngagement,
)
from ..types.events import (
    ClickPayload,
    ConversionEvent,
    ConversionKind,
    InteractionEvent,
    InteractionType,
    PageViewPayload,
    ScrollPayload,
    new_id,
)
from ..utils.dates import ensure_utc

logger = logging.getLogger(__name__)


# =============================================================================
# Inference tables
# =============================================================================

# Journey stage reached by each interaction kind.
INTERACTION_STAGES: Dict[InteractionType, JourneyStage] = {
    InteractionType.PAGE_VIEW: JourneyStage.AWARENESS,
    InteractionType.SCROLL: JourneyStage.AWARENESS,
    InteractionType.HOVER: JourneyStage.AWARENESS,
    InteractionType.CLICK: JourneyStage.INTEREST,
    InteractionType.SEARCH: JourneyStage.INTEREST,
    InteractionType.FILTER: JourneyStage.INTEREST,
    InteractionType.SORT: JourneyStage.INTEREST,
    InteractionType.SHARE: JourneyStage.CONSIDERATION,
    InteractionType.BOOKMARK: JourneyStage.CONSIDERATION,
    InteractionType.DOWNLOAD: JourneyStage.CONSIDERATION,
    InteractionType.RICH_INTERACTION: JourneyStage.CONSIDERATION,
    InteractionType.CALCULATOR_USE: JourneyStage.INTENT,
    InteractionType.FORM_INTERACTION: JourneyStage.INTENT,
    InteractionType.DEMO_VIEW: JourneyStage.EVALUATION,
}

STAGE_ORDER: List[JourneyStage] = list(JOURNEY_STAGE_SCORES)

# Page views past this count lift a visitor from awareness to interest.
INTEREST_PAGE_VIEWS = 3

CONTENT_TYPE_PATTERNS: List[Tuple[str, PreferredContentType]] = [
    ("/blog", PreferredContentType.BLOG),
    ("/case-stud", PreferredContentType.CASE_STUDY),
    ("/projects", PreferredContentType.CASE_STUDY),
    ("/demo", PreferredContentType.DEMO),
    ("/docs", PreferredContentType.DOCUMENTATION),
    ("/documentation", PreferredContentType.DOCUMENTATION),
    ("/video", PreferredContentType.VIDEO),
    ("/tools", PreferredContentType.INTERACTIVE),
    ("/calculator", PreferredContentType.INTERACTIVE),
    ("/playground", PreferredContentType.INTERACTIVE),
]

INTERACTION_CONTENT_TYPES: Dict[InteractionType, PreferredContentType] = {
    InteractionType.RICH_INTERACTION: PreferredContentType.INTERACTIVE,
    InteractionType.CALCULATOR_USE: PreferredContentType.INTERACTIVE,
    InteractionType.DEMO_VIEW: PreferredContentType.DEMO,
}

TOPIC_KEYWORDS: Dict[TopicDomain, frozenset] = {
    TopicDomain.FULL_STACK: frozenset({"fullstack", "full", "stack", "react", "frontend", "backend", "web"}),
    TopicDomain.CLOUD: frozenset({"cloud", "aws", "azure", "gcp", "devops", "kubernetes", "serverless"}),
    TopicDomain.DATA: frozenset({"data", "analytics", "ml", "machine", "learning", "etl", "dashboards"}),
    TopicDomain.UX_UI: frozenset({"ux", "ui", "design", "usability", "accessibility"}),
    TopicDomain.CONSULTING: frozenset({"consulting", "strategy", "services", "advisory"}),
}

SEARCH_ENGINES = ("google.", "bing.", "duckduckgo.", "yahoo.", "baidu.", "ecosia.")
SOCIAL_NETWORKS = (
    "twitter.", "t.co", "x.com", "linkedin.", "lnkd.in", "facebook.",
    "reddit.", "instagram.", "news.ycombinator.", "mastodon",
)

_TOKEN_SPLIT = re.compile(r"[/\-_.?=&#]+")


def page_tokens(page: str) -> List[str]:
    return [t for t in _TOKEN_SPLIT.split(page.lower()) if t]


def infer_content_type(page: str) -> Optional[PreferredContentType]:
    path = page.lower()
    for pattern, content_type in CONTENT_TYPE_PATTERNS:
        if pattern in path:
            return content_type
    return None


def infer_topics(page: str) -> List[TopicDomain]:
    tokens = set(page_tokens(page))
    return [domain for domain, words in TOPIC_KEYWORDS.items() if tokens & words]


def classify_referrer(referrer: Optional[str]) -> Tuple[TouchPointType, str]:
    """
    Classify a referrer URL into a touchpoint type and source.

    Campaign parameters win over the host: ``utm_medium=email`` is email and
    ``utm_medium=cpc`` or a ``gclid`` is paid, whatever site sent the visitor.
    """
    if not referrer:
        return TouchPointType.DIRECT, "direct"

    parsed = urlparse(referrer)
    host = (parsed.netloc or parsed.path).lower()
    params = parse_qs(parsed.query)
    medium = (params.get("utm_medium") or [""])[0].lower()

    if medium == "email" or host.startswith("mail."):
        return TouchPointType.EMAIL, host or "email"
    if medium in ("cpc", "ppc", "paid") or "gclid" in params:
        return TouchPointType.PAID, host or "paid"
    if any(engine in host for engine in SEARCH_ENGINES):
        return TouchPointType.ORGANIC, host
    if any(network in host for network in SOCIAL_NETWORKS):
        return TouchPointType.SOCIAL, host
    return TouchPointType.REFERRAL, host or "referral"


def parse_user_agent(user_agent: Optional[str]) -> DeviceInfo:
    """Best-effort device detection from a user agent string."""
    device = DeviceInfo()
    if not user_agent:
        return device

    ua = user_agent
    if "iPad" in ua or "Tablet" in ua:
        device.type = "tablet"
        device.screen_size = "1024x768"
    elif "Mobile" in ua or "Android" in ua or "iPhone" in ua:
        device.type = "mobile"
        device.screen_size = "390x844"

    if "Edg/" in ua:
        device.browser = "edge"
    elif "Firefox/" in ua:
        device.browser = "firefox"
    elif "Chrome/" in ua:
        device.browser = "chrome"
    elif "Safari/" in ua:
        device.browser = "safari"

    if "Windows" in ua:
        device.os = "windows"
    elif "iPhone" in ua or "iPad" in ua:
        device.os = "ios"
    elif "Android" in ua:
        device.os = "android"
    elif "Mac OS X" in ua:
        device.os = "macos"
    elif "Linux" in ua:
        device.os = "linux"

    return device


def _stage_max(a: JourneyStage, b: JourneyStage) -> JourneyStage:
    return a if STAGE_ORDER.index(a) >= STAGE_ORDER.index(b) else b


# =============================================================================
# Aggregator
# =============================================================================


class BehaviorAggregator:
    """
    Maintains the behavioral part of every VisitorEngagement.

    Every mutation happens under the visitor's store lock. The lock is
    re-entrant, so callers that already hold it (the engagement service
    rescoring after an event) can call straight in.
    """

    def __init__(self, store: InMemoryStore[VisitorEngagement]):
        self._store = store

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    def get_or_create(
        self,
        visitor_id: str,
        session_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> VisitorEngagement:
        ts = ensure_utc(timestamp)
        return self._store.get_or_create(
            visitor_id,
            lambda: VisitorEngagement(
                user_id=visitor_id,
                session_id=session_id or visitor_id,
                first_seen=ts,
                last_activity=ts,
            ),
        )

    def start_session(
        self,
        visitor_id: str,
        session_id: str,
        timestamp: Optional[datetime] = None,
    ) -> VisitorEngagement:
        """
        Make ``session_id`` the visitor's current session.

        Switching away from a session that ended without a conversion
        records a drop-off point for it.
        """
        ts = ensure_utc(timestamp)
        with self._store.lock(visitor_id):
            engagement = self.get_or_create(visitor_id, session_id, ts)
            self._ensure_session(engagement, session_id, ts)
            self._refresh_derived(engagement)
            return engagement

    def record_interaction(
        self,
        visitor_id: str,
        event: InteractionEvent,
        session_id: Optional[str] = None,
    ) -> VisitorEngagement:
        """
        Fold one interaction into the visitor's behavior and journey.

        Everything derived from the event alone is worked out before the
        aggregate is touched, so a failure leaves the visitor unchanged.
        """
        end = event.timestamp
        if event.duration:
            end = event.timestamp + timedelta(seconds=event.duration)
        content_type = INTERACTION_CONTENT_TYPES.get(event.type)
        if content_type is None and event.type == InteractionType.PAGE_VIEW:
            content_type = infer_content_type(event.page)
        topics = infer_topics(event.page)

        with self._store.lock(visitor_id):
            engagement = self.get_or_create(visitor_id, session_id, event.timestamp)
            session = self._ensure_session(
                engagement, session_id or engagement.session_id, event.timestamp
            )
            before = session_tally(session)

            engagement.add_interaction(event)
            behavior = engagement.behavior
            nav = behavior.navigation
            counts = behavior.interaction_counts
            counts[event.type.value] = counts.get(event.type.value, 0) + 1

            if event.duration:
                nav.time_per_page[event.page] = nav.time_per_page.get(event.page, 0.0) + event.duration
                engagement.tally.time_on_pages += event.duration
            session.started_at = min(session.started_at, event.timestamp)
            session.ended_at = max(session.ended_at, end)

            if event.type == InteractionType.PAGE_VIEW:
                self._apply_page_view(engagement, session, event)
            elif event.type == InteractionType.SCROLL and isinstance(event.payload, ScrollPayload):
                depth = event.payload.depth
                nav.scroll_depth[event.page] = max(nav.scroll_depth.get(event.page, 0.0), depth)
                completion = behavior.content.content_completion
                completion[event.page] = max(completion.get(event.page, 0.0), depth)
            elif event.type == InteractionType.CLICK and isinstance(event.payload, ClickPayload):
                nav.click_heatmap.append(
                    ClickPoint(
                        x=event.payload.x or 0,
                        y=event.payload.y or 0,
                        element=event.element,
                        timestamp=event.timestamp,
                        page=event.page,
                    )
                )

            tally = engagement.tally
            if content_type is not None:
                tally.content_types[content_type] = tally.content_types.get(content_type, 0) + 1
            for domain in topics:
                tally.topic_interactions[domain] = tally.topic_interactions.get(domain, 0) + 1
                tally.topic_seconds[domain] = tally.topic_seconds.get(domain, 0.0) + (event.duration or 0.0)
            retally_session(engagement, session, before)

            self._advance_stage(engagement, INTERACTION_STAGES[event.type])
            engagement.last_activity = max(engagement.last_activity, event.timestamp)
            self._refresh_derived(engagement)
            return engagement

    def record_conversion(self, visitor_id: str, conversion: ConversionEvent) -> VisitorEngagement:
        """Attach a conversion to the visitor's journey."""
        with self._store.lock(visitor_id):
            engagement = self.get_or_create(visitor_id, conversion.session_id, conversion.timestamp)
            session = self._ensure_session(
                engagement, conversion.session_id or engagement.session_id, conversion.timestamp
            )
            before = session_tally(session)
            session.converted = True
            session.ended_at = max(session.ended_at, conversion.timestamp)
            retally_session(engagement, session, before)

            engagement.conversions.append(conversion)
            journey = engagement.journey
            journey.conversion_events.append(conversion)
            journey.estimated_value = round(journey.estimated_value + conversion.value, 2)

            if conversion.kind == ConversionKind.MACRO:
                converted_sessions = {
                    c.session_id for c in engagement.conversions if c.kind == ConversionKind.MACRO
                }
                stage = JourneyStage.RETENTION if len(converted_sessions) > 1 else JourneyStage.PURCHASE
            else:
                stage = JourneyStage.INTENT
            self._advance_stage(engagement, stage)

            engagement.last_activity = max(engagement.last_activity, conversion.timestamp)
            self._refresh_derived(engagement)
            return engagement

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def current_behavior(self, visitor_id: str) -> UserBehavior:
        """Snapshot of the visitor's behavior; the default for unknown visitors."""
        try:
            with self._store.lock(visitor_id):
                return copy.deepcopy(self._store.get(visitor_id).behavior)
        except UnknownAggregateError:
            return UserBehavior()

    def journey(self, visitor_id: str) -> UserJourney:
        try:
            with self._store.lock(visitor_id):
                return copy.deepcopy(self._store.get(visitor_id).journey)
        except UnknownAggregateError:
            return UserJourney()

    def interaction_counts(self, visitor_id: str) -> Dict[str, int]:
        try:
            with self._store.lock(visitor_id):
                return dict(self._store.get(visitor_id).behavior.interaction_counts)
        except UnknownAggregateError:
            return {}

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _ensure_session(
        self,
        engagement: VisitorEngagement,
        session_id: str,
        timestamp: datetime,
    ) -> SessionState:
        session = engagement.sessions.get(session_id)
        if session is not None:
            return session

        previous = engagement.sessions.get(engagement.session_id)
        if previous is not None and not previous.converted:
            bounced = previous.page_views <= 1
            engagement.journey.drop_off_points.append(
                DropOffPoint(
                    page=previous.exit_page or previous.entry_page,
                    timestamp=previous.ended_at,
                    reason=DropOffReason.DISTRACTION if bounced else DropOffReason.TIMEOUT,
                    recoverable=not bounced,
                )
            )

        session = SessionState(id=session_id, started_at=timestamp, ended_at=timestamp)
        engagement.sessions[session_id] = session
        engagement.session_id = session_id
        retally_session(engagement, session, (0.0, 0))
        logger.debug(
            f"Visitor {engagement.user_id} started session {session_id}",
            extra={"session_count": len(engagement.sessions)},
        )
        return session

    def _apply_page_view(
        self,
        engagement: VisitorEngagement,
        session: SessionState,
        event: InteractionEvent,
    ) -> None:
        payload = event.payload if isinstance(event.payload, PageViewPayload) else PageViewPayload()
        behavior = engagement.behavior
        behavior.session.page_views += 1
        session.page_views += 1

        # Keep the path in timestamp order; equal timestamps keep arrival order.
        position = bisect.bisect_right(engagement.path_timestamps, event.timestamp)
        engagement.path_timestamps.insert(position, event.timestamp)
        behavior.navigation.navigation_path.insert(position, event.page)

        if not session.entry_page or event.timestamp <= session.started_at:
            session.entry_page = event.page
        if event.timestamp >= session.ended_at or not session.exit_page:
            session.exit_page = event.page

        if payload.user_agent:
            engagement.user_agent = payload.user_agent
            behavior.device = parse_user_agent(payload.user_agent)

        if session.page_views == 1:
            session.referrer = payload.referrer
        touch_type, source = classify_referrer(payload.referrer)
        engagement.journey.touchpoints.append(
            TouchPoint(
                id=new_id("tp"),
                type=touch_type,
                source=source,
                timestamp=event.timestamp,
                page=event.page,
                value=event.engagement_weight,
            )
        )

    def _advance_stage(self, engagement: VisitorEngagement, stage: JourneyStage) -> None:
        journey = engagement.journey
        if stage == JourneyStage.AWARENESS and engagement.behavior.session.page_views >= INTEREST_PAGE_VIEWS:
            stage = JourneyStage.INTEREST
        journey.stage = _stage_max(journey.stage, stage)
        journey.journey_score = JOURNEY_STAGE_SCORES[journey.stage]

    def _refresh_derived(self, engagement: VisitorEngagement) -> None:
        behavior = engagement.behavior
        tally = engagement.tally
        summary = behavior.session

        session_count = len(engagement.sessions)
        summary.session_count = session_count
        summary.duration = round(tally.session_seconds, 2)
        if session_count:
            summary.bounce_rate = round(tally.bounced_sessions / session_count * 100, 2)
        else:
            summary.bounce_rate = 100.0
        current = engagement.sessions.get(engagement.session_id)
        if current is not None:
            summary.entry_page = current.entry_page
            summary.exit_page = current.exit_page

        if engagement.journey.touchpoints:
            summary.referral_source = engagement.journey.touchpoints[0].source

        pages = len(behavior.navigation.time_per_page)
        behavior.time_on_page_average = round(tally.time_on_pages / pages, 2) if pages else 0.0

        behavior.content.preferred_content_types = content_preferences(tally)
        behavior.content.topic_interests = topic_interests(tally)


# =============================================================================
# Running totals
# =============================================================================


def session_tally(session: SessionState) -> Tuple[float, int]:
    """A session's contribution to the visitor totals: (seconds, bounced)."""
    span = (session.ended_at - session.started_at).total_seconds()
    return span, int(session.page_views <= 1)


def retally_session(
    engagement: VisitorEngagement,
    session: SessionState,
    before: Tuple[float, int],
) -> None:
    """Swap a session's old contribution to the totals for its current one."""
    span, bounced = session_tally(session)
    engagement.tally.session_seconds += span - before[0]
    engagement.tally.bounced_sessions += bounced - before[1]


def content_preferences(tally: BehaviorTally) -> List[ContentPreference]:
    total = sum(tally.content_types.values())
    if not total:
        return []
    preferences = [
        ContentPreference(type=t, score=round(n / total * 100, 2), frequency=n)
        for t, n in tally.content_types.items()
    ]
    preferences.sort(key=lambda p: (-p.frequency, p.type.value))
    return preferences


def topic_interests(tally: BehaviorTally) -> List[TopicInterest]:
    interests = []
    for domain, interactions in tally.topic_interactions.items():
        seconds = tally.topic_seconds.get(domain, 0.0)
        interests.append(
            TopicInterest(
                topic=domain.value,
                score=round(min(100.0, interactions * 10 + seconds / 6), 2),
                time_spent=round(seconds, 2),
                interactions=interactions,
                domain=domain,
            )
        )
    interests.sort(key=lambda t: (-t.score, t.topic))
    return interests
