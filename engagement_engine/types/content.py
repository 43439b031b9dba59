"""
Type definitions for content performance metrics.

ContentMetrics is the aggregate root per content id. Its nested blocks hold
raw counters and the lazily derived rates the content service fills in on
read. Recommendations and analytics results are plain value objects that
are regenerated, never mutated in place.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ..exceptions import InvalidTimeframeError
from ..utils.dates import isoformat
from ..utils.serialization import to_plain


# =============================================================================
# Enums
# =============================================================================


class ContentType(str, Enum):
    BLOG_POST = "blog_post"
    CASE_STUDY = "case_study"
    PORTFOLIO_ITEM = "portfolio_item"
    LANDING_PAGE = "landing_page"
    SERVICE_PAGE = "service_page"
    ABOUT_PAGE = "about_page"
    CONTACT_PAGE = "contact_page"
    TOOL_PAGE = "tool_page"
    DOCUMENTATION = "documentation"


class TrendDirection(str, Enum):
    """Direction of a metric over time."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class RankingTrend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class RecommendationType(str, Enum):
    """Closed recommendation taxonomy."""

    IMPROVE_HEADLINE = "improve_headline"
    ADD_CTA = "add_cta"
    OPTIMIZE_IMAGES = "optimize_images"
    IMPROVE_READABILITY = "improve_readability"
    ADD_INTERNAL_LINKS = "add_internal_links"
    UPDATE_META_DESCRIPTION = "update_meta_description"
    IMPROVE_LOADING_SPEED = "improve_loading_speed"
    ADD_SCHEMA_MARKUP = "add_schema_markup"
    ENHANCE_MOBILE_EXPERIENCE = "enhance_mobile_experience"
    IMPROVE_CONTENT_STRUCTURE = "improve_content_structure"
    ADD_SOCIAL_PROOF = "add_social_proof"
    OPTIMIZE_FOR_KEYWORDS = "optimize_for_keywords"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


PRIORITY_ORDER: Dict[Priority, int] = {
    Priority.HIGH: 3,
    Priority.MEDIUM: 2,
    Priority.LOW: 1,
}


class Effort(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecommendationCategory(str, Enum):
    SEO = "seo"
    ENGAGEMENT = "engagement"
    CONVERSION = "conversion"
    TECHNICAL = "technical"


class Timeframe(str, Enum):
    """Rollup windows accepted by the analytics facade."""

    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"

    @property
    def days(self) -> int:
        return {"week": 7, "month": 30, "quarter": 90}[self.value]


def parse_timeframe(value: Union[str, Timeframe]) -> Timeframe:
    """Resolve a timeframe name; anything outside the enum is rejected."""
    if isinstance(value, Timeframe):
        return value
    try:
        return Timeframe(str(value).strip().lower())
    except ValueError:
        raise InvalidTimeframeError(value, allowed=[t.value for t in Timeframe]) from None


# =============================================================================
# Performance block
# =============================================================================


@dataclass
class ViewCounts:
    total: int = 0
    unique: int = 0
    returning: int = 0
    trend: TrendDirection = TrendDirection.STABLE


@dataclass
class TimeOnPage:
    average: float = 0.0  # seconds
    median: float = 0.0
    bounce_rate: float = 0.0  # percent


@dataclass
class ReadingProgress:
    average_completion: float = 0.0  # percent
    drop_off_points: List[float] = field(default_factory=list)


@dataclass
class Shareability:
    total_shares: int = 0
    shares_by_platform: Dict[str, int] = field(default_factory=dict)
    viral_coefficient: float = 0.0


@dataclass
class ContentPerformance:
    views: ViewCounts = field(default_factory=ViewCounts)
    time_on_page: TimeOnPage = field(default_factory=TimeOnPage)
    reading_progress: ReadingProgress = field(default_factory=ReadingProgress)
    shareability: Shareability = field(default_factory=Shareability)


# =============================================================================
# Engagement block
# =============================================================================


@dataclass
class InteractionCounts:
    likes: int = 0
    comments: int = 0
    shares: int = 0
    downloads: int = 0
    bookmarks: int = 0

    @property
    def total(self) -> int:
        return self.likes + self.comments + self.shares + self.downloads + self.bookmarks


@dataclass
class UserActions:
    scroll_depth: float = 0.0  # max percent
    click_through_rate: float = 0.0  # percent of views with an internal click
    conversion_rate: float = 0.0  # percent of unique views
    return_visitor_rate: float = 0.0  # percent of sessions


@dataclass
class QualitySignals:
    dwell_time: float = 0.0  # seconds
    page_value: float = 0.0
    engagement_score: float = 0.0


@dataclass
class ContentEngagement:
    interactions: InteractionCounts = field(default_factory=InteractionCounts)
    user_actions: UserActions = field(default_factory=UserActions)
    quality_signals: QualitySignals = field(default_factory=QualitySignals)


# =============================================================================
# SEO block
# =============================================================================


@dataclass
class KeywordRanking:
    keyword: str
    position: int
    previous_position: int
    trend: RankingTrend = RankingTrend.STABLE


@dataclass
class OrganicMetrics:
    impressions: int = 0
    clicks: int = 0
    ctr: float = 0.0  # percent
    average_position: float = 0.0


@dataclass
class CoreWebVitals:
    lcp: float = 0.0  # seconds
    fid: float = 0.0  # milliseconds
    cls: float = 0.0


@dataclass
class TechnicalMetrics:
    load_time: float = 0.0  # seconds
    mobile_score: float = 0.0  # 0-100
    core_web_vitals: CoreWebVitals = field(default_factory=CoreWebVitals)


@dataclass
class SEOMetrics:
    rankings: List[KeywordRanking] = field(default_factory=list)
    organic: OrganicMetrics = field(default_factory=OrganicMetrics)
    technical: TechnicalMetrics = field(default_factory=TechnicalMetrics)


# =============================================================================
# Conversion block
# =============================================================================


@dataclass
class ConversionGoals:
    contact_form: int = 0
    newsletter: int = 0
    download: int = 0
    demo: int = 0
    consultation: int = 0

    @property
    def total(self) -> int:
        return self.contact_form + self.newsletter + self.download + self.demo + self.consultation


@dataclass
class ConversionFunnel:
    awareness: int = 0
    interest: int = 0
    consideration: int = 0
    conversion: int = 0


@dataclass
class ConversionAttribution:
    first_touch: int = 0
    last_touch: int = 0
    assisted: int = 0


@dataclass
class ConversionMetrics:
    goals: ConversionGoals = field(default_factory=ConversionGoals)
    funnel: ConversionFunnel = field(default_factory=ConversionFunnel)
    attribution: ConversionAttribution = field(default_factory=ConversionAttribution)
    total_value: float = 0.0


# =============================================================================
# Recommendations
# =============================================================================


@dataclass(frozen=True)
class ContentRecommendation:
    """A typed, prioritized suggestion for one content item."""

    type: RecommendationType
    priority: Priority
    description: str
    expected_impact: str
    effort: Effort
    category: RecommendationCategory

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "priority": self.priority.value,
            "description": self.description,
            "expected_impact": self.expected_impact,
            "effort": self.effort.value,
            "category": self.category.value,
        }


# =============================================================================
# Aggregate root
# =============================================================================


@dataclass
class ContentMetrics:
    """Performance record for one content item."""

    id: str
    url: str = ""
    title: str = ""
    type: ContentType = ContentType.BLOG_POST
    category: str = "general"
    publish_date: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    performance: ContentPerformance = field(default_factory=ContentPerformance)
    engagement: ContentEngagement = field(default_factory=ContentEngagement)
    seo: SEOMetrics = field(default_factory=SEOMetrics)
    conversion: ConversionMetrics = field(default_factory=ConversionMetrics)
    recommendations: List[ContentRecommendation] = field(default_factory=list)
    performance_score: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "type": self.type.value,
            "category": self.category,
            "publish_date": isoformat(self.publish_date),
            "last_updated": isoformat(self.last_updated),
            "performance": to_plain(asdict(self.performance)),
            "engagement": to_plain(asdict(self.engagement)),
            "seo": to_plain(asdict(self.seo)),
            "conversion": to_plain(asdict(self.conversion)),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "performance_score": self.performance_score,
        }


# =============================================================================
# Analytics results
# =============================================================================


@dataclass
class ContentOverview:
    total_content: int
    total_views: int
    average_engagement: float
    top_performers: List[ContentMetrics] = field(default_factory=list)
    under_performers: List[ContentMetrics] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_content": self.total_content,
            "total_views": self.total_views,
            "average_engagement": self.average_engagement,
            "top_performers": [c.to_dict() for c in self.top_performers],
            "under_performers": [c.to_dict() for c in self.under_performers],
        }


@dataclass
class TrendPoint:
    date: str
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date, "value": self.value}


@dataclass
class ContentTrends:
    views: List[TrendPoint] = field(default_factory=list)
    engagement: List[TrendPoint] = field(default_factory=list)
    conversions: List[TrendPoint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "views": [p.to_dict() for p in self.views],
            "engagement": [p.to_dict() for p in self.engagement],
            "conversions": [p.to_dict() for p in self.conversions],
        }


@dataclass
class ContentInsights:
    best_performing_types: List[Dict[str, Any]] = field(default_factory=list)
    top_keywords: List[Dict[str, Any]] = field(default_factory=list)
    content_gaps: List[str] = field(default_factory=list)
    optimization_opportunities: List[ContentRecommendation] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "best_performing_types": self.best_performing_types,
            "top_keywords": self.top_keywords,
            "content_gaps": self.content_gaps,
            "optimization_opportunities": [r.to_dict() for r in self.optimization_opportunities],
        }


@dataclass
class ContentAnalytics:
    timeframe: Timeframe
    overview: ContentOverview
    trends: ContentTrends
    insights: ContentInsights

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeframe": self.timeframe.value,
            "overview": self.overview.to_dict(),
            "trends": self.trends.to_dict(),
            "insights": self.insights.to_dict(),
        }
