"""
Event model for the engagement engine.

Immutable value types describing what the ingestion layer hands to the
engine: visitor interactions (with a typed payload per interaction kind),
conversions, content page views and engagement events, and content-quality
readings. No behavior beyond construction-time validation.
"""

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    Optional,
    Tuple,
    Type,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from ..exceptions import ErrorCode, InvalidEventTypeError, ValidationError
from ..utils.dates import ensure_utc, isoformat


# =============================================================================
# Enums
# =============================================================================


class InteractionType(str, Enum):
    """Closed set of visitor interaction kinds."""

    PAGE_VIEW = "page_view"
    SCROLL = "scroll"
    CLICK = "click"
    HOVER = "hover"
    FORM_INTERACTION = "form_interaction"
    RICH_INTERACTION = "3d_interaction"
    CALCULATOR_USE = "calculator_use"
    DEMO_VIEW = "demo_view"
    DOWNLOAD = "download"
    SHARE = "share"
    BOOKMARK = "bookmark"
    SEARCH = "search"
    FILTER = "filter"
    SORT = "sort"


class ConversionGoal(str, Enum):
    """Conversion goals tracked per content item."""

    CONTACT_FORM = "contact_form"
    NEWSLETTER = "newsletter"
    DOWNLOAD = "download"
    DEMO = "demo"
    CONSULTATION = "consultation"


class ConversionKind(str, Enum):
    MICRO = "micro"
    MACRO = "macro"


class Attribution(str, Enum):
    FIRST_TOUCH = "first_touch"
    LAST_TOUCH = "last_touch"
    ASSISTED = "assisted"


class ContentEngagementType(str, Enum):
    """Engagement events accepted by the content tracking API."""

    SCROLL = "scroll"
    CLICK = "click"
    SHARE = "share"
    COMMENT = "comment"
    LIKE = "like"
    DOWNLOAD = "download"
    BOOKMARK = "bookmark"
    DWELL = "dwell"


# Fixed per-type weights; assigned once when an event is created.
ENGAGEMENT_WEIGHTS: Dict[InteractionType, float] = {
    InteractionType.PAGE_VIEW: 0.1,
    InteractionType.SCROLL: 0.2,
    InteractionType.CLICK: 0.3,
    InteractionType.HOVER: 0.1,
    InteractionType.FORM_INTERACTION: 0.8,
    InteractionType.RICH_INTERACTION: 0.9,
    InteractionType.CALCULATOR_USE: 0.7,
    InteractionType.DEMO_VIEW: 0.8,
    InteractionType.DOWNLOAD: 0.9,
    InteractionType.SHARE: 0.6,
    InteractionType.BOOKMARK: 0.7,
    InteractionType.SEARCH: 0.4,
    InteractionType.FILTER: 0.3,
    InteractionType.SORT: 0.2,
}

HIGH_VALUE_WEIGHT = 0.6

# Longest single interaction accepted, in seconds
MAX_INTERACTION_SECONDS = 24 * 60 * 60

MACRO_GOALS = frozenset({
    ConversionGoal.CONTACT_FORM,
    ConversionGoal.DEMO,
    ConversionGoal.CONSULTATION,
})


def parse_interaction_type(value: Union[str, InteractionType]) -> InteractionType:
    """
    Resolve an interaction type, rejecting anything outside the enumeration.

    Raises:
        InvalidEventTypeError: If the value is not a known interaction type.
    """
    if isinstance(value, InteractionType):
        return value
    try:
        return InteractionType(value)
    except ValueError:
        raise InvalidEventTypeError(value, allowed=[t.value for t in InteractionType]) from None


def parse_enum(enum_cls: Type[Enum], value: Any, field_name: str) -> Any:
    """Resolve ``value`` into ``enum_cls`` or raise a ValidationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            message=f"Invalid {field_name}: {value!r}",
            field=field_name,
            value=value,
            details={"allowed": [m.value for m in enum_cls]},
        ) from None


def is_finite_number(value: Any) -> bool:
    """True for ints and finite floats; booleans do not count."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def check_number(
    value: Any,
    field_name: str,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
    message: Optional[str] = None,
    error_code: Optional[ErrorCode] = None,
) -> float:
    """
    Validate that ``value`` is a finite number inside the given bounds.

    Raises:
        ValidationError: For a non-number, NaN or infinity, or an
            out-of-range value.
    """
    in_range = (
        is_finite_number(value)
        and (minimum is None or value >= minimum)
        and (maximum is None or value <= maximum)
    )
    if not in_range:
        if message is None:
            message = f"{field_name} must be a finite number"
            if minimum is not None and maximum is not None:
                message += f" between {minimum:g} and {maximum:g}"
            elif minimum is not None:
                message += f" of at least {minimum:g}"
            elif maximum is not None:
                message += f" of at most {maximum:g}"
        raise ValidationError(message=message, field=field_name, value=value, error_code=error_code)
    return value


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


# =============================================================================
# Interaction payloads
# =============================================================================


@dataclass(frozen=True)
class PageViewPayload:
    url: str = ""
    referrer: Optional[str] = None
    user_agent: Optional[str] = None
    title: Optional[str] = None


@dataclass(frozen=True)
class ScrollPayload:
    depth: float = 0.0  # percent of page, 0-100

    def __post_init__(self):
        check_number(
            self.depth,
            "payload.depth",
            minimum=0,
            maximum=100,
            message="Scroll depth must be a number between 0 and 100",
            error_code=ErrorCode.INVALID_PAYLOAD,
        )


@dataclass(frozen=True)
class ClickPayload:
    x: Optional[int] = None
    y: Optional[int] = None
    is_internal_link: bool = False
    target: Optional[str] = None


@dataclass(frozen=True)
class FormPayload:
    form_id: Optional[str] = None
    field: Optional[str] = None
    submitted: bool = False


@dataclass(frozen=True)
class SharePayload:
    platform: Optional[str] = None


@dataclass(frozen=True)
class SearchPayload:
    query: str = ""
    results: Optional[int] = None


@dataclass(frozen=True)
class ResourcePayload:
    resource: Optional[str] = None
    resource_type: Optional[str] = None


@dataclass(frozen=True)
class WidgetPayload:
    widget: Optional[str] = None
    action: Optional[str] = None
    setting: Optional[str] = None


InteractionPayload = Union[
    PageViewPayload,
    ScrollPayload,
    ClickPayload,
    FormPayload,
    SharePayload,
    SearchPayload,
    ResourcePayload,
    WidgetPayload,
]

PAYLOAD_TYPES: Dict[InteractionType, type] = {
    InteractionType.PAGE_VIEW: PageViewPayload,
    InteractionType.SCROLL: ScrollPayload,
    InteractionType.CLICK: ClickPayload,
    InteractionType.HOVER: WidgetPayload,
    InteractionType.FORM_INTERACTION: FormPayload,
    InteractionType.RICH_INTERACTION: WidgetPayload,
    InteractionType.CALCULATOR_USE: WidgetPayload,
    InteractionType.DEMO_VIEW: WidgetPayload,
    InteractionType.DOWNLOAD: ResourcePayload,
    InteractionType.SHARE: SharePayload,
    InteractionType.BOOKMARK: ResourcePayload,
    InteractionType.SEARCH: SearchPayload,
    InteractionType.FILTER: WidgetPayload,
    InteractionType.SORT: WidgetPayload,
}


PAYLOAD_VALUE_CHECKS: Dict[type, Tuple[str, Callable[[Any], bool]]] = {
    str: ("a string", lambda v: isinstance(v, str)),
    int: ("an integer", lambda v: isinstance(v, int) and not isinstance(v, bool)),
    float: ("a finite number", is_finite_number),
    bool: ("true or false", lambda v: isinstance(v, bool)),
}


def _unwrap_optional(hint: Any) -> Tuple[type, bool]:
    if get_origin(hint) is Union:
        args = [a for a in get_args(hint) if a is not type(None)]
        return args[0], len(args) < len(get_args(hint))
    return hint, False


def check_payload_values(payload_cls: type, data: Dict[str, Any]) -> None:
    """
    Check every value in ``data`` against the annotation of its payload field.

    Raises:
        ValidationError: INVALID_PAYLOAD naming the first offending field.
    """
    hints = get_type_hints(payload_cls)
    for name, value in data.items():
        expected, optional = _unwrap_optional(hints[name])
        if value is None and optional:
            continue
        description, accepts = PAYLOAD_VALUE_CHECKS[expected]
        if not accepts(value):
            raise ValidationError(
                message=f"payload.{name} must be {description}",
                field=f"payload.{name}",
                value=value,
                error_code=ErrorCode.INVALID_PAYLOAD,
            )


def build_payload(
    interaction_type: InteractionType,
    data: Optional[Dict[str, Any]] = None,
) -> InteractionPayload:
    """
    Build the typed payload for ``interaction_type`` from a plain mapping.

    Unknown keys and values of the wrong type are rejected so that a
    malformed payload surfaces at the ingestion boundary instead of deep
    inside aggregation.
    """
    payload_cls = PAYLOAD_TYPES[interaction_type]
    data = data or {}
    allowed = set(payload_cls.__dataclass_fields__)
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValidationError(
            message=f"Unexpected payload fields for {interaction_type.value}: {', '.join(unknown)}",
            field="payload",
            error_code=ErrorCode.INVALID_PAYLOAD,
            details={"allowed": sorted(allowed)},
        )
    check_payload_values(payload_cls, data)
    return payload_cls(**data)


# =============================================================================
# Interaction events
# =============================================================================


@dataclass(frozen=True)
class InteractionEvent:
    """A single visitor interaction with its fixed engagement weight."""

    id: str
    type: InteractionType
    element: str
    page: str
    timestamp: datetime
    payload: InteractionPayload
    engagement_weight: float
    duration: Optional[float] = None  # seconds
    value: Optional[float] = None

    @property
    def is_high_value(self) -> bool:
        return self.engagement_weight > HIGH_VALUE_WEIGHT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "element": self.element,
            "page": self.page,
            "timestamp": isoformat(self.timestamp),
            "duration": self.duration,
            "value": self.value,
            "payload": dict(self.payload.__dict__),
            "engagement_weight": self.engagement_weight,
        }


def create_interaction(
    interaction_type: Union[str, InteractionType],
    page: str,
    element: str = "",
    timestamp: Optional[datetime] = None,
    duration: Optional[float] = None,
    value: Optional[float] = None,
    payload: Optional[Union[InteractionPayload, Dict[str, Any]]] = None,
    event_id: Optional[str] = None,
) -> InteractionEvent:
    """
    Create a validated interaction event.

    The engagement weight comes from ENGAGEMENT_WEIGHTS and is never derived
    from ``value`` or the payload.

    Raises:
        InvalidEventTypeError: For an unknown interaction type.
        ValidationError: For a payload that does not match the type, a
            duration outside [0, MAX_INTERACTION_SECONDS], or a non-finite
            value.
    """
    itype = parse_interaction_type(interaction_type)
    if duration is not None:
        check_number(duration, "duration", minimum=0, maximum=MAX_INTERACTION_SECONDS)
    if value is not None:
        check_number(value, "value")

    if payload is None or isinstance(payload, dict):
        typed_payload = build_payload(itype, payload)
    elif isinstance(payload, PAYLOAD_TYPES[itype]):
        typed_payload = payload
    else:
        raise ValidationError(
            message=(
                f"{type(payload).__name__} is not a valid payload for "
                f"{itype.value}; expected {PAYLOAD_TYPES[itype].__name__}"
            ),
            field="payload",
            error_code=ErrorCode.INVALID_PAYLOAD,
        )

    return InteractionEvent(
        id=event_id or new_id("eng"),
        type=itype,
        element=element,
        page=page,
        timestamp=ensure_utc(timestamp),
        payload=typed_payload,
        engagement_weight=ENGAGEMENT_WEIGHTS[itype],
        duration=duration,
        value=value,
    )


# =============================================================================
# Conversions
# =============================================================================


@dataclass(frozen=True)
class ConversionEvent:
    """A goal completion attributed to a visitor."""

    id: str
    goal: ConversionGoal
    kind: ConversionKind
    action: str
    value: float
    timestamp: datetime
    attribution: Attribution
    session_id: Optional[str] = None
    content_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "goal": self.goal.value,
            "type": self.kind.value,
            "action": self.action,
            "value": self.value,
            "timestamp": isoformat(self.timestamp),
            "attribution": self.attribution.value,
            "session_id": self.session_id,
            "content_id": self.content_id,
        }


def create_conversion(
    goal: Union[str, ConversionGoal],
    value: Optional[float] = None,
    attribution: Union[str, Attribution] = Attribution.LAST_TOUCH,
    timestamp: Optional[datetime] = None,
    session_id: Optional[str] = None,
    content_id: Optional[str] = None,
    action: Optional[str] = None,
    event_id: Optional[str] = None,
) -> ConversionEvent:
    """Create a conversion; macro/micro is fixed by the goal."""
    goal = parse_enum(ConversionGoal, goal, "goal")
    attribution = parse_enum(Attribution, attribution, "attribution")
    if value is not None:
        check_number(value, "value", minimum=0, message="Conversion value must be a non-negative number")

    return ConversionEvent(
        id=event_id or new_id("conv"),
        goal=goal,
        kind=ConversionKind.MACRO if goal in MACRO_GOALS else ConversionKind.MICRO,
        action=action or goal.value,
        value=float(value or 0.0),
        timestamp=ensure_utc(timestamp),
        attribution=attribution,
        session_id=session_id,
        content_id=content_id,
    )


# =============================================================================
# Content ingestion payloads
# =============================================================================


@dataclass(frozen=True)
class PageViewData:
    """Page view reported by the browser collaborator for one content item."""

    url: str
    session_id: str
    timestamp: datetime
    user_agent: str = ""
    referrer: Optional[str] = None
    user_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        if not self.session_id:
            raise ValidationError(message="session_id is required", field="session_id")


@dataclass(frozen=True)
class ContentEngagementEvent:
    """
    Engagement event for one content item.

    Only the field matching ``type`` is read: ``depth`` for scroll,
    ``is_internal_link`` for click, ``platform`` for share, ``seconds`` for
    dwell.
    """

    type: ContentEngagementType
    session_id: str
    timestamp: datetime
    depth: Optional[float] = None
    is_internal_link: bool = False
    platform: Optional[str] = None
    seconds: Optional[float] = None
    element: str = ""

    def __post_init__(self):
        if not isinstance(self.type, ContentEngagementType):
            try:
                object.__setattr__(self, "type", ContentEngagementType(self.type))
            except ValueError:
                raise InvalidEventTypeError(
                    self.type, allowed=[t.value for t in ContentEngagementType]
                ) from None
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        if self.type == ContentEngagementType.SCROLL:
            check_number(
                self.depth,
                "depth",
                minimum=0,
                maximum=100,
                message="Scroll events need a depth between 0 and 100",
            )
        if self.type == ContentEngagementType.DWELL:
            check_number(
                self.seconds,
                "seconds",
                minimum=0,
                maximum=MAX_INTERACTION_SECONDS,
                message="Dwell events need a number of seconds between 0 and one day",
            )


@dataclass(frozen=True)
class ContentConversionEvent:
    """Conversion reported against a content item."""

    goal: ConversionGoal
    session_id: str
    timestamp: datetime
    attribution: Attribution = Attribution.LAST_TOUCH
    value: Optional[float] = None
    user_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "goal", parse_enum(ConversionGoal, self.goal, "goal"))
        object.__setattr__(
            self, "attribution", parse_enum(Attribution, self.attribution, "attribution")
        )
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))
        if self.value is not None:
            check_number(self.value, "value", minimum=0)


# =============================================================================
# Content quality readings
# =============================================================================


@dataclass(frozen=True)
class RankingReading:
    keyword: str
    position: int
    previous_position: int


@dataclass(frozen=True)
class OrganicReading:
    impressions: int = 0
    clicks: int = 0
    ctr: float = 0.0  # percent
    average_position: float = 0.0


@dataclass(frozen=True)
class TechnicalReading:
    load_time: float = 0.0  # seconds
    mobile_score: float = 0.0  # 0-100
    lcp: float = 0.0  # seconds
    fid: float = 0.0  # milliseconds
    cls: float = 0.0


@dataclass(frozen=True)
class ContentQualityReading:
    """SEO and Core Web Vitals reading; absent blocks leave metrics untouched."""

    rankings: Optional[Tuple[RankingReading, ...]] = None
    organic: Optional[OrganicReading] = None
    technical: Optional[TechnicalReading] = None
    timestamp: Optional[datetime] = field(default=None)
