"""
Engagement engine.

Scores visitor engagement, segments visitors into lifecycle stages, scores
content performance and turns both into recommendations and predictions.
"""

from .engine import AnalyticsEngine
from .exceptions import (
    EngagementEngineError,
    InvalidEventTypeError,
    InvalidTimeframeError,
    UnknownAggregateError,
    ValidationError,
)

__version__ = "0.1.0"

__all__ = [
    "AnalyticsEngine",
    "EngagementEngineError",
    "InvalidEventTypeError",
    "InvalidTimeframeError",
    "UnknownAggregateError",
    "ValidationError",
]
