"""Visitor behavior tracking."""

from .behavior_aggregator import (
    BehaviorAggregator,
    classify_referrer,
    infer_content_type,
    infer_topics,
    parse_user_agent,
)

__all__ = [
    "BehaviorAggregator",
    "classify_referrer",
    "infer_content_type",
    "infer_topics",
    "parse_user_agent",
]
