"""Visitor segmentation and lifecycle classification."""

from .segment_engine import (
    DEFAULT_POLICY,
    SEGMENT_DEFINITIONS,
    InactivityPolicy,
    SegmentDefinition,
    SegmentEngine,
    advance_lifecycle,
    assign_test_group,
    candidate_stage,
    value_tier,
)

__all__ = [
    "DEFAULT_POLICY",
    "SEGMENT_DEFINITIONS",
    "InactivityPolicy",
    "SegmentDefinition",
    "SegmentEngine",
    "advance_lifecycle",
    "assign_test_group",
    "candidate_stage",
    "value_tier",
]
