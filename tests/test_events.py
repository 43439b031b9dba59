"""
Tests for the event model.

Tests interaction creation, payload validation, conversion classification
and the content ingestion payloads.
"""

import os
import sys
import unittest
from datetime import datetime, timezone

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from engagement_engine.exceptions import ErrorCode, InvalidEventTypeError, ValidationError
from engagement_engine.types.events import (
    ENGAGEMENT_WEIGHTS,
    Attribution,
    ClickPayload,
    ContentEngagementEvent,
    ContentEngagementType,
    ConversionGoal,
    ConversionKind,
    InteractionType,
    PageViewData,
    ScrollPayload,
    WidgetPayload,
    create_conversion,
    create_interaction,
)

TS = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class TestCreateInteraction(unittest.TestCase):
    """Tests for create_interaction."""

    def test_weight_comes_from_type(self):
        event = create_interaction("download", page="/docs/guide", timestamp=TS, value=999)
        self.assertEqual(event.type, InteractionType.DOWNLOAD)
        self.assertEqual(event.engagement_weight, 0.9)
        self.assertTrue(event.is_high_value)

    def test_every_type_has_a_weight(self):
        for interaction_type in InteractionType:
            self.assertIn(interaction_type, ENGAGEMENT_WEIGHTS)

    def test_share_is_not_high_value(self):
        """0.6 sits on the threshold and does not count."""
        event = create_interaction(InteractionType.SHARE, page="/blog/post", timestamp=TS)
        self.assertFalse(event.is_high_value)

    def test_unknown_type_rejected(self):
        with self.assertRaises(InvalidEventTypeError) as ctx:
            create_interaction("teleport", page="/")
        self.assertEqual(ctx.exception.error_code, ErrorCode.INVALID_EVENT_TYPE)
        self.assertEqual(ctx.exception.status_code, 400)

    def test_payload_built_from_mapping(self):
        event = create_interaction("scroll", page="/blog/a", payload={"depth": 80}, timestamp=TS)
        self.assertIsInstance(event.payload, ScrollPayload)
        self.assertEqual(event.payload.depth, 80)

    def test_unknown_payload_field_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            create_interaction("scroll", page="/", payload={"depht": 80})
        self.assertEqual(ctx.exception.error_code, ErrorCode.INVALID_PAYLOAD)

    def test_mismatched_payload_type_rejected(self):
        with self.assertRaises(ValidationError):
            create_interaction("scroll", page="/", payload=ClickPayload(x=1, y=2))

    def test_scroll_depth_out_of_range(self):
        with self.assertRaises(ValidationError):
            create_interaction("scroll", page="/", payload={"depth": 120})

    def test_negative_duration_rejected(self):
        with self.assertRaises(ValidationError):
            create_interaction("hover", page="/", duration=-1)

    def test_non_finite_numbers_rejected(self):
        for bad in (float("nan"), float("inf"), 1e20):
            with self.assertRaises(ValidationError) as ctx:
                create_interaction("hover", page="/", duration=bad)
            self.assertEqual(ctx.exception.details["field"], "duration")
        with self.assertRaises(ValidationError):
            create_interaction("hover", page="/", value=float("nan"))
        with self.assertRaises(ValidationError):
            create_interaction("scroll", page="/", payload={"depth": float("inf")})

    def test_payload_value_types_checked(self):
        for payload in ({"depth": "deep"}, {"depth": None}, {"depth": False}):
            with self.assertRaises(ValidationError) as ctx:
                create_interaction("scroll", page="/", payload=payload)
            self.assertEqual(ctx.exception.error_code, ErrorCode.INVALID_PAYLOAD)
            self.assertEqual(ctx.exception.details["field"], "payload.depth")

        event = create_interaction("search", page="/search", payload={"query": "react", "results": None})
        self.assertIsNone(event.payload.results)

    def test_default_payload_and_id(self):
        event = create_interaction("calculator_use", page="/tools/calculator")
        self.assertIsInstance(event.payload, WidgetPayload)
        self.assertTrue(event.id.startswith("eng_"))
        self.assertIsNotNone(event.timestamp.tzinfo)

    def test_naive_timestamp_becomes_utc(self):
        event = create_interaction("click", page="/", timestamp=datetime(2026, 1, 1, 9, 0))
        self.assertEqual(event.timestamp.tzinfo, timezone.utc)

    def test_to_dict(self):
        event = create_interaction("3d_interaction", page="/projects/x", timestamp=TS, event_id="e1")
        data = event.to_dict()
        self.assertEqual(data["id"], "e1")
        self.assertEqual(data["type"], "3d_interaction")
        self.assertEqual(data["timestamp"], TS.isoformat())


class TestCreateConversion(unittest.TestCase):
    """Tests for create_conversion."""

    def test_macro_goals(self):
        for goal in ("contact_form", "demo", "consultation"):
            self.assertEqual(create_conversion(goal).kind, ConversionKind.MACRO)

    def test_micro_goals(self):
        for goal in ("newsletter", "download"):
            self.assertEqual(create_conversion(goal).kind, ConversionKind.MICRO)

    def test_defaults(self):
        conversion = create_conversion(ConversionGoal.NEWSLETTER)
        self.assertEqual(conversion.value, 0.0)
        self.assertEqual(conversion.attribution, Attribution.LAST_TOUCH)
        self.assertEqual(conversion.action, "newsletter")

    def test_invalid_goal(self):
        with self.assertRaises(ValidationError) as ctx:
            create_conversion("purchase")
        self.assertEqual(ctx.exception.details["allowed"][0], "contact_form")

    def test_negative_value(self):
        with self.assertRaises(ValidationError):
            create_conversion("demo", value=-10)
        with self.assertRaises(ValidationError):
            create_conversion("demo", value=float("inf"))


class TestContentPayloads(unittest.TestCase):
    """Tests for page view and content engagement payloads."""

    def test_page_view_requires_session(self):
        with self.assertRaises(ValidationError):
            PageViewData(url="/blog/a", session_id="", timestamp=TS)

    def test_engagement_type_parsed(self):
        event = ContentEngagementEvent(type="share", session_id="s1", timestamp=TS, platform="x")
        self.assertEqual(event.type, ContentEngagementType.SHARE)

    def test_scroll_needs_depth(self):
        with self.assertRaises(ValidationError):
            ContentEngagementEvent(type="scroll", session_id="s1", timestamp=TS)

    def test_dwell_needs_seconds(self):
        with self.assertRaises(ValidationError):
            ContentEngagementEvent(type="dwell", session_id="s1", timestamp=TS, seconds=-5)
        with self.assertRaises(ValidationError):
            ContentEngagementEvent(type="dwell", session_id="s1", timestamp=TS, seconds=float("nan"))

    def test_unknown_engagement_type(self):
        with self.assertRaises(ValidationError):
            ContentEngagementEvent(type="applause", session_id="s1", timestamp=TS)


if __name__ == "__main__":
    unittest.main()
