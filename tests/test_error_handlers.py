"""
Tests for error handlers.

Tests exception handling, error sanitization, and response formatting.
"""

import os
import sys
import unittest
from unittest.mock import patch

os.environ["ENVIRONMENT"] = "development"
os.environ["SENTRY_DSN"] = ""

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from fastapi.testclient import TestClient

from app.error_handlers import (
    create_error_response,
    format_pydantic_errors,
    sanitize_details,
    sanitize_error_message,
)
from engagement_engine.engine import AnalyticsEngine
from engagement_engine.exceptions import (
    ErrorCode,
    InvalidTimeframeError,
    UnknownAggregateError,
    ValidationError,
)
from server import create_app


class TestErrorMessageSanitization(unittest.TestCase):
    """Tests for error message sanitization."""

    def test_normal_message_unchanged(self):
        message = "Scroll events need a depth between 0 and 100"
        self.assertEqual(sanitize_error_message(message), message)

    def test_secret_is_redacted(self):
        sanitized = sanitize_error_message("Invalid api_key: sk-abc123xyz")
        self.assertNotIn("sk-abc123xyz", sanitized)
        self.assertIn("Invalid", sanitized)

    def test_credential_words_alone_are_kept(self):
        message = "Event type 'token_refresh' is not tracked; see the secret santa page"
        self.assertEqual(sanitize_error_message(message), message)

    def test_tracked_url_credentials_are_redacted(self):
        sanitized = sanitize_error_message("Bad referrer https://x.test/?token=abc123&page=2")
        self.assertNotIn("abc123", sanitized)
        self.assertIn("page=2", sanitized)

    def test_file_path_is_redacted(self):
        sanitized = sanitize_error_message("Failed in /Users/john/engine/store.py")
        self.assertNotIn("/Users/john", sanitized)

    def test_ip_address_is_redacted(self):
        sanitized = sanitize_error_message("Connection failed to 192.168.1.100")
        self.assertNotIn("192.168.1.100", sanitized)
        self.assertIn("[ip]", sanitized)

    def test_long_message_is_truncated(self):
        sanitized = sanitize_error_message("x" * 800)
        self.assertEqual(len(sanitized), 503)
        self.assertTrue(sanitized.endswith("..."))

    def test_empty_message(self):
        self.assertEqual(sanitize_error_message(""), "")


class TestDetailSanitization(unittest.TestCase):
    """Tests for error detail sanitization."""

    def test_unsafe_keys_are_dropped(self):
        details = {"field": "type", "internal_state": {"lock": "held"}, "stack": "..."}
        self.assertEqual(sanitize_details(details), {"field": "type"})

    def test_lists_are_capped(self):
        details = {"allowed": [str(i) for i in range(50)]}
        self.assertEqual(len(sanitize_details(details)["allowed"]), 20)

    def test_aggregate_details_survive(self):
        exc = UnknownAggregateError("visitor", "v-123")
        self.assertEqual(
            sanitize_details(exc.details),
            {"resource_type": "visitor", "resource_id": "v-123"},
        )


class TestPydanticErrorFormatting(unittest.TestCase):
    def test_missing_field(self):
        errors = [{"loc": ("body", "session_id"), "type": "missing", "msg": "Field required"}]
        self.assertEqual(
            format_pydantic_errors(errors),
            [{"field": "session_id", "message": "Field 'session_id' is required"}],
        )

    def test_nested_location(self):
        errors = [{"loc": ("body", "rankings", 0, "position"), "type": "int_parsing", "msg": "bad"}]
        formatted = format_pydantic_errors(errors)
        self.assertEqual(formatted[0]["field"], "rankings.0.position")
        self.assertEqual(formatted[0]["message"], "Field 'rankings.0.position' must be an integer")

    def test_error_count_is_capped(self):
        errors = [{"loc": ("body", f"f{i}"), "type": "missing"} for i in range(30)]
        self.assertEqual(len(format_pydantic_errors(errors)), 10)

    def test_non_finite_number(self):
        errors = [{"loc": ("body", "organic", "ctr"), "type": "finite_number", "msg": "x"}]
        self.assertEqual(
            format_pydantic_errors(errors)[0]["message"], "Field 'organic.ctr' must be a finite number"
        )


class TestEngineExceptions(unittest.TestCase):
    def test_validation_error_details(self):
        exc = ValidationError(message="bad depth", field="depth", value=150)
        self.assertEqual(exc.status_code, 400)
        self.assertEqual(exc.details, {"field": "depth", "value": "150"})

    def test_timeframe_error(self):
        exc = InvalidTimeframeError("24h", allowed=["week"])
        self.assertEqual(exc.error_code, ErrorCode.INVALID_TIMEFRAME)
        self.assertEqual(exc.to_dict()["details"]["allowed"], ["week"])

    def test_unknown_aggregate_is_404(self):
        self.assertEqual(UnknownAggregateError("content", "c1").status_code, 404)


class TestErrorResponses(unittest.TestCase):
    """Error responses produced by the application."""

    def setUp(self):
        self.engine = AnalyticsEngine()
        self.client = TestClient(create_app(engine=self.engine), raise_server_exceptions=False)

    def test_create_error_response(self):
        response = create_error_response(400, "Bad", "VALIDATION_ERROR", {"field": "x", "secret": "y"})
        self.assertEqual(response.status_code, 400)
        self.assertIn(b'"details":{"field":"x"}', response.body)

    def test_missing_field_is_422(self):
        response = self.client.post("/track/page-view/post", json={"url": "/"})
        self.assertEqual(response.status_code, 422)
        data = response.json()
        self.assertEqual(data["error_code"], "VALIDATION_ERROR")
        self.assertEqual(data["details"]["errors"][0]["field"], "session_id")

    def test_unknown_route_is_404(self):
        response = self.client.get("/nowhere")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error_code"], "RESOURCE_NOT_FOUND")

    def test_method_not_allowed(self):
        response = self.client.delete("/content/post")
        self.assertEqual(response.status_code, 405)
        self.assertEqual(response.json()["error_code"], "VALIDATION_ERROR")

    def test_invalid_timeframe_is_400(self):
        response = self.client.get("/analytics/content", params={"timeframe": "yearly"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error_code"], "INVALID_TIMEFRAME")

    def test_unhandled_exception_is_500_with_reference(self):
        with patch.object(self.engine, "stats", side_effect=RuntimeError("boom")):
            response = self.client.get("/health")
        self.assertEqual(response.status_code, 500)
        data = response.json()
        self.assertEqual(data["error_code"], "INTERNAL_ERROR")
        self.assertEqual(data["error"], "Internal server error: RuntimeError")
        self.assertEqual(len(data["details"]["error_reference"]), 8)


if __name__ == "__main__":
    unittest.main()
