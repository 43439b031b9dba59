"""
Tests for request logging middleware and structured logging.

Tests RequestLoggingMiddleware, the request context variables and the
log formatters and filters.
"""

import json
import logging
import os
import sys
import unittest
import uuid

os.environ["ENVIRONMENT"] = "development"
os.environ["SENTRY_DSN"] = ""

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from fastapi.testclient import TestClient

from engagement_engine.config import LoggingSettings, SecuritySettings, Settings
from engagement_engine.engine import AnalyticsEngine
from engagement_engine.utils.logging import (
    JSONFormatter,
    RequestContextFilter,
    SensitiveDataFilter,
    Timer,
    clear_request_context,
    redact_sensitive_data,
    set_request_context,
    setup_logging,
)
from server import create_app


def build_client(trust_incoming_id: bool = False, request_logging: bool = True) -> TestClient:
    settings = Settings(
        security=SecuritySettings(security_trust_request_id=trust_incoming_id),
        logging=LoggingSettings(log_level="WARNING", request_logging_enabled=request_logging),
    )
    return TestClient(create_app(engine=AnalyticsEngine(settings=settings), settings=settings))


class TestRequestIDMiddleware(unittest.TestCase):
    """Tests for request ID propagation."""

    def setUp(self):
        self.client = build_client()

    def test_response_has_request_id(self):
        response = self.client.get("/health")
        self.assertIn("x-request-id", response.headers)

    def test_request_id_is_uuid_format(self):
        response = self.client.get("/health")
        uuid.UUID(response.headers["x-request-id"])

    def test_unique_request_ids(self):
        ids = {self.client.get("/health").headers["x-request-id"] for _ in range(5)}
        self.assertEqual(len(ids), 5)

    def test_incoming_id_ignored_by_default(self):
        response = self.client.get("/health", headers={"X-Request-ID": "client-supplied"})
        self.assertNotEqual(response.headers["x-request-id"], "client-supplied")

    def test_incoming_id_trusted_when_configured(self):
        client = build_client(trust_incoming_id=True)
        response = client.get("/health", headers={"X-Request-ID": "edge-" + "x" * 100})
        self.assertEqual(response.headers["x-request-id"], ("edge-" + "x" * 100)[:64])

    def test_error_responses_carry_headers(self):
        response = self.client.get("/analytics/content", params={"timeframe": "decade"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("x-request-id", response.headers)


class TestResponseTimeHeader(unittest.TestCase):
    def test_response_has_timing_header(self):
        response = build_client().get("/health")
        self.assertTrue(response.headers["x-response-time"].endswith("ms"))

    def test_disabled_request_logging(self):
        response = build_client(request_logging=False).get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertNotIn("x-response-time", response.headers)


class TestRequestLogging(unittest.TestCase):
    def test_tracking_request_is_logged(self):
        client = build_client()
        with self.assertLogs("app.middleware.logging", level="INFO") as captured:
            client.post(
                "/track/page-view/post",
                json={"url": "/blog/post", "session_id": "s1"},
            )
        self.assertTrue(any("POST /track/page-view/post 200" in line for line in captured.output))


class TestStructuredLogging(unittest.TestCase):
    """Tests for formatters, filters and context helpers."""

    def tearDown(self):
        clear_request_context()

    def make_record(self, message: str, level: int = logging.INFO, **extra) -> logging.LogRecord:
        record = logging.LogRecord("engagement_engine.test", level, __file__, 1, message, None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_redacts_emails_and_tokens(self):
        message = "Page view /signup?email=jane@example.com&token=abc123 from partner"
        redacted = redact_sensitive_data(message)
        self.assertNotIn("jane@example.com", redacted)
        self.assertNotIn("abc123", redacted)
        self.assertIn("from partner", redacted)

    def test_sensitive_filter_rewrites_message(self):
        record = self.make_record("Referrer https://x.test/?api_key=s3cr3t")
        SensitiveDataFilter().filter(record)
        self.assertNotIn("s3cr3t", record.getMessage())

    def test_context_filter(self):
        set_request_context(request_id="req-1", visitor_id="v-9")
        record = self.make_record("hello")
        RequestContextFilter().filter(record)
        self.assertEqual(record.request_id, "req-1")
        self.assertEqual(record.visitor_id, "v-9")

        clear_request_context()
        RequestContextFilter().filter(record)
        self.assertEqual(record.request_id, "-")

    def test_json_formatter(self):
        record = self.make_record("Rescored visitor", request_id="req-1", visitor_id="v-9", score=42)
        data = json.loads(JSONFormatter(service_name="engine-test").format(record))
        self.assertEqual(data["service"], "engine-test")
        self.assertEqual(data["message"], "Rescored visitor")
        self.assertEqual(data["request_id"], "req-1")
        self.assertEqual(data["extra"], {"score": 42})
        self.assertNotIn("source", data)

    def test_json_formatter_includes_source_for_errors(self):
        record = self.make_record("Failed", level=logging.ERROR)
        data = json.loads(JSONFormatter().format(record))
        self.assertEqual(data["source"]["line"], 1)

    def test_setup_logging_replaces_handlers(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        try:
            setup_logging(level="debug", use_json=True)
            setup_logging(level="warning")
            self.assertEqual(len(root.handlers), 1)
            self.assertEqual(root.level, logging.WARNING)
            self.assertNotIsInstance(root.handlers[0].formatter, JSONFormatter)
        finally:
            root.handlers[:] = handlers
            root.setLevel(level)

    def test_timer_logs_duration(self):
        logger = logging.getLogger("engagement_engine.test.timer")
        with self.assertLogs(logger, level="DEBUG") as captured:
            with Timer("rescore", logger) as timer:
                pass
        self.assertGreaterEqual(timer.elapsed_ms, 0)
        self.assertIn("rescore completed in", captured.output[0])


if __name__ == "__main__":
    unittest.main()
