"""
Pytest configuration and shared fixtures for engagement engine tests.

This module provides common fixtures used across all test files:
- Environment setup before the application is imported
- A fresh engine and test client per test
"""

import os
import sys

import pytest

# Environment setup before any imports
os.environ["ENVIRONMENT"] = "development"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["SENTRY_DSN"] = ""
os.environ["REQUEST_LOGGING_ENABLED"] = "true"

# Ensure project root is in path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


@pytest.fixture
def engine():
    """A fresh AnalyticsEngine with default settings."""
    from engagement_engine.engine import AnalyticsEngine

    return AnalyticsEngine()


@pytest.fixture
def client(engine):
    """FastAPI test client bound to a fresh engine."""
    from fastapi.testclient import TestClient
    from server import create_app

    return TestClient(create_app(engine=engine))
