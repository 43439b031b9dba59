"""Middleware components for the engagement engine API."""

from .logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
