"""Utility modules for the engagement engine."""

from .dates import ensure_utc, isoformat, utc_now
from .logging import (
    JSONFormatter,
    RequestContextFilter,
    SensitiveDataFilter,
    Timer,
    clear_request_context,
    redact_sensitive_data,
    set_request_context,
    setup_logging,
)
from .serialization import to_plain

__all__ = [
    # Dates
    "ensure_utc",
    "isoformat",
    "utc_now",
    # Logging utilities
    "setup_logging",
    "set_request_context",
    "clear_request_context",
    "Timer",
    "JSONFormatter",
    "RequestContextFilter",
    "SensitiveDataFilter",
    "redact_sensitive_data",
    # Serialization
    "to_plain",
]
