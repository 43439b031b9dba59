"""
Logging setup for the engagement engine.

JSON lines in production, a plain single-line format in development. Every
record carries the request and visitor ids of the request being served, and
personal data that tracked URLs and referrers tend to carry is redacted.
"""

import json
import logging
import re
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
visitor_id_var: ContextVar[Optional[str]] = ContextVar("visitor_id", default=None)

# Query strings of tracked URLs routinely carry these
SENSITIVE_PATTERNS: List[re.Pattern] = [
    re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+"),
    re.compile(
        r"(?:api[_-]?key|access[_-]?token|token|secret|password)[\"']?\s*[=:]\s*[\"']?[^\s&,}\"']+",
        re.IGNORECASE,
    ),
    re.compile(r"bearer\s+[\w.-]+", re.IGNORECASE),
    re.compile(r"eyJ[\w-]+\.eyJ[\w-]+\.[\w-]+"),  # JWT
]

REDACTED = "[REDACTED]"

DEVELOPMENT_FORMAT = "%(asctime)s %(levelname)-8s [%(request_id)s] [%(visitor_id)s] %(name)s - %(message)s"

# Standard LogRecord attributes; anything else came in through ``extra``
RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "request_id", "visitor_id"}


def redact_sensitive_data(message: str) -> str:
    """Replace emails, credentials and tokens in ``message`` with [REDACTED]."""
    if not message:
        return message
    for pattern in SENSITIVE_PATTERNS:
        message = pattern.sub(REDACTED, message)
    return message


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.visitor_id = visitor_id_var.get() or "-"
        return True


class SensitiveDataFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_sensitive_data(str(record.msg))
        if record.args:
            record.args = tuple(
                redact_sensitive_data(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with request context and any ``extra`` fields."""

    def __init__(self, service_name: str = "engagement-engine"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "request_id": getattr(record, "request_id", "-"),
            "visitor_id": getattr(record, "visitor_id", "-"),
        }
        if record.levelno >= logging.ERROR:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {
            k: v for k, v in record.__dict__.items()
            if k not in RECORD_ATTRS and not k.startswith("_")
        }
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str, ensure_ascii=False)


def setup_logging(
    service_name: str = "engagement-engine",
    level: str = "INFO",
    use_json: bool = False,
) -> logging.Logger:
    """
    Route all logging through one stdout handler.

    Existing root handlers are replaced, so building the app repeatedly in
    tests does not duplicate output.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.addFilter(SensitiveDataFilter())
    if use_json:
        handler.setFormatter(JSONFormatter(service_name))
    else:
        handler.setFormatter(logging.Formatter(DEVELOPMENT_FORMAT))
    root_logger.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    root_logger.info(f"Logging configured ({'json' if use_json else 'development'}, {level})")
    return root_logger


def set_request_context(
    request_id: Optional[str] = None,
    visitor_id: Optional[str] = None,
) -> None:
    if request_id is not None:
        request_id_var.set(request_id)
    if visitor_id is not None:
        visitor_id_var.set(visitor_id)


def clear_request_context() -> None:
    request_id_var.set(None)
    visitor_id_var.set(None)


class Timer:
    """
    Log how long a block took.

        with Timer("content_analytics", logger):
            ...
    """

    def __init__(
        self,
        name: str,
        logger: Optional[logging.Logger] = None,
        log_level: int = logging.DEBUG,
    ):
        self.name = name
        self.logger = logger
        self.log_level = log_level
        self.start_time: Optional[float] = None
        self.elapsed_ms: float = 0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is not None:
            self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000
        if self.logger:
            self.logger.log(
                self.log_level,
                f"{self.name} completed in {self.elapsed_ms:.2f}ms",
                extra={"operation": self.name, "duration_ms": round(self.elapsed_ms, 2)},
            )
