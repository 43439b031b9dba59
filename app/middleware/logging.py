"""
Request logging middleware for the engagement engine API.

Provides:
- Request ID generation and propagation
- Automatic request/response logging with response time
- Health check endpoint exclusion
"""

import logging
import time
import uuid
from typing import Callable, Optional, Set

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from engagement_engine.utils.logging import (
    clear_request_context,
    set_request_context,
)

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for structured request logging.

    Features:
    - Generates request IDs, or trusts an incoming X-Request-ID if configured
    - Logs method, path, status code and response time
    - Adds X-Request-ID and X-Response-Time headers to responses
    - Skips health checks and docs unless they fail
    """

    DEFAULT_EXCLUDE_PATHS: Set[str] = frozenset({
        "/",
        "/docs",
        "/openapi.json",
        "/redoc",
        "/favicon.ico",
    })

    # Paths that should only log errors
    ERROR_ONLY_PATHS: Set[str] = frozenset({"/health"})

    def __init__(
        self,
        app,
        trust_incoming_id: bool = False,
        exclude_paths: Optional[Set[str]] = None,
        error_only_paths: Optional[Set[str]] = None,
    ):
        super().__init__(app)
        self.trust_incoming_id = trust_incoming_id
        self.exclude_paths = exclude_paths or self.DEFAULT_EXCLUDE_PATHS
        self.error_only_paths = error_only_paths or self.ERROR_ONLY_PATHS

    def _get_request_id(self, request: Request) -> str:
        if self.trust_incoming_id:
            incoming = request.headers.get("X-Request-ID")
            if incoming:
                return incoming[:64]
        return str(uuid.uuid4())

    def _get_visitor_id(self, request: Request) -> Optional[str]:
        """Visitor id from the path, when the route is visitor-scoped."""
        user_id = request.path_params.get("user_id") if request.path_params else None
        return str(user_id) if user_id else None

    def _should_log(self, path: str, status_code: int) -> bool:
        if path in self.exclude_paths:
            return False
        if path in self.error_only_paths:
            return status_code >= 400
        return True

    def _get_log_level(self, status_code: int) -> int:
        if status_code >= 500:
            return logging.ERROR
        elif status_code >= 400:
            return logging.WARNING
        else:
            return logging.INFO

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = self._get_request_id(request)
        set_request_context(request_id=request_id)
        request.state.request_id = request_id

        method = request.method
        path = request.url.path
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start_time) * 1000

            visitor_id = self._get_visitor_id(request)
            if visitor_id:
                set_request_context(visitor_id=visitor_id)

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

            if self._should_log(path, response.status_code):
                logger.log(
                    self._get_log_level(response.status_code),
                    f"{method} {path} {response.status_code} ({duration_ms:.2f}ms)",
                    extra={
                        "event": "http_request",
                        "http_method": method,
                        "http_path": path,
                        "http_status": response.status_code,
                        "duration_ms": round(duration_ms, 2),
                    },
                )

            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"{method} {path} FAILED ({duration_ms:.2f}ms): {type(exc).__name__}",
                extra={
                    "event": "http_request_error",
                    "http_method": method,
                    "http_path": path,
                    "duration_ms": round(duration_ms, 2),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            raise

        finally:
            clear_request_context()
