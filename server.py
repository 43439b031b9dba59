"""
HTTP server for the engagement engine.

Builds the FastAPI application around a single AnalyticsEngine: structured
logging, Sentry error tracking, CORS, centralized exception handlers,
request logging and the tracking, content, analytics and engagement routes.
"""

import logging
import os
import re
from typing import Optional

import sentry_sdk
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from app.error_handlers import register_exception_handlers
from app.middleware import RequestLoggingMiddleware
from app.routes import (
    analytics_router,
    content_router,
    engagement_router,
    health_router,
    tracking_router,
)
from engagement_engine import __version__
from engagement_engine.config import Settings, get_settings
from engagement_engine.engine import AnalyticsEngine
from engagement_engine.utils.logging import setup_logging

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = [
    "password", "api_key", "apikey", "api-key", "secret", "token",
    "authorization", "auth", "bearer", "credential", "private",
]


# =============================================================================
# Sentry
# =============================================================================


def filter_sensitive_breadcrumbs(crumb, hint):
    """
    Filter sensitive data from Sentry breadcrumbs.

    Authorization-like headers and query parameters are masked, and log
    breadcrumbs that mention a sensitive key are replaced.
    """
    if crumb.get("category") == "http":
        data = crumb.get("data")
        if isinstance(data, dict):
            headers = data.get("headers")
            if isinstance(headers, dict):
                for key in list(headers.keys()):
                    if any(s in key.lower() for s in SENSITIVE_KEYS):
                        headers[key] = "[FILTERED]"
            if "url" in data:
                for key in SENSITIVE_KEYS:
                    if f"{key}=" in data["url"].lower():
                        pattern = re.compile(f"({re.escape(key)}=)[^&]*", re.IGNORECASE)
                        data["url"] = pattern.sub(r"\1[FILTERED]", data["url"])

    if crumb.get("category") in ("console", "log") and "message" in crumb:
        message = str(crumb["message"]).lower()
        if any(key in message for key in SENSITIVE_KEYS):
            crumb["message"] = "[FILTERED - may contain sensitive data]"

    return crumb


def init_sentry(settings: Settings) -> bool:
    """Initialize Sentry when a DSN is configured."""
    if not settings.is_sentry_configured:
        logger.info("Sentry DSN not configured, error tracking disabled")
        return False

    sentry_settings = settings.sentry
    sentry_sdk.init(
        dsn=sentry_settings.sentry_dsn,
        environment=sentry_settings.sentry_environment,
        sample_rate=1.0,
        traces_sample_rate=sentry_settings.sentry_traces_sample_rate,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        before_breadcrumb=filter_sensitive_breadcrumbs,
        send_default_pii=False,
        attach_stacktrace=True,
        release=sentry_settings.sentry_release or __version__,
    )
    logger.info(f"Sentry initialized for environment: {sentry_settings.sentry_environment}")
    return True


# =============================================================================
# Application factory
# =============================================================================


def create_app(
    engine: Optional[AnalyticsEngine] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        engine: Engine to serve; a fresh one is built from ``settings`` when omitted.
        settings: Application settings; the cached settings when omitted.

    Returns:
        The configured application, with the engine on ``app.state.engine``.
    """
    settings = settings or get_settings()

    setup_logging(
        service_name=settings.logging.service_name,
        level=settings.logging.log_level,
        use_json=settings.use_json_logs,
    )
    init_sentry(settings)

    app = FastAPI(
        title="Engagement Engine API",
        description="Content performance and visitor engagement analytics",
        version=__version__,
    )
    app.state.engine = engine or AnalyticsEngine(settings=settings)

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "X-Request-ID",
            "Accept",
            "Accept-Language",
            "Origin",
        ],
        expose_headers=["X-Request-ID", "X-Response-Time"],
        max_age=600,
    )

    # Added last so it runs first and wraps every other middleware
    if settings.logging.request_logging_enabled:
        app.add_middleware(
            RequestLoggingMiddleware,
            trust_incoming_id=settings.security.security_trust_request_id,
        )
        logger.info("Request logging middleware enabled")

    app.include_router(health_router)
    app.include_router(tracking_router)
    app.include_router(content_router)
    app.include_router(analytics_router)
    app.include_router(engagement_router)

    @app.get("/", tags=["health"])
    async def root():
        return {"message": "Engagement Engine API", "version": __version__}

    logger.debug(f"Configuration: {settings.get_config_summary()}")
    logger.info(
        f"Engagement engine API ready ({settings.security.environment}, "
        f"CORS origins: {len(settings.security.origins_list)})"
    )
    return app


app = create_app()


if __name__ == "__main__":
    reload_enabled = os.environ.get("UVICORN_RELOAD", "false").lower() == "true"
    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run("server:app", host="0.0.0.0", port=port, reload=reload_enabled)
