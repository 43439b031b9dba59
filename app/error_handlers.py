"""
Exception handlers for the engagement engine API.

Every error response has the same shape:

    {"success": false, "error": "...", "error_code": "...", "details": {...}}

Engine errors map to their own status code; request validation errors are
422; anything unexpected is a 500 with a short reference id, reported to
Sentry when it is configured.
"""

import logging
import re
import uuid
from typing import Any, Dict, List, Optional

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from engagement_engine.config import get_settings
from engagement_engine.exceptions import EngagementEngineError, ErrorCode
from engagement_engine.utils.logging import redact_sensitive_data

logger = logging.getLogger(__name__)

SOURCE_PATH = re.compile(r"[/\\][\w./\\-]+\.py\b")
IP_ADDRESS = re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b")
MAX_MESSAGE_LENGTH = 500

HTTP_ERROR_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    405: ErrorCode.VALIDATION_ERROR,
    422: ErrorCode.VALIDATION_ERROR,
    500: ErrorCode.INTERNAL_ERROR,
}

# Detail keys that may be echoed back to clients
SAFE_DETAIL_KEYS = frozenset({
    "field",
    "value",
    "allowed",
    "resource_type",
    "resource_id",
    "errors",
    "error_reference",
    "sentry_event_id",
})


def sanitize_error_message(message: str) -> str:
    """Redact credentials, source paths and IP addresses, and cap the length."""
    if not message:
        return message

    message = redact_sensitive_data(message)
    message = SOURCE_PATH.sub("[path]", message)
    message = IP_ADDRESS.sub("[ip]", message)

    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[:MAX_MESSAGE_LENGTH] + "..."
    return message


def sanitize_details(details: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only whitelisted, primitive detail values."""
    if not details:
        return {}

    sanitized: Dict[str, Any] = {}
    for key, value in details.items():
        if key not in SAFE_DETAIL_KEYS:
            continue
        if isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        elif isinstance(value, (int, float, bool)):
            sanitized[key] = value
        elif isinstance(value, list):
            sanitized[key] = [
                v for v in value if isinstance(v, (str, int, float, bool, dict))
            ][:20]
    return sanitized


# Client-facing wording for the pydantic error types the request models produce
ERROR_TYPE_MESSAGES = {
    "missing": "is required",
    "string_type": "must be a string",
    "string_too_short": "must not be empty",
    "string_too_long": "is too long",
    "string_pattern_mismatch": "may only contain letters, digits and _.:-",
    "int_type": "must be an integer",
    "int_parsing": "must be an integer",
    "float_type": "must be a number",
    "float_parsing": "must be a number",
    "finite_number": "must be a finite number",
    "greater_than_equal": "is below the allowed minimum",
    "less_than_equal": "is above the allowed maximum",
    "datetime_type": "must be an ISO-8601 timestamp",
    "datetime_parsing": "must be an ISO-8601 timestamp",
    "datetime_from_date_parsing": "must be an ISO-8601 timestamp",
}


def format_pydantic_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flatten request validation errors to at most ten ``{field, message}`` entries."""
    formatted = []
    for error in errors[:10]:
        parts = [str(p) for p in error.get("loc", []) if p not in ("body", "query", "path")]
        field = ".".join(parts) or "request"

        wording = ERROR_TYPE_MESSAGES.get(error.get("type", ""))
        if wording:
            message = f"Field '{field}' {wording}"
        else:
            message = sanitize_error_message(error.get("msg", "Invalid value"))
        formatted.append({"field": field, "message": message})
    return formatted


def create_error_response(
    status_code: int,
    error: str,
    error_code: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {
        "success": False,
        "error": sanitize_error_message(error),
        "error_code": error_code,
    }
    sanitized_details = sanitize_details(details or {})
    if sanitized_details:
        content["details"] = sanitized_details
    return JSONResponse(status_code=status_code, content=content)


def report_to_sentry(
    exc: Exception,
    request: Optional[Request] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Capture ``exc`` with the request path and id.

    Returns:
        The Sentry event id, or None when Sentry is not active.
    """
    try:
        if not sentry_sdk.get_client().is_active():
            return None

        with sentry_sdk.new_scope() as scope:
            if request is not None:
                scope.set_context("request", {
                    "method": request.method,
                    "path": request.url.path,
                    "query": redact_sensitive_data(request.url.query),
                })
                request_id = getattr(request.state, "request_id", None)
                if request_id:
                    scope.set_tag("request_id", request_id)
            if extra_context:
                scope.set_context("extra", extra_context)
            return sentry_sdk.capture_exception(exc)

    except Exception as e:
        logger.warning(f"Failed to report exception to Sentry: {e}")
        return None


# =============================================================================
# Exception Handlers
# =============================================================================


async def engine_exception_handler(
    request: Request,
    exc: EngagementEngineError,
) -> JSONResponse:
    log_message = f"{exc.__class__.__name__}: {exc.message}"

    if exc.status_code >= 500:
        logger.error(log_message, exc_info=True)
        report_to_sentry(exc, request)
    else:
        logger.warning(log_message)

    return create_error_response(
        status_code=exc.status_code,
        error=exc.message,
        error_code=exc.error_code.value,
        details=exc.details,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    errors = format_pydantic_errors(exc.errors())

    logger.warning(
        f"Validation error on {request.method} {request.url.path}: "
        f"{len(errors)} error(s)"
    )

    if len(errors) == 1:
        error_message = errors[0]["message"]
    else:
        error_message = f"Validation failed with {len(errors)} error(s)"

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        error=error_message,
        error_code=ErrorCode.VALIDATION_ERROR.value,
        details={"errors": errors},
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Routing 404s and 405s, and any HTTPException a route raises."""
    error_code = HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.UNKNOWN_ERROR)
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code}: {detail}")
    elif exc.status_code >= 400:
        logger.warning(f"HTTP {exc.status_code}: {detail}")

    return create_error_response(
        status_code=exc.status_code,
        error=detail,
        error_code=error_code.value,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all for unexpected errors.

    Logs the traceback, reports to Sentry and returns a generic message
    with a reference id for support.
    """
    error_reference = str(uuid.uuid4())[:8]

    logger.error(
        f"Unhandled exception [ref:{error_reference}] on "
        f"{request.method} {request.url.path}: {exc}",
        exc_info=True,
    )

    event_id = report_to_sentry(
        exc,
        request,
        extra_context={"error_reference": error_reference},
    )

    details: Dict[str, Any] = {"error_reference": error_reference}
    if get_settings().is_production:
        error = "An unexpected error occurred. Please try again later."
    else:
        error = f"Internal server error: {type(exc).__name__}"
        if event_id:
            details["sentry_event_id"] = event_id

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error=error,
        error_code=ErrorCode.INTERNAL_ERROR.value,
        details=details,
    )


# =============================================================================
# Handler Registration
# =============================================================================


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EngagementEngineError, engine_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    logger.debug("Exception handlers registered")
