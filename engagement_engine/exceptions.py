"""
Exception classes for the engagement engine.

All exceptions inherit from EngagementEngineError so the HTTP layer can map
the whole hierarchy to consistent JSON error responses.

Exception Hierarchy:
    EngagementEngineError (base, 500)
    ├── ValidationError (400)
    │   ├── InvalidEventTypeError
    │   └── InvalidTimeframeError
    └── UnknownAggregateError (404)
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes for API responses."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    # Validation errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_EVENT_TYPE = "INVALID_EVENT_TYPE"
    INVALID_TIMEFRAME = "INVALID_TIMEFRAME"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"

    # Resource errors (404)
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    UNKNOWN_AGGREGATE = "UNKNOWN_AGGREGATE"


class EngagementEngineError(Exception):
    """
    Base exception class for all engagement engine errors.

    Attributes:
        message: Human-readable error message.
        error_code: Machine-readable error code from ErrorCode enum.
        status_code: HTTP status code to return.
        details: Additional context about the error (optional).
    """

    status_code: int = 500
    default_error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for API responses."""
        response = {
            "success": False,
            "error": self.message,
            "error_code": self.error_code.value,
        }
        if self.details:
            response["details"] = self.details
        return response

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code.value!r}, "
            f"status_code={self.status_code})"
        )


class ValidationError(EngagementEngineError):
    """
    Raised when ingested data fails validation.

    Malformed input is rejected at the ingestion boundary so the scoring
    functions never see it.
    """

    status_code = 400
    default_error_code = ErrorCode.VALIDATION_ERROR
    default_message = "Invalid request data"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            str_value = str(value)
            details["value"] = str_value[:100] + "..." if len(str_value) > 100 else str_value

        super().__init__(
            message=message,
            error_code=error_code or self.default_error_code,
            details=details,
        )


class InvalidEventTypeError(ValidationError):
    """Raised for an interaction type outside the closed enumeration."""

    default_error_code = ErrorCode.INVALID_EVENT_TYPE
    default_message = "Unrecognized interaction type"

    def __init__(self, event_type: Any, allowed: Optional[list] = None):
        details = {}
        if allowed:
            details["allowed"] = list(allowed)
        super().__init__(
            message=f"Unrecognized interaction type: {event_type!r}",
            field="type",
            value=event_type,
            details=details,
        )
        self.event_type = event_type


class InvalidTimeframeError(ValidationError):
    """Raised for a rollup window outside week/month/quarter."""

    default_error_code = ErrorCode.INVALID_TIMEFRAME
    default_message = "Unrecognized timeframe"

    def __init__(self, timeframe: Any, allowed: Optional[list] = None):
        details = {}
        if allowed:
            details["allowed"] = list(allowed)
        super().__init__(
            message=f"Unrecognized timeframe: {timeframe!r}",
            field="timeframe",
            value=timeframe,
            details=details,
        )
        self.timeframe = timeframe


class UnknownAggregateError(EngagementEngineError):
    """
    Raised by the store when an aggregate id has never been tracked.

    Query paths catch this and return neutral defaults; tracking paths
    create the aggregate instead.
    """

    status_code = 404
    default_error_code = ErrorCode.UNKNOWN_AGGREGATE
    default_message = "Aggregate not found"

    def __init__(self, aggregate_type: str, aggregate_id: str):
        super().__init__(
            message=f"Unknown {aggregate_type}: {aggregate_id}",
            details={
                "resource_type": aggregate_type,
                "resource_id": aggregate_id[:36] if len(aggregate_id) > 36 else aggregate_id,
            },
        )
        self.aggregate_type = aggregate_type
        self.aggregate_id = aggregate_id
