"""Pydantic models for the engagement engine API."""

from .requests import (
    ContentUpsertRequest,
    ConversionRequest,
    EngagementRequest,
    InteractionRequest,
    PageViewRequest,
    SEOUpdateRequest,
)

__all__ = [
    "ContentUpsertRequest",
    "ConversionRequest",
    "EngagementRequest",
    "InteractionRequest",
    "PageViewRequest",
    "SEOUpdateRequest",
]
