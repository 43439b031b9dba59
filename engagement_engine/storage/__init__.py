"""Aggregate storage for the engagement engine."""

from .memory_store import InMemoryStore

__all__ = ["InMemoryStore"]
