"""Conversion of dataclass trees into JSON-ready structures."""

from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any


def to_plain(value: Any) -> Any:
    """
    Recursively convert dataclasses, enums and datetimes to plain values.

    Enums become their ``value``, datetimes become ISO-8601 strings and
    tuples become lists.
    """
    if is_dataclass(value) and not isinstance(value, type):
        if hasattr(value, "to_dict"):
            return value.to_dict()
        return to_plain(asdict(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {to_plain(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value
