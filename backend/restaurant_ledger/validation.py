# Overview: Request payload validation helpers (strict integer and datetime coercion).

from __future__ import annotations

from datetime import datetime
from typing import Any

from flask import request

from .time_utils import normalize_datetime


# Maximum single amount: $9,999,999.99 (999,999,999 cents)
# Keeps request amounts inside what the integer columns and reports expect
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


def coerce_int(value: Any, field: str) -> int:
    """
    Strictly coerce a JSON/query value to int.

    Accepts ints (not bools) and plain digit strings. Rejects floats,
    decimals and scientific notation so money never passes through floats.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_int(data: dict, field: str, *, minimum: int | None = None) -> int:
    if field not in data or data[field] is None:
        raise ValidationError(f"Missing required field: {field}")
    value = coerce_int(data[field], field)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return value


def optional_int(data: dict, field: str, *, minimum: int | None = None) -> int | None:
    if data.get(field) is None:
        return None
    return require_int(data, field, minimum=minimum)


def require_cents(data: dict, field: str, *, default: int | None = None) -> int:
    """Non-negative integer cents, bounded by MAX_AMOUNT_CENTS."""
    if data.get(field) is None and default is not None:
        return default
    value = require_int(data, field, minimum=0)
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS} cents")
    return value


def optional_datetime(data: dict, field: str) -> datetime | None:
    try:
        return normalize_datetime(data.get(field))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def optional_str(data: dict, field: str, *, max_length: int | None = None) -> str | None:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value or None


def get_json_body() -> dict:
    """Request JSON object, or ValidationError when the body is not an object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
