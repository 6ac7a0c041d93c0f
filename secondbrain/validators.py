"""
Shared validation helpers for SecondBrain services.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Optional

from secondbrain.config import MAX_CONTENT_BYTES
from secondbrain.errors import ValidationIssue


def validate_required_text(value: str, field: str, max_len: int) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationIssue(f"{field} must be a non-empty string", field=field, error_type="required")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_optional_text(value: Optional[str], field: str, max_len: int) -> None:
    if value is None:
        return
    if not isinstance(value, str):
        raise ValidationIssue(f"{field} must be a string", field=field, error_type="invalid_type")
    if len(value) > max_len:
        raise ValidationIssue(f"{field} exceeds max length {max_len}", field=field, error_type="max_length")


def validate_limit(value: int, field: str, max_value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationIssue(f"{field} must be an integer", field=field, error_type="invalid_type")
    if value <= 0 or value > max_value:
        raise ValidationIssue(f"{field} must be between 1 and {max_value}", field=field, error_type="out_of_range")


def validate_offset(value: int, field: str = "offset") -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationIssue(f"{field} must be an integer", field=field, error_type="invalid_type")
    if value < 0:
        raise ValidationIssue(f"{field} must be >= 0", field=field, error_type="out_of_range")


def validate_unit_interval(value: float, field: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationIssue(f"{field} must be a number", field=field, error_type="invalid_type")
    if value < 0.0 or value > 1.0:
        raise ValidationIssue(f"{field} must be between 0.0 and 1.0", field=field, error_type="out_of_range")


def validate_choice(value: Optional[str], field: str, choices) -> None:
    if value is None:
        return
    if value not in choices:
        raise ValidationIssue(
            f"{field} must be one of: {', '.join(choices)}",
            field=field,
            error_type="invalid_value",
        )


def validate_content_size(content: Optional[dict], field: str = "content") -> None:
    if content is None:
        return
    try:
        size = len(json.dumps(content))
    except (TypeError, ValueError) as exc:
        raise ValidationIssue(f"{field} must be JSON-serializable", field=field, error_type="invalid_type") from exc
    if size > MAX_CONTENT_BYTES:
        raise ValidationIssue(
            f"{field} exceeds max size {MAX_CONTENT_BYTES} bytes",
            field=field,
            error_type="max_bytes",
        )


def naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_due_date(value, field: str = "due_date") -> Optional[datetime]:
    """Accept None, a date/datetime, or an ISO-8601 string."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            return naive_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))
        except ValueError as exc:
            raise ValidationIssue(
                f"{field} must be an ISO-8601 date",
                field=field,
                error_type="invalid_value",
            ) from exc
    raise ValidationIssue(f"{field} must be a date string", field=field, error_type="invalid_type")
