"""Value validation and normalization by field type."""

import json
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any
from urllib.parse import urlparse

from dataview.fields import (
    LinkOptions,
    NUMERIC_TYPES,
    NumberOptions,
    SelectOptions,
    Field,
    is_record_id,
)


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
URL_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*$")


@dataclass
class ValidationResult:
    valid: bool
    error: str | None = None
    normalized_value: Any = None
    # Set when a link value looks like display text and must go through
    # asynchronous label resolution instead
    needs_resolution: bool = False


def cardinality_error(count: int) -> str:
    return f"Single-link field cannot accept multiple values. Found: {count} records"


def is_empty_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and value == "":
        return True
    return isinstance(value, (list, tuple)) and len(value) == 0


def validate_value(field: Field, value: Any) -> ValidationResult:
    """Validate a value against a field definition.

    Empty input is valid (normalized to None) unless the field is required.
    """
    if is_empty_value(value):
        if field.required:
            return ValidationResult(valid=False, error=f'Field "{field.name}" is required')
        return ValidationResult(valid=True, normalized_value=None)

    if field.type in ("text", "long_text"):
        return ValidationResult(valid=True, normalized_value=str(value))
    elif field.type == "email":
        return _validate_email(field, value)
    elif field.type == "url":
        return _validate_url(field, value)
    elif field.type in NUMERIC_TYPES:
        return _validate_number(field, value)
    elif field.type == "date":
        return _validate_date(field, value)
    elif field.type == "checkbox":
        return ValidationResult(valid=True, normalized_value=_to_checkbox(value))
    elif field.type == "single_select":
        return _validate_single_select(field, value)
    elif field.type == "multi_select":
        return _validate_multi_select(field, value)
    elif field.type == "link_to_table":
        return _validate_link(field, value)
    elif field.type in ("attachment", "json"):
        return _validate_json(field, value)
    elif field.is_computed:
        return ValidationResult(
            valid=False,
            error=f'Field "{field.name}" is a computed field and cannot be edited',
        )

    # Unknown types pass through for forward compatibility
    return ValidationResult(valid=True, normalized_value=value)


def _validate_email(field: Field, value: Any) -> ValidationResult:
    text = str(value)
    if not EMAIL_RE.match(text):
        return ValidationResult(valid=False, error=f'Invalid email format for "{field.name}"')
    return ValidationResult(valid=True, normalized_value=text)


def _validate_url(field: Field, value: Any) -> ValidationResult:
    text = str(value)
    parsed = urlparse(text)
    if not parsed.scheme or not URL_SCHEME_RE.match(parsed.scheme):
        return ValidationResult(valid=False, error=f'Invalid URL format for "{field.name}"')
    if not parsed.netloc and not parsed.path:
        return ValidationResult(valid=False, error=f'Invalid URL format for "{field.name}"')
    return ValidationResult(valid=True, normalized_value=text)


def _validate_number(field: Field, value: Any) -> ValidationResult:
    invalid = ValidationResult(valid=False, error=f'Invalid number for "{field.name}"')
    if isinstance(value, bool):
        return invalid
    if isinstance(value, (int, float)):
        number = value
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return invalid
    if not math.isfinite(number):
        return invalid

    options = field.options
    if isinstance(options, NumberOptions) and options.precision is not None:
        number = round(float(number), options.precision)

    return ValidationResult(valid=True, normalized_value=number)


def normalize_date(value: Any) -> str | None:
    """Normalize a date-like value to an ISO-8601 UTC instant, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        # Millisecond epoch timestamps
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    instant = parsed.astimezone(timezone.utc)
    return instant.strftime("%Y-%m-%dT%H:%M:%S.") + f"{instant.microsecond // 1000:03d}Z"


def _validate_date(field: Field, value: Any) -> ValidationResult:
    normalized = normalize_date(value)
    if normalized is None:
        return ValidationResult(valid=False, error=f'Invalid date format for "{field.name}"')
    return ValidationResult(valid=True, normalized_value=normalized)


def _to_checkbox(value: Any) -> bool:
    if value is True:
        return True
    if isinstance(value, str):
        return value in ("true", "1", "yes")
    return type(value) is int and value == 1


def _choices(field: Field) -> tuple[str, ...]:
    if isinstance(field.options, SelectOptions):
        return field.options.choices
    return ()


def _validate_single_select(field: Field, value: Any) -> ValidationResult:
    text = str(value)
    choices = _choices(field)
    if choices and text not in choices:
        return ValidationResult(
            valid=False,
            error=(
                f'Value "{text}" is not a valid choice for "{field.name}". '
                f"Valid choices: {', '.join(choices)}"
            ),
        )
    return ValidationResult(valid=True, normalized_value=text)


def _validate_multi_select(field: Field, value: Any) -> ValidationResult:
    items = list(value) if isinstance(value, (list, tuple)) else [value]
    items = [str(v) for v in items if v is not None]

    choices = _choices(field)
    if choices:
        invalid = [v for v in items if v not in choices]
        if invalid:
            return ValidationResult(
                valid=False,
                error=(
                    f'Invalid choices for "{field.name}": {", ".join(invalid)}. '
                    f"Valid choices: {', '.join(choices)}"
                ),
            )

    return ValidationResult(valid=True, normalized_value=list(dict.fromkeys(items)))


def _validate_link(field: Field, value: Any) -> ValidationResult:
    options = field.options if isinstance(field.options, LinkOptions) else LinkOptions()

    ids: list[str] | None = None
    if is_record_id(value):
        ids = [value]
    elif isinstance(value, (list, tuple)) and all(is_record_id(v) for v in value):
        ids = list(dict.fromkeys(value))

    if ids is None:
        return ValidationResult(
            valid=False,
            error=f'Invalid value for "{field.name}". Expected record ID or display name.',
            needs_resolution=True,
        )

    if options.is_multi:
        return ValidationResult(valid=True, normalized_value=ids)
    if len(ids) > 1:
        return ValidationResult(valid=False, error=cardinality_error(len(ids)))
    return ValidationResult(valid=True, normalized_value=ids[0])


def _validate_json(field: Field, value: Any) -> ValidationResult:
    label = "attachment format" if field.type == "attachment" else "JSON"
    if isinstance(value, (dict, list)):
        return ValidationResult(valid=True, normalized_value=value)
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            return ValidationResult(valid=False, error=f'Invalid {label} for "{field.name}"')
        # Only structured documents, so a normalized value validates again
        if isinstance(parsed, (dict, list)):
            return ValidationResult(valid=True, normalized_value=parsed)
    return ValidationResult(valid=False, error=f'Invalid {label} for "{field.name}"')
