"""
Local checks for a single field value.

Each check raises FieldValidationError with a user-facing message when the
value fails, and returns None otherwise. Checks assume the value is
non-empty unless stated; emptiness is handled by the required check.
"""

import json
import math
import re
from pathlib import PurePosixPath
from typing import Any, Iterable, List, Optional
from urllib.parse import urlparse

from form_engine.exceptions import FieldValidationError
from form_engine.schemas.form_schema import (
    MULTI_CHOICE_TYPES,
    SINGLE_CHOICE_TYPES,
    FieldType,
    FormField,
    OptionItem,
)
from form_engine.schemas.rules import LengthRule, PatternRule, RangeRule
from form_engine.utils.values import is_empty, parse_date, parse_time, to_number, values_equal

REQUIRED_MESSAGE = "required"

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^\+?[0-9\s().\-]{7,}$")
_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")

DEFAULT_MAX_RATING = 5


def _fmt(number: float) -> str:
    """Render 5.0 as '5' and 2.5 as '2.5' in messages."""
    return str(int(number)) if float(number).is_integer() else str(number)


def _sized(value: Any) -> int:
    if isinstance(value, (list, tuple, dict, set)):
        return len(value)
    return len(str(value))


def check_required(field_id: str, value: Any, message: Optional[str] = None) -> None:
    if is_empty(value):
        raise FieldValidationError(field_id, message or REQUIRED_MESSAGE)


def check_pattern(field_id: str, value: Any, rule: PatternRule) -> None:
    if rule.compiled().search(str(value)) is None:
        raise FieldValidationError(field_id, rule.message or "Value does not match required pattern")


def check_length(field_id: str, value: Any, rule: LengthRule) -> None:
    size = _sized(value)
    if rule.min is not None and size < rule.min:
        raise FieldValidationError(field_id, rule.message or f"Minimum length is {rule.min} characters")
    if rule.max is not None and size > rule.max:
        raise FieldValidationError(field_id, rule.message or f"Maximum length is {rule.max} characters")


def check_range(field_id: str, value: Any, rule: RangeRule) -> None:
    number = to_number(value)
    if number is None:
        raise FieldValidationError(field_id, rule.message or "Expected numeric value")
    if rule.min is not None and number < rule.min:
        raise FieldValidationError(field_id, rule.message or f"Minimum value is {_fmt(rule.min)}")
    if rule.max is not None and number > rule.max:
        raise FieldValidationError(field_id, rule.message or f"Maximum value is {_fmt(rule.max)}")


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and _EMAIL_RE.match(value.strip()) is not None


def is_valid_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc)


def check_email(field_id: str, value: Any, message: Optional[str] = None) -> None:
    if not is_valid_email(value):
        raise FieldValidationError(field_id, message or "Please enter a valid email address")


def check_url(field_id: str, value: Any, message: Optional[str] = None) -> None:
    if not is_valid_url(value):
        raise FieldValidationError(field_id, message or "Please enter a valid URL")


def option_values(options: Iterable[Any]) -> List[Any]:
    """Normalize OptionItems, {"value": ...} dicts and raw values to raw values."""
    values = []
    for option in options:
        if isinstance(option, OptionItem):
            values.append(option.value)
        elif isinstance(option, dict) and "value" in option:
            values.append(option["value"])
        else:
            values.append(option)
    return values


def _in_options(value: Any, allowed: List[Any]) -> bool:
    return any(values_equal(value, candidate) for candidate in allowed)


def _check_bounds(field: FormField, number: float, noun: str) -> None:
    constraints = field.constraints
    if constraints.min is not None and number < constraints.min:
        raise FieldValidationError(field.id, f"{noun} must be at least {_fmt(constraints.min)}")
    if constraints.max is not None and number > constraints.max:
        raise FieldValidationError(field.id, f"{noun} must be at most {_fmt(constraints.max)}")


def _check_step(field: FormField, number: float) -> None:
    step = field.constraints.step
    if not step:
        return
    base = field.constraints.min or 0.0
    ratio = (number - base) / step
    if not math.isclose(ratio, round(ratio), abs_tol=1e-9):
        raise FieldValidationError(field.id, f"Value must be a multiple of {_fmt(step)}")


def _check_text_length(field: FormField, text: str) -> None:
    constraints = field.constraints
    if constraints.min_length is not None and len(text) < constraints.min_length:
        raise FieldValidationError(field.id, f"Text must be at least {constraints.min_length} characters")
    if constraints.max_length is not None and len(text) > constraints.max_length:
        raise FieldValidationError(field.id, f"Text must be at most {constraints.max_length} characters")


def _file_names(value: Any) -> List[str]:
    items = value if isinstance(value, list) else [value]
    names = []
    for item in items:
        if isinstance(item, dict):
            names.append(str(item.get("name", "")))
        else:
            names.append(str(item))
    return names


def check_field_type(field: FormField, value: Any, options: Optional[List[Any]] = None) -> None:
    """
    Type-specific checks for a non-empty value.

    Args:
        field: Field definition (type + constraints)
        value: Current non-empty value
        options: Effective option list (conditional override or static options)

    Raises:
        FieldValidationError: On the first failed check
    """
    field_type = field.type
    constraints = field.constraints

    if field_type in (FieldType.TEXT, FieldType.TEXTAREA, FieldType.RICH_TEXT, FieldType.PHONE):
        if not isinstance(value, str):
            raise FieldValidationError(field.id, "Expected text value")
        _check_text_length(field, value)
        if field_type == FieldType.PHONE and not _PHONE_RE.match(value.strip()):
            raise FieldValidationError(field.id, "Invalid phone number")

    elif field_type in (FieldType.NUMBER, FieldType.SLIDER):
        number = to_number(value)
        if number is None:
            raise FieldValidationError(field.id, "Expected numeric value")
        _check_bounds(field, number, "Number")
        _check_step(field, number)

    elif field_type == FieldType.INTEGER:
        number = to_number(value)
        if number is None or not number.is_integer():
            raise FieldValidationError(field.id, "Expected integer value")
        _check_bounds(field, number, "Integer")

    elif field_type == FieldType.RATING:
        number = to_number(value)
        max_rating = constraints.max_rating or DEFAULT_MAX_RATING
        if number is None or not number.is_integer() or not 1 <= number <= max_rating:
            raise FieldValidationError(field.id, f"Rating must be between 1 and {max_rating}")

    elif field_type == FieldType.EMAIL:
        if not is_valid_email(value):
            raise FieldValidationError(field.id, "Invalid email format")

    elif field_type == FieldType.URL:
        if not is_valid_url(value):
            raise FieldValidationError(field.id, "Invalid URL format")

    elif field_type in (FieldType.DATE, FieldType.DATETIME):
        if parse_date(value, constraints.date_format) is None:
            raise FieldValidationError(field.id, "Invalid date format")

    elif field_type == FieldType.TIME:
        if parse_time(value) is None:
            raise FieldValidationError(field.id, "Invalid time format")

    elif field_type in (FieldType.CHECKBOX, FieldType.TOGGLE):
        if not isinstance(value, bool):
            raise FieldValidationError(field.id, "Expected true or false")

    elif field_type in SINGLE_CHOICE_TYPES:
        allowed = option_values(options or [])
        allow_custom = field.options.allow_custom if field.options else False
        if allowed and not allow_custom and not _in_options(value, allowed):
            raise FieldValidationError(field.id, f"Value '{value}' not in allowed options")

    elif field_type in MULTI_CHOICE_TYPES:
        if not isinstance(value, list):
            raise FieldValidationError(field.id, "Expected a list of values")
        allowed = option_values(options or [])
        allow_custom = field.options.allow_custom if field.options else False
        if allowed and not allow_custom:
            invalid = [item for item in value if not _in_options(item, allowed)]
            if invalid:
                raise FieldValidationError(
                    field.id, f"Values not in allowed options: {', '.join(str(i) for i in invalid)}"
                )
        if constraints.max_selections is not None and len(value) > constraints.max_selections:
            raise FieldValidationError(field.id, f"Select at most {constraints.max_selections} options")

    elif field_type == FieldType.COLOR:
        if not isinstance(value, str) or not _COLOR_RE.match(value.strip()):
            raise FieldValidationError(field.id, "Invalid color value")

    elif field_type == FieldType.JSON:
        if isinstance(value, str):
            try:
                json.loads(value)
            except json.JSONDecodeError:
                raise FieldValidationError(field.id, "Invalid JSON value")
        elif not isinstance(value, (dict, list)):
            raise FieldValidationError(field.id, "Invalid JSON value")

    elif field_type == FieldType.FIELD_ARRAY:
        if not isinstance(value, list):
            raise FieldValidationError(field.id, "Expected a list of items")
        if constraints.min_items is not None and len(value) < constraints.min_items:
            raise FieldValidationError(field.id, f"At least {constraints.min_items} items required")
        if constraints.max_items is not None and len(value) > constraints.max_items:
            raise FieldValidationError(field.id, f"At most {constraints.max_items} items allowed")

    elif field_type == FieldType.FILE:
        accepted = [t.lower() for t in constraints.accepted_types]
        if accepted:
            for name in _file_names(value):
                suffix = PurePosixPath(name).suffix.lower()
                if suffix not in accepted and suffix.lstrip(".") not in accepted:
                    raise FieldValidationError(field.id, f"File type not accepted: {name}")
