"""Value coercion helpers shared by the expression and validation engines.

Form data arrives as loosely typed JSON: numbers may be typed as strings,
dates are ISO strings, and "no answer" can be missing, None, blank text or
an empty collection. These helpers give every comparator the same view of a
value.
"""

import hashlib
import json
import math
from datetime import date, datetime, time, timezone
from typing import Any, Optional


def is_empty(value: Any) -> bool:
    """True for None, whitespace-only strings, and empty lists/dicts/sets."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


def to_number(value: Any) -> Optional[float]:
    """Parse a value as a finite float.

    Args:
        value: int, float or numeric string (surrounding whitespace allowed)

    Returns:
        Parsed float, or None for booleans, non-numeric text and NaN/inf
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None

    if not math.isfinite(number):
        return None
    return number


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def parse_date(value: Any, fmt: Optional[str] = None) -> Optional[datetime]:
    """Parse a date or datetime into a naive UTC datetime for ordering.

    Args:
        value: date/datetime object or string
        fmt: Optional strptime format; ISO 8601 is tried when not given

    Returns:
        datetime (dates at midnight), or None if unparseable
    """
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time())
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    if fmt:
        try:
            return _naive_utc(datetime.strptime(text, fmt))
        except ValueError:
            return None

    # Python < 3.11 rejects a trailing 'Z' in fromisoformat
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return _naive_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    try:
        return datetime.combine(date.fromisoformat(text), time())
    except ValueError:
        return None


def parse_time(value: Any) -> Optional[time]:
    """Parse an ISO time of day ("14:30", "14:30:05")."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return time.fromisoformat(value.strip())
    except ValueError:
        return None


_BOOL_STRINGS = {"true": True, "false": False}


def values_equal(left: Any, right: Any) -> bool:
    """Loose equality used by 'equals', 'in' and option membership.

    Numeric strings compare equal to numbers ("5" == 5), and "true"/"false"
    compare equal to booleans. Everything else uses ==.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        if isinstance(left, bool) and isinstance(right, str):
            return _BOOL_STRINGS.get(right.strip().lower()) is left
        if isinstance(right, bool) and isinstance(left, str):
            return _BOOL_STRINGS.get(left.strip().lower()) is right
        return left == right

    if isinstance(left, (int, float)) or isinstance(right, (int, float)):
        left_num, right_num = to_number(left), to_number(right)
        if left_num is not None and right_num is not None:
            return left_num == right_num

    return left == right


def compare_order(left: Any, right: Any) -> Optional[int]:
    """Three-way compare for ordering operators.

    Numbers are compared when both sides parse as numbers, otherwise dates
    when both parse as dates.

    Returns:
        -1, 0 or 1; None when the values are not comparable
    """
    left_num, right_num = to_number(left), to_number(right)
    if left_num is not None and right_num is not None:
        return (left_num > right_num) - (left_num < right_num)

    left_date, right_date = parse_date(left), parse_date(right)
    if left_date is not None and right_date is not None:
        return (left_date > right_date) - (left_date < right_date)

    return None


def contains(haystack: Any, needle: Any) -> bool:
    """Case-insensitive substring for strings, loose membership for collections."""
    if isinstance(haystack, str):
        if needle is None:
            return False
        return str(needle).lower() in haystack.lower()
    if isinstance(haystack, (list, tuple, set, frozenset)):
        return any(values_equal(item, needle) for item in haystack)
    if isinstance(haystack, dict):
        return needle in haystack
    return False


def fingerprint(payload: Any) -> str:
    """Stable SHA-256 hex digest of a JSON-serializable payload."""
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()
