"""
Registry of named validator functions for 'custom' rules.

A validator receives the field value, the rule parameters and the full data
snapshot, and returns an error message or None:

    @default_registry.register("even")
    def even(value, parameters, data):
        return None if int(value) % 2 == 0 else "Must be even"

Built-ins: password_strength, credit_card.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

ValidatorFn = Callable[[Any, Dict[str, Any], Mapping[str, Any]], Optional[str]]

PASSWORD_SPECIAL_CHARACTERS = "!@#$%^&*()_+-=[]{}|;:,.<>?"


class ValidatorRegistry:
    """Name -> validator function mapping."""

    def __init__(self):
        self._validators: Dict[str, ValidatorFn] = {}

    def register(self, name: str) -> Callable[[ValidatorFn], ValidatorFn]:
        """Decorator registering ``fn`` under ``name`` (replaces an existing entry)."""

        def decorator(fn: ValidatorFn) -> ValidatorFn:
            if name in self._validators:
                logger.debug(f"Replacing custom validator '{name}'")
            self._validators[name] = fn
            return fn

        return decorator

    def add(self, name: str, fn: ValidatorFn) -> None:
        self.register(name)(fn)

    def get(self, name: str) -> Optional[ValidatorFn]:
        return self._validators.get(name)

    def names(self) -> List[str]:
        return sorted(self._validators)

    def __contains__(self, name: object) -> bool:
        return name in self._validators

    def copy(self) -> "ValidatorRegistry":
        clone = ValidatorRegistry()
        clone._validators = dict(self._validators)
        return clone


def password_strength(value: Any, parameters: Dict[str, Any], data: Mapping[str, Any]) -> Optional[str]:
    """
    Require length plus upper, lower, digit and special characters.

    Parameters:
        min_length: Minimum length (default 8)
    """
    password = value if isinstance(value, str) else ""
    min_length = int(parameters.get("min_length", 8))

    is_strong = (
        len(password) >= min_length
        and any(c.isupper() for c in password)
        and any(c.islower() for c in password)
        and any(c.isdigit() for c in password)
        and any(c in PASSWORD_SPECIAL_CHARACTERS for c in password)
    )
    if is_strong:
        return None
    return (
        f"Password must be at least {min_length} characters with uppercase, "
        "lowercase, digit, and special character"
    )


def luhn_checksum_ok(digits: str) -> bool:
    total = 0
    for index, char in enumerate(reversed(digits)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def credit_card(value: Any, parameters: Dict[str, Any], data: Mapping[str, Any]) -> Optional[str]:
    """Card number of 13-19 digits (spaces and dashes ignored) passing the Luhn check."""
    number = str(value if value is not None else "").replace(" ", "").replace("-", "")

    if len(number) < 13 or len(number) > 19:
        return "Credit card number must be 13-19 digits"
    if not all(c in "0123456789" for c in number) or not luhn_checksum_ok(number):
        return "Invalid credit card number"
    return None


default_registry = ValidatorRegistry()
default_registry.add("password_strength", password_strength)
default_registry.add("credit_card", credit_card)
