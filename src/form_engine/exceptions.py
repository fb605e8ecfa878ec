"""Exception taxonomy for the form engine.

Error codes are stable string enums so they can be logged and compared
without parsing messages.

- SchemaError: malformed schema, fatal at load time.
- ExpressionError: malformed or too-deep conditional expression. Callers
  fail closed for the affected field instead of aborting the pass.
- FieldValidationError: business-rule failure for one field, collected into
  results rather than propagated.
- RemoteValidationError: backend failure while checking a remote rule.
"""

from enum import Enum
from typing import Optional


class SchemaErrorCode(str, Enum):
    """Stable codes for schema load failures."""

    DUPLICATE_FIELD_ID = "DUPLICATE_FIELD_ID"
    DUPLICATE_SECTION_ID = "DUPLICATE_SECTION_ID"
    UNKNOWN_FIELD_REFERENCE = "UNKNOWN_FIELD_REFERENCE"
    UNKNOWN_RULE_TARGET = "UNKNOWN_RULE_TARGET"
    UNKNOWN_VALIDATOR = "UNKNOWN_VALIDATOR"
    INVALID_SCHEMA = "INVALID_SCHEMA"
    LOAD_FAILED = "LOAD_FAILED"


class ExpressionErrorCode(str, Enum):
    """Stable codes for expression evaluation failures."""

    TOO_DEEP = "TOO_DEEP"
    INVALID_PATTERN = "INVALID_PATTERN"
    INVALID_EXPRESSION = "INVALID_EXPRESSION"


class FormEngineError(Exception):
    """Base exception class for all form engine errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        """
        Initialize the FormEngineError.

        Args:
            message: Error message
            original_error: Original exception if this is a wrapped error
        """
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)


class SchemaError(FormEngineError):
    """Raised when a schema cannot be loaded or is structurally invalid."""

    def __init__(
        self,
        code: SchemaErrorCode,
        message: str,
        field_id: Optional[str] = None,
        rule_id: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.field_id = field_id
        self.rule_id = rule_id
        super().__init__(f"[{code.value}] {message}", original_error=original_error)


class ExpressionError(FormEngineError):
    """Raised when a conditional expression cannot be evaluated."""

    def __init__(
        self,
        code: ExpressionErrorCode,
        message: str,
        field_id: Optional[str] = None,
        rule_id: Optional[str] = None,
    ):
        self.code = code
        self.detail = message
        self.field_id = field_id
        self.rule_id = rule_id
        super().__init__(f"[{code.value}] {message}")

    def with_context(
        self, field_id: Optional[str] = None, rule_id: Optional[str] = None
    ) -> "ExpressionError":
        """Return a copy annotated with the field/rule that owns the expression."""
        return ExpressionError(
            self.code,
            self.detail,
            field_id=field_id or self.field_id,
            rule_id=rule_id or self.rule_id,
        )

    def describe(self) -> str:
        """Human-readable description naming the owning rule or field."""
        owner = []
        if self.rule_id:
            owner.append(f"rule '{self.rule_id}'")
        if self.field_id:
            owner.append(f"field '{self.field_id}'")
        prefix = " / ".join(owner) if owner else "expression"
        return f"{prefix}: {self.detail}"


class FieldValidationError(FormEngineError):
    """Raised by a field check when a value breaks a business rule.

    Never escapes the validation engine: messages are collected into
    ValidationResults.field_errors.
    """

    def __init__(self, field_id: str, message: str):
        self.field_id = field_id
        self.detail = message
        super().__init__(f"Validation error for '{field_id}': {message}")


class RemoteValidationError(FormEngineError):
    """Raised when a remote rule check fails (network, timeout, backend error)."""

    def __init__(
        self,
        rule_id: str,
        field_id: str,
        message: str,
        original_error: Optional[Exception] = None,
    ):
        self.rule_id = rule_id
        self.field_id = field_id
        self.reason = message
        super().__init__(
            f"Remote rule '{rule_id}' failed for field '{field_id}': {message}",
            original_error=original_error,
        )
