"""
Pydantic schemas for engine outputs.

Results are recomputed per evaluation pass and replaced wholesale; nothing
here is updated in place by the engines.
"""

from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class ConditionalResult(BaseModel):
    """Per-field outcome of conditional logic."""

    model_config = ConfigDict(frozen=True)

    field_id: str
    is_visible: bool = Field(True, description="Field-level visibility (ignores section)")
    is_enabled: bool = True
    section_visible: bool = Field(True, description="Visibility of the owning section")
    value_override: Any = Field(None, description="Value asserted by a set_value/clear_value rule")
    has_value_override: bool = Field(
        False, description="Distinguishes an asserted None (clear_value) from no override"
    )
    options_override: Optional[List[Any]] = None
    error_override: Optional[str] = None
    applied_rules: List[str] = Field(default_factory=list, description="Ids of rules whose condition held")
    evaluation_error: Optional[str] = Field(
        None, description="Set when an expression failed and the field was failed closed"
    )

    @property
    def is_rendered(self) -> bool:
        return self.is_visible and self.section_visible


class ValidationResults(BaseModel):
    """
    Aggregated validation outcome for a set of fields.

    Attributes:
        field_errors: Error messages per field id; every field in scope has an
            entry, empty when the field passed (or was skipped as hidden).
        global_errors: Errors not attributable to a field rule, such as an
            expression that failed to evaluate.
        warnings: Non-blocking notes (e.g. remote failures under 'allow').
        pending: Remote rule ids still unresolved per field id.
        evaluated_fields: Field ids in scope, in evaluation order.
    """

    model_config = ConfigDict(frozen=True)

    field_errors: Dict[str, List[str]] = Field(default_factory=dict)
    global_errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    pending: Dict[str, List[str]] = Field(default_factory=dict)
    evaluated_fields: List[str] = Field(default_factory=list)

    @computed_field  # type: ignore[misc]
    @property
    def is_valid(self) -> bool:
        if self.global_errors:
            return False
        if any(errors for errors in self.field_errors.values()):
            return False
        return not any(rules for rules in self.pending.values())

    @property
    def has_pending(self) -> bool:
        return any(rules for rules in self.pending.values())

    def errors_for(self, field_id: str) -> List[str]:
        return list(self.field_errors.get(field_id, []))

    def restricted_to(self, field_ids: Iterable[str]) -> "ValidationResults":
        """Copy keeping only the given fields (global errors and warnings are kept)."""
        keep = set(field_ids)
        return ValidationResults(
            field_errors={k: list(v) for k, v in self.field_errors.items() if k in keep},
            global_errors=list(self.global_errors),
            warnings=list(self.warnings),
            pending={k: list(v) for k, v in self.pending.items() if k in keep},
            evaluated_fields=[f for f in self.evaluated_fields if f in keep],
        )

    def merge(self, newer: "ValidationResults") -> "ValidationResults":
        """
        Overlay ``newer`` on this result.

        Fields evaluated by ``newer`` take its errors and pending state;
        other fields keep theirs. Global errors and warnings come from
        ``newer`` only, since they describe the most recent pass.
        """
        field_errors = {k: list(v) for k, v in self.field_errors.items()}
        pending = {k: list(v) for k, v in self.pending.items()}
        evaluated = list(self.evaluated_fields)
        for field_id in newer.evaluated_fields:
            field_errors[field_id] = list(newer.field_errors.get(field_id, []))
            if newer.pending.get(field_id):
                pending[field_id] = list(newer.pending[field_id])
            else:
                pending.pop(field_id, None)
            if field_id not in evaluated:
                evaluated.append(field_id)
        return ValidationResults(
            field_errors=field_errors,
            global_errors=list(newer.global_errors),
            warnings=list(newer.warnings),
            pending=pending,
            evaluated_fields=evaluated,
        )


class RuleStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    PENDING = "pending"


class RuleOutcome(BaseModel):
    """Outcome of a remote rule check."""

    model_config = ConfigDict(frozen=True)

    status: RuleStatus
    message: Optional[str] = None

    @classmethod
    def valid(cls) -> "RuleOutcome":
        return cls(status=RuleStatus.VALID)

    @classmethod
    def invalid(cls, message: Optional[str] = None) -> "RuleOutcome":
        return cls(status=RuleStatus.INVALID, message=message)

    @classmethod
    def pending(cls, message: Optional[str] = None) -> "RuleOutcome":
        return cls(status=RuleStatus.PENDING, message=message)
