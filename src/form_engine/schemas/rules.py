"""
Pydantic schemas for validation rules and conditional-logic rules.

Validation rules are a closed union discriminated by 'type'; each kind carries
only its own parameters plus the shared 'message' and 'trigger'. Conditional
rules pair a target (field or section id) and a condition with an action,
itself a union discriminated by 'type'.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from form_engine.schemas.expressions import ComparisonOperator, ConditionalExpression


class TriggerPolicy(str, Enum):
    """When a validation rule is allowed to fire."""

    ON_CHANGE = "on_change"
    ON_BLUR = "on_blur"
    ON_SUBMIT = "on_submit"


# Ordered from least to most eager caller; a call with trigger T runs every
# rule whose policy rank is <= rank(T).
TRIGGER_RANK: Dict[TriggerPolicy, int] = {
    TriggerPolicy.ON_CHANGE: 0,
    TriggerPolicy.ON_BLUR: 1,
    TriggerPolicy.ON_SUBMIT: 2,
}


def trigger_allows(rule_trigger: TriggerPolicy, call_trigger: TriggerPolicy) -> bool:
    """Return True if a rule with policy ``rule_trigger`` fires on ``call_trigger``."""
    return TRIGGER_RANK[rule_trigger] <= TRIGGER_RANK[call_trigger]


class _RuleBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    message: Optional[str] = Field(None, description="Error message shown when the rule fails")
    trigger: TriggerPolicy = Field(TriggerPolicy.ON_CHANGE, description="Trigger policy")


class RequiredRule(_RuleBase):
    type: Literal["required"]


class PatternRule(_RuleBase):
    """Value (as string) must match a regular expression."""

    type: Literal["pattern"]
    pattern: str = Field(..., min_length=1)
    flags: Optional[str] = Field(None, description="Regex flags: any of 'i', 'm', 's', 'x'")

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        """Validate that pattern is a valid regex."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid regex pattern '{v}': {e}")
        return v

    @field_validator("flags")
    @classmethod
    def validate_flags(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and any(flag not in "imsx" for flag in v):
            raise ValueError(f"Unsupported regex flags '{v}' (allowed: i, m, s, x)")
        return v

    def compiled(self) -> "re.Pattern[str]":
        flag_map = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}
        flags = 0
        for flag in self.flags or "":
            flags |= flag_map[flag]
        return re.compile(self.pattern, flags)


class LengthRule(_RuleBase):
    """String length (or list size) bounds, inclusive."""

    type: Literal["length"]
    min: Optional[int] = Field(None, ge=0)
    max: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "LengthRule":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"length min ({self.min}) is greater than max ({self.max})")
        return self


class RangeRule(_RuleBase):
    """Numeric range, inclusive."""

    type: Literal["range"]
    min: Optional[float] = None
    max: Optional[float] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> "RangeRule":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"range min ({self.min}) is greater than max ({self.max})")
        return self


class EmailRule(_RuleBase):
    type: Literal["email"]


class UrlRule(_RuleBase):
    type: Literal["url"]


class CustomRule(_RuleBase):
    """Named validator from the custom validator registry."""

    type: Literal["custom"]
    function_name: str = Field(..., min_length=1)
    parameters: Dict[str, Any] = Field(default_factory=dict)


class CustomExpressionRule(_RuleBase):
    """
    JSON Logic expression that must evaluate truthy.

    The field's own value is available as ``{"var": "$value"}``; every other
    field is available by id.
    """

    type: Literal["custom_expression"]
    logic: Dict[str, Any]


class CrossFieldRule(_RuleBase):
    """Compare the owning field's value against another field's value."""

    type: Literal["cross_field"]
    operator: ComparisonOperator
    other_field: str = Field(..., min_length=1)


class RemoteRule(_RuleBase):
    """Rule delegated to the remote rule checker (e.g. uniqueness)."""

    type: Literal["remote"]
    rule_id: str = Field(..., min_length=1)
    depends_on: List[str] = Field(
        default_factory=list, description="Other fields the remote check reads"
    )


ValidationRule = Annotated[
    Union[
        RequiredRule,
        PatternRule,
        LengthRule,
        RangeRule,
        EmailRule,
        UrlRule,
        CustomRule,
        CustomExpressionRule,
        CrossFieldRule,
        RemoteRule,
    ],
    Field(discriminator="type"),
]


class CrossFieldValidation(BaseModel):
    """Schema-level rule: ``condition`` must hold, else ``message`` is attached to ``target``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    target: str = Field(..., min_length=1, description="Field id receiving the error")
    condition: ConditionalExpression
    message: str
    trigger: TriggerPolicy = TriggerPolicy.ON_CHANGE


# Conditional actions


class _ActionBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class ShowAction(_ActionBase):
    type: Literal["show"]


class HideAction(_ActionBase):
    type: Literal["hide"]


class EnableAction(_ActionBase):
    type: Literal["enable"]


class DisableAction(_ActionBase):
    type: Literal["disable"]


class SetValueAction(_ActionBase):
    type: Literal["set_value"]
    value: Any = None


class ClearValueAction(_ActionBase):
    type: Literal["clear_value"]


class ShowErrorAction(_ActionBase):
    type: Literal["show_error"]
    message: str


class SetOptionsAction(_ActionBase):
    type: Literal["set_options"]
    options: List[Any] = Field(default_factory=list)


ConditionalAction = Annotated[
    Union[
        ShowAction,
        HideAction,
        EnableAction,
        DisableAction,
        SetValueAction,
        ClearValueAction,
        ShowErrorAction,
        SetOptionsAction,
    ],
    Field(discriminator="type"),
]


class ConditionalRule(BaseModel):
    """When ``condition`` holds, apply ``action`` to ``target``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1, description="Field or section id")
    condition: ConditionalExpression
    action: ConditionalAction
