"""
Pydantic schema for conditional expressions as a closed tagged union.

Each node kind is its own model carrying only the attributes valid for that
variant, discriminated by the fixed 'op' field:

    {"op": "equals", "field": "country", "value": "US"}
    {"op": "and", "expressions": [{...}, {...}]}

Leaves reference field ids of the owning schema; combinators nest freely.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


class ComparisonOperator(str, Enum):
    """Operators usable in comparison leaves and cross-field rules."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN = "less_than"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    CONTAINS = "contains"


class ComparisonExpression(BaseModel):
    """Compare a field against a literal value or against another field."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    op: Literal[
        "equals",
        "not_equals",
        "greater_than",
        "greater_than_or_equal",
        "less_than",
        "less_than_or_equal",
        "contains",
    ]
    field: str = Field(..., min_length=1, description="Field id whose value is compared")
    value: Any = Field(None, description="Literal right-hand operand")
    value_field: Optional[str] = Field(
        None, description="Field id used as right-hand operand instead of a literal"
    )

    @model_validator(mode="after")
    def _check_operand(self) -> "ComparisonExpression":
        if self.value_field is not None and self.value is not None:
            raise ValueError("Use either 'value' or 'value_field', not both")
        return self


class MembershipExpression(BaseModel):
    """Field value is (not) one of a list of literals."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    op: Literal["in", "not_in"]
    field: str = Field(..., min_length=1)
    values: List[Any] = Field(default_factory=list)


class EmptinessExpression(BaseModel):
    """Field value is (not) empty."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    op: Literal["is_empty", "is_not_empty"]
    field: str = Field(..., min_length=1)


class MatchExpression(BaseModel):
    """Field value matches a regular expression (re.search semantics)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    op: Literal["matches"]
    field: str = Field(..., min_length=1)
    pattern: str


class AndExpression(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    op: Literal["and"]
    expressions: List[ConditionalExpression] = Field(default_factory=list)


class OrExpression(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    op: Literal["or"]
    expressions: List[ConditionalExpression] = Field(default_factory=list)


class NotExpression(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    op: Literal["not"]
    expression: ConditionalExpression


ConditionalExpression = Annotated[
    Union[
        ComparisonExpression,
        MembershipExpression,
        EmptinessExpression,
        MatchExpression,
        AndExpression,
        OrExpression,
        NotExpression,
    ],
    Field(discriminator="op"),
]

AndExpression.model_rebuild()
OrExpression.model_rebuild()
NotExpression.model_rebuild()

LEAF_TYPES = (ComparisonExpression, MembershipExpression, EmptinessExpression, MatchExpression)

_expression_adapter: TypeAdapter = TypeAdapter(ConditionalExpression)


def parse_expression(data: Any) -> ConditionalExpression:
    """Validate a plain dict (e.g. from JSON) into an expression tree."""
    return _expression_adapter.validate_python(data)


def referenced_fields(expression: ConditionalExpression) -> List[str]:
    """
    Collect every field id an expression reads, in first-seen order.

    Walks the tree iteratively so malformed, very deep trees cannot exhaust
    the interpreter stack here; depth limits are enforced at evaluation.

    Args:
        expression: Root of the expression tree

    Returns:
        Unique field ids (leaf 'field' and comparison 'value_field')
    """
    seen: List[str] = []
    stack: List[Any] = [expression]
    while stack:
        node = stack.pop()
        if isinstance(node, (AndExpression, OrExpression)):
            stack.extend(reversed(node.expressions))
        elif isinstance(node, NotExpression):
            stack.append(node.expression)
        elif isinstance(node, LEAF_TYPES):
            if node.field not in seen:
                seen.append(node.field)
            if isinstance(node, ComparisonExpression) and node.value_field:
                if node.value_field not in seen:
                    seen.append(node.value_field)
    return seen
