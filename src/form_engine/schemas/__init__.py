"""Pydantic schemas for form definitions, expressions, rules and results."""

from form_engine.schemas.expressions import (
    AndExpression,
    ComparisonExpression,
    ComparisonOperator,
    ConditionalExpression,
    EmptinessExpression,
    MatchExpression,
    MembershipExpression,
    NotExpression,
    OrExpression,
    parse_expression,
    referenced_fields,
)
from form_engine.schemas.form_schema import (
    ConfigurationSchema,
    FieldConstraints,
    FieldOptions,
    FieldType,
    FormField,
    OptionItem,
    SchemaMetadata,
    Section,
)
from form_engine.schemas.results import (
    ConditionalResult,
    RuleOutcome,
    RuleStatus,
    ValidationResults,
)
from form_engine.schemas.rules import (
    ConditionalAction,
    ConditionalRule,
    CrossFieldValidation,
    TriggerPolicy,
    ValidationRule,
)

__all__ = [
    "AndExpression",
    "ComparisonExpression",
    "ComparisonOperator",
    "ConditionalExpression",
    "EmptinessExpression",
    "MatchExpression",
    "MembershipExpression",
    "NotExpression",
    "OrExpression",
    "parse_expression",
    "referenced_fields",
    "ConfigurationSchema",
    "FieldConstraints",
    "FieldOptions",
    "FieldType",
    "FormField",
    "OptionItem",
    "SchemaMetadata",
    "Section",
    "ConditionalResult",
    "RuleOutcome",
    "RuleStatus",
    "ValidationResults",
    "ConditionalAction",
    "ConditionalRule",
    "CrossFieldValidation",
    "TriggerPolicy",
    "ValidationRule",
]
