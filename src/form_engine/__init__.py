"""
Form Engine - validation and conditional logic for schema-driven forms.

This package evaluates declarative form schemas against data snapshots:
field and cross-field validation (local and remote rules), conditional
visibility/enablement/overrides, and the dependency graph that scopes
re-evaluation to the fields affected by a change.
"""

__version__ = "0.1.0"

from form_engine.exceptions import (
    ExpressionError,
    FormEngineError,
    RemoteValidationError,
    SchemaError,
)
from form_engine.session.handle import (
    EngineHandle,
    get_conditional_state,
    load_schema,
    on_data_change,
    on_field_blur,
    validate_for_submit,
)

__all__ = [
    "EngineHandle",
    "ExpressionError",
    "FormEngineError",
    "RemoteValidationError",
    "SchemaError",
    "get_conditional_state",
    "load_schema",
    "on_data_change",
    "on_field_blur",
    "validate_for_submit",
]
