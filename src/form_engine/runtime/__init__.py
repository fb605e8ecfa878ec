"""
Runtime components of the form engine.

1. Schema loading - schema_loader
2. Dependency graph - dependency_graph
3. Expression evaluation - expression_evaluator
4. Conditional logic - conditional_engine
5. Validation (local + remote) - validation_engine, field_checks,
   custom_validators, remote

Higher-level engines depend on the IExpressionEvaluator and
RemoteRuleChecker abstractions, not on concrete implementations.
"""

from form_engine.runtime.conditional_engine import ConditionalEngine, apply_overrides
from form_engine.runtime.custom_validators import ValidatorRegistry, default_registry
from form_engine.runtime.dependency_graph import DependencyGraph, build
from form_engine.runtime.expression_evaluator import ExpressionEvaluator, IExpressionEvaluator, evaluate
from form_engine.runtime.remote import HttpRemoteRuleChecker, InProcessRemoteChecker, RemoteRuleChecker
from form_engine.runtime.schema_loader import load_schema, load_schema_file, parse_schema
from form_engine.runtime.validation_engine import ValidationEngine

__all__ = [
    "ConditionalEngine",
    "apply_overrides",
    "ValidatorRegistry",
    "default_registry",
    "DependencyGraph",
    "build",
    "ExpressionEvaluator",
    "IExpressionEvaluator",
    "evaluate",
    "HttpRemoteRuleChecker",
    "InProcessRemoteChecker",
    "RemoteRuleChecker",
    "load_schema",
    "load_schema_file",
    "parse_schema",
    "ValidationEngine",
]
