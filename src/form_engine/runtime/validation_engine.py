"""
Validation engine.

Validates a data snapshot against a schema, either for every field
(``validate_all``) or for one field plus everything the dependency graph
marks as affected by it (``validate_field``).

Per evaluation pass:
1. Conditional logic is evaluated for the whole form and value overrides
   are applied to a copy of the snapshot (the effective snapshot).
2. Every field in scope that is not rendered gets an empty error list.
3. Rendered fields run, in order: the implicit required check, declared
   rules allowed by the trigger, type checks, the conditional error
   override, and global cross-field validations targeting the field.
4. Remote rules of fields that passed local checks run concurrently; the
   call returns once all of them have settled.

Per-field business failures are aggregated into ValidationResults. Expression
errors are reported in ``global_errors`` naming the rule or field.
"""

import asyncio
import logging
from dataclasses import dataclass, field as dc_field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

try:
    from json_logic import jsonLogic
except ImportError:
    raise ImportError(
        "json-logic library not found. Install with: pip install json-logic"
    )

from form_engine.config.engine_config import EngineConfig, RemoteFailurePolicy
from form_engine.exceptions import ExpressionError, ExpressionErrorCode, FieldValidationError, RemoteValidationError
from form_engine.runtime.conditional_engine import ConditionalEngine, apply_overrides
from form_engine.runtime.custom_validators import ValidatorRegistry, default_registry
from form_engine.runtime.dependency_graph import SELF_VALUE_VAR, DependencyGraph, schema_fingerprint
from form_engine.runtime.expression_evaluator import ExpressionEvaluator, IExpressionEvaluator
from form_engine.runtime.field_checks import (
    REQUIRED_MESSAGE,
    check_email,
    check_field_type,
    check_length,
    check_pattern,
    check_range,
    check_url,
)
from form_engine.runtime.remote import RemoteRuleChecker
from form_engine.schemas.expressions import ComparisonExpression, ComparisonOperator
from form_engine.schemas.form_schema import ConfigurationSchema, FieldType, FormField
from form_engine.schemas.results import ConditionalResult, RuleOutcome, RuleStatus, ValidationResults
from form_engine.schemas.rules import (
    CrossFieldRule,
    CrossFieldValidation,
    CustomExpressionRule,
    CustomRule,
    EmailRule,
    LengthRule,
    PatternRule,
    RangeRule,
    RemoteRule,
    RequiredRule,
    TriggerPolicy,
    UrlRule,
    trigger_allows,
)
from form_engine.utils.values import is_empty

logger = logging.getLogger(__name__)

_OPERATOR_WORDS = {
    ComparisonOperator.EQUALS: "equal to",
    ComparisonOperator.NOT_EQUALS: "different from",
    ComparisonOperator.GREATER_THAN: "greater than",
    ComparisonOperator.GREATER_THAN_OR_EQUAL: "greater than or equal to",
    ComparisonOperator.LESS_THAN: "less than",
    ComparisonOperator.LESS_THAN_OR_EQUAL: "less than or equal to",
    ComparisonOperator.CONTAINS: "containing",
}


@dataclass
class _FieldOutcome:
    errors: List[str] = dc_field(default_factory=list)
    global_errors: List[str] = dc_field(default_factory=list)
    remote_rules: List[RemoteRule] = dc_field(default_factory=list)


@dataclass
class _RemoteOutcome:
    field_id: str
    rule: RemoteRule
    outcome: Optional[RuleOutcome] = None
    failure: Optional[RemoteValidationError] = None


class ValidationEngine:
    """Validates snapshots for one schema. Holds no per-snapshot state."""

    def __init__(
        self,
        schema: ConfigurationSchema,
        graph: Optional[DependencyGraph] = None,
        evaluator: Optional[IExpressionEvaluator] = None,
        conditional_engine: Optional[ConditionalEngine] = None,
        registry: Optional[ValidatorRegistry] = None,
        remote_checker: Optional[RemoteRuleChecker] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.schema = schema
        self.graph = graph
        self.config = config or EngineConfig()
        self.evaluator = evaluator or ExpressionEvaluator(max_depth=self.config.max_expression_depth)
        self.conditional_engine = conditional_engine or ConditionalEngine(schema, self.evaluator, graph)
        self.registry = registry or default_registry
        self.remote_checker = remote_checker
        self._schema_fingerprint = schema_fingerprint(schema)

        self._fields: Dict[str, FormField] = {f.id: f for _, f in schema.iter_fields()}
        self._global_by_target: Dict[str, List[CrossFieldValidation]] = {}
        for validation in schema.global_validations:
            self._global_by_target.setdefault(validation.target, []).append(validation)

    async def validate_all(
        self,
        data: Mapping[str, Any],
        trigger: TriggerPolicy = TriggerPolicy.ON_SUBMIT,
    ) -> ValidationResults:
        """Validate every field (hidden fields report no errors)."""
        return await self.validate_fields(self._fields.keys(), data, trigger)

    async def validate_field(
        self,
        field_id: str,
        data: Mapping[str, Any],
        trigger: TriggerPolicy = TriggerPolicy.ON_BLUR,
    ) -> ValidationResults:
        """
        Validate ``field_id`` and every field affected by its change.

        Falls back to the whole form when the dependency graph is missing
        or was built for a different schema version.
        """
        if field_id not in self._fields:
            raise KeyError(f"Unknown field id: {field_id}")
        return await self.validate_fields(self.scope_for(field_id), data, trigger)

    @property
    def graph_is_current(self) -> bool:
        return self.graph is not None and self.graph.schema_fingerprint == self._schema_fingerprint

    def scope_for(self, field_id: str) -> List[str]:
        if not self.graph_is_current:
            logger.debug("Dependency graph missing or stale, validating all fields")
            return list(self._fields)
        return self.graph.affected_by([field_id])

    async def validate_fields(
        self,
        field_ids: Iterable[str],
        data: Mapping[str, Any],
        trigger: TriggerPolicy,
    ) -> ValidationResults:
        """Validate an explicit set of fields (reported in evaluation order)."""
        wanted = set(field_ids)
        unknown = wanted - self._fields.keys()
        if unknown:
            raise KeyError(f"Unknown field id(s): {', '.join(sorted(unknown))}")
        scope = [field_id for field_id in self._fields if field_id in wanted]

        conditional = self.conditional_engine.evaluate(data)
        effective = apply_overrides(data, conditional)

        field_errors: Dict[str, List[str]] = {}
        global_errors: List[str] = []
        remote_jobs: List[Tuple[str, RemoteRule]] = []

        for field_id in scope:
            state = conditional[field_id]
            field_errors[field_id] = []
            if state.evaluation_error and state.evaluation_error not in global_errors:
                global_errors.append(state.evaluation_error)
            if not state.is_rendered:
                continue

            outcome = self._validate_local(self._fields[field_id], state, effective, trigger)
            field_errors[field_id].extend(outcome.errors)
            global_errors.extend(outcome.global_errors)
            if not outcome.errors:
                remote_jobs.extend((field_id, rule) for rule in outcome.remote_rules)

        pending: Dict[str, List[str]] = {}
        warnings: List[str] = []
        if remote_jobs:
            settled = await asyncio.gather(
                *(self._check_remote(field_id, rule, effective) for field_id, rule in remote_jobs)
            )
            for remote in settled:
                self._record_remote(remote, field_errors, pending, warnings)

        results = ValidationResults(
            field_errors=field_errors,
            global_errors=global_errors,
            warnings=warnings,
            pending=pending,
            evaluated_fields=scope,
        )
        error_count = sum(len(errors) for errors in field_errors.values())
        logger.debug(
            f"Validated {len(scope)} field(s) on {trigger.value}: "
            f"{error_count} error(s), {len(pending)} pending, valid={results.is_valid}"
        )
        return results

    def _validate_local(
        self,
        form_field: FormField,
        state: ConditionalResult,
        data: Mapping[str, Any],
        trigger: TriggerPolicy,
    ) -> _FieldOutcome:
        outcome = _FieldOutcome()
        value = data.get(form_field.id)
        empty = is_empty(value)

        if form_field.required and empty:
            outcome.errors.append(REQUIRED_MESSAGE)
            return outcome

        for rule in form_field.validations:
            if not trigger_allows(rule.trigger, trigger):
                continue

            if isinstance(rule, RequiredRule):
                if empty:
                    outcome.errors.append(rule.message or REQUIRED_MESSAGE)
                    return outcome
                continue

            if isinstance(rule, CustomExpressionRule):
                self._run_custom_expression(form_field, rule, value, data, outcome)
                continue

            if empty:
                continue

            if isinstance(rule, RemoteRule):
                outcome.remote_rules.append(rule)
                continue

            try:
                self._run_rule(form_field, rule, value, data)
            except FieldValidationError as e:
                outcome.errors.append(e.detail)
            except ExpressionError as e:
                outcome.global_errors.append(e.with_context(field_id=form_field.id).describe())

        # An empty list still has to satisfy the item-count bounds
        if not empty or (form_field.type == FieldType.FIELD_ARRAY and isinstance(value, list)):
            options = state.options_override
            if options is None and form_field.options is not None:
                options = form_field.options.static_options
            try:
                check_field_type(form_field, value, options)
            except FieldValidationError as e:
                if e.detail not in outcome.errors:
                    outcome.errors.append(e.detail)

        if state.error_override:
            outcome.errors.append(state.error_override)

        for validation in self._global_by_target.get(form_field.id, []):
            if not trigger_allows(validation.trigger, trigger):
                continue
            try:
                if not self.evaluator.evaluate(validation.condition, data):
                    outcome.errors.append(validation.message)
            except ExpressionError as e:
                outcome.global_errors.append(
                    e.with_context(field_id=form_field.id, rule_id=validation.id).describe()
                )

        return outcome

    def _run_rule(self, form_field: FormField, rule: Any, value: Any, data: Mapping[str, Any]) -> None:
        field_id = form_field.id
        if isinstance(rule, PatternRule):
            check_pattern(field_id, value, rule)
        elif isinstance(rule, LengthRule):
            check_length(field_id, value, rule)
        elif isinstance(rule, RangeRule):
            check_range(field_id, value, rule)
        elif isinstance(rule, EmailRule):
            check_email(field_id, value, rule.message)
        elif isinstance(rule, UrlRule):
            check_url(field_id, value, rule.message)
        elif isinstance(rule, CustomRule):
            validator = self.registry.get(rule.function_name)
            if validator is None:
                raise FieldValidationError(field_id, f"Unknown validation function: {rule.function_name}")
            try:
                message = validator(value, dict(rule.parameters), data)
            except Exception as e:
                logger.warning(f"Custom validator '{rule.function_name}' failed for field '{field_id}': {e}")
                raise FieldValidationError(field_id, rule.message or f"Could not validate value: {e}")
            if message:
                raise FieldValidationError(field_id, rule.message or message)
        elif isinstance(rule, CrossFieldRule):
            self._run_cross_field(form_field, rule, data)

    def _run_cross_field(self, form_field: FormField, rule: CrossFieldRule, data: Mapping[str, Any]) -> None:
        # Nothing to compare against yet
        if is_empty(data.get(rule.other_field)):
            return
        comparison = ComparisonExpression(
            op=rule.operator.value, field=form_field.id, value_field=rule.other_field
        )
        if not self.evaluator.evaluate(comparison, data):
            other = self._fields.get(rule.other_field)
            other_name = other.display_name if other else rule.other_field
            raise FieldValidationError(
                form_field.id,
                rule.message or f"Must be {_OPERATOR_WORDS[rule.operator]} {other_name}",
            )

    def _run_custom_expression(
        self,
        form_field: FormField,
        rule: CustomExpressionRule,
        value: Any,
        data: Mapping[str, Any],
        outcome: _FieldOutcome,
    ) -> None:
        scope = dict(data)
        scope[SELF_VALUE_VAR] = value
        try:
            passed = jsonLogic(rule.logic, scope)
        except Exception as e:
            error = ExpressionError(
                ExpressionErrorCode.INVALID_EXPRESSION,
                f"JSON Logic evaluation failed: {e}",
                field_id=form_field.id,
            )
            logger.warning(error.describe())
            outcome.global_errors.append(error.describe())
            return
        if not passed:
            outcome.errors.append(rule.message or "Invalid value")

    async def _check_remote(self, field_id: str, rule: RemoteRule, data: Mapping[str, Any]) -> _RemoteOutcome:
        if self.remote_checker is None:
            return _RemoteOutcome(field_id, rule, outcome=RuleOutcome.pending("No remote checker configured"))

        timeout = self.config.remote_timeout_seconds
        try:
            outcome = await asyncio.wait_for(
                self.remote_checker.check(rule.rule_id, field_id, data.get(field_id), dict(data)),
                timeout=timeout,
            )
            return _RemoteOutcome(field_id, rule, outcome=outcome)
        except asyncio.TimeoutError as e:
            failure = RemoteValidationError(rule.rule_id, field_id, f"timed out after {timeout}s", original_error=e)
        except RemoteValidationError as e:
            failure = e
        except Exception as e:
            failure = RemoteValidationError(rule.rule_id, field_id, str(e), original_error=e)

        logger.warning(str(failure))
        return _RemoteOutcome(field_id, rule, failure=failure)

    def _record_remote(
        self,
        remote: _RemoteOutcome,
        field_errors: Dict[str, List[str]],
        pending: Dict[str, List[str]],
        warnings: List[str],
    ) -> None:
        field_id, rule = remote.field_id, remote.rule

        if remote.failure is not None:
            policy = self.config.remote_failure_policy
            if policy == RemoteFailurePolicy.ERROR:
                field_errors[field_id].append(f"Could not be verified: {remote.failure.reason}")
            elif policy == RemoteFailurePolicy.ALLOW:
                warnings.append(str(remote.failure))
            else:
                warnings.append(str(remote.failure))
                pending.setdefault(field_id, []).append(rule.rule_id)
            return

        outcome = remote.outcome
        if outcome.status == RuleStatus.INVALID:
            field_errors[field_id].append(rule.message or outcome.message or "Invalid value")
        elif outcome.status == RuleStatus.PENDING:
            pending.setdefault(field_id, []).append(rule.rule_id)
