"""
Conditional logic engine.

Computes a ConditionalResult per field, in section order then field order.
For each field: defaults are initialized (enabled unless the field is
declared disabled), conditional rules targeting the field (or enable/disable
rules targeting its section) are applied in declared order with later rules
winning, and finally the field's own visibility conditions hide it when they
evaluate false. Section visibility is computed separately and reported in
``section_visible``; the caller decides what to render.

The engine never mutates the data snapshot. Value overrides are reported,
and ``apply_overrides`` builds the effective snapshot as a copy.
"""

import logging
from dataclasses import dataclass, field as dc_field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from form_engine.exceptions import ExpressionError
from form_engine.runtime.dependency_graph import DependencyGraph, schema_fingerprint
from form_engine.runtime.expression_evaluator import ExpressionEvaluator, IExpressionEvaluator
from form_engine.schemas.form_schema import ConfigurationSchema, FormField, Section
from form_engine.schemas.results import ConditionalResult
from form_engine.schemas.rules import (
    ClearValueAction,
    ConditionalRule,
    DisableAction,
    EnableAction,
    HideAction,
    SetOptionsAction,
    SetValueAction,
    ShowAction,
    ShowErrorAction,
)

logger = logging.getLogger(__name__)

SECTION_ACTIONS = (ShowAction, HideAction, EnableAction, DisableAction)


@dataclass
class _FieldState:
    is_visible: bool = True
    is_enabled: bool = True
    value_override: Any = None
    has_value_override: bool = False
    options_override: Optional[List[Any]] = None
    error_override: Optional[str] = None
    applied_rules: List[str] = dc_field(default_factory=list)


@dataclass(frozen=True)
class _SectionState:
    visible: bool
    error: Optional[str] = None


class ConditionalEngine:
    """Evaluates conditional state for one schema. Stateless between calls."""

    def __init__(
        self,
        schema: ConfigurationSchema,
        evaluator: Optional[IExpressionEvaluator] = None,
        graph: Optional[DependencyGraph] = None,
    ):
        self.schema = schema
        self.evaluator = evaluator or ExpressionEvaluator()
        self.graph = graph
        self._schema_fingerprint = schema_fingerprint(schema)

        self._fields: Dict[str, Tuple[Section, FormField]] = {
            f.id: (section, f) for section, f in schema.iter_fields()
        }
        self._field_rules: Dict[str, List[ConditionalRule]] = {f_id: [] for f_id in self._fields}
        self._section_rules: Dict[str, List[ConditionalRule]] = {s.id: [] for s in schema.sections}

        for rule in schema.conditional_logic:
            if rule.target in self._fields:
                self._field_rules[rule.target].append(rule)
            elif rule.target in self._section_rules:
                if isinstance(rule.action, (ShowAction, HideAction)):
                    self._section_rules[rule.target].append(rule)
                else:
                    # enable/disable cascade to every field of the section
                    for f in schema.get_section(rule.target).fields:
                        self._field_rules[f.id].append(rule)

        # Restore declared order for fields that received section rules
        position = {rule.id: index for index, rule in enumerate(schema.conditional_logic)}
        for rules in self._field_rules.values():
            rules.sort(key=lambda r: position[r.id])

    def evaluate(self, data: Mapping[str, Any]) -> Dict[str, ConditionalResult]:
        """Conditional state for every field, in evaluation order."""
        return self.evaluate_fields(self._fields.keys(), data)

    def evaluate_fields(self, field_ids: Iterable[str], data: Mapping[str, Any]) -> Dict[str, ConditionalResult]:
        """Conditional state for the given fields only (returned in evaluation order)."""
        wanted = set(field_ids)
        unknown = wanted - self._fields.keys()
        if unknown:
            raise KeyError(f"Unknown field id(s): {', '.join(sorted(unknown))}")

        sections: Dict[str, _SectionState] = {}
        results: Dict[str, ConditionalResult] = {}
        for field_id, (section, form_field) in self._fields.items():
            if field_id not in wanted:
                continue
            if section.id not in sections:
                sections[section.id] = self._evaluate_section(section, data)
            results[field_id] = self._evaluate_field(form_field, sections[section.id], data)
        return results

    @property
    def graph_is_current(self) -> bool:
        return self.graph is not None and self.graph.schema_fingerprint == self._schema_fingerprint

    def evaluate_for_change(self, changed_field_id: str, data: Mapping[str, Any]) -> Dict[str, ConditionalResult]:
        """
        Scoped evaluation after one field changed.

        Uses the dependency graph when it is current for this schema;
        otherwise falls back to a full evaluation.
        """
        if not self.graph_is_current:
            logger.debug("Dependency graph missing or stale, evaluating all fields")
            return self.evaluate(data)
        return self.evaluate_fields(self.graph.affected_by([changed_field_id]), data)

    def evaluate_field(self, field_id: str, data: Mapping[str, Any]) -> ConditionalResult:
        return self.evaluate_fields([field_id], data)[field_id]

    def visible_fields(self, data: Mapping[str, Any]) -> List[str]:
        """Ids of fields rendered for ``data`` (field and section visible)."""
        return [f_id for f_id, result in self.evaluate(data).items() if result.is_rendered]

    def _evaluate_section(self, section: Section, data: Mapping[str, Any]) -> _SectionState:
        visible = True
        rule_id = None
        try:
            for rule in self._section_rules[section.id]:
                rule_id = rule.id
                if self.evaluator.evaluate(rule.condition, data):
                    visible = isinstance(rule.action, ShowAction)
            rule_id = None
            if section.visibility_conditions is not None:
                if not self.evaluator.evaluate(section.visibility_conditions, data):
                    visible = False
        except ExpressionError as e:
            if rule_id is not None:
                message = e.with_context(rule_id=rule_id).describe()
            else:
                message = f"section '{section.id}': {e.detail}"
            logger.warning(f"Hiding section '{section.id}' after expression error: {message}")
            return _SectionState(visible=False, error=message)
        return _SectionState(visible=visible)

    def _evaluate_field(self, form_field: FormField, section: _SectionState, data: Mapping[str, Any]) -> ConditionalResult:
        state = _FieldState(is_enabled=not form_field.disabled)
        rule_id = None
        try:
            for rule in self._field_rules[form_field.id]:
                rule_id = rule.id
                if self.evaluator.evaluate(rule.condition, data):
                    self._apply(rule, state)
            rule_id = None
            if form_field.visibility_conditions is not None:
                if not self.evaluator.evaluate(form_field.visibility_conditions, data):
                    state.is_visible = False
        except ExpressionError as e:
            # Fail closed for this field only
            message = e.with_context(field_id=form_field.id, rule_id=rule_id).describe()
            logger.warning(f"Failing field '{form_field.id}' closed after expression error: {message}")
            return ConditionalResult(
                field_id=form_field.id,
                is_visible=False,
                is_enabled=False,
                section_visible=section.visible,
                evaluation_error=message,
            )

        return ConditionalResult(
            field_id=form_field.id,
            is_visible=state.is_visible,
            is_enabled=state.is_enabled,
            section_visible=section.visible,
            value_override=state.value_override,
            has_value_override=state.has_value_override,
            options_override=state.options_override,
            error_override=state.error_override,
            applied_rules=state.applied_rules,
            evaluation_error=section.error,
        )

    @staticmethod
    def _apply(rule: ConditionalRule, state: _FieldState) -> None:
        action = rule.action
        state.applied_rules.append(rule.id)
        if isinstance(action, ShowAction):
            state.is_visible = True
        elif isinstance(action, HideAction):
            state.is_visible = False
        elif isinstance(action, EnableAction):
            state.is_enabled = True
        elif isinstance(action, DisableAction):
            state.is_enabled = False
        elif isinstance(action, SetValueAction):
            state.value_override = action.value
            state.has_value_override = True
        elif isinstance(action, ClearValueAction):
            state.value_override = None
            state.has_value_override = True
        elif isinstance(action, ShowErrorAction):
            state.error_override = action.message
        elif isinstance(action, SetOptionsAction):
            state.options_override = list(action.options)


def apply_overrides(data: Mapping[str, Any], results: Mapping[str, ConditionalResult]) -> Dict[str, Any]:
    """Copy of ``data`` with every reported value override applied."""
    effective = dict(data)
    for field_id, result in results.items():
        if result.has_value_override:
            if result.value_override is None:
                effective.pop(field_id, None)
            else:
                effective[field_id] = result.value_override
    return effective
