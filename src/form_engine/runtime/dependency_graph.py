"""
Dependency graph between fields.

``depends_on[f]`` holds every field whose change requires ``f`` to be
re-evaluated. It is the union of:

- cross-field references of f's own rules and of global validations targeting f
- fields read by f's own visibility conditions
- fields read by the owning section's visibility conditions and by any
  conditional rule targeting f or its section
- f's explicit dependent_field_ids, dynamic option sources, remote rule
  inputs and custom-expression variables

A field never depends on itself. The inverse map (``dependents``) drives the
re-evaluation scope for a single-field change.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from form_engine.exceptions import SchemaError, SchemaErrorCode
from form_engine.schemas.expressions import referenced_fields
from form_engine.schemas.form_schema import ConfigurationSchema
from form_engine.schemas.rules import CrossFieldRule, CustomExpressionRule, RemoteRule
from form_engine.utils.values import fingerprint

logger = logging.getLogger(__name__)

# JSON Logic variable naming the validated field's own value
SELF_VALUE_VAR = "$value"


def schema_fingerprint(schema: ConfigurationSchema) -> str:
    """Content hash identifying a schema version."""
    return fingerprint(schema.model_dump(mode="json"))


@dataclass(frozen=True)
class DependencyGraph:
    """Immutable field dependency graph built from one schema version."""

    depends_on: Dict[str, FrozenSet[str]]
    dependents: Dict[str, FrozenSet[str]]
    field_order: Tuple[str, ...]
    schema_fingerprint: str

    def dependencies_of(self, field_id: str) -> FrozenSet[str]:
        return self.depends_on.get(field_id, frozenset())

    def dependents_of(self, field_id: str) -> FrozenSet[str]:
        return self.dependents.get(field_id, frozenset())

    def is_current_for(self, schema: ConfigurationSchema) -> bool:
        return self.schema_fingerprint == schema_fingerprint(schema)

    def affected_by(self, changed: Iterable[str]) -> List[str]:
        """
        Fields to re-evaluate after ``changed`` fields change.

        Includes the changed fields themselves and the transitive closure of
        their dependents, returned in schema evaluation order.
        """
        seen: Set[str] = set()
        queue = deque(field_id for field_id in changed if field_id in self.depends_on)
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(self.dependents_of(current) - seen)
        return [field_id for field_id in self.field_order if field_id in seen]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_fingerprint": self.schema_fingerprint,
            "depends_on": {f: sorted(self.depends_on[f]) for f in self.field_order},
            "dependents": {f: sorted(self.dependents[f]) for f in self.field_order},
        }


def _logic_vars(logic: Any) -> List[str]:
    """Variable names read by a JSON Logic object ({"var": "name"} or {"var": ["name", default]})."""
    names: List[str] = []
    stack = [logic]
    while stack:
        node = stack.pop()
        if isinstance(node, dict):
            for op, args in node.items():
                if op == "var":
                    name = args[0] if isinstance(args, list) and args else args
                    if isinstance(name, str) and name:
                        names.append(name)
                else:
                    stack.append(args)
        elif isinstance(node, list):
            stack.extend(node)
    return names


def check_unique_ids(schema: ConfigurationSchema) -> None:
    """
    Raise SchemaError on duplicate section or field ids.

    Field ids are global across sections because rules reference them
    without qualification.
    """
    section_ids: Set[str] = set()
    for section in schema.sections:
        if section.id in section_ids:
            raise SchemaError(
                SchemaErrorCode.DUPLICATE_SECTION_ID,
                f"Section id '{section.id}' is used more than once",
            )
        section_ids.add(section.id)

    field_ids: Set[str] = set()
    for section in schema.sections:
        for field in section.fields:
            if field.id in field_ids:
                raise SchemaError(
                    SchemaErrorCode.DUPLICATE_FIELD_ID,
                    f"Field id '{field.id}' is used more than once",
                    field_id=field.id,
                )
            field_ids.add(field.id)


def build(schema: ConfigurationSchema) -> DependencyGraph:
    """
    Build the dependency graph for a schema.

    Pure and deterministic: building twice from the same schema yields equal
    graphs.

    Raises:
        SchemaError: DUPLICATE_FIELD_ID / DUPLICATE_SECTION_ID,
            UNKNOWN_FIELD_REFERENCE for dangling field references,
            UNKNOWN_RULE_TARGET for rules targeting unknown fields/sections
    """
    check_unique_ids(schema)

    field_order = tuple(schema.field_ids())
    known = set(field_order)
    deps: Dict[str, Set[str]] = {field_id: set() for field_id in field_order}

    def add_refs(owner: str, refs: Iterable[str], rule_id: Optional[str] = None) -> None:
        for ref in refs:
            if ref not in known:
                where = f"rule '{rule_id}'" if rule_id else f"field '{owner}'"
                raise SchemaError(
                    SchemaErrorCode.UNKNOWN_FIELD_REFERENCE,
                    f"{where} references unknown field '{ref}'",
                    field_id=owner,
                    rule_id=rule_id,
                )
            deps[owner].add(ref)

    for section, field in schema.iter_fields():
        if field.visibility_conditions is not None:
            add_refs(field.id, referenced_fields(field.visibility_conditions))
        if section.visibility_conditions is not None:
            add_refs(field.id, referenced_fields(section.visibility_conditions))

        add_refs(field.id, field.dependent_field_ids)
        if field.options is not None:
            add_refs(field.id, field.options.depends_on)

        for rule in field.validations:
            if isinstance(rule, CrossFieldRule):
                add_refs(field.id, [rule.other_field])
            elif isinstance(rule, RemoteRule):
                add_refs(field.id, rule.depends_on, rule_id=rule.rule_id)
            elif isinstance(rule, CustomExpressionRule):
                names = [name.split(".")[0] for name in _logic_vars(rule.logic)]
                add_refs(field.id, [n for n in names if n != SELF_VALUE_VAR])

    for validation in schema.global_validations:
        if validation.target not in known:
            raise SchemaError(
                SchemaErrorCode.UNKNOWN_RULE_TARGET,
                f"Global validation '{validation.id}' targets unknown field '{validation.target}'",
                rule_id=validation.id,
            )
        add_refs(validation.target, referenced_fields(validation.condition), rule_id=validation.id)

    for rule in schema.conditional_logic:
        refs = referenced_fields(rule.condition)
        if rule.target in known:
            add_refs(rule.target, refs, rule_id=rule.id)
            continue
        section = schema.get_section(rule.target)
        if section is None:
            raise SchemaError(
                SchemaErrorCode.UNKNOWN_RULE_TARGET,
                f"Conditional rule '{rule.id}' targets unknown field or section '{rule.target}'",
                rule_id=rule.id,
            )
        for field in section.fields:
            add_refs(field.id, refs, rule_id=rule.id)

    for field_id, field_deps in deps.items():
        field_deps.discard(field_id)

    dependents: Dict[str, Set[str]] = {field_id: set() for field_id in field_order}
    for field_id, field_deps in deps.items():
        for dependency in field_deps:
            dependents[dependency].add(field_id)

    graph = DependencyGraph(
        depends_on={f: frozenset(deps[f]) for f in field_order},
        dependents={f: frozenset(dependents[f]) for f in field_order},
        field_order=field_order,
        schema_fingerprint=schema_fingerprint(schema),
    )
    edge_count = sum(len(v) for v in graph.depends_on.values())
    logger.debug(f"Built dependency graph for '{schema.id}': {len(field_order)} fields, {edge_count} edges")
    return graph
