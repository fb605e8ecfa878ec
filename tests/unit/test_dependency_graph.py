"""Tests for the field dependency graph."""

import pytest

from form_engine.exceptions import SchemaError, SchemaErrorCode
from form_engine.runtime.dependency_graph import build
from form_engine.schemas.form_schema import ConfigurationSchema


def _schema(sections, **extra) -> ConfigurationSchema:
    return ConfigurationSchema.model_validate({"id": "test", "sections": sections, **extra})


@pytest.fixture
def chained_schema():
    """a -> b (visibility), b -> c (cross field), d independent, e reads a via custom expression."""
    return _schema(
        [
            {
                "id": "main",
                "fields": [
                    {"id": "a"},
                    {"id": "b", "visibility_conditions": {"op": "is_not_empty", "field": "a"}},
                    {
                        "id": "c",
                        "validations": [
                            {"type": "cross_field", "operator": "greater_than", "other_field": "b"}
                        ],
                    },
                    {"id": "d"},
                    {
                        "id": "e",
                        "validations": [
                            {
                                "type": "custom_expression",
                                "logic": {"==": [{"var": "$value"}, {"var": "a"}]},
                            }
                        ],
                    },
                ],
            }
        ]
    )


class TestBuild:
    def test_direct_dependencies(self, chained_schema):
        graph = build(chained_schema)
        assert graph.dependencies_of("b") == frozenset({"a"})
        assert graph.dependencies_of("c") == frozenset({"b"})
        assert graph.dependencies_of("e") == frozenset({"a"})
        assert graph.dependencies_of("d") == frozenset()

    def test_dependents_are_inverse(self, chained_schema):
        graph = build(chained_schema)
        assert graph.dependents_of("a") == frozenset({"b", "e"})
        assert graph.dependents_of("b") == frozenset({"c"})

    def test_build_is_idempotent(self, chained_schema):
        assert build(chained_schema) == build(chained_schema)

    def test_self_reference_excluded(self):
        schema = _schema(
            [{"id": "s", "fields": [{"id": "a", "visibility_conditions": {"op": "is_empty", "field": "a"}}]}]
        )
        assert build(schema).dependencies_of("a") == frozenset()

    def test_section_visibility_applies_to_every_field(self):
        schema = _schema(
            [
                {"id": "first", "fields": [{"id": "toggle", "type": "checkbox"}]},
                {
                    "id": "second",
                    "visibility_conditions": {"op": "equals", "field": "toggle", "value": True},
                    "fields": [{"id": "x"}, {"id": "y"}],
                },
            ]
        )
        graph = build(schema)
        assert graph.dependents_of("toggle") == frozenset({"x", "y"})

    def test_conditional_rules_and_global_validations(self):
        schema = _schema(
            [{"id": "s", "fields": [{"id": "a"}, {"id": "b"}, {"id": "c"}, {"id": "d"}]}],
            conditional_logic=[
                {
                    "id": "hide-b",
                    "target": "b",
                    "condition": {"op": "equals", "field": "a", "value": "no"},
                    "action": {"type": "hide"},
                },
                {
                    "id": "disable-section",
                    "target": "s",
                    "condition": {"op": "is_not_empty", "field": "d"},
                    "action": {"type": "disable"},
                },
            ],
            global_validations=[
                {
                    "id": "c-after-a",
                    "target": "c",
                    "condition": {"op": "greater_than", "field": "c", "value_field": "a"},
                    "message": "c must exceed a",
                }
            ],
        )
        graph = build(schema)
        assert graph.dependencies_of("b") == frozenset({"a", "d"})
        assert graph.dependencies_of("c") == frozenset({"a", "d"})
        assert graph.dependencies_of("a") == frozenset({"d"})

    def test_options_remote_and_explicit_dependencies(self):
        schema = _schema(
            [
                {
                    "id": "s",
                    "fields": [
                        {"id": "country"},
                        {"id": "region", "type": "select", "options": {"depends_on": ["country"]}},
                        {
                            "id": "username",
                            "validations": [{"type": "remote", "rule_id": "unique", "depends_on": ["tenant"]}],
                        },
                        {"id": "tenant"},
                        {"id": "summary", "dependent_field_ids": ["country", "tenant"]},
                    ],
                }
            ]
        )
        graph = build(schema)
        assert graph.dependencies_of("region") == frozenset({"country"})
        assert graph.dependencies_of("username") == frozenset({"tenant"})
        assert graph.dependencies_of("summary") == frozenset({"country", "tenant"})


class TestBuildErrors:
    def test_duplicate_field_id(self):
        schema = _schema([{"id": "s1", "fields": [{"id": "a"}]}, {"id": "s2", "fields": [{"id": "a"}]}])
        with pytest.raises(SchemaError) as exc_info:
            build(schema)
        assert exc_info.value.code == SchemaErrorCode.DUPLICATE_FIELD_ID

    def test_duplicate_section_id(self):
        schema = _schema([{"id": "s", "fields": [{"id": "a"}]}, {"id": "s", "fields": [{"id": "b"}]}])
        with pytest.raises(SchemaError) as exc_info:
            build(schema)
        assert exc_info.value.code == SchemaErrorCode.DUPLICATE_SECTION_ID

    def test_unknown_field_reference(self):
        schema = _schema(
            [{"id": "s", "fields": [{"id": "a", "visibility_conditions": {"op": "is_empty", "field": "ghost"}}]}]
        )
        with pytest.raises(SchemaError) as exc_info:
            build(schema)
        assert exc_info.value.code == SchemaErrorCode.UNKNOWN_FIELD_REFERENCE
        assert "ghost" in str(exc_info.value)

    def test_unknown_rule_target(self):
        schema = _schema(
            [{"id": "s", "fields": [{"id": "a"}]}],
            conditional_logic=[
                {
                    "id": "r1",
                    "target": "nowhere",
                    "condition": {"op": "is_empty", "field": "a"},
                    "action": {"type": "show"},
                }
            ],
        )
        with pytest.raises(SchemaError) as exc_info:
            build(schema)
        assert exc_info.value.code == SchemaErrorCode.UNKNOWN_RULE_TARGET
        assert exc_info.value.rule_id == "r1"


class TestAffectedBy:
    def test_transitive_closure_in_field_order(self, chained_schema):
        graph = build(chained_schema)
        assert graph.affected_by(["a"]) == ["a", "b", "c", "e"]

    def test_leaf_field_only_affects_itself(self, chained_schema):
        assert build(chained_schema).affected_by(["d"]) == ["d"]

    def test_unknown_ids_are_ignored(self, chained_schema):
        assert build(chained_schema).affected_by(["ghost"]) == []

    def test_cycle_terminates(self):
        schema = _schema(
            [
                {
                    "id": "s",
                    "fields": [
                        {"id": "a", "dependent_field_ids": ["b"]},
                        {"id": "b", "dependent_field_ids": ["a"]},
                    ],
                }
            ]
        )
        assert build(schema).affected_by(["a"]) == ["a", "b"]


class TestStaleness:
    def test_graph_is_current_for_its_schema(self, chained_schema):
        assert build(chained_schema).is_current_for(chained_schema)

    def test_graph_is_stale_for_changed_schema(self, chained_schema):
        graph = build(chained_schema)
        changed = chained_schema.model_copy(update={"version": "2.0.0"})
        assert not graph.is_current_for(changed)

    def test_to_dict_is_sorted(self, chained_schema):
        data = build(chained_schema).to_dict()
        assert data["dependents"]["a"] == ["b", "e"]
        assert list(data["depends_on"]) == ["a", "b", "c", "d", "e"]
