"""
Utility module for loading and checking form schemas.

Schemas are plain structured data (JSON or YAML documents, or dicts already
in memory). Loading parses them into frozen ConfigurationSchema models and
runs the structural checks that do not need the dependency graph.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from form_engine.exceptions import SchemaError, SchemaErrorCode
from form_engine.runtime.conditional_engine import SECTION_ACTIONS
from form_engine.runtime.custom_validators import ValidatorRegistry, default_registry
from form_engine.runtime.dependency_graph import check_unique_ids
from form_engine.schemas.form_schema import ConfigurationSchema
from form_engine.schemas.rules import CustomRule

logger = logging.getLogger(__name__)

SchemaSource = Union[ConfigurationSchema, Mapping[str, Any], str, Path]

YAML_SUFFIXES = {".yaml", ".yml"}


def load_schema_file(file_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a schema document from a JSON or YAML file.

    Args:
        file_path: Path to the schema file (.json, .yaml or .yml)

    Returns:
        Dictionary containing the schema structure

    Raises:
        SchemaError: LOAD_FAILED if the file cannot be read or parsed
    """
    path = Path(file_path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in YAML_SUFFIXES:
                document = yaml.safe_load(f)
            else:
                document = json.load(f)
    except FileNotFoundError as e:
        raise SchemaError(SchemaErrorCode.LOAD_FAILED, f"Schema file not found: {path}", original_error=e)
    except json.JSONDecodeError as e:
        raise SchemaError(SchemaErrorCode.LOAD_FAILED, f"Invalid JSON in schema file: {e}", original_error=e)
    except yaml.YAMLError as e:
        raise SchemaError(SchemaErrorCode.LOAD_FAILED, f"Invalid YAML in schema file: {e}", original_error=e)

    if not isinstance(document, dict):
        raise SchemaError(SchemaErrorCode.LOAD_FAILED, f"Schema file {path} must contain an object")

    return document


def parse_schema(data: Mapping[str, Any]) -> ConfigurationSchema:
    """
    Parse a schema document into a ConfigurationSchema.

    Raises:
        SchemaError: INVALID_SCHEMA wrapping the pydantic validation error
    """
    try:
        return ConfigurationSchema.model_validate(data)
    except ValidationError as e:
        raise SchemaError(
            SchemaErrorCode.INVALID_SCHEMA,
            f"Schema does not match the expected structure: {e}",
            original_error=e,
        )


def check_schema(schema: ConfigurationSchema, registry: Optional[ValidatorRegistry] = None) -> None:
    """
    Structural checks beyond field-level typing.

    - Section and field ids are unique
    - Section-targeted conditional rules only show/hide/enable/disable
    - Custom rules name a registered validator

    Dangling field references are reported by the dependency graph builder.

    Raises:
        SchemaError: On the first problem found
    """
    registry = registry or default_registry
    check_unique_ids(schema)

    field_ids = set(schema.field_ids())
    for rule in schema.conditional_logic:
        if rule.target in field_ids:
            continue
        if schema.get_section(rule.target) is None:
            raise SchemaError(
                SchemaErrorCode.UNKNOWN_RULE_TARGET,
                f"Conditional rule '{rule.id}' targets unknown field or section '{rule.target}'",
                rule_id=rule.id,
            )
        if not isinstance(rule.action, SECTION_ACTIONS):
            raise SchemaError(
                SchemaErrorCode.INVALID_SCHEMA,
                f"Conditional rule '{rule.id}' applies '{rule.action.type}' to section "
                f"'{rule.target}'; sections support show, hide, enable and disable",
                rule_id=rule.id,
            )

    for _, form_field in schema.iter_fields():
        for rule in form_field.validations:
            if isinstance(rule, CustomRule) and rule.function_name not in registry:
                raise SchemaError(
                    SchemaErrorCode.UNKNOWN_VALIDATOR,
                    f"Field '{form_field.id}' uses unknown validation function '{rule.function_name}'",
                    field_id=form_field.id,
                )


def load_schema(source: SchemaSource, registry: Optional[ValidatorRegistry] = None) -> ConfigurationSchema:
    """
    Load and check a schema from a model, a mapping, JSON text or a file path.

    Returns:
        Checked, immutable ConfigurationSchema

    Raises:
        SchemaError: If the schema cannot be loaded or is structurally invalid
    """
    if isinstance(source, ConfigurationSchema):
        schema = source
    elif isinstance(source, Mapping):
        schema = parse_schema(source)
    elif isinstance(source, str) and source.lstrip().startswith("{"):
        try:
            schema = parse_schema(json.loads(source))
        except json.JSONDecodeError as e:
            raise SchemaError(SchemaErrorCode.LOAD_FAILED, f"Invalid JSON schema text: {e}", original_error=e)
    elif isinstance(source, (str, Path)):
        schema = parse_schema(load_schema_file(source))
    else:
        raise SchemaError(
            SchemaErrorCode.LOAD_FAILED,
            f"Unsupported schema source type: {type(source).__name__}",
        )

    check_schema(schema, registry)
    field_count = len(schema.field_ids())
    logger.info(f"Loaded schema '{schema.id}' v{schema.version}: {len(schema.sections)} sections, {field_count} fields")
    return schema
