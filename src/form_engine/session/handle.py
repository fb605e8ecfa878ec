"""Engine handle and inbound boundary functions.

An EngineHandle pairs an immutable schema with its cached dependency graph
and the engines built on them. It holds no per-form data, so one handle can
back any number of FormControllers (one per open form instance).
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from form_engine.config.engine_config import EngineConfig, get_engine_config
from form_engine.runtime.conditional_engine import ConditionalEngine, apply_overrides
from form_engine.runtime.custom_validators import ValidatorRegistry, default_registry
from form_engine.runtime.dependency_graph import DependencyGraph, build
from form_engine.runtime.expression_evaluator import ExpressionEvaluator
from form_engine.runtime.remote import HttpRemoteRuleChecker, RemoteRuleChecker
from form_engine.runtime.schema_loader import SchemaSource
from form_engine.runtime.schema_loader import load_schema as load_schema_model
from form_engine.runtime.validation_engine import ValidationEngine
from form_engine.schemas.form_schema import ConfigurationSchema
from form_engine.schemas.results import ConditionalResult, ValidationResults
from form_engine.schemas.rules import TriggerPolicy
from form_engine.session.controller import FormController
from form_engine.session.scheduler import ScheduledTask

logger = logging.getLogger(__name__)


class EngineHandle:
    """Immutable schema + dependency graph + engines for one schema version."""

    def __init__(
        self,
        schema: ConfigurationSchema,
        graph: Optional[DependencyGraph] = None,
        config: Optional[EngineConfig] = None,
        registry: Optional[ValidatorRegistry] = None,
        remote_checker: Optional[RemoteRuleChecker] = None,
    ):
        """
        Initialize the handle.

        Args:
            schema: Loaded schema (see load_schema for the checked path)
            graph: Dependency graph; without a current graph every scoped
                call falls back to full-schema evaluation
            config: Engine settings (defaults to the cached engine config)
            registry: Custom validator registry
            remote_checker: Remote rule capability; when omitted and the
                config names a remote endpoint, an HTTP checker is created
        """
        self.schema = schema
        self.graph = graph
        self.config = config or get_engine_config()
        self.registry = registry or default_registry

        self._owns_checker = False
        if remote_checker is None and self.config.remote_endpoint:
            remote_checker = HttpRemoteRuleChecker(
                self.config.remote_endpoint, timeout=self.config.remote_timeout_seconds
            )
            self._owns_checker = True
        self.remote_checker = remote_checker

        self.evaluator = ExpressionEvaluator(max_depth=self.config.max_expression_depth)
        self.conditional_engine = ConditionalEngine(schema, self.evaluator, graph)
        self.validation_engine = ValidationEngine(
            schema,
            graph=graph,
            evaluator=self.evaluator,
            conditional_engine=self.conditional_engine,
            registry=self.registry,
            remote_checker=remote_checker,
            config=self.config,
        )
        if graph is not None and not self.validation_engine.graph_is_current:
            logger.warning(f"Dependency graph is stale for schema '{schema.id}', scoped calls will evaluate all fields")
        self._field_ids: List[str] = schema.field_ids()

    @classmethod
    def create(
        cls,
        source: SchemaSource,
        config: Optional[EngineConfig] = None,
        registry: Optional[ValidatorRegistry] = None,
        remote_checker: Optional[RemoteRuleChecker] = None,
    ) -> "EngineHandle":
        """Load, check and graph a schema. Raises SchemaError."""
        registry = registry or default_registry
        schema = load_schema_model(source, registry)
        graph = build(schema)
        return cls(schema, graph, config=config, registry=registry, remote_checker=remote_checker)

    @property
    def field_ids(self) -> List[str]:
        return list(self._field_ids)

    @property
    def graph_is_current(self) -> bool:
        return self.validation_engine.graph_is_current

    def rebuild(self, source: SchemaSource) -> "EngineHandle":
        """New handle for a new schema version, sharing config, registry and checker."""
        checker = None if self._owns_checker else self.remote_checker
        return EngineHandle.create(source, config=self.config, registry=self.registry, remote_checker=checker)

    def get_conditional_state(self, data: Mapping[str, Any]) -> Dict[str, ConditionalResult]:
        return self.conditional_engine.evaluate(data)

    def effective_data(
        self,
        data: Mapping[str, Any],
        conditional: Optional[Dict[str, ConditionalResult]] = None,
    ) -> Dict[str, Any]:
        """Copy of ``data`` with conditional value overrides applied."""
        if conditional is None:
            conditional = self.get_conditional_state(data)
        return apply_overrides(data, conditional)

    async def validate_all(
        self,
        data: Mapping[str, Any],
        trigger: TriggerPolicy = TriggerPolicy.ON_SUBMIT,
    ) -> ValidationResults:
        return await self.validation_engine.validate_all(data, trigger)

    async def validate_field(
        self,
        field_id: str,
        data: Mapping[str, Any],
        trigger: TriggerPolicy = TriggerPolicy.ON_BLUR,
    ) -> ValidationResults:
        return await self.validation_engine.validate_field(field_id, data, trigger)

    def controller(self, **kwargs: Any) -> FormController:
        """New FormController (one per form instance) backed by this handle."""
        return FormController(self, **kwargs)

    async def aclose(self) -> None:
        if self._owns_checker and self.remote_checker is not None:
            await self.remote_checker.aclose()


def load_schema(
    source: SchemaSource,
    config: Optional[EngineConfig] = None,
    remote_checker: Optional[RemoteRuleChecker] = None,
    registry: Optional[ValidatorRegistry] = None,
) -> EngineHandle:
    """
    Load a schema and build its engine handle.

    Raises:
        SchemaError: If the schema is malformed (duplicate ids, dangling
            references, unknown validators, invalid structure)
    """
    return EngineHandle.create(source, config=config, registry=registry, remote_checker=remote_checker)


def get_conditional_state(handle: EngineHandle, data: Mapping[str, Any]) -> Dict[str, ConditionalResult]:
    """Per-field conditional state for ``data``."""
    return handle.get_conditional_state(data)


async def on_field_blur(handle: EngineHandle, field_id: str, data: Mapping[str, Any]) -> ValidationResults:
    """Scoped validation for ``field_id`` and its dependents, blur trigger."""
    return await handle.validate_field(field_id, data, TriggerPolicy.ON_BLUR)


async def validate_for_submit(handle: EngineHandle, data: Mapping[str, Any]) -> ValidationResults:
    """Full validation with every rule enabled."""
    return await handle.validate_all(data, TriggerPolicy.ON_SUBMIT)


def on_data_change(controller: FormController, data: Mapping[str, Any]) -> ScheduledTask:
    """Schedule debounced evaluation for a form instance."""
    return controller.on_data_change(data)
