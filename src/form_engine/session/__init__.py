"""Session layer: engine handle, form controller and scheduling."""

from form_engine.session.controller import FormController, FormState
from form_engine.session.handle import (
    EngineHandle,
    get_conditional_state,
    load_schema,
    on_data_change,
    on_field_blur,
    validate_for_submit,
)
from form_engine.session.scheduler import Debouncer, RequestTokens, ScheduledTask

__all__ = [
    "FormController",
    "FormState",
    "EngineHandle",
    "get_conditional_state",
    "load_schema",
    "on_data_change",
    "on_field_blur",
    "validate_for_submit",
    "Debouncer",
    "RequestTokens",
    "ScheduledTask",
]
