"""Validate command: run the validation engine on a data snapshot."""

import asyncio
from pathlib import Path
from typing import Optional

import typer

from form_engine.cli._app import app
from form_engine.cli._common import init_command, load_data, load_handle, parse_trigger
from form_engine.cli._console import emit, print_err, print_ok, print_warn, render_validation
from form_engine.schemas.results import ValidationResults
from form_engine.schemas.rules import TriggerPolicy
from form_engine.session.handle import EngineHandle


async def _validate(
    handle: EngineHandle,
    data: dict,
    field_id: Optional[str],
    trigger: TriggerPolicy,
) -> ValidationResults:
    try:
        if field_id:
            return await handle.validate_field(field_id, data, trigger)
        return await handle.validate_all(data, trigger)
    finally:
        await handle.aclose()


@app.command("validate", help="Validate a data snapshot against a schema.")
def validate_cmd(
    ctx: typer.Context,
    schema: Path = typer.Argument(..., help="Schema file (JSON or YAML)"),
    data: Path = typer.Argument(..., help="Data snapshot file (JSON or YAML)"),
    field: Optional[str] = typer.Option(
        None, "--field", "-f", help="Validate only this field and its dependents"
    ),
    trigger: str = typer.Option("on_submit", "--trigger", "-t", help="on_change, on_blur or on_submit"),
):
    """Validate DATA against SCHEMA; exits 1 when the data is not valid."""
    config = init_command(ctx)

    try:
        trigger_policy = parse_trigger(trigger)
    except ValueError as e:
        print_err(str(e))
        raise SystemExit(1)

    handle = load_handle(schema, config)
    snapshot = load_data(data)

    if field and field not in handle.field_ids:
        print_err(f"Unknown field '{field}' in schema '{handle.schema.id}'")
        raise SystemExit(1)

    results = asyncio.run(_validate(handle, snapshot, field, trigger_policy))

    emit(ctx, results.model_dump(mode="json"), lambda: render_validation(results))

    if not ctx.obj["json"] and not ctx.obj["quiet"]:
        scope = f"{len(results.evaluated_fields)} field(s)"
        if results.is_valid:
            print_ok(f"Valid ({scope}, trigger {trigger_policy.value})")
        elif results.has_pending and not any(results.field_errors.values()) and not results.global_errors:
            print_warn(f"Pending remote checks ({scope})")
        else:
            print_err(f"Invalid ({scope}, trigger {trigger_policy.value})")

    if not results.is_valid:
        raise SystemExit(1)
