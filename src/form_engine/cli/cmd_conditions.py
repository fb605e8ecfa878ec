"""Conditions command: evaluate conditional logic for a data snapshot."""

from pathlib import Path

import typer

from form_engine.cli._app import app
from form_engine.cli._common import init_command, load_data, load_handle
from form_engine.cli._console import emit, render_conditions


@app.command("conditions", help="Evaluate visibility, enablement and overrides per field.")
def conditions_cmd(
    ctx: typer.Context,
    schema: Path = typer.Argument(..., help="Schema file (JSON or YAML)"),
    data: Path = typer.Argument(..., help="Data snapshot file (JSON or YAML)"),
):
    """Print the conditional state of every field for DATA."""
    config = init_command(ctx)
    handle = load_handle(schema, config)
    snapshot = load_data(data)

    state = handle.get_conditional_state(snapshot)
    payload = {
        field_id: {**result.model_dump(mode="json"), "is_rendered": result.is_rendered}
        for field_id, result in state.items()
    }
    emit(ctx, payload, lambda: render_conditions(state))
