"""Graph command: inspect the field dependency graph of a schema."""

from pathlib import Path
from typing import Optional

import typer

from form_engine.cli._app import app
from form_engine.cli._common import init_command, load_handle
from form_engine.cli._console import emit, print_err, render_graph, render_scope


@app.command("graph", help="Show the field dependency graph of a schema.")
def graph_cmd(
    ctx: typer.Context,
    schema: Path = typer.Argument(..., help="Schema file (JSON or YAML)"),
    field: Optional[str] = typer.Option(
        None, "--field", "-f", help="Show the fields re-evaluated when this field changes"
    ),
):
    """Print dependencies per field, or the re-evaluation scope of one field."""
    config = init_command(ctx)
    handle = load_handle(schema, config)
    graph = handle.graph

    if field is None:
        emit(ctx, graph.to_dict(), lambda: render_graph(graph, handle.field_ids))
        return

    if field not in handle.field_ids:
        print_err(f"Unknown field '{field}' in schema '{handle.schema.id}'")
        raise SystemExit(1)

    affected = graph.affected_by([field])
    payload = {
        "field": field,
        "depends_on": sorted(graph.dependencies_of(field)),
        "affected": affected,
    }
    emit(ctx, payload, lambda: render_scope(field, affected))
