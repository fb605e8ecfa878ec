"""Rich console singleton and renderers for engine results."""

from typing import Any, Callable, Dict, Iterable, List

import typer
from rich.console import Console
from rich.table import Table

from form_engine.runtime.dependency_graph import DependencyGraph
from form_engine.schemas.results import ConditionalResult, ValidationResults

# Status/progress to stderr so it doesn't pollute piped JSON output
console = Console(stderr=True)

# Data output to stdout (pipeable to jq)
stdout_console = Console()


def print_ok(msg: str) -> None:
    """Print a success message to stderr."""
    console.print(f"[green]✓[/green] {msg}")


def print_err(msg: str) -> None:
    """Print an error message to stderr."""
    console.print(f"[red]✗[/red] {msg}")


def print_warn(msg: str) -> None:
    """Print a warning message to stderr."""
    console.print(f"[yellow]![/yellow] {msg}")


def emit(ctx: typer.Context, data: Any, render: Callable[[], None]) -> None:
    """Write ``data`` as JSON to stdout with --json, otherwise call ``render``."""
    if ctx.obj.get("json"):
        stdout_console.print_json(data=data)
    elif not ctx.obj.get("quiet"):
        render()


def _flag(value: bool) -> str:
    return "[green]yes[/green]" if value else "[red]no[/red]"


def render_validation(results: ValidationResults, *, show_passing: bool = False) -> None:
    table = Table(title="Validation", show_lines=False)
    table.add_column("field")
    table.add_column("errors")
    table.add_column("pending")
    for field_id in results.evaluated_fields:
        errors = results.field_errors.get(field_id, [])
        pending = results.pending.get(field_id, [])
        if not errors and not pending and not show_passing:
            continue
        table.add_row(field_id, "; ".join(errors) or "[dim]-[/dim]", ", ".join(pending) or "[dim]-[/dim]")
    if table.row_count:
        console.print(table)

    for message in results.global_errors:
        print_err(message)
    for message in results.warnings:
        print_warn(message)


def render_conditions(results: Dict[str, ConditionalResult]) -> None:
    table = Table(title="Conditional state", show_lines=False)
    for column in ("field", "visible", "section", "enabled", "value", "options", "error", "rules"):
        table.add_column(column)
    for field_id, result in results.items():
        table.add_row(
            field_id,
            _flag(result.is_visible),
            _flag(result.section_visible),
            _flag(result.is_enabled),
            repr(result.value_override) if result.has_value_override else "",
            ", ".join(str(o) for o in result.options_override) if result.options_override is not None else "",
            result.evaluation_error or result.error_override or "",
            ", ".join(result.applied_rules),
        )
    console.print(table)


def render_graph(graph: DependencyGraph, field_ids: Iterable[str]) -> None:
    table = Table(title="Dependency graph", show_lines=False)
    table.add_column("field")
    table.add_column("depends on")
    table.add_column("re-evaluates")
    for field_id in field_ids:
        table.add_row(
            field_id,
            ", ".join(sorted(graph.dependencies_of(field_id))) or "[dim]-[/dim]",
            ", ".join(sorted(graph.dependents_of(field_id))) or "[dim]-[/dim]",
        )
    console.print(table)


def render_scope(field_id: str, affected: List[str]) -> None:
    console.print(f"Changing [bold]{field_id}[/bold] re-evaluates {len(affected)} field(s):")
    for affected_id in affected:
        console.print(f"  {affected_id}")
