"""Shared helpers for CLI commands."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml
from rich.logging import RichHandler

from form_engine.cli._console import console, print_err
from form_engine.config.engine_config import EngineConfig, load_engine_config
from form_engine.exceptions import SchemaError
from form_engine.schemas.rules import TriggerPolicy
from form_engine.session.handle import EngineHandle


logger = logging.getLogger(__name__)


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging with Rich handler."""
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Suppress noisy third-party loggers
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def init_command(ctx: typer.Context) -> EngineConfig:
    """Configure logging and load engine config for a command. Exits 1 on bad config."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    try:
        return load_engine_config(ctx.obj.get("config"))
    except ValueError as e:
        print_err(str(e))
        raise SystemExit(1)


def load_handle(schema_path: Path, config: Optional[EngineConfig] = None) -> EngineHandle:
    """Load a schema file into an engine handle. Exits 1 on SchemaError."""
    try:
        return EngineHandle.create(schema_path, config=config)
    except SchemaError as e:
        print_err(f"Invalid schema {schema_path}: {e}")
        raise SystemExit(1)


def load_data(data_path: Path) -> Dict[str, Any]:
    """Read a JSON or YAML data snapshot (an object of field id -> value). Exits 1 on failure."""
    try:
        with open(data_path, "r", encoding="utf-8") as f:
            if data_path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except FileNotFoundError:
        print_err(f"Data file not found: {data_path}")
        raise SystemExit(1)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        print_err(f"Could not parse data file {data_path}: {e}")
        raise SystemExit(1)

    if data is None:
        return {}
    if not isinstance(data, dict):
        print_err(f"Data file {data_path} must contain an object of field values")
        raise SystemExit(1)
    return data


def parse_trigger(trigger: str) -> TriggerPolicy:
    """Parse a trigger policy name (on_change, on_blur, on_submit).

    Raises:
        ValueError: If the name is not a known trigger policy
    """
    normalized = trigger.strip().lower().replace("-", "_")
    valid = {t.value for t in TriggerPolicy}
    if normalized not in valid:
        raise ValueError(f"Invalid trigger '{trigger}'. Valid triggers: {', '.join(sorted(valid))}")
    return TriggerPolicy(normalized)
