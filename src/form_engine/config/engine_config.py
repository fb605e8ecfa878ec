"""Engine configuration schema and loader.

Configuration is read from a YAML file (``form_engine.yaml`` in the working
directory, or the path in ``FORM_ENGINE_CONFIG``) and then overridden by
``FORM_ENGINE_<SETTING>`` environment variables. A ``.env`` file in the
working directory is loaded first when present.
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "FORM_ENGINE_"
DEFAULT_CONFIG_FILENAME = "form_engine.yaml"


class RemoteFailurePolicy(str, Enum):
    """What a remote rule failure (network, timeout, backend error) means."""

    BLOCK = "block"  # rule stays pending, submit is blocked
    ERROR = "error"  # failure message becomes a field error
    ALLOW = "allow"  # rule passes, failure recorded as a warning


class EngineConfig(BaseModel):
    """Tunable engine settings.

    Attributes:
        debounce_seconds: Delay before a burst of edits is evaluated.
        autosave_seconds: Delay before auto-save fires, independent of validation.
        max_expression_depth: Nesting cap for conditional expressions.
        remote_timeout_seconds: Upper bound for a single remote rule check.
        remote_failure_policy: Handling of remote rule failures.
        remote_endpoint: Base URL for the HTTP remote rule checker, if any.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    debounce_seconds: float = Field(0.3, ge=0)
    autosave_seconds: float = Field(2.0, ge=0)
    max_expression_depth: int = Field(64, ge=1)
    remote_timeout_seconds: float = Field(5.0, gt=0)
    remote_failure_policy: RemoteFailurePolicy = RemoteFailurePolicy.BLOCK
    remote_endpoint: Optional[str] = Field(
        default=None,
        description="Base URL of the remote validation service",
    )

    @field_validator("remote_endpoint")
    @classmethod
    def validate_endpoint(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the endpoint is an http(s) URL."""
        if v is None or not v.strip():
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"remote_endpoint must be an http(s) URL, got '{v}'")
        return v.rstrip("/")


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for name in EngineConfig.model_fields:
        env_value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if env_value is not None:
            overrides[name] = env_value
    return overrides


def _default_config_path() -> Path:
    return Path(os.environ.get(f"{ENV_PREFIX}CONFIG", DEFAULT_CONFIG_FILENAME))


def load_engine_config(config_path: Optional[Path] = None, *, use_env: bool = True) -> EngineConfig:
    """Load engine configuration from YAML and the environment.

    Args:
        config_path: Optional explicit path to the YAML file.
            If not provided, uses FORM_ENGINE_CONFIG or ./form_engine.yaml.
        use_env: Apply FORM_ENGINE_* environment overrides.

    Returns:
        EngineConfig (defaults when no file exists).

    Raises:
        ValueError: If the file or an override contains invalid configuration.
    """
    if use_env:
        load_dotenv(Path.cwd() / ".env", override=False)

    if config_path is None:
        config_path = _default_config_path()
    config_path = Path(config_path)

    data: Dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in engine config {config_path}: {e}")

        if loaded is None:
            logger.warning(f"Empty engine config at {config_path}")
        elif not isinstance(loaded, dict):
            raise ValueError(f"Engine config {config_path} must be a mapping")
        else:
            data.update(loaded)
    else:
        logger.debug(f"No engine config found at {config_path}, using defaults")

    if use_env:
        data.update(_env_overrides())

    try:
        config = EngineConfig.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid engine config ({config_path}): {e}")

    logger.debug(f"Loaded engine config: {config.model_dump(mode='json')}")
    return config


# Cached engine config (loaded once per process)
_cached_config: Optional[EngineConfig] = None


def get_engine_config(force_reload: bool = False) -> EngineConfig:
    """Get the current engine configuration (cached).

    Args:
        force_reload: If True, reload from disk even if cached.
    """
    global _cached_config

    if force_reload or _cached_config is None:
        _cached_config = load_engine_config()

    return _cached_config


def reset_engine_config_cache() -> None:
    """Reset the engine config cache."""
    global _cached_config
    _cached_config = None
