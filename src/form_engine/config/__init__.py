"""Engine configuration management."""

from form_engine.config.engine_config import (
    EngineConfig,
    RemoteFailurePolicy,
    get_engine_config,
    load_engine_config,
    reset_engine_config_cache,
)

__all__ = [
    "EngineConfig",
    "RemoteFailurePolicy",
    "load_engine_config",
    "get_engine_config",
    "reset_engine_config_cache",
]
