"""Tests for engine configuration loading."""

import pytest
import yaml

from form_engine.config.engine_config import (
    EngineConfig,
    RemoteFailurePolicy,
    get_engine_config,
    load_engine_config,
    reset_engine_config_cache,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from the caller's environment and working directory."""
    for name in list(EngineConfig.model_fields) + ["config"]:
        monkeypatch.delenv(f"FORM_ENGINE_{name.upper()}", raising=False)
    monkeypatch.chdir(tmp_path)
    reset_engine_config_cache()
    yield
    reset_engine_config_cache()


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()
        assert config.debounce_seconds == 0.3
        assert config.max_expression_depth == 64
        assert config.remote_failure_policy == RemoteFailurePolicy.BLOCK
        assert config.remote_endpoint is None

    def test_endpoint_trailing_slash_stripped(self):
        assert EngineConfig(remote_endpoint="https://rules.local/").remote_endpoint == "https://rules.local"

    def test_endpoint_must_be_http(self):
        with pytest.raises(ValueError):
            EngineConfig(remote_endpoint="ftp://rules.local")

    def test_negative_debounce_rejected(self):
        with pytest.raises(ValueError):
            EngineConfig(debounce_seconds=-1)


class TestLoadEngineConfig:
    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_engine_config(tmp_path / "absent.yaml") == EngineConfig()

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(yaml.safe_dump({"debounce_seconds": 0.1, "remote_failure_policy": "error"}))
        config = load_engine_config(path)
        assert config.debounce_seconds == 0.1
        assert config.remote_failure_policy == RemoteFailurePolicy.ERROR

    def test_default_path_in_working_directory(self, tmp_path):
        (tmp_path / "form_engine.yaml").write_text("max_expression_depth: 8\n")
        assert load_engine_config().max_expression_depth == 8

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "engine.yaml"
        path.write_text("debounce_seconds: 0.1\n")
        monkeypatch.setenv("FORM_ENGINE_DEBOUNCE_SECONDS", "0.5")
        assert load_engine_config(path).debounce_seconds == 0.5
        assert load_engine_config(path, use_env=False).debounce_seconds == 0.1

    def test_dotenv_file_is_read(self, tmp_path, monkeypatch):
        # Register the variable with monkeypatch so the value loaded from .env is removed afterwards
        monkeypatch.setenv("FORM_ENGINE_REMOTE_TIMEOUT_SECONDS", "0")
        monkeypatch.delenv("FORM_ENGINE_REMOTE_TIMEOUT_SECONDS")
        (tmp_path / ".env").write_text("FORM_ENGINE_REMOTE_TIMEOUT_SECONDS=1.5\n")
        config = load_engine_config(tmp_path / "absent.yaml")
        assert config.remote_timeout_seconds == 1.5

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("debounce_seconds: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_engine_config(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="must be a mapping"):
            load_engine_config(path)

    def test_unknown_key_rejected(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("debounce: 1\n")
        with pytest.raises(ValueError, match="Invalid engine config"):
            load_engine_config(path)


class TestCachedConfig:
    def test_cached_until_reset(self, tmp_path):
        first = get_engine_config()
        (tmp_path / "form_engine.yaml").write_text("max_expression_depth: 4\n")
        assert get_engine_config() is first
        assert get_engine_config(force_reload=True).max_expression_depth == 4
