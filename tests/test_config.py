"""Tests for config/config_loader.py."""

from pathlib import Path

import pytest
import yaml

from config.config_loader import (
    DEFAULT_TIERS,
    DEFAULT_TIMEOUTS,
    UNLIMITED,
    AppConfig,
    ModelConfig,
    load_config,
)


@pytest.fixture
def minimal_settings(tmp_path: Path) -> Path:
    """Write a minimal valid settings.yaml to a temp path."""
    settings = {
        "defaults": {
            "roster": ["claude", "openai"],
            "fallback_model": "openai",
            "financial_threshold": 25000,
            "output_dir": "./output",
            "max_response_length": 2000,
        },
        "timeouts": {
            "per_model_timeout_ms": 10000,
            "total_council_timeout_ms": 20000,
        },
        "tiers": {
            "team": {"council_per_day": 50, "auto_trigger_enabled": True, "models_available": 3},
            "enterprise": {"council_per_day": "unlimited", "auto_trigger_enabled": True, "models_available": 5},
        },
        "models": {
            "claude": {
                "sdk": "anthropic",
                "model": "claude-opus-4-6",
                "display_name": "Claude",
                "api_key_env": "TEST_CLAUDE_KEY",
                "max_tokens": 8192,
                "cost_input_per_1k": 0.015,
                "cost_output_per_1k": 0.075,
            },
            "deepseek": {
                "sdk": "openai",
                "model": "deepseek-chat",
                "api_key_env": "TEST_DEEPSEEK_KEY",
                "max_tokens": 4096,
                "base_url": "https://api.deepseek.com",
            },
        },
    }
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    return path


def test_load_config_returns_app_config(minimal_settings):
    config = load_config(minimal_settings)
    assert isinstance(config, AppConfig)


def test_load_config_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.defaults.roster == ["claude", "openai"]
    assert config.defaults.fallback_model == "openai"
    assert config.defaults.financial_threshold == 25_000
    assert config.defaults.disagreement_threshold == 15
    assert config.defaults.max_response_length == 2000
    assert isinstance(config.defaults.output_dir, Path)


def test_load_config_partial_timeouts_keep_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.timeouts.per_model_timeout_ms == 10_000
    assert config.timeouts.total_council_timeout_ms == 20_000
    assert config.timeouts.min_models_for_synthesis == DEFAULT_TIMEOUTS.min_models_for_synthesis
    assert config.timeouts.retry_attempts == DEFAULT_TIMEOUTS.retry_attempts


def test_load_config_tiers_merge_with_defaults(minimal_settings):
    config = load_config(minimal_settings)
    assert config.tiers["free"] == DEFAULT_TIERS["free"]
    assert config.tiers["team"].council_per_day == 50
    assert config.tiers["enterprise"].council_per_day == UNLIMITED
    assert config.tiers["enterprise"].models_available == 5


def test_load_config_models(minimal_settings):
    config = load_config(minimal_settings)
    claude = config.models["claude"]
    assert isinstance(claude, ModelConfig)
    assert claude.model == "claude-opus-4-6"
    assert claude.display_name == "Claude"
    assert claude.cost_output_per_1k == 0.075


def test_model_config_display_name_defaults_to_key(minimal_settings):
    config = load_config(minimal_settings)
    assert config.models["deepseek"].display_name == "deepseek"
    assert config.models["deepseek"].base_url == "https://api.deepseek.com"
    assert config.models["claude"].base_url is None


def test_load_config_available_providers_with_key(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "sk-test-key")
    monkeypatch.delenv("TEST_DEEPSEEK_KEY", raising=False)
    config = load_config(minimal_settings)
    assert config.available_providers == {"claude"}


def test_load_config_blank_key_is_unavailable(minimal_settings, monkeypatch):
    monkeypatch.setenv("TEST_CLAUDE_KEY", "   ")
    config = load_config(minimal_settings)
    assert "claude" not in config.available_providers


def test_load_config_missing_file():
    with pytest.raises(FileNotFoundError):
        load_config(Path("/nonexistent/settings.yaml"))


def test_shipped_settings_load():
    config = load_config()
    assert config.defaults.roster == ["claude", "openai", "gemini"]
    assert set(config.models) == {"claude", "openai", "gemini"}
    assert config.tiers["pro"].council_per_day == 25
    assert config.timeouts.total_council_timeout_ms == 45_000
