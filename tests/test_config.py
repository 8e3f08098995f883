"""Tests for config loading."""

from __future__ import annotations

import os

import pytest

from vision_orchestrator.config import (
    OrchestratorConfig,
    Preferences,
    ProviderMode,
    load_config,
    save_config,
)
from vision_orchestrator.exceptions import ConfigError


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path, monkeypatch):
        for key in list(os.environ):
            if key.startswith("VISION_ORCHESTRATOR_"):
                monkeypatch.delenv(key)
        config = load_config(tmp_path / "absent.yaml")
        assert config.preferences.mode == ProviderMode.FREE_ONLY
        assert config.preferences.max_monthly_budget == 0
        assert config.analysis.max_retries == 3

    def test_env_interpolation(self, tmp_path, monkeypatch):
        monkeypatch.setenv("VO_TEST_TOKEN", "tok123")
        path = tmp_path / "config.yaml"
        path.write_text("api:\n  auth_token: ${VO_TEST_TOKEN}\n")
        assert load_config(path).api.auth_token == "tok123"

    def test_env_fallback_without_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("VISION_ORCHESTRATOR_MODE", "hybrid")
        monkeypatch.setenv("VISION_ORCHESTRATOR_MONTHLY_BUDGET", "7.5")
        config = load_config(tmp_path / "absent.yaml")
        assert config.preferences.mode == ProviderMode.HYBRID
        assert config.preferences.max_monthly_budget == 7.5

    def test_bad_env_value(self, tmp_path, monkeypatch):
        monkeypatch.setenv("VISION_ORCHESTRATOR_MODE", "lavish")
        with pytest.raises(ConfigError):
            load_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("preferences: [unclosed")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("preferences:\n  max_monthly_budget: -3\n")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == OrchestratorConfig()

    def test_round_trip(self, tmp_path):
        config = OrchestratorConfig(
            preferences=Preferences(mode="premium_preferred", max_monthly_budget=20)
        )
        path = save_config(config, tmp_path / "out" / "config.yaml")
        assert load_config(path).preferences.mode == ProviderMode.PREMIUM_PREFERRED


class TestPreferences:
    def test_thresholds_are_bounded(self):
        with pytest.raises(ValueError):
            Preferences(quality_threshold=11)
        with pytest.raises(ValueError):
            Preferences(speed_threshold_ms=0)

    def test_default_region_is_global(self):
        assert Preferences().preferred_regions == ["global"]
