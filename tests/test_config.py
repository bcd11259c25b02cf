"""
Tests for configuration loading and validation.
"""

import copy

import pytest
from mixplan.config import Config, ConfigError


def _config_dict(**overrides):
    data = copy.deepcopy(Config.DEFAULT_CONFIG)
    for dotted, value in overrides.items():
        section, param = dotted.split("__")
        data[section][param] = value
    return data


class TestConfigValidation:
    """Test bounds and consistency checks."""

    def test_defaults_valid(self):
        config = Config.defaults()
        assert config.data["scoring"]["harmonic_weight"] == 0.35
        assert config.data["search"]["frontier_width"] == 512

    def test_defaults_not_shared(self):
        config = Config.defaults()
        config.data["scoring"]["harmonic_weight"] = 0.9
        assert Config.DEFAULT_CONFIG["scoring"]["harmonic_weight"] == 0.35

    def test_out_of_bounds(self):
        with pytest.raises(ConfigError, match="out of bounds"):
            Config(_config_dict(scoring__bpm_tolerance_percent=40.0))

    def test_not_a_number(self):
        with pytest.raises(ConfigError, match="not a number"):
            Config(_config_dict(planner__max_candidates="four"))

    def test_variety_penalty_bounds(self):
        assert Config.defaults().data["search"]["variety_type_penalty"] == 25.0
        assert Config.defaults().data["search"]["variety_strategy_penalty"] == 15.0
        with pytest.raises(ConfigError, match="out of bounds"):
            Config(_config_dict(search__variety_type_penalty=80.0))

    def test_all_zero_weights(self):
        with pytest.raises(ConfigError, match="weights"):
            Config(
                _config_dict(
                    scoring__harmonic_weight=0.0,
                    scoring__tempo_weight=0.0,
                    scoring__energy_weight=0.0,
                    scoring__structure_weight=0.0,
                )
            )

    def test_threshold_order(self):
        with pytest.raises(ConfigError, match="thresholds"):
            Config(_config_dict(scoring__crossfade_threshold=80.0))

    def test_missing_param_filled(self):
        data = _config_dict()
        del data["scoring"]["drop_penalty"]
        config = Config(data)
        assert config.data["scoring"]["drop_penalty"] == 1.0

    def test_missing_section_filled(self):
        data = _config_dict()
        del data["planner"]
        config = Config(data)
        assert config.data["planner"]["max_candidates"] == 4

    def test_repr(self):
        assert repr(Config.defaults()) == "Config(version=1.0)"


class TestConfigLoading:
    """Test reading TOML files."""

    def test_missing_file_uses_defaults(self, tmp_path):
        config = Config.load(str(tmp_path / "absent.toml"))
        assert config.data["search"]["max_expansions"] == 20000

    def test_load_toml(self, tmp_path):
        path = tmp_path / "mixplan.toml"
        path.write_text(
            'config_version = "2.0"\n'
            "[scoring]\n"
            "harmonic_weight = 0.5\n"
            "[search]\n"
            "frontier_width = 64\n"
        )
        config = Config.load(str(path))
        assert config.data["scoring"]["harmonic_weight"] == 0.5
        assert config.data["scoring"]["tempo_weight"] == 0.35
        assert config.data["search"]["frontier_width"] == 64
        assert repr(config) == "Config(version=2.0)"

    def test_env_path(self, tmp_path, monkeypatch):
        path = tmp_path / "env.toml"
        path.write_text("[search]\nmax_expansions = 500\n")
        monkeypatch.setenv("MIXPLAN_CONFIG_PATH", str(path))
        assert Config.load().data["search"]["max_expansions"] == 500

    def test_malformed_toml(self, tmp_path):
        path = tmp_path / "broken.toml"
        path.write_text("[scoring\nharmonic_weight = \n")
        with pytest.raises(ConfigError, match="Failed to load"):
            Config.load(str(path))

    def test_shipped_config_valid(self):
        from pathlib import Path

        shipped = Path(__file__).parent.parent / "configs" / "mixplan.toml"
        config = Config.load(str(shipped))
        assert config.data["scoring"] == Config.DEFAULT_CONFIG["scoring"]
        assert config.data["search"] == Config.DEFAULT_CONFIG["search"]
