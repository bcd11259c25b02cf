"""
Configuration management for MixPlan.

Loads and validates TOML config against strict bounds.
All tunable weights and thresholds are bounded and validated at startup.
"""

import copy
import os
from pathlib import Path
from typing import Dict, Any, Optional
import toml
import logging

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when config validation fails."""
    pass


class Config:
    """Configuration loader and validator."""

    PARAM_BOUNDS = {
        "planner": {
            "snap_tolerance_beats": (0.25, 4.0),
            "vocal_window_ms": (1000, 16000),
            "max_candidates": (1, 16),
            "exit_fallback_ratio": (0.5, 1.0),
            "entry_fallback_ratio": (0.0, 0.5),
        },
        "scoring": {
            "harmonic_weight": (0.0, 1.0),
            "tempo_weight": (0.0, 1.0),
            "energy_weight": (0.0, 1.0),
            "structure_weight": (0.0, 1.0),
            "bpm_tolerance_percent": (1.0, 15.0),
            "min_viable_score": (0.0, 100.0),
            "crossfade_threshold": (0.0, 100.0),
            "blend_threshold": (0.0, 100.0),
            "rise_penalty": (0.0, 2.0),
            "drop_penalty": (0.0, 2.0),
        },
        "search": {
            "frontier_width": (0, 100000),
            "max_expansions": (100, 1000000),
            "variety_type_penalty": (0.0, 50.0),
            "variety_strategy_penalty": (0.0, 50.0),
        },
    }

    DEFAULT_CONFIG = {
        "config_version": "1.0",
        "planner": {
            "snap_tolerance_beats": 1.0,
            "vocal_window_ms": 4000,
            "max_candidates": 4,
            "exit_fallback_ratio": 0.85,
            "entry_fallback_ratio": 0.05,
        },
        "scoring": {
            "harmonic_weight": 0.35,
            "tempo_weight": 0.35,
            "energy_weight": 0.15,
            "structure_weight": 0.15,
            "bpm_tolerance_percent": 6.0,
            "min_viable_score": 35.0,
            "crossfade_threshold": 55.0,
            "blend_threshold": 75.0,
            "rise_penalty": 0.6,
            "drop_penalty": 1.0,
        },
        "search": {
            "frontier_width": 512,
            "max_expansions": 20000,
            "variety_type_penalty": 25.0,
            "variety_strategy_penalty": 15.0,
        },
    }

    def __init__(self, config_dict: Dict[str, Any]):
        """Initialize config from dictionary."""
        self.data = config_dict
        self._validate()

    @classmethod
    def defaults(cls) -> "Config":
        """Config built purely from DEFAULT_CONFIG."""
        return cls(copy.deepcopy(cls.DEFAULT_CONFIG))

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """
        Load config from TOML file.

        Args:
            config_path: Path to mixplan.toml. If None, uses MIXPLAN_CONFIG_PATH env var
                        or defaults to configs/mixplan.toml.

        Returns:
            Config instance.

        Raises:
            ConfigError: If config is invalid or unreadable.
        """
        if config_path is None:
            config_path = os.getenv("MIXPLAN_CONFIG_PATH", "configs/mixplan.toml")

        config_path = Path(config_path)

        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}. Using defaults.")
            return cls.defaults()

        try:
            config_dict = toml.load(config_path)
        except (toml.TomlDecodeError, OSError) as e:
            raise ConfigError(f"Failed to load config from {config_path}: {e}")

        logger.info(f"Loaded config from {config_path}")
        return cls(config_dict)

    def _validate(self) -> None:
        """
        Validate all config parameters against PARAM_BOUNDS.

        Raises:
            ConfigError: If any parameter is out of bounds or the scoring weights are all zero.
        """
        for section, params in self.PARAM_BOUNDS.items():
            if section not in self.data:
                logger.warning(f"Missing config section: {section}. Using defaults.")
                self.data[section] = copy.deepcopy(self.DEFAULT_CONFIG.get(section, {}))
                continue

            section_data = self.data[section]

            for param, bounds in params.items():
                if param not in section_data:
                    default_val = self.DEFAULT_CONFIG.get(section, {}).get(param)
                    if default_val is not None:
                        logger.warning(f"Missing param {section}.{param}. Using default: {default_val}")
                        section_data[param] = default_val
                    continue

                value = section_data[param]

                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ConfigError(f"Parameter {section}.{param}={value!r} is not a number")

                min_val, max_val = bounds
                if not (min_val <= value <= max_val):
                    raise ConfigError(
                        f"Parameter {section}.{param}={value} out of bounds "
                        f"[{min_val}, {max_val}]"
                    )

        scoring = self.data["scoring"]
        weight_sum = sum(
            scoring[name]
            for name in ("harmonic_weight", "tempo_weight", "energy_weight", "structure_weight")
        )
        if weight_sum <= 0:
            raise ConfigError("Scoring weights must not all be zero")

        if not (
            scoring["min_viable_score"]
            <= scoring["crossfade_threshold"]
            <= scoring["blend_threshold"]
        ):
            raise ConfigError(
                "Scoring thresholds must satisfy "
                "min_viable_score <= crossfade_threshold <= blend_threshold"
            )

        logger.info("✅ Config validation passed")

    def __repr__(self) -> str:
        version = self.data.get('config_version', 'unknown')
        return f"Config(version={version})"
