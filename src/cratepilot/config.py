"""
Configuration management for CratePilot.

Loads and validates TOML config against strict bounds.
All tunable parameters are bounded and validated at startup.
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
        "planning": {
            "default_target_duration_seconds": (600, 14400),
            "validation_tolerance_seconds": (0, 1800),
            "default_tempo_min": (40, 220),
            "default_tempo_max": (40, 220),
        },
        "llm": {
            "model": None,  # String type
            "temperature": (0.0, 2.0),
            "max_tracks_for_llm": (10, 1000),
            "max_replacement_tracks": (10, 500),
        },
        "revision": {
            "min_instruction_length": (1, 50),
            "max_instruction_length": (50, 5000),
            "duration_warning_seconds": (60, 3600),
        },
        "fallback": {
            "derive_intent": None,
            "candidate_pool": None,
            "sequence": None,
            "explain": None,
            "revise": None,
        },
    }

    # Phases without a deterministic equivalent can only fail.
    POLICY_VALUES = ("fallback", "fail")
    FAIL_ONLY_PHASES = ("revise",)

    DEFAULT_CONFIG = {
        "config_version": "1.0",
        "planning": {
            "default_target_duration_seconds": 3600,
            "validation_tolerance_seconds": 300,
            "default_tempo_min": 100,
            "default_tempo_max": 140,
        },
        "llm": {
            "model": "gemini-2.5-flash-lite",
            "temperature": 0.7,
            "max_tracks_for_llm": 200,
            "max_replacement_tracks": 100,
        },
        "revision": {
            "min_instruction_length": 5,
            "max_instruction_length": 500,
            "duration_warning_seconds": 600,
        },
        "fallback": {
            "derive_intent": "fallback",
            "candidate_pool": "fallback",
            "sequence": "fallback",
            "explain": "fallback",
            "revise": "fail",
        },
    }

    def __init__(self, config_dict: Dict[str, Any]):
        """Initialize config from dictionary."""
        self.data = config_dict
        self._validate()

    @classmethod
    def default(cls) -> "Config":
        """Config built entirely from DEFAULT_CONFIG."""
        return cls(copy.deepcopy(cls.DEFAULT_CONFIG))

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """
        Load config from TOML file.

        Args:
            config_path: Path to cratepilot.toml. If None, uses CRATEPILOT_CONFIG_PATH
                        env var or defaults to configs/cratepilot.toml.

        Returns:
            Config instance.

        Raises:
            ConfigError: If config is invalid or unreadable.
        """
        if config_path is None:
            config_path = os.getenv("CRATEPILOT_CONFIG_PATH", "configs/cratepilot.toml")

        config_path = Path(config_path)

        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}. Using defaults.")
            return cls.default()

        try:
            config_dict = toml.load(config_path)
        except (toml.TomlDecodeError, OSError) as e:
            raise ConfigError(f"Failed to load config from {config_path}: {e}") from e

        logger.info(f"Loaded config from {config_path}")
        return cls(config_dict)

    def _validate(self) -> None:
        """
        Validate all config parameters against bounds.

        Raises:
            ConfigError: If any parameter is out of bounds.
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

                # Handle string types (no bounds check needed)
                if bounds is None:
                    continue

                if isinstance(bounds, tuple) and len(bounds) == 2:
                    min_val, max_val = bounds
                    if not isinstance(value, (int, float)) or isinstance(value, bool):
                        raise ConfigError(f"Parameter {section}.{param}={value!r} must be a number")
                    if not (min_val <= value <= max_val):
                        raise ConfigError(
                            f"Parameter {section}.{param}={value} out of bounds "
                            f"[{min_val}, {max_val}]"
                        )

        self._validate_tempo_defaults()
        self._validate_fallback_policies()
        logger.info("✅ Config validation passed")

    def _validate_tempo_defaults(self) -> None:
        planning = self.data["planning"]
        if planning["default_tempo_min"] > planning["default_tempo_max"]:
            raise ConfigError(
                f"planning.default_tempo_min={planning['default_tempo_min']} exceeds "
                f"planning.default_tempo_max={planning['default_tempo_max']}"
            )

    def _validate_fallback_policies(self) -> None:
        for phase, policy in self.data["fallback"].items():
            if policy not in self.POLICY_VALUES:
                raise ConfigError(
                    f"Parameter fallback.{phase}={policy!r} must be one of {self.POLICY_VALUES}"
                )
            if phase in self.FAIL_ONLY_PHASES and policy != "fail":
                raise ConfigError(
                    f"Parameter fallback.{phase}={policy!r}: phase has no deterministic fallback"
                )

    def get(self, section: str, param: str, default: Any = None) -> Any:
        """Get a config parameter safely."""
        return self.data.get(section, {}).get(param, default)

    def __getitem__(self, section: str) -> Dict[str, Any]:
        """Allow dict-like access: config["planning"]"""
        return self.data.get(section, {})

    def __repr__(self) -> str:
        version = self.data.get('config_version', 'unknown')
        return f"Config(version={version})"
