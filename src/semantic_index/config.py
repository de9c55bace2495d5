# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration loading and validation for the semantic index."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = ".semantic_index.yml"


class ConfigurationError(Exception):
    """Raised when configuration validation fails critically."""

    pass


class Config:
    """Configuration for the project cache, the Python bridge and the MCP server.

    Loads configuration from .semantic_index.yml with validation and defaults.
    """

    DEFAULTS: Dict[str, Any] = {
        # Project cache admission and eviction
        "max_project_memory_mb": 2048.0,
        "max_total_memory_mb": 4096.0,
        "memory_per_file_mb": 0.5,
        # Python bridge
        "python_transport": "subprocess",
        "python_commands": ["python3", "python"],
        "python_timeout_seconds": 30.0,
        "python_version_check_timeout_seconds": 5.0,
        "result_cache_ttl_seconds": 60.0,
        "result_cache_max_entries": 50,
        "max_output_bytes": 10 * 1024 * 1024,
        "python_max_workers": 8,
        # Extra glob patterns skipped when collecting Python files
        "ignore_patterns": [],
    }

    TRANSPORTS = ("subprocess", "in_process")

    _POSITIVE_NUMBERS = (
        "max_project_memory_mb",
        "max_total_memory_mb",
        "memory_per_file_mb",
        "python_timeout_seconds",
        "python_version_check_timeout_seconds",
        "result_cache_ttl_seconds",
    )
    _POSITIVE_INTS = (
        "result_cache_max_entries",
        "max_output_bytes",
        "python_max_workers",
    )

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses default location.
        """
        if config_path is None:
            config_path = Path.cwd() / DEFAULT_CONFIG_FILENAME

        self.config_path = config_path
        self._config: Dict[str, Any] = {}
        self._load_config()

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "Config":
        """Build a configuration from an in-memory mapping.

        Values go through the same validation as file-based configuration.

        Raises:
            ConfigurationError: If values is not a mapping.
        """
        if not isinstance(values, dict):
            raise ConfigurationError(
                f"Configuration must be a dictionary, got {type(values).__name__}"
            )
        config = cls.__new__(cls)
        config.config_path = None
        config._config = cls._copy_defaults()
        config._validate_and_merge(values)
        return config

    @classmethod
    def _copy_defaults(cls) -> Dict[str, Any]:
        # Lists must not be shared between instances
        return {
            key: list(value) if isinstance(value, list) else value
            for key, value in cls.DEFAULTS.items()
        }

    def _load_config(self) -> None:
        """Load and validate configuration from file."""
        if not self.config_path.exists():
            logger.info(f"Configuration file not found at {self.config_path}, using defaults")
            self._config = self._copy_defaults()
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f)

            if loaded_config is None:
                logger.warning("Configuration file is empty, using defaults")
                self._config = self._copy_defaults()
                return

            if not isinstance(loaded_config, dict):
                logger.warning(
                    f"Configuration file must contain a YAML dictionary, "
                    f"got {type(loaded_config)}, using defaults"
                )
                self._config = self._copy_defaults()
                return

            self._config = self._copy_defaults()
            self._validate_and_merge(loaded_config)

        except yaml.YAMLError as e:
            logger.warning(
                f"Error parsing configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self._copy_defaults()
        except OSError as e:
            logger.warning(
                f"Could not read configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self._copy_defaults()

    def _validate_and_merge(self, loaded_config: Dict[str, Any]) -> None:
        """Validate loaded configuration and merge with defaults.

        Invalid parameters are logged as warnings and defaults are used.
        """
        for key, value in loaded_config.items():
            if key not in self.DEFAULTS:
                logger.warning(f"Unknown configuration parameter '{key}', ignoring")
                continue

            if not self._validate_parameter(key, value):
                logger.warning(
                    f"Invalid value for '{key}': {value}, using default {self.DEFAULTS[key]}"
                )
                continue

            if isinstance(self.DEFAULTS[key], float):
                value = float(value)
            self._config[key] = value

    def _validate_parameter(self, key: str, value: Any) -> bool:
        """Validate a configuration parameter.

        Returns:
            True if valid, False if invalid
        """
        # bool is an int subclass, never a valid number here
        if isinstance(value, bool):
            return False

        if key in self._POSITIVE_NUMBERS:
            return isinstance(value, (int, float)) and value > 0
        elif key in self._POSITIVE_INTS:
            return isinstance(value, int) and value > 0
        elif key == "python_transport":
            return value in self.TRANSPORTS
        elif key == "python_commands":
            return (
                isinstance(value, list)
                and len(value) > 0
                and all(isinstance(cmd, str) and cmd.strip() for cmd in value)
            )
        elif key == "ignore_patterns":
            return isinstance(value, list) and all(isinstance(p, str) for p in value)

        return isinstance(value, type(self.DEFAULTS[key]))

    @property
    def max_project_memory_mb(self) -> float:
        """Largest estimated project size admitted into the project cache."""
        value = self._config["max_project_memory_mb"]
        assert isinstance(value, float)
        return value

    @property
    def max_total_memory_mb(self) -> float:
        """Ceiling on the summed estimated size of all cached projects."""
        value = self._config["max_total_memory_mb"]
        assert isinstance(value, float)
        return value

    @property
    def memory_per_file_mb(self) -> float:
        """Estimated memory per parsed source file."""
        value = self._config["memory_per_file_mb"]
        assert isinstance(value, float)
        return value

    @property
    def python_transport(self) -> str:
        """How Python source is analyzed: "subprocess" or "in_process"."""
        value = self._config["python_transport"]
        assert isinstance(value, str)
        return value

    @property
    def python_commands(self) -> List[str]:
        """Interpreter commands probed in order."""
        value = self._config["python_commands"]
        assert isinstance(value, list)
        return value

    @property
    def python_timeout_seconds(self) -> float:
        """Hard timeout for a single analysis subprocess."""
        value = self._config["python_timeout_seconds"]
        assert isinstance(value, float)
        return value

    @property
    def python_version_check_timeout_seconds(self) -> float:
        """Timeout for each interpreter version probe."""
        value = self._config["python_version_check_timeout_seconds"]
        assert isinstance(value, float)
        return value

    @property
    def result_cache_ttl_seconds(self) -> float:
        """Maximum age of a memoized analysis result."""
        value = self._config["result_cache_ttl_seconds"]
        assert isinstance(value, float)
        return value

    @property
    def result_cache_max_entries(self) -> int:
        """Maximum number of memoized analysis results."""
        value = self._config["result_cache_max_entries"]
        assert isinstance(value, int)
        return value

    @property
    def max_output_bytes(self) -> int:
        """Largest analysis output accepted from the interpreter."""
        value = self._config["max_output_bytes"]
        assert isinstance(value, int)
        return value

    @property
    def python_max_workers(self) -> int:
        """Maximum concurrent analysis subprocesses started by the service."""
        value = self._config["python_max_workers"]
        assert isinstance(value, int)
        return value

    @property
    def ignore_patterns(self) -> List[str]:
        """Additional glob patterns to skip when collecting Python files."""
        value = self._config["ignore_patterns"]
        assert isinstance(value, list)
        return value
