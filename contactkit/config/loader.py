"""
Configuration loader module for contactkit.

Provides YAML-based configuration file loading with support for:
- Loading configuration from default or custom paths
- Graceful handling of missing configuration files
- Type and value validation of known keys
- Defaults for every known key
"""

import logging
from pathlib import Path
from typing import Any

import yaml

from contactkit.utils.paths import resolve_config_dir

# Default configuration file name
DEFAULT_CONFIG_FILE = "config.yaml"

VALID_BACKENDS = ("google", "memory")
VALID_REMOVAL_CHANNELS = ("people_api", "applescript")

# Known configuration keys and their expected types
VALID_KEYS: dict[str, type[Any] | tuple[type[Any], ...]] = {
    # Backend options
    "backend": str,
    "snapshot_file": str,
    "removal_channel": str,
    "account": str,
    # Find options
    "default_page_limit": int,
    # API options
    "api_page_size": int,
    "api_max_retries": int,
    "api_initial_retry_delay": (int, float),
    "api_max_retry_delay": (int, float),
    # AppleScript options
    "script_timeout": (int, float),
    # Auth options
    "auth_timeout": int,
    # Logging options
    "verbose": bool,
    "log_dir": str,
    "log_retention_count": int,
}

# Values used for keys missing from the configuration file
DEFAULTS: dict[str, Any] = {
    "backend": "google",
    "snapshot_file": "contacts.yaml",
    "removal_channel": "people_api",
    "account": "default",
    "default_page_limit": 50,
    "api_page_size": 100,
    "api_max_retries": 5,
    "api_initial_retry_delay": 1.0,
    "api_max_retry_delay": 60.0,
    "script_timeout": 0,
    "auth_timeout": 10,
    "verbose": False,
    "log_retention_count": 10,
}

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


class ConfigLoader:
    """
    YAML configuration file loader.

    Attributes:
        config_dir: Directory containing the configuration file
        config_file: Name of the configuration file

    Usage:
        loader = ConfigLoader()
        config = loader.load_and_validate()

        # With custom path
        loader = ConfigLoader(config_dir=Path("/custom/path"))
        config = loader.load()

        # Load from specific file
        config = loader.load_from_file("/path/to/config.yaml")
    """

    def __init__(
        self, config_dir: Path | None = None, config_file: str = DEFAULT_CONFIG_FILE
    ):
        """
        Initialize the configuration loader.

        Args:
            config_dir: Directory containing the configuration file.
                       Defaults to ~/.contactkit/ or $CONTACTKIT_CONFIG_DIR
            config_file: Name of the configuration file (default: config.yaml)
        """
        self.config_dir = resolve_config_dir(config_dir)
        self.config_file = config_file

    def _get_config_path(self) -> Path:
        return self.config_dir / self.config_file

    def load(self) -> dict[str, Any]:
        """
        Load configuration from the default configuration file.

        Returns:
            Dictionary containing configuration values, or empty dict if file
            doesn't exist

        Raises:
            ConfigError: If the configuration file exists but cannot be parsed
        """
        return self.load_from_file(self._get_config_path())

    def load_from_file(self, path: Path | str) -> dict[str, Any]:
        """
        Load configuration from a specific file.

        Returns an empty dict if the file doesn't exist or is empty.

        Raises:
            ConfigError: If the configuration file exists but cannot be parsed
        """
        path = Path(path)

        if not path.exists():
            logger.debug(f"Configuration file not found: {path}")
            return {}

        try:
            with open(path, encoding="utf-8") as f:
                config = yaml.safe_load(f)

            if config is None:
                logger.debug(f"Configuration file is empty: {path}")
                return {}

            if not isinstance(config, dict):
                raise ConfigError(
                    f"Configuration file must contain a YAML dictionary, "
                    f"got {type(config).__name__}"
                )

            logger.debug(f"Loaded configuration from {path}")
            return config

        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML configuration file: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file: {e}") from e

    def validate(self, config: dict[str, Any]) -> None:
        """
        Validate configuration structure and values.

        Unknown keys are ignored.

        Raises:
            ConfigError: If a known key has the wrong type or value
        """
        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration must be a dictionary, got {type(config).__name__}"
            )

        for key, value in config.items():
            if key not in VALID_KEYS:
                continue
            expected_type = VALID_KEYS[key]
            # bool is an int subclass; only accept it where bool is expected
            wrong_bool = isinstance(value, bool) and expected_type is not bool
            if wrong_bool or not isinstance(value, expected_type):
                if isinstance(expected_type, tuple):
                    type_name = " or ".join(t.__name__ for t in expected_type)
                else:
                    type_name = expected_type.__name__
                raise ConfigError(
                    f"Invalid type for '{key}': expected {type_name}, "
                    f"got {type(value).__name__}"
                )

        if "backend" in config and config["backend"] not in VALID_BACKENDS:
            raise ConfigError(
                f"Invalid backend '{config['backend']}'. "
                f"Must be one of: {', '.join(VALID_BACKENDS)}"
            )

        if (
            "removal_channel" in config
            and config["removal_channel"] not in VALID_REMOVAL_CHANNELS
        ):
            raise ConfigError(
                f"Invalid removal_channel '{config['removal_channel']}'. "
                f"Must be one of: {', '.join(VALID_REMOVAL_CHANNELS)}"
            )

        positive_int_keys = [
            "default_page_limit",
            "api_page_size",
            "api_max_retries",
            "auth_timeout",
        ]
        for key in positive_int_keys:
            if key in config and config[key] < 1:
                raise ConfigError(f"{key} must be >= 1, got {config[key]}")

        if "log_retention_count" in config and config["log_retention_count"] < 0:
            raise ConfigError(
                f"log_retention_count must be >= 0, got {config['log_retention_count']}"
            )

        positive_float_keys = [
            "api_initial_retry_delay",
            "api_max_retry_delay",
        ]
        for key in positive_float_keys:
            if key in config and config[key] <= 0:
                raise ConfigError(f"{key} must be > 0, got {config[key]}")

        if "script_timeout" in config and config["script_timeout"] < 0:
            raise ConfigError(
                f"script_timeout must be >= 0, got {config['script_timeout']}"
            )

    def load_and_validate(self) -> dict[str, Any]:
        """
        Load configuration and validate it.

        Raises:
            ConfigError: If configuration cannot be loaded or is invalid
        """
        config = self.load()
        if config:
            self.validate(config)
        return config


def with_defaults(config: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of config with DEFAULTS filled in for missing keys."""
    merged = dict(DEFAULTS)
    merged.update({k: v for k, v in config.items() if v is not None})
    return merged
