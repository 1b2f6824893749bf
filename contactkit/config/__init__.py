"""
contactkit.config - Configuration management module

Contains configuration loading, validation, and default settings.
"""

from contactkit.config.loader import (
    DEFAULT_CONFIG_FILE,
    DEFAULTS,
    ConfigError,
    ConfigLoader,
    with_defaults,
)

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "DEFAULTS",
    "ConfigError",
    "ConfigLoader",
    "with_defaults",
]
