"""
contactkit.utils - Utility module

Common utilities including logging configuration and string folding.
"""

from contactkit.utils.normalization import fold_text, normalize_string
from contactkit.utils.paths import DEFAULT_CONFIG_DIR, resolve_config_dir

__all__ = ["fold_text", "normalize_string", "resolve_config_dir", "DEFAULT_CONFIG_DIR"]
