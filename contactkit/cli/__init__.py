"""CLI package for contactkit."""

from contactkit.cli.formatters import (
    show_find_output,
    show_get_output,
    show_group_results,
    show_groups,
    show_write_results,
)
from contactkit.cli.main import (
    build_client,
    cli,
    get_config_dir,
    parse_upsert_document,
)
from contactkit.utils import DEFAULT_CONFIG_DIR

__all__ = [
    "DEFAULT_CONFIG_DIR",
    "build_client",
    "cli",
    "get_config_dir",
    "parse_upsert_document",
    "show_find_output",
    "show_get_output",
    "show_group_results",
    "show_groups",
    "show_write_results",
]
