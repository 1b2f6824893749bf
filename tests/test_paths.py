"""Tests for path utilities."""

import os
from pathlib import Path

from contactkit.utils.paths import (
    CONFIG_DIR_ENV_VAR,
    DEFAULT_CONFIG_DIR,
    default_log_dir,
    resolve_config_dir,
)


class TestDefaultConfigDir:
    """Test DEFAULT_CONFIG_DIR constant."""

    def test_default_config_dir_is_in_home(self):
        assert Path.home() / ".contactkit" == DEFAULT_CONFIG_DIR

    def test_env_var_name(self):
        assert CONFIG_DIR_ENV_VAR == "CONTACTKIT_CONFIG_DIR"


class TestResolveConfigDir:
    """Test resolve_config_dir function."""

    def test_explicit_path_string(self, tmp_path):
        assert resolve_config_dir(str(tmp_path)) == tmp_path.resolve()

    def test_explicit_path_with_tilde(self):
        assert resolve_config_dir("~/custom-config") == Path.home() / "custom-config"

    def test_env_var_override(self, tmp_path, monkeypatch):
        """Environment variable should override default when no explicit path."""
        monkeypatch.setenv(CONFIG_DIR_ENV_VAR, str(tmp_path))
        assert resolve_config_dir(None) == tmp_path.resolve()

    def test_default_when_no_explicit_and_no_env(self, monkeypatch):
        monkeypatch.delenv(CONFIG_DIR_ENV_VAR, raising=False)
        assert resolve_config_dir(None) == DEFAULT_CONFIG_DIR.expanduser().resolve()

    def test_explicit_overrides_env_var(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_DIR_ENV_VAR, str(tmp_path / "env"))
        explicit_path = tmp_path / "explicit"
        assert resolve_config_dir(str(explicit_path)) == explicit_path.resolve()

    def test_result_is_always_absolute(self, tmp_path):
        original_cwd = os.getcwd()
        try:
            os.chdir(tmp_path)
            assert resolve_config_dir("relative-dir").is_absolute()
        finally:
            os.chdir(original_cwd)


class TestDefaultLogDir:
    def test_logs_inside_config_dir(self, tmp_path):
        assert default_log_dir(tmp_path) == tmp_path.resolve() / "logs"
