"""Tests for app.yaml loading and settings."""

import pytest

from retitle.config import (
    CONFIG_PATH_ENV,
    get_config_path,
    get_settings,
    interpolate_env_vars,
    load_app_config,
)


class TestInterpolateEnvVars:
    def test_replaces_nested_values(self, monkeypatch):
        monkeypatch.setenv("DB_PASSWORD", "s3cret")
        data = {"db": {"url": "postgresql+asyncpg://app:$DB_PASSWORD@db/app"}, "paths": ["$DB_PASSWORD"]}

        result = interpolate_env_vars(data)

        assert result["db"]["url"] == "postgresql+asyncpg://app:s3cret@db/app"
        assert result["paths"] == ["s3cret"]

    def test_leaves_non_strings_alone(self):
        assert interpolate_env_vars({"max_redirect_hops": 5}) == {"max_redirect_hops": 5}

    def test_missing_variable_raises(self, monkeypatch):
        monkeypatch.delenv("RETITLE_MISSING_VAR", raising=False)
        with pytest.raises(ValueError, match="RETITLE_MISSING_VAR"):
            interpolate_env_vars("$RETITLE_MISSING_VAR")


class TestConfigPath:
    def test_env_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "custom.yaml"))
        assert get_config_path() == tmp_path / "custom.yaml"

    def test_defaults_to_cwd(self, monkeypatch, tmp_path):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        monkeypatch.chdir(tmp_path)
        assert get_config_path() == tmp_path / "app.yaml"

    def test_missing_file_raises(self, monkeypatch, tmp_path):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "nope.yaml"))
        with pytest.raises(FileNotFoundError):
            load_app_config()


class TestGetSettings:
    def test_defaults_without_app_yaml(self, monkeypatch, tmp_path, clear_settings_cache):
        monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "absent.yaml"))

        settings = get_settings()

        assert settings.rename.max_redirect_hops == 10
        assert settings.rename.root_path == "/"
        assert "admin" in settings.rename.reserved_paths
        assert settings.db.url.startswith("sqlite+aiosqlite")
        assert settings.logfire.enabled is False

    def test_sections_from_app_yaml(self, monkeypatch, temp_app_yaml, clear_settings_cache):
        monkeypatch.setenv("TEST_DB_URL", "sqlite+aiosqlite:///./other.db")
        path = temp_app_yaml(
            {
                "db": {"url": "$TEST_DB_URL", "echo": True},
                "rename": {"max_redirect_hops": 3, "reserved_paths": ["wp-admin"]},
                "logfire": {"service_name": "cms-renames"},
                "log_level": "debug",
            }
        )
        monkeypatch.setenv(CONFIG_PATH_ENV, str(path))

        settings = get_settings()

        assert settings.db.url == "sqlite+aiosqlite:///./other.db"
        assert settings.db.echo is True
        assert settings.rename.max_redirect_hops == 3
        assert settings.rename.reserved_paths == ["wp-admin"]
        assert settings.logfire.service_name == "cms-renames"
        assert settings.log_level == "DEBUG"
