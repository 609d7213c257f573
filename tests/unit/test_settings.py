import json
import logging
import pytest

import structlog

from finance_tracker.config import settings as settings_module
from finance_tracker.config.log_setup import configure_logging
from finance_tracker.config.settings import DB_PATH_ENV_VAR, AppSettings, ConfigLoader

@pytest.fixture
def user_config_dir(tmp_path, monkeypatch):
    """Empty user config directory, so only bundled defaults apply"""
    monkeypatch.setattr(settings_module, "USER_CONFIG_DIR", tmp_path)
    monkeypatch.delenv(DB_PATH_ENV_VAR, raising=False)
    return tmp_path

@pytest.mark.unit
class TestConfigLoader:

    def test_bundled_defaults(self, user_config_dir):
        settings = ConfigLoader.load_app_settings()

        assert settings == AppSettings()

    def test_user_config_wins(self, user_config_dir):
        (user_config_dir / "settings.json").write_text(
            json.dumps({"log_level": "DEBUG", "currency_symbol": "US$", "unknown": 1}),
            encoding="utf-8",
        )

        settings = ConfigLoader.load_app_settings()

        assert settings.log_level == "DEBUG"
        assert settings.currency_symbol == "US$"
        assert settings.due_soon_days == 7

    def test_env_var_overrides_db_path(self, user_config_dir, monkeypatch):
        monkeypatch.setenv(DB_PATH_ENV_VAR, "/tmp/elsewhere.db")

        assert ConfigLoader.load_app_settings().db_path == "/tmp/elsewhere.db"

    def test_missing_config_file(self, user_config_dir):
        with pytest.raises(FileNotFoundError, match="nope.json"):
            ConfigLoader.load_config("nope.json")

    def test_project_copy_is_searched_first(self, user_config_dir):
        paths = ConfigLoader.config_paths("settings.json")

        assert paths == [user_config_dir / "settings.json", settings_module.PACKAGE_CONFIG_DIR / "settings.json"]

@pytest.mark.unit
def test_configure_logging_sets_level():
    configure_logging("info", "json")

    assert logging.getLogger().level == logging.INFO
    assert structlog.is_configured()

    structlog.reset_defaults()
