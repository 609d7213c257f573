import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List

# Package defaults (bundled with code)
PACKAGE_CONFIG_DIR = Path(__file__).parent / "defaults"

# User configs (in project root, gitignored)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent
USER_CONFIG_DIR = PROJECT_ROOT / "config"

DB_PATH_ENV_VAR = "FINANCE_TRACKER_DB"

@dataclass
class AppSettings:
    """Settings for the application shell"""
    db_path: str = "data/finance.db"
    log_level: str = "WARNING"
    log_format: str = "console"
    due_soon_days: int = 7
    currency_symbol: str = "R$"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppSettings":
        """Build settings from a config dict, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})

class ConfigLoader:
    """Reads JSON config files, preferring the project copy over the bundled one"""

    @staticmethod
    def config_paths(config_name: str) -> List[Path]:
        """Candidate locations for `config_name`, highest priority first"""
        return [USER_CONFIG_DIR / config_name, PACKAGE_CONFIG_DIR / config_name]

    @staticmethod
    def load_config(config_name: str) -> Dict[str, Any]:
        """
        Parse the first existing copy of `config_name`.

        Raises:
            FileNotFoundError: If neither the project nor the package has it
        """
        candidates = ConfigLoader.config_paths(config_name)
        for path in candidates:
            if path.is_file():
                return json.loads(path.read_text(encoding="utf-8"))

        searched = ", ".join(str(path.parent) for path in candidates)
        raise FileNotFoundError(f"No {config_name} in {searched}")

    @staticmethod
    def load_app_settings() -> AppSettings:
        """
        Load application settings.

        The FINANCE_TRACKER_DB environment variable overrides `db_path`.
        """
        try:
            settings = AppSettings.from_dict(ConfigLoader.load_config('settings.json'))
        except FileNotFoundError:
            settings = AppSettings()

        db_override = os.environ.get(DB_PATH_ENV_VAR)
        if db_override:
            settings.db_path = db_override

        return settings
