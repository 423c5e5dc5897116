import logging
import os
import sys
from collections.abc import Mapping
from pathlib import Path

import yaml
from fncli import cli

from .core.errors import ValidationError
from .lib.errors import echo

APP_NAME = "clido"


def data_home(env: Mapping[str, str] | None = None) -> Path:
    """Per-user data directory; $XDG_DATA_HOME wins, then %APPDATA% on Windows."""
    env = os.environ if env is None else env
    if xdg := env.get("XDG_DATA_HOME"):
        return Path(xdg) / APP_NAME
    if sys.platform == "win32" and (appdata := env.get("APPDATA")):
        return Path(appdata) / APP_NAME
    return Path.home() / ".local" / "share" / APP_NAME


def config_home(env: Mapping[str, str] | None = None) -> Path:
    env = os.environ if env is None else env
    if xdg := env.get("XDG_CONFIG_HOME"):
        return Path(xdg) / APP_NAME
    if sys.platform == "win32" and (appdata := env.get("APPDATA")):
        return Path(appdata) / APP_NAME
    return Path.home() / ".config" / APP_NAME


DATA_DIR = data_home()
DB_PATH = DATA_DIR / "data.db"
BACKUP_DIR = DATA_DIR / "backups"
CONFIG_PATH = config_home() / "config.yaml"

KEYS = ("db_path", "log_level", "color")


class Config:
    """Single-instance config manager. Load once, cache in memory."""

    _instance: "Config | None" = None
    _data: dict[str, object]

    def __new__(cls) -> "Config":
        if cls._instance is None:
            instance = super().__new__(cls)
            instance._data = {}
            instance._load()
            cls._instance = instance
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the cached instance so the next access re-reads the file."""
        cls._instance = None

    def _load(self) -> None:
        """Load config from disk."""
        if not CONFIG_PATH.exists():
            self._data = {}
            return
        try:
            with CONFIG_PATH.open() as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValidationError("config", f"{CONFIG_PATH}: {e}") from e
        self._data = data if isinstance(data, dict) else {}

    def _save(self) -> None:
        """Persist config to disk."""
        CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        with CONFIG_PATH.open("w") as f:
            yaml.dump(self._data, f, default_flow_style=False, allow_unicode=True)

    def get(self, key: str, default: object = None) -> object:
        """Get config value."""
        return self._data.get(key, default)

    def set(self, key: str, value: object) -> None:
        """Set config value and persist."""
        self._data[key] = value
        self._save()

    def items(self) -> list[tuple[str, object]]:
        return sorted(self._data.items())


def get_db_path() -> Path:
    """Store file: the `db_path` config override, else the data-dir default."""
    val = Config().get("db_path")
    return Path(str(val)).expanduser() if val else DB_PATH


def get_log_level() -> str:
    val = os.environ.get("CLIDO_LOG_LEVEL") or Config().get("log_level")
    return str(val).strip().upper() if val else "WARNING"


def color_enabled() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    val = Config().get("color", True)
    if isinstance(val, str):
        return val.strip().lower() not in {"0", "false", "no", "off"}
    return bool(val)


def _coerce(key: str, value: str) -> object:
    if key == "log_level":
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValidationError("log_level", f"unknown level '{value}'")
        return level
    if key == "color":
        text = value.strip().lower()
        if text not in {"true", "false", "yes", "no", "on", "off", "1", "0"}:
            raise ValidationError("color", f"expected true or false, got '{value}'")
        return text in {"true", "yes", "on", "1"}
    return value


@cli("clido config", name="show")
def show():
    """Show effective settings"""
    echo(f"config: {CONFIG_PATH}")
    echo(f"db_path: {get_db_path()}")
    echo(f"log_level: {get_log_level()}")
    echo(f"color: {str(color_enabled()).lower()}")


@cli("clido config", name="set")
def set_value(key: str, value: str):
    """Set a config key (db_path, log_level, color)"""
    if key not in KEYS:
        raise ValidationError("key", f"'{key}' is not one of {', '.join(KEYS)}")
    Config().set(key, _coerce(key, value))
    echo(f"{key} = {value}")
