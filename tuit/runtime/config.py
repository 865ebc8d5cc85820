"""Startup configuration.

The config file is one JSON object with ``persistence``, ``preferences`` and
``transfer`` sections. A missing file means defaults. A file that exists but
cannot be read or decoded is a ``ConfigError``. Inside a readable file every
value is checked on its own and a bad value falls back to its default.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

from loguru import logger
from platformdirs import user_config_dir, user_data_dir, user_log_dir

from ..errors import ConfigError
from ..transfer.conflict import AskScope, ConflictMode
from ..transfer.manager import DEFAULT_MAX_CONCURRENT, TransferLimits

APP_NAME = "tuit"
CONFIG_FILENAME = "config.json"
HISTORY_FILENAME = "history.json"
DEFAULT_CONFIG_PATH = Path(user_config_dir(APP_NAME, appauthor=False)) / CONFIG_FILENAME
DATA_DIR = Path(user_data_dir(APP_NAME, appauthor=False))
LOG_DIR = Path(user_log_dir(APP_NAME, appauthor=False))
SPOOL_DIR = DATA_DIR / "spool"
MAX_CONCURRENT_LIMIT = 1000


class RunMode(str, Enum):
    NORMAL = "normal"
    INCOGNITO = "incognito"


@dataclass(frozen=True)
class PersistenceConfig:
    history: bool = True


@dataclass(frozen=True)
class PreferencesConfig:
    theme: str = "default"
    key_preset: str = "arrows"
    receive_dir: Path | None = None
    follow_symlinks: bool = False
    show_hidden: bool = False


@dataclass(frozen=True)
class TransferConfig:
    max_concurrent_sends: int = DEFAULT_MAX_CONCURRENT
    max_concurrent_receives: int = DEFAULT_MAX_CONCURRENT
    conflict_mode: ConflictMode = ConflictMode.ASK
    conflict_ask_scope: AskScope = AskScope.PER_FILE

    @property
    def limits(self) -> TransferLimits:
        return TransferLimits(self.max_concurrent_sends, self.max_concurrent_receives)


@dataclass(frozen=True)
class AppConfig:
    """Everything read at startup, passed explicitly to the UI and session manager."""

    mode: RunMode = RunMode.NORMAL
    path: Path | None = None
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    preferences: PreferencesConfig = field(default_factory=PreferencesConfig)
    transfer: TransferConfig = field(default_factory=TransferConfig)

    @classmethod
    def incognito(cls) -> AppConfig:
        """Defaults only, nothing read and nothing written."""
        return cls(mode=RunMode.INCOGNITO, persistence=PersistenceConfig(history=False))

    @property
    def is_incognito(self) -> bool:
        return self.mode is RunMode.INCOGNITO

    @property
    def history_path(self) -> Path | None:
        if self.is_incognito or not self.persistence.history:
            return None
        return DATA_DIR / HISTORY_FILENAME


def _section(data: dict[str, object], key: str) -> dict[str, object]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _bool(section: dict[str, object], key: str, default: bool) -> bool:
    value = section.get(key)
    return value if isinstance(value, bool) else default


def _name(section: dict[str, object], key: str, default: str) -> str:
    value = section.get(key)
    if not isinstance(value, str) or not value.strip():
        return default
    return value.strip()


def _limit(section: dict[str, object], key: str) -> int:
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= MAX_CONCURRENT_LIMIT:
        return DEFAULT_MAX_CONCURRENT
    return value


def _optional_dir(section: dict[str, object], key: str) -> Path | None:
    value = section.get(key)
    if not isinstance(value, str) or not value.strip():
        return None
    return Path(value.strip()).expanduser()


def parse_config(data: dict[str, object], path: Path | None = None) -> AppConfig:
    persistence = _section(data, "persistence")
    preferences = _section(data, "preferences")
    transfer = _section(data, "transfer")
    return AppConfig(
        mode=RunMode.NORMAL,
        path=path,
        persistence=PersistenceConfig(history=_bool(persistence, "history", True)),
        preferences=PreferencesConfig(
            theme=_name(preferences, "theme", "default"),
            key_preset=_name(preferences, "key_preset", "arrows"),
            receive_dir=_optional_dir(preferences, "receive_dir"),
            follow_symlinks=_bool(preferences, "follow_symlinks", False),
            show_hidden=_bool(preferences, "show_hidden", False),
        ),
        transfer=TransferConfig(
            max_concurrent_sends=_limit(transfer, "max_concurrent_sends"),
            max_concurrent_receives=_limit(transfer, "max_concurrent_receives"),
            conflict_mode=ConflictMode.from_name(transfer.get("conflict_mode")),
            conflict_ask_scope=AskScope.from_name(transfer.get("conflict_ask_scope")),
        ),
    )


def load_config(path: Path | None = None) -> AppConfig:
    """Read the config at ``path`` (default location when ``None``).

    Raises ``ConfigError`` when the file exists but is unreadable, is not
    valid JSON, or does not hold a JSON object.
    """
    config_path = path if path is not None else DEFAULT_CONFIG_PATH
    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return AppConfig(path=config_path)
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"cannot read config {config_path}: {exc}") from exc
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON in config {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config {config_path} must contain a JSON object")
    return parse_config(data, config_path)


def save_preferences(config: AppConfig, *, theme: str | None = None, key_preset: str | None = None) -> AppConfig:
    """Persist UI preference changes and return the updated config.

    Incognito configs are updated in memory only. Other keys already in the
    file are preserved.
    """
    preferences = config.preferences
    if theme is not None:
        preferences = replace(preferences, theme=theme)
    if key_preset is not None:
        preferences = replace(preferences, key_preset=key_preset)
    updated = replace(config, preferences=preferences)
    if config.is_incognito or config.path is None:
        return updated

    try:
        existing = json.loads(config.path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        existing = {}
    data = existing if isinstance(existing, dict) else {}
    section = data.get("preferences")
    section = section if isinstance(section, dict) else {}
    section["theme"] = preferences.theme
    section["key_preset"] = preferences.key_preset
    data["preferences"] = section
    try:
        config.path.parent.mkdir(parents=True, exist_ok=True)
        config.path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        logger.error("could not save preferences to {}: {}", config.path, exc)
    return updated


def resolve_receive_dir(cli_value: Path | None, config: AppConfig, *, home: Path | None = None, cwd: Path | None = None) -> Path:
    """Pick the receive directory: CLI, then config, then ``~/Downloads``, then cwd."""
    if cli_value is not None:
        return cli_value.expanduser()
    if config.preferences.receive_dir is not None:
        return config.preferences.receive_dir
    downloads = (home if home is not None else Path.home()) / "Downloads"
    if downloads.is_dir():
        return downloads
    return cwd if cwd is not None else Path.cwd()


__all__ = [
    "APP_NAME",
    "DEFAULT_CONFIG_PATH",
    "DATA_DIR",
    "LOG_DIR",
    "SPOOL_DIR",
    "RunMode",
    "PersistenceConfig",
    "PreferencesConfig",
    "TransferConfig",
    "AppConfig",
    "parse_config",
    "load_config",
    "save_preferences",
    "resolve_receive_dir",
]
