"""Configuration for battman.

Settings live in ``config.yaml`` inside the battman config directory. The
sampling interval can also be overridden with ``BATTMAN_LOG_INTERVAL``.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_LOG_INTERVAL = 300
CONFIG_KEYS = ("log_interval", "log_file")


class ConfigInvalidError(ValueError):
    """Raised when a configuration value is rejected."""

    pass


def config_dir() -> Path:
    """Return the battman config directory.

    Supports overriding for tests/portable installs via:
        - BATTMAN_CONFIG_DIR
    """
    override = os.environ.get("BATTMAN_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "battman"


def data_dir() -> Path:
    override = os.environ.get("BATTMAN_DATA_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".local" / "share" / "battman"


def config_path() -> Path:
    return config_dir() / "config.yaml"


def default_log_file() -> Path:
    return data_dir() / "battery_log.csv"


def validate_interval(value: Any) -> int:
    """Return ``value`` as a positive number of seconds or raise ConfigInvalidError."""
    if isinstance(value, bool):
        raise ConfigInvalidError("log_interval must be a positive integer")
    if isinstance(value, str):
        text = value.strip()
        if not (text.isascii() and text.isdigit()):
            raise ConfigInvalidError(f"log_interval must be a positive integer, got {value!r}")
        value = int(text)
    if not isinstance(value, int) or value <= 0:
        raise ConfigInvalidError(f"log_interval must be a positive integer, got {value!r}")
    return value


@dataclass
class BattmanConfig:
    log_interval: int = DEFAULT_LOG_INTERVAL
    log_file: Path = field(default_factory=default_log_file)

    def set(self, key: str, value: Any) -> None:
        """Update one setting. An invalid value leaves the current one in place."""
        if key == "log_interval":
            self.log_interval = validate_interval(value)
        elif key == "log_file":
            text = str(value).strip()
            if not text:
                raise ConfigInvalidError("log_file must not be empty")
            self.log_file = Path(text).expanduser()
        else:
            raise ConfigInvalidError(f"Unknown setting {key!r} (expected one of {', '.join(CONFIG_KEYS)})")

    def to_dict(self) -> dict[str, Any]:
        return {"log_interval": self.log_interval, "log_file": str(self.log_file)}


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("Could not read %s: %s", path, e)
        return {}
    if not text.strip():
        return {}
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.warning("Could not parse %s: %s", path, e)
        return {}
    return data if isinstance(data, dict) else {}


def load_config() -> BattmanConfig:
    """Load settings from the config file and environment.

    Values that fail validation are logged and skipped, so the default (or
    the file value, for an invalid env override) stays in effect.
    """
    cfg = BattmanConfig()
    data = _read_config_file(config_path())

    for key in CONFIG_KEYS:
        if key in data and data[key] is not None:
            try:
                cfg.set(key, data[key])
            except ConfigInvalidError as e:
                logger.warning("Ignoring %s from %s: %s", key, config_path(), e)

    env_interval = os.environ.get("BATTMAN_LOG_INTERVAL")
    if env_interval:
        try:
            cfg.set("log_interval", env_interval)
        except ConfigInvalidError as e:
            logger.warning("Ignoring BATTMAN_LOG_INTERVAL: %s", e)

    return cfg


def save_config(cfg: BattmanConfig) -> None:
    """Atomic write of config.yaml."""
    cfg_dir = config_dir()
    cfg_dir.mkdir(parents=True, exist_ok=True)
    serialized = yaml.safe_dump(cfg.to_dict(), sort_keys=False)

    with tempfile.NamedTemporaryFile("w", delete=False, dir=str(cfg_dir), encoding="utf-8") as tf:
        tf.write(serialized)
        tmp = Path(tf.name)
    os.replace(tmp, config_path())
