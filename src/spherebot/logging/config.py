"""Persisted logging preferences.

The bot runs unattended, so the log level chosen with
``spherebot logging set-level`` is stored in a small JSON file and picked up by
:func:`spherebot.logging.get_logger` on the next start.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any


def config_dir() -> Path:
    raw = (os.environ.get("SPHEREBOT_CONFIG_DIR") or "").strip()
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".spherebot"


def config_path(config_file: os.PathLike[str] | str | None = None) -> Path:
    """Return the logging config path.

    Resolution order: explicit ``config_file``, ``$SPHEREBOT_LOG_CONFIG``,
    then ``<config dir>/logging.json``.
    """

    if config_file is not None:
        return Path(config_file)
    raw = (os.environ.get("SPHEREBOT_LOG_CONFIG") or "").strip()
    if raw:
        return Path(raw).expanduser()
    return config_dir() / "logging.json"


def load_config(config_file: os.PathLike[str] | str | None = None) -> dict[str, Any]:
    """Read the config file; unreadable or malformed files count as empty."""

    try:
        data = json.loads(config_path(config_file).read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def save_config(
    config: dict[str, Any],
    config_file: os.PathLike[str] | str | None = None,
) -> Path:
    path = config_path(config_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    return path


def level_number(level: str | int) -> int:
    """Resolve ``level`` ("debug", "INFO", 30, ...) to its numeric value.

    Raises
    ------
    ValueError
        If the level name is not known to :mod:`logging`.
    """

    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown logging level: {level!r}")
    return value


def load_log_level(config_file: os.PathLike[str] | str | None = None) -> int | None:
    """Return the persisted level, or ``None`` when unset or invalid."""

    value = load_config(config_file).get("log_level")
    if value is None:
        return None
    try:
        return level_number(value)
    except ValueError:
        return None


def save_log_level(
    level: str | int,
    config_file: os.PathLike[str] | str | None = None,
) -> Path:
    """Persist ``level`` by name and return the config path."""

    config = load_config(config_file)
    config["log_level"] = logging.getLevelName(level_number(level))
    return save_config(config, config_file)


__all__ = [
    "config_dir",
    "config_path",
    "load_config",
    "save_config",
    "level_number",
    "load_log_level",
    "save_log_level",
]
