# spherebot/logging/logging.py
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Rotation limits for the log file
DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 5

# Names of loggers already wired by get_logger
_CONFIGURED = set()


def _resolve_log_dir(log_dir=None):
    if log_dir is not None:
        return Path(log_dir)
    return Path(os.environ.get("SPHEREBOT_LOG_DIR", Path.home() / ".spherebot" / "logs"))


def _resolve_log_file(log_file=None, log_dir=None):
    if log_file is not None:
        return Path(log_file)
    return _resolve_log_dir(log_dir) / "spherebot.log"


def _max_bytes():
    raw = (os.environ.get("SPHEREBOT_LOG_MAX_BYTES") or "").strip()
    try:
        return max(0, int(raw)) if raw else DEFAULT_MAX_BYTES
    except ValueError:
        return DEFAULT_MAX_BYTES


def _default_level():
    from spherebot.logging.config import load_log_level

    level = load_log_level()
    return logging.INFO if level is None else level


def get_logger(
    name="spherebot",
    level=None,
    log_file=None,
    log_dir=None,
    console=True,
    propagate=False,
):
    """Return the logger ``name``, attaching handlers on first use.

    - level: defaults to the level saved with ``spherebot logging set-level``,
      else INFO
    - log_file / log_dir: defaults to ``$SPHEREBOT_LOG_DIR/spherebot.log``
      (``~/.spherebot/logs``); the file rotates at ``$SPHEREBOT_LOG_MAX_BYTES``
    - console: also write to stderr
    - propagate: passed through to the logger (False for bot loggers)

    Later calls with the same name return the configured logger unchanged.
    """
    logger = logging.getLogger(name)
    if name in _CONFIGURED:
        return logger

    file_path = _resolve_log_file(log_file, log_dir)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    logger.setLevel(_default_level() if level is None else level)
    logger.propagate = propagate
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    fh = RotatingFileHandler(
        file_path,
        maxBytes=_max_bytes(),
        backupCount=DEFAULT_BACKUP_COUNT,
        encoding="utf-8",
    )
    fh.setFormatter(formatter)
    logger.addHandler(fh)

    if console:
        ch = logging.StreamHandler(sys.stderr)
        ch.setFormatter(formatter)
        logger.addHandler(ch)

    _CONFIGURED.add(name)
    return logger


def reset_logger(name=None):
    """Detach and close handlers so the next :func:`get_logger` rewires them.

    With no ``name`` every logger configured so far is reset, which is what
    ``spherebot logging set-level`` does after saving a new level.
    """
    names = list(_CONFIGURED) if name is None else [name]
    for n in names:
        logger = logging.getLogger(n)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        _CONFIGURED.discard(n)


def get_configured_level(name="spherebot"):
    """Level name currently in effect for ``name``."""

    return logging.getLevelName(logging.getLogger(name).getEffectiveLevel())
