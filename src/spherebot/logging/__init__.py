"""Logging helpers shared by the bot, the CLI and background workers."""

from .logging import get_configured_level, get_logger, reset_logger

__all__ = ["get_logger", "reset_logger", "get_configured_level"]
