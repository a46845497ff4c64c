"""``spherebot logging`` subcommands."""

import logging

from spherebot.logging import get_configured_level, get_logger, reset_logger
from spherebot.logging.config import save_log_level
from spherebot.logging.logging import _resolve_log_file

LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def register_subcommands(subparsers):
    set_level_parser = subparsers.add_parser("set-level", help="Persist the logging level")
    set_level_parser.add_argument("level", type=str.upper, choices=LEVELS, help="Logging level to use")

    subparsers.add_parser("show-level", help="Show the configured logging level")
    subparsers.add_parser("show-path", help="Show the log file location")


def dispatch(args):
    if args.subcommand == "set-level":
        save_log_level(args.level)
        reset_logger()
        get_logger(level=getattr(logging, args.level))
        print(args.level)
    elif args.subcommand == "show-level":
        get_logger()
        print(get_configured_level())
    elif args.subcommand == "show-path":
        print(_resolve_log_file().resolve())
    else:
        get_logger(__name__).error("No handler for subcommand: %s", args.subcommand)
