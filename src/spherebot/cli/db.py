"""``spherebot db`` subcommands for the mapping and feedback store."""

from pathlib import Path

from alembic import command
from alembic.config import Config
from rich.console import Console
from rich.table import Table

from spherebot.config import load_settings
from spherebot.db.connect import get_engine, initialize_db, make_engine, make_session_factory, sqlite_uri
from spherebot.db.feedback import FeedbackEntry, FeedbackStore
from spherebot.db.mappings import ConversationMapping, MappingStore
from spherebot.logging import get_logger


def register_subcommands(subparsers):
    """Attach database subcommands to an ``argparse`` parser.

    Examples
    --------
    >>> import argparse
    >>> parser = argparse.ArgumentParser(prog="spherebot db")
    >>> subparsers = parser.add_subparsers(dest="subcommand", required=True)
    >>> register_subcommands(subparsers)
    >>> args = parser.parse_args(["mappings", "--limit", "5"])
    >>> args.subcommand, args.limit
    ('mappings', 5)
    """

    init_parser = subparsers.add_parser("init", help="Create tables without migrations")
    init_parser.add_argument("--database", help="Database URL or SQLite path")

    upgrade_parser = subparsers.add_parser("upgrade", help="Apply Alembic migrations up to a revision")
    upgrade_parser.add_argument(
        "revision",
        nargs="?",
        default="head",
        help="Alembic revision identifier to upgrade to (default: head)",
    )
    upgrade_parser.add_argument("--database", help="Database URL or SQLite path to migrate")

    mappings_parser = subparsers.add_parser("mappings", help="Show recently used thread mappings")
    mappings_parser.add_argument("--database", help="Database URL or SQLite path")
    mappings_parser.add_argument("--limit", type=int, default=20)

    feedback_parser = subparsers.add_parser("feedback", help="Show recent feedback ratings")
    feedback_parser.add_argument("--database", help="Database URL or SQLite path")
    feedback_parser.add_argument("--value", choices=("bad", "ok", "great"))
    feedback_parser.add_argument("--limit", type=int, default=20)


def dispatch(args):
    logger = get_logger(__name__)

    if args.subcommand == "init":
        url = _database_url(args.database)
        initialize_db(make_engine(url))
        logger.info("Initialized tables at %s", url)
    elif args.subcommand == "upgrade":
        _run_alembic_upgrade(args.revision, database=args.database)
    elif args.subcommand == "mappings":
        store = MappingStore(_session_factory(args.database))
        render_mappings(store.recent(limit=args.limit))
    elif args.subcommand == "feedback":
        store = FeedbackStore(_session_factory(args.database))
        render_feedback(store.recent(value=args.value, limit=args.limit))
    else:
        logger.info("no dispatched function provided for %s", args.subcommand)


def _database_url(database: str | None) -> str:
    if database and database.strip():
        return sqlite_uri(database)
    return load_settings().db_url


def _session_factory(database: str | None):
    return make_session_factory(get_engine(_database_url(database)))


def _format_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value is not None else ""


def render_mappings(mappings: list[ConversationMapping], console: Console | None = None) -> None:
    console = console or Console()
    table = Table(title="Thread mappings", show_lines=False)
    table.add_column("Channel", style="bold cyan")
    table.add_column("Thread", style="magenta")
    table.add_column("Workspace", style="green")
    table.add_column("Remote thread", style="yellow")
    table.add_column("Last access", style="bright_black")

    if not mappings:
        table.add_row("[dim]No mappings found[/dim]", "", "", "", "")
    for mapping in mappings:
        table.add_row(
            mapping.channel_id,
            mapping.thread_root_key,
            mapping.remote_workspace,
            mapping.remote_thread_id,
            _format_time(mapping.last_accessed_at),
        )
    console.print(table)


def render_feedback(entries: list[FeedbackEntry], console: Console | None = None) -> None:
    console = console or Console()
    table = Table(title="Feedback", show_lines=False)
    table.add_column("Value", style="bold cyan")
    table.add_column("Workspace", style="green")
    table.add_column("User", style="magenta")
    table.add_column("Channel")
    table.add_column("Reply ts", style="bright_black")

    if not entries:
        table.add_row("[dim]No feedback found[/dim]", "", "", "", "")
    for entry in entries:
        table.add_row(
            entry.feedback_value,
            entry.workspace or "",
            entry.user_id or "",
            entry.channel_id or "",
            entry.bot_message_ts or "",
        )
    console.print(table)


def _run_alembic_upgrade(revision: str, database: str | None) -> None:
    logger = get_logger(__name__)
    config = _build_alembic_config(database)
    logger.info("running alembic upgrade to %s", revision)
    command.upgrade(config, revision)


def _build_alembic_config(database: str | None) -> Config:
    project_root = _find_project_root()
    config_path = project_root / "alembic.ini"

    alembic_config = Config(str(config_path)) if config_path.exists() else Config()
    alembic_config.set_main_option("script_location", str(project_root / "alembic"))
    if database and database.strip():
        alembic_config.set_main_option("sqlalchemy.url", sqlite_uri(database))
    elif not alembic_config.get_main_option("sqlalchemy.url"):
        # Empty value makes env.py fall back to the configured store.
        alembic_config.set_main_option("sqlalchemy.url", "")
    return alembic_config


def _find_project_root() -> Path:
    for parent in Path(__file__).resolve().parents:
        if (parent / "alembic").is_dir():
            return parent
    raise FileNotFoundError("Could not locate the Alembic directory.")
