import argparse
import types

import pytest
from rich.console import Console
from sqlalchemy import create_engine, inspect

from spherebot.cli import db
from spherebot.db.connect import get_engine, make_session_factory
from spherebot.db.feedback import FeedbackEntry
from spherebot.db.mappings import ConversationMapping, MappingStore


def _parse(argv):
    parser = argparse.ArgumentParser()
    subparsers = parser.add_subparsers(dest="subcommand", required=True)
    db.register_subcommands(subparsers)
    return parser.parse_args(argv)


def test_parse_upgrade_defaults_to_head():
    args = _parse(["upgrade"])
    assert args.revision == "head"
    assert args.database is None


def test_parse_feedback_filter():
    args = _parse(["feedback", "--value", "bad", "--limit", "5"])
    assert (args.value, args.limit) == ("bad", 5)

    with pytest.raises(SystemExit):
        _parse(["feedback", "--value", "meh"])


def test_init_creates_tables(tmp_path):
    path = tmp_path / "init.db"

    db.dispatch(types.SimpleNamespace(subcommand="init", database=str(path)))

    tables = set(inspect(create_engine(f"sqlite:///{path}")).get_table_names())
    assert {"thread_mapping", "feedback"}.issubset(tables)


def test_upgrade_runs_migrations(tmp_path):
    path = tmp_path / "migrated.db"

    db.dispatch(types.SimpleNamespace(subcommand="upgrade", revision="head", database=str(path)))

    tables = set(inspect(create_engine(f"sqlite:///{path}")).get_table_names())
    assert {"thread_mapping", "feedback", "alembic_version"}.issubset(tables)


def test_mappings_command_lists_rows(tmp_path, capsys):
    path = tmp_path / "list.db"
    store = MappingStore(make_session_factory(get_engine(f"sqlite:///{path}")))
    store.insert_if_absent(ConversationMapping("C1", "1.0", "docs", "t-1"))

    db.dispatch(types.SimpleNamespace(subcommand="mappings", database=str(path), limit=5))

    out = capsys.readouterr().out
    assert "Thread mappings" in out
    assert "docs" in out


def test_render_mappings_table():
    console = Console(record=True, width=200)
    db.render_mappings([ConversationMapping("C1", "1.0", "docs", "t-1")], console=console)

    text = console.export_text()
    assert "C1" in text
    assert "t-1" in text


def test_render_empty_tables():
    console = Console(record=True, width=200)
    db.render_mappings([], console=console)
    db.render_feedback([], console=console)

    text = console.export_text()
    assert "No mappings found" in text
    assert "No feedback found" in text


def test_render_feedback_table():
    console = Console(record=True, width=200)
    db.render_feedback([FeedbackEntry("great", user_id="U1", workspace="docs")], console=console)

    text = console.export_text()
    assert "great" in text
    assert "U1" in text
