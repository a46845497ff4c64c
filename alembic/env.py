"""Alembic environment for the spherebot mapping store."""

from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import Connection, Engine

from spherebot.config import load_settings
from spherebot.db.connect import sqlite_uri
from spherebot.db.models import Base

config = context.config

if config.config_file_name and Path(config.config_file_name).exists():
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def _get_database_url() -> str:
    """``sqlalchemy.url`` from the config, else the bot's configured store."""

    configured_url = config.get_main_option("sqlalchemy.url")
    if configured_url:
        return sqlite_uri(configured_url)
    return load_settings().db_url


def run_migrations_offline() -> None:
    url = _get_database_url()
    config.set_main_option("sqlalchemy.url", url)

    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def _run_with_connection(connection: Connection, *, external: bool = False) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()

    # A caller-supplied SQLite connection (in-memory StaticPool in tests) can
    # be rolled back implicitly when the engine is inspected later; commit at
    # the DBAPI level so the alembic_version row survives.
    if external and connection.dialect.name == "sqlite":
        connection.connection.commit()


def run_migrations_online() -> None:
    existing = config.attributes.get("connection")

    if isinstance(existing, Engine):
        with existing.connect() as connection:
            _run_with_connection(connection, external=True)
        return

    if isinstance(existing, Connection):
        _run_with_connection(existing, external=True)
        return

    url = _get_database_url()
    config.set_main_option("sqlalchemy.url", url)

    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        future=True,
    )

    with connectable.connect() as connection:
        _run_with_connection(connection, external=False)


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
