# spherebot/db/connect.py

from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from spherebot.db.models import Base
from spherebot.logging import get_logger

logger = get_logger(__name__)


def sqlite_uri(db_path: str | Path) -> str:
    """Return ``db_path`` as a SQLAlchemy URL, creating the parent directory.

    Values that already carry a scheme (``sqlite://``, ``postgresql://``) are
    returned unchanged.
    """

    raw = str(db_path).strip()
    if "://" in raw:
        return raw
    path = Path(raw).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return "sqlite:///" + str(path)


def make_engine(db_url: str) -> Engine:
    if db_url.startswith("sqlite"):
        if db_url.startswith("sqlite:///") and db_url != "sqlite:///:memory:":
            Path(db_url.removeprefix("sqlite:///")).expanduser().parent.mkdir(
                parents=True, exist_ok=True
            )
        engine = create_engine(
            db_url,
            connect_args={"check_same_thread": False, "timeout": 15},
            echo=False,
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        return engine
    return create_engine(db_url, pool_pre_ping=True, echo=False)


def initialize_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


@lru_cache(maxsize=None)
def get_engine(db_url: str) -> Engine:
    """Engine per URL, created once with the schema in place."""

    engine = make_engine(db_url)
    initialize_db(engine)
    logger.info("Mapping store ready at %s", engine.url.render_as_string(hide_password=True))
    return engine


def make_session_factory(engine: Engine):
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)

    @contextmanager
    def get_session():
        session = SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return get_session
