"""Persistence of Slack thread → remote thread bindings.

The table only ever sees atomic conditional writes: an insert that is a
no-op when the (channel, thread root) pair already exists, and a timestamp
refresh. There is no read-modify-write on this table.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from spherebot.db.models import ThreadMapping, utcnow
from spherebot.errors import MappingStoreUnavailable

_CONFLICT_COLUMNS = ["channel_id", "thread_root_key"]


@dataclass(frozen=True)
class ConversationMapping:
    channel_id: str
    thread_root_key: str
    remote_workspace: str
    remote_thread_id: str
    created_at: datetime | None = None
    last_accessed_at: datetime | None = None


@dataclass(frozen=True)
class MappingLookup:
    """Result of a mapping lookup; ``mapping`` is set exactly when ``found``."""

    found: bool
    mapping: ConversationMapping | None = None

    @classmethod
    def hit(cls, mapping: ConversationMapping) -> "MappingLookup":
        return cls(found=True, mapping=mapping)

    @classmethod
    def miss(cls) -> "MappingLookup":
        return cls(found=False, mapping=None)


def _to_mapping(row: ThreadMapping) -> ConversationMapping:
    return ConversationMapping(
        channel_id=row.channel_id,
        thread_root_key=row.thread_root_key,
        remote_workspace=row.remote_workspace,
        remote_thread_id=row.remote_thread_id,
        created_at=row.created_at,
        last_accessed_at=row.last_accessed_at,
    )


class MappingStore:
    """SQLAlchemy-backed store for :class:`ConversationMapping` rows.

    Parameters
    ----------
    session_factory:
        Context manager factory as returned by
        :func:`spherebot.db.connect.make_session_factory`.
    """

    def __init__(self, session_factory) -> None:
        self._session = session_factory

    def lookup(self, channel_id: str, thread_root_key: str) -> MappingLookup:
        try:
            with self._session() as db:
                row = db.execute(
                    select(ThreadMapping).where(
                        ThreadMapping.channel_id == channel_id,
                        ThreadMapping.thread_root_key == thread_root_key,
                    )
                ).scalar_one_or_none()
                if row is None:
                    return MappingLookup.miss()
                return MappingLookup.hit(_to_mapping(row))
        except SQLAlchemyError as exc:
            raise MappingStoreUnavailable("mapping lookup failed") from exc

    def insert_if_absent(self, mapping: ConversationMapping) -> bool:
        """Insert ``mapping`` unless a row for its thread exists.

        Returns True when this call created the row and False when another
        writer got there first (the existing row is left untouched).
        """

        now = utcnow()
        values = {
            "channel_id": mapping.channel_id,
            "thread_root_key": mapping.thread_root_key,
            "remote_workspace": mapping.remote_workspace,
            "remote_thread_id": mapping.remote_thread_id,
            "created_at": mapping.created_at or now,
            "last_accessed_at": mapping.last_accessed_at or now,
        }
        try:
            with self._session() as db:
                dialect = db.get_bind().dialect.name
                if dialect == "sqlite":
                    stmt = sqlite_insert(ThreadMapping).values(**values)
                elif dialect == "postgresql":
                    stmt = pg_insert(ThreadMapping).values(**values)
                else:
                    return self._insert_with_savepoint(db, values)
                stmt = stmt.on_conflict_do_nothing(index_elements=_CONFLICT_COLUMNS)
                result = db.execute(stmt)
                return result.rowcount == 1
        except SQLAlchemyError as exc:
            raise MappingStoreUnavailable("mapping insert failed") from exc

    @staticmethod
    def _insert_with_savepoint(db, values: dict) -> bool:
        try:
            with db.begin_nested():
                db.add(ThreadMapping(**values))
        except IntegrityError:
            return False
        return True

    def touch(self, channel_id: str, thread_root_key: str, at: datetime | None = None) -> None:
        """Refresh ``last_accessed_at`` for an existing mapping."""

        try:
            with self._session() as db:
                db.execute(
                    update(ThreadMapping)
                    .where(
                        ThreadMapping.channel_id == channel_id,
                        ThreadMapping.thread_root_key == thread_root_key,
                    )
                    .values(last_accessed_at=at or utcnow())
                )
        except SQLAlchemyError as exc:
            raise MappingStoreUnavailable("mapping touch failed") from exc

    def recent(self, limit: int = 20) -> list[ConversationMapping]:
        try:
            with self._session() as db:
                rows = (
                    db.execute(
                        select(ThreadMapping)
                        .order_by(ThreadMapping.last_accessed_at.desc(), ThreadMapping.id.desc())
                        .limit(int(limit))
                    )
                    .scalars()
                    .all()
                )
                return [_to_mapping(row) for row in rows]
        except SQLAlchemyError as exc:
            raise MappingStoreUnavailable("mapping listing failed") from exc

