from __future__ import annotations

from dataclasses import asdict, dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from spherebot.db.models import FeedbackRecord
from spherebot.errors import StoreUnavailable


@dataclass(frozen=True)
class FeedbackEntry:
    feedback_value: str
    user_id: str | None = None
    channel_id: str | None = None
    bot_message_ts: str | None = None
    original_user_message_ts: str | None = None
    action_id: str | None = None
    workspace: str | None = None
    bot_message_text: str | None = None


class FeedbackStore:
    """Append-only storage for rating button clicks."""

    def __init__(self, session_factory) -> None:
        self._session = session_factory

    def record(self, entry: FeedbackEntry) -> int:
        try:
            with self._session() as db:
                row = FeedbackRecord(**asdict(entry))
                db.add(row)
                db.flush()
                return int(row.id)
        except SQLAlchemyError as exc:
            raise StoreUnavailable("feedback insert failed") from exc

    def recent(self, *, value: str | None = None, limit: int = 50) -> list[FeedbackEntry]:
        try:
            with self._session() as db:
                query = select(FeedbackRecord)
                if value:
                    query = query.where(FeedbackRecord.feedback_value == value)
                rows = (
                    db.execute(
                        query.order_by(FeedbackRecord.created_at.desc(), FeedbackRecord.id.desc())
                        .limit(int(limit))
                    )
                    .scalars()
                    .all()
                )
                return [
                    FeedbackEntry(
                        feedback_value=row.feedback_value,
                        user_id=row.user_id,
                        channel_id=row.channel_id,
                        bot_message_ts=row.bot_message_ts,
                        original_user_message_ts=row.original_user_message_ts,
                        action_id=row.action_id,
                        workspace=row.workspace,
                        bot_message_text=row.bot_message_text,
                    )
                    for row in rows
                ]
        except SQLAlchemyError as exc:
            raise StoreUnavailable("feedback listing failed") from exc
