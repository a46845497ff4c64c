from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    __table_args__ = {"sqlite_autoincrement": True}


class ThreadMapping(Base):
    """Binding between a Slack thread and a remote LLM thread.

    Rows are inserted at most once per (channel_id, thread_root_key) and
    afterwards only ``last_accessed_at`` changes.
    """

    __tablename__ = "thread_mapping"
    __table_args__ = (
        UniqueConstraint("channel_id", "thread_root_key", name="uq_thread_mapping_channel_thread"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    channel_id: Mapped[str] = mapped_column(Text, index=True)
    thread_root_key: Mapped[str] = mapped_column(Text)
    remote_workspace: Mapped[str] = mapped_column(Text)
    remote_thread_id: Mapped[str] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    last_accessed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class FeedbackRecord(Base):
    __tablename__ = "feedback"

    id: Mapped[int] = mapped_column(primary_key=True)
    feedback_value: Mapped[str] = mapped_column(Text, index=True)  # bad | ok | great
    user_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    channel_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    bot_message_ts: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_user_message_ts: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    workspace: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    bot_message_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
