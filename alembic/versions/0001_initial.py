"""Create thread_mapping and feedback tables."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None


def upgrade() -> None:
    op.create_table(
        "thread_mapping",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("channel_id", sa.Text(), nullable=False),
        sa.Column("thread_root_key", sa.Text(), nullable=False),
        sa.Column("remote_workspace", sa.Text(), nullable=False),
        sa.Column("remote_thread_id", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_accessed_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "channel_id", "thread_root_key", name="uq_thread_mapping_channel_thread"
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_thread_mapping_channel_id", "thread_mapping", ["channel_id"])
    op.create_index("ix_thread_mapping_last_accessed_at", "thread_mapping", ["last_accessed_at"])

    op.create_table(
        "feedback",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("feedback_value", sa.Text(), nullable=False),
        sa.Column("user_id", sa.Text(), nullable=True),
        sa.Column("channel_id", sa.Text(), nullable=True),
        sa.Column("bot_message_ts", sa.Text(), nullable=True),
        sa.Column("original_user_message_ts", sa.Text(), nullable=True),
        sa.Column("action_id", sa.Text(), nullable=True),
        sa.Column("workspace", sa.Text(), nullable=True),
        sa.Column("bot_message_text", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_feedback_feedback_value", "feedback", ["feedback_value"])
    op.create_index("ix_feedback_workspace", "feedback", ["workspace"])
    op.create_index("ix_feedback_created_at", "feedback", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_feedback_created_at", table_name="feedback")
    op.drop_index("ix_feedback_workspace", table_name="feedback")
    op.drop_index("ix_feedback_feedback_value", table_name="feedback")
    op.drop_table("feedback")
    op.drop_index("ix_thread_mapping_last_accessed_at", table_name="thread_mapping")
    op.drop_index("ix_thread_mapping_channel_id", table_name="thread_mapping")
    op.drop_table("thread_mapping")
