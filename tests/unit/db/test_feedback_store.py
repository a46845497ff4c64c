import pytest
from sqlalchemy import create_engine

from spherebot.db.connect import make_session_factory
from spherebot.db.feedback import FeedbackEntry, FeedbackStore
from spherebot.errors import StoreUnavailable


@pytest.fixture
def feedback_store(session_factory):
    return FeedbackStore(session_factory)


def test_record_returns_id(feedback_store):
    first = feedback_store.record(FeedbackEntry("great", user_id="U1", workspace="all"))
    second = feedback_store.record(FeedbackEntry("bad", user_id="U2", workspace="docs"))

    assert second > first


def test_recent_filters_by_value(feedback_store):
    feedback_store.record(FeedbackEntry("great", bot_message_ts="1.0"))
    feedback_store.record(FeedbackEntry("bad", bot_message_ts="2.0"))
    feedback_store.record(FeedbackEntry("bad", bot_message_ts="3.0"))

    bad = feedback_store.recent(value="bad")

    assert [entry.bot_message_ts for entry in bad] == ["3.0", "2.0"]
    assert len(feedback_store.recent()) == 3
    assert len(feedback_store.recent(limit=1)) == 1


def test_entry_fields_round_trip(feedback_store):
    entry = FeedbackEntry(
        feedback_value="ok",
        user_id="U1",
        channel_id="C1",
        bot_message_ts="5.0",
        original_user_message_ts="4.0",
        action_id="feedback_ok",
        workspace="docs",
        bot_message_text="answer",
    )
    feedback_store.record(entry)

    assert feedback_store.recent() == [entry]


def test_unavailable_database(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path}/missing/dir/db.sqlite")
    store = FeedbackStore(make_session_factory(engine))

    with pytest.raises(StoreUnavailable):
        store.record(FeedbackEntry("ok"))
