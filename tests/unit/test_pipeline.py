import random
from unittest.mock import MagicMock
from urllib.error import URLError

import pytest

from spherebot.clients.slack import SlackMessenger
from spherebot.config import PROMPT_SUFFIX
from spherebot.context import ContextResolver
from spherebot.dedup import EventGate
from spherebot.errors import UpstreamError, UpstreamTimeout
from spherebot.events import InboundEvent
from spherebot.pipeline import (
    CONTEXT_FAILURE_NOTICE,
    EMPTY_QUERY_NOTICE,
    STATUS_LINES,
    THINKING_TEXT,
    UPSTREAM_FAILURE_NOTICE,
    UPSTREAM_TIMEOUT_NOTICE,
    ChunkFailure,
    EventDispatcher,
    EventOutcome,
    EventProcessor,
    EventState,
)
from spherebot.store import MemoryStore
from spherebot.tasks import InlineRunner
from spherebot.workspaces import WorkspaceCache

BOT = "U0BOT"
TS = "1700000000.000100"

ANSWER = (
    "Here is how the build works. " * 8
    + "\n```python\nprint('hi')\n```\n"
    + "That is all."
)

HAPPY_PATH = [
    EventState.RECEIVED,
    EventState.ADMITTED,
    EventState.CONTEXT_RESOLVING,
    EventState.CONTEXT_READY,
    EventState.AWAITING_REPLY,
    EventState.SEGMENTING,
    EventState.RENDERING,
    EventState.CHUNKING,
    EventState.DELIVERING,
    EventState.DONE,
]


def _event(text=f"<@{BOT}> question?", event_id="Ev1", ts=TS, thread_ts=None):
    payload = {"channel": "C1", "user": "U1", "text": text, "ts": ts}
    if thread_ts:
        payload["thread_ts"] = thread_ts
    return InboundEvent.from_slack(payload, event_id=event_id)


@pytest.fixture
def build(mapping_store, clock):
    def factory(llm, messenger):
        store = MemoryStore(clock=clock)
        cache = WorkspaceCache(llm, store, clock=clock, background=InlineRunner())
        resolver = ContextResolver(
            mapping_store, llm, cache, default_workspace="all", background=InlineRunner()
        )
        return EventProcessor(
            EventGate(store, ttl_seconds=600),
            resolver,
            llm,
            messenger,
            bot_user_id=BOT,
            text_ceiling=2950,
            code_ceiling=2800,
            min_substantive_length=100,
            rng=random.Random(0),
        )

    return factory


def test_happy_path_walks_every_state(build, make_llm, messenger):
    llm = make_llm(reply=ANSWER)

    outcome = build(llm, messenger).process(_event())

    assert outcome.visited == HAPPY_PATH
    assert outcome.context.workspace == "all"
    assert ("chat", "all", "thread-1", "question?" + PROMPT_SUFFIX) in llm.calls
    assert len(outcome.delivered) == 3
    assert outcome.delivery_failures == []


def test_thinking_message_is_updated_and_deleted(build, make_llm, messenger):
    build(make_llm(reply=ANSWER), messenger).process(_event())

    assert messenger.posts[0]["text"] == THINKING_TEXT
    assert messenger.updates[0]["ts"] == "ts-0"
    assert messenger.updates[0]["text"] in STATUS_LINES
    assert messenger.deletes == [("C1", "ts-0")]


def test_chunks_are_posted_in_order_with_feedback_last(build, make_llm, messenger):
    build(make_llm(reply=ANSWER), messenger).process(_event())

    replies = messenger.posts[1:]
    assert [post["thread_ts"] for post in replies] == [TS, TS, TS]
    assert replies[1]["text"] == "Code snippet (python)"
    assert replies[1]["blocks"][0]["elements"][0]["type"] == "rich_text_preformatted"
    assert all(post["blocks"][-1]["type"] != "actions" for post in replies[:2])
    actions = replies[2]["blocks"][-1]
    assert actions["type"] == "actions"
    assert actions["block_id"] == f"feedback_{TS}_all"


def test_short_reply_has_no_feedback(build, make_llm, messenger):
    build(make_llm(reply="ok"), messenger).process(_event())

    assert len(messenger.posts) == 2
    assert all(block["type"] != "actions" for block in messenger.posts[1]["blocks"])


def test_duplicate_event_is_discarded(build, make_llm, messenger):
    processor = build(make_llm(reply=ANSWER), messenger)
    processor.process(_event())
    posted = len(messenger.posts)

    outcome = processor.process(_event())

    assert outcome.visited == [EventState.RECEIVED, EventState.DISCARDED]
    assert len(messenger.posts) == posted


def test_follow_up_reuses_remote_thread(build, make_llm, messenger):
    llm = make_llm(reply=ANSWER)
    processor = build(llm, messenger)

    processor.process(_event())
    outcome = processor.process(
        _event(text=f"<@{BOT}> and then?", event_id="Ev2", ts="1700000001.0", thread_ts=TS)
    )

    assert outcome.context.thread_id == "thread-1"
    assert outcome.context.created is False
    assert llm.count("create_thread") == 1


def test_workspace_marker_selects_workspace_and_is_stripped(build, make_llm, messenger):
    llm = make_llm(reply=ANSWER)

    outcome = build(llm, messenger).process(_event(text=f"<@{BOT}> #docs what is x?"))

    assert outcome.context.workspace == "docs"
    assert ("chat", "docs", "thread-1", "what is x?" + PROMPT_SUFFIX) in llm.calls
    assert messenger.posts[-1]["blocks"][-1]["block_id"] == f"feedback_{TS}_docs"


def test_context_failure_notifies(build, make_llm, messenger):
    llm = make_llm(errors={"create_thread": UpstreamError("down")})

    outcome = build(llm, messenger).process(_event())

    assert outcome.state is EventState.ERROR_NOTIFY
    assert outcome.visited[-2:] == [EventState.CONTEXT_RESOLVING, EventState.ERROR_NOTIFY]
    assert messenger.posts[-1]["text"] == CONTEXT_FAILURE_NOTICE
    assert llm.count("chat") == 0
    assert messenger.deletes == [("C1", "ts-0")]


@pytest.mark.parametrize(
    "error, notice",
    [
        (UpstreamTimeout("slow"), UPSTREAM_TIMEOUT_NOTICE),
        (UpstreamError("500"), UPSTREAM_FAILURE_NOTICE),
        (RuntimeError("bug"), UPSTREAM_FAILURE_NOTICE),
    ],
)
def test_chat_failures_notify(build, make_llm, messenger, error, notice):
    outcome = build(make_llm(errors={"chat": error}), messenger).process(_event())

    assert outcome.state is EventState.ERROR_NOTIFY
    assert outcome.error == type(error).__name__
    assert messenger.posts[-1]["text"] == notice
    assert messenger.deletes == [("C1", "ts-0")]


def test_failed_chunk_does_not_stop_delivery(build, make_llm, make_messenger):
    # Attempt 0 is the thinking message, attempt 2 the code chunk.
    messenger = make_messenger(fail_posts={2})

    outcome = build(make_llm(reply=ANSWER), messenger).process(_event())

    assert outcome.state is EventState.DONE
    assert outcome.delivery_failures == [ChunkFailure(1, "invalid_blocks")]
    assert outcome.delivered == ["ts-1", "ts-3"]


def test_thinking_post_failure_still_answers(build, make_llm, make_messenger):
    messenger = make_messenger(fail_posts={0})

    outcome = build(make_llm(reply=ANSWER), messenger).process(_event())

    assert outcome.state is EventState.DONE
    assert messenger.updates == []
    assert messenger.deletes == []


def test_empty_query_gets_notice(build, make_llm, messenger):
    llm = make_llm()

    outcome = build(llm, messenger).process(_event(text=f"<@{BOT}>"))

    assert outcome.state is EventState.DONE
    assert [post["text"] for post in messenger.posts] == [EMPTY_QUERY_NOTICE]
    assert llm.calls == []


def test_delete_command_skips_llm(build, make_llm, make_messenger):
    llm = make_llm()
    messenger = make_messenger(history=[{"user": BOT, "ts": "1.5", "text": "old answer"}])

    outcome = build(llm, messenger).process(_event(text=f"<@{BOT}> #delete_last_message"))

    assert outcome.command == "delete_last_message"
    assert outcome.state is EventState.DONE
    assert messenger.deletes == [("C1", "1.5")]
    assert llm.calls == []


def test_outcome_cannot_leave_terminal_state():
    outcome = EventOutcome("Ev1")
    outcome.advance(EventState.DISCARDED)

    with pytest.raises(RuntimeError):
        outcome.advance(EventState.ADMITTED)


def test_dispatcher_submits_to_runner(build, make_llm, messenger):
    dispatcher = EventDispatcher(build(make_llm(reply="ok"), messenger), InlineRunner())

    task = dispatcher.submit(_event())
    dispatcher.stop()

    assert task.label == "event:Ev1"
    assert task.error is None
    assert len(messenger.posts) == 2


def _slack_over(post_effects):
    client = MagicMock()
    client.chat_postMessage.side_effect = post_effects
    return client, SlackMessenger(client)


def test_chunk_timeout_does_not_stop_later_chunks(build, make_llm):
    client, slack = _slack_over(
        [{"ts": "t0"}, TimeoutError("read timed out"), {"ts": "t2"}, {"ts": "t3"}]
    )

    outcome = build(make_llm(reply=ANSWER), slack).process(_event())

    assert outcome.visited == HAPPY_PATH
    assert outcome.delivered == ["t2", "t3"]
    assert outcome.delivery_failures == [ChunkFailure(0, "timeout")]
    assert client.chat_postMessage.call_count == 4
    client.chat_delete.assert_called_once_with(channel="C1", ts="t0")


def test_thinking_post_timeout_still_answers(build, make_llm):
    client, slack = _slack_over(
        [TimeoutError("read timed out"), {"ts": "t1"}, {"ts": "t2"}, {"ts": "t3"}]
    )

    outcome = build(make_llm(reply=ANSWER), slack).process(_event())

    assert outcome.visited == HAPPY_PATH
    assert outcome.delivered == ["t1", "t2", "t3"]
    client.chat_update.assert_not_called()
    client.chat_delete.assert_not_called()


def test_unreachable_slack_still_reaches_a_terminal_state(build, make_llm):
    client, slack = _slack_over(URLError("connection refused"))
    client.chat_delete.side_effect = URLError("connection refused")

    outcome = build(make_llm(errors={"chat": UpstreamError("down")}), slack).process(_event())

    assert outcome.state is EventState.ERROR_NOTIFY
    assert outcome.error == "UpstreamError"
