"""Per-event processing: dedup, context, LLM call, formatting, delivery.

Each admitted event walks a fixed sequence of states and always ends in
``DONE``, ``DISCARDED`` or ``ERROR_NOTIFY``. Users only ever see short
generic notices on failure; details go to the log.
"""

from __future__ import annotations

import enum
import random
import time
from dataclasses import dataclass, field

from spherebot import commands
from spherebot.clients.llm import AnythingLLMClient
from spherebot.config import PROMPT_SUFFIX, Settings
from spherebot.context import ContextResolver, ConversationContext, strip_workspace_marker
from spherebot.db.connect import get_engine, make_session_factory
from spherebot.db.mappings import MappingStore
from spherebot.dedup import EventGate
from spherebot.errors import (
    ContextCreationFailure,
    DeliveryFailure,
    DuplicateEvent,
    UpstreamError,
    UpstreamTimeout,
)
from spherebot.events import InboundEvent
from spherebot.formatting.chunks import Chunk, assemble
from spherebot.formatting.feedback import attach, feedback_block_id
from spherebot.formatting.render import render_segments
from spherebot.formatting.segments import segment
from spherebot.logging import get_logger
from spherebot.store import build_store
from spherebot.tasks import Task, TaskQueue, TaskRunner
from spherebot.workspaces import WorkspaceCache

logger = get_logger(__name__)

THINKING_TEXT = ":hourglass_flowing_sand: Processing..."

STATUS_LINES = (
    ":rocket: Blasting off to knowledge orbit...",
    ":milky_way: Searching the cosmic database...",
    ":satellite: Sending signals to distant star systems...",
    ":ringed_planet: Circling Saturn for answers...",
    ":flying_saucer: Abducting relevant facts...",
    ":astronaut: Spacewalking through code repositories...",
    ":telescope: Peering into the knowledge universe...",
    ":robot_face: Engaging hyperdrive processors...",
    ":satellite_antenna: Receiving signals from mission control...",
    ":comet: Riding this comet to find your answer...",
)

EMPTY_QUERY_NOTICE = "Say something after mentioning me."
CONTEXT_FAILURE_NOTICE = (
    "\N{WARNING SIGN}\N{VARIATION SELECTOR-16} Oops! I had trouble connecting to the knowledge base thread."
)
UPSTREAM_FAILURE_NOTICE = (
    "\N{WARNING SIGN}\N{VARIATION SELECTOR-16} Oops! I encountered an error processing your request."
)
UPSTREAM_TIMEOUT_NOTICE = (
    "\N{WARNING SIGN}\N{VARIATION SELECTOR-16} The knowledge base took too long to answer. "
    "Please try again."
)


class EventState(enum.Enum):
    RECEIVED = "received"
    DISCARDED = "discarded"
    ADMITTED = "admitted"
    CONTEXT_RESOLVING = "context_resolving"
    CONTEXT_READY = "context_ready"
    AWAITING_REPLY = "awaiting_reply"
    SEGMENTING = "segmenting"
    RENDERING = "rendering"
    CHUNKING = "chunking"
    DELIVERING = "delivering"
    DONE = "done"
    ERROR_NOTIFY = "error_notify"


TERMINAL_STATES = frozenset({EventState.DISCARDED, EventState.DONE, EventState.ERROR_NOTIFY})


@dataclass(frozen=True)
class ChunkFailure:
    position: int
    error_code: str | None = None


@dataclass
class EventOutcome:
    event_id: str
    state: EventState = EventState.RECEIVED
    visited: list[EventState] = field(default_factory=lambda: [EventState.RECEIVED])
    context: ConversationContext | None = None
    chunks: list[Chunk] = field(default_factory=list)
    delivered: list[str] = field(default_factory=list)
    delivery_failures: list[ChunkFailure] = field(default_factory=list)
    command: str | None = None
    error: str | None = None

    def advance(self, state: EventState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"event {self.event_id} already finished in {self.state.name}")
        self.state = state
        self.visited.append(state)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES


class EventProcessor:
    def __init__(
        self,
        gate: EventGate,
        resolver: ContextResolver,
        llm,
        messenger,
        *,
        bot_user_id: str | None,
        text_ceiling: int,
        code_ceiling: int,
        min_substantive_length: int,
        prompt_suffix: str = PROMPT_SUFFIX,
        status_lines: tuple[str, ...] = STATUS_LINES,
        rng: random.Random | None = None,
    ) -> None:
        self.gate = gate
        self.resolver = resolver
        self.llm = llm
        self.messenger = messenger
        self.bot_user_id = bot_user_id
        self.text_ceiling = text_ceiling
        self.code_ceiling = code_ceiling
        self.min_substantive_length = min_substantive_length
        self.prompt_suffix = prompt_suffix
        self.status_lines = status_lines
        self._rng = rng or random.Random()

    def process(self, event: InboundEvent) -> EventOutcome:
        outcome = EventOutcome(event.event_id)
        try:
            self.gate.check(event.event_id)
        except DuplicateEvent:
            outcome.advance(EventState.DISCARDED)
            return outcome
        outcome.advance(EventState.ADMITTED)

        started = time.monotonic()
        channel = event.channel_id
        thread_ts = event.thread_root_key
        query = event.query_text(self.bot_user_id)
        logger.info(
            "Event %s admitted channel=%s thread=%s user=%s",
            event.event_id,
            channel,
            thread_ts,
            event.user_id,
        )

        if not query:
            self._post_notice(channel, thread_ts, EMPTY_QUERY_NOTICE)
            outcome.advance(EventState.DONE)
            return outcome

        if commands.is_delete_last_message(query):
            outcome.command = "delete_last_message"
            commands.delete_last_message(self.messenger, channel, thread_ts, self.bot_user_id or "")
            outcome.advance(EventState.DONE)
            return outcome

        thinking_ts = self._post_thinking(channel, thread_ts)
        try:
            self._answer(event, query, outcome, thinking_ts)
        except Exception as exc:
            logger.exception("Unexpected failure while handling event %s", event.event_id)
            if not outcome.finished:
                self._fail(outcome, channel, thread_ts, UPSTREAM_FAILURE_NOTICE, exc)
        finally:
            self._delete_thinking(channel, thinking_ts)
            logger.info(
                "Event %s finished in %s after %sms",
                event.event_id,
                outcome.state.name,
                int((time.monotonic() - started) * 1000),
            )
        return outcome

    def _answer(
        self,
        event: InboundEvent,
        query: str,
        outcome: EventOutcome,
        thinking_ts: str | None,
    ) -> None:
        channel = event.channel_id
        thread_ts = event.thread_root_key

        outcome.advance(EventState.CONTEXT_RESOLVING)
        try:
            context = self.resolver.resolve(channel, thread_ts, query)
        except ContextCreationFailure as exc:
            logger.error("Context resolution failed for %s: %s", event.event_id, exc)
            self._fail(outcome, channel, thread_ts, CONTEXT_FAILURE_NOTICE, exc)
            return
        outcome.context = context
        outcome.advance(EventState.CONTEXT_READY)
        self._show_status(channel, thinking_ts)

        outcome.advance(EventState.AWAITING_REPLY)
        prompt = strip_workspace_marker(query, context.workspace) + self.prompt_suffix
        try:
            raw_reply = self.llm.chat(context.workspace, context.thread_id, prompt)
        except UpstreamTimeout as exc:
            logger.error("LLM timed out for %s in %s", event.event_id, context.workspace)
            self._fail(outcome, channel, thread_ts, UPSTREAM_TIMEOUT_NOTICE, exc)
            return
        except UpstreamError as exc:
            logger.error("LLM failed for %s in %s: %s", event.event_id, context.workspace, exc)
            self._fail(outcome, channel, thread_ts, UPSTREAM_FAILURE_NOTICE, exc)
            return

        outcome.advance(EventState.SEGMENTING)
        segments = segment(raw_reply)

        outcome.advance(EventState.RENDERING)
        blocks = render_segments(segments)

        outcome.advance(EventState.CHUNKING)
        chunks = assemble(blocks, self.text_ceiling, self.code_ceiling)
        chunks = attach(
            chunks,
            raw_reply,
            feedback_block_id(event.ts, context.workspace),
            min_length=self.min_substantive_length,
        )
        outcome.chunks = chunks
        logger.debug(
            "Event %s: %d segments, %d blocks, %d chunks",
            event.event_id,
            len(segments),
            len(blocks),
            len(chunks),
        )

        outcome.advance(EventState.DELIVERING)
        self._deliver(channel, thread_ts, chunks, outcome)
        outcome.advance(EventState.DONE)

    def _deliver(self, channel: str, thread_ts: str, chunks: list[Chunk], outcome: EventOutcome) -> None:
        for position, chunk in enumerate(chunks):
            if chunk.is_empty:
                continue
            try:
                ts = self.messenger.post(channel, thread_ts, chunk.fallback_text, chunk.to_blocks())
            except DeliveryFailure as exc:
                logger.warning(
                    "Chunk %d/%d of %s not delivered (%s)",
                    position + 1,
                    len(chunks),
                    outcome.event_id,
                    exc.error_code,
                )
                outcome.delivery_failures.append(ChunkFailure(position, exc.error_code))
                continue
            outcome.delivered.append(ts)

    def _fail(
        self,
        outcome: EventOutcome,
        channel: str,
        thread_ts: str,
        notice: str,
        exc: Exception,
    ) -> None:
        outcome.error = type(exc).__name__
        outcome.advance(EventState.ERROR_NOTIFY)
        self._post_notice(channel, thread_ts, notice)

    def _post_notice(self, channel: str, thread_ts: str, text: str) -> None:
        try:
            self.messenger.post(channel, thread_ts, text)
        except DeliveryFailure:
            logger.warning("Could not post notice to %s", channel)

    def _post_thinking(self, channel: str, thread_ts: str) -> str | None:
        try:
            return self.messenger.post(channel, thread_ts, THINKING_TEXT) or None
        except DeliveryFailure:
            logger.warning("Could not post thinking message to %s", channel)
            return None

    def _show_status(self, channel: str, thinking_ts: str | None) -> None:
        if not thinking_ts or not self.status_lines:
            return
        try:
            self.messenger.update(channel, thinking_ts, self._rng.choice(self.status_lines))
        except DeliveryFailure:
            logger.warning("Could not update thinking message %s", thinking_ts)

    def _delete_thinking(self, channel: str, thinking_ts: str | None) -> None:
        if not thinking_ts:
            return
        try:
            self.messenger.delete(channel, thinking_ts)
        except DeliveryFailure:
            logger.warning("Could not delete thinking message %s", thinking_ts)


class EventDispatcher:
    """Run each event as an independent task on a worker pool.

    Submitted events are never cancelled; :meth:`stop` waits for the ones
    already queued.
    """

    def __init__(self, processor: EventProcessor, runner: TaskRunner) -> None:
        self.processor = processor
        self._runner = runner

    def submit(self, event: InboundEvent) -> Task:
        return self._runner.add_task(self.processor.process, event, label=f"event:{event.event_id}")

    def stop(self) -> None:
        stop = getattr(self._runner, "stop", None)
        if callable(stop):
            stop()


def build_processor(
    settings: Settings,
    messenger,
    *,
    background: TaskRunner | None = None,
    llm=None,
    store=None,
) -> EventProcessor:
    """Wire an :class:`EventProcessor` from ``settings``.

    ``background`` runs access-time touches and shared cache writes; it
    defaults to a single-worker :class:`TaskQueue`.
    """

    background = background or TaskQueue(1, name="spherebot-background")
    llm = llm or AnythingLLMClient.from_settings(settings)
    store = store if store is not None else build_store(settings.redis_url)
    session_factory = make_session_factory(get_engine(settings.db_url))

    workspaces = WorkspaceCache(
        llm,
        store,
        local_ttl=settings.workspace_local_ttl,
        shared_ttl=settings.workspace_shared_ttl,
        default=(settings.default_workspace,),
        background=background,
    )
    resolver = ContextResolver(
        MappingStore(session_factory),
        llm,
        workspaces,
        default_workspace=settings.default_workspace,
        background=background,
    )
    gate = EventGate(store, ttl_seconds=settings.duplicate_event_ttl)
    return EventProcessor(
        gate,
        resolver,
        llm,
        messenger,
        bot_user_id=settings.bot_user_id,
        text_ceiling=settings.text_ceiling,
        code_ceiling=settings.code_ceiling,
        min_substantive_length=settings.min_substantive_length,
    )
