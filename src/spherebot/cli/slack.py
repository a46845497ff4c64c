"""Slack bot (Socket Mode).

Message events are filtered, wrapped as
:class:`~spherebot.events.InboundEvent` and handed to an
:class:`~spherebot.pipeline.EventDispatcher`; the Bolt listener thread only
acknowledges and returns. Rating button clicks are stored through
:mod:`spherebot.interactions`.
"""

from __future__ import annotations

import hashlib
import re
from typing import Any

from pydantic import ValidationError
from slack_bolt import App
from slack_bolt.adapter.socket_mode import SocketModeHandler
from slack_sdk.errors import SlackApiError

from spherebot.clients.slack import SlackMessenger
from spherebot.config import Settings, load_settings
from spherebot.db.connect import get_engine, make_session_factory
from spherebot.db.feedback import FeedbackStore
from spherebot.events import InboundEvent
from spherebot.interactions import handle_feedback
from spherebot.logging import get_logger
from spherebot.pipeline import EventDispatcher, build_processor
from spherebot.tasks import TaskQueue

logger = get_logger(__name__)

FEEDBACK_ACTION_RE = re.compile(r"^feedback_")


def register_subcommands(subparsers) -> None:
    run_parser = subparsers.add_parser("run", help="Run the Slack bot (Socket Mode)")
    run_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Concurrent event workers (default: $SPHEREBOT_WORKERS or 4)",
    )


def dispatch(args) -> None:
    if args.subcommand == "run":
        _run_socket_mode(args)
        return
    raise SystemExit(f"Unknown slack subcommand: {args.subcommand}")


def handle_message_event(
    event: dict[str, Any],
    body: dict[str, Any],
    *,
    dispatcher: EventDispatcher,
    bot_user_id: str | None,
) -> bool:
    """Queue ``event`` for processing; False when it is filtered out."""

    try:
        inbound = InboundEvent.from_slack(event, event_id=(body or {}).get("event_id"))
    except ValidationError:
        logger.warning("Ignoring malformed Slack event: %s", sorted(event))
        return False
    reason = inbound.skip_reason(bot_user_id)
    if reason is not None:
        logger.debug("Skipping event %s: %s", inbound.event_id, reason)
        return False
    dispatcher.submit(inbound)
    return True


def create_app(
    settings: Settings,
    dispatcher: EventDispatcher,
    feedback_store: FeedbackStore,
    messenger: SlackMessenger,
) -> App:
    app = App(token=settings.slack_bot_token)

    @app.error
    def _on_slack_error(error, body):  # type: ignore[no-untyped-def]
        logger.error("Slack handler error: %s", error)

    # Channel mentions are also delivered as ``message`` events with their own
    # envelope id, so only ``message`` feeds the dispatcher.
    @app.event("message")
    def _on_message(event, body, ack):  # type: ignore[no-untyped-def]
        ack()
        handle_message_event(event, body, dispatcher=dispatcher, bot_user_id=settings.bot_user_id)

    @app.event("app_mention")
    def _on_mention(ack):  # type: ignore[no-untyped-def]
        ack()

    @app.action(FEEDBACK_ACTION_RE)
    def _on_feedback(ack, body):  # type: ignore[no-untyped-def]
        ack()
        handle_feedback(body, feedback_store, messenger)

    return app


def _run_socket_mode(args) -> None:
    settings = load_settings()
    missing = settings.missing()
    if missing:
        raise SystemExit(f"Missing required env vars: {', '.join(missing)}")

    messenger = SlackMessenger.from_token(
        settings.slack_bot_token, timeout_seconds=settings.slack_timeout_seconds
    )
    try:
        auth = messenger.client.auth_test()
        logger.info(
            "Slack auth_test ok team=%s bot_user_id=%s",
            auth.get("team"),
            auth.get("user_id"),
        )
    except SlackApiError:
        logger.exception("Slack auth_test failed (check SLACK_BOT_TOKEN)")

    background = TaskQueue(1, name="spherebot-background")
    workers = TaskQueue(args.workers or settings.workers, name="spherebot-events")
    processor = build_processor(settings, messenger, background=background)
    dispatcher = EventDispatcher(processor, workers)
    feedback_store = FeedbackStore(make_session_factory(get_engine(settings.db_url)))

    api_key_fingerprint = hashlib.sha256(settings.llm_api_key.encode("utf-8")).hexdigest()[:10]
    logger.info(
        "Slack bot config llm=%s api_key_fingerprint=%s workers=%s redis=%s",
        settings.llm_base_url,
        api_key_fingerprint,
        args.workers or settings.workers,
        bool(settings.redis_url),
    )

    app = create_app(settings, dispatcher, feedback_store, messenger)
    try:
        logger.info("Starting Slack bot (Socket Mode) -> %s", settings.llm_base_url)
        SocketModeHandler(app, settings.slack_app_token).start()
    finally:
        dispatcher.stop()
        background.stop()
