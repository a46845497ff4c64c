"""In-thread commands handled without calling the LLM backend."""

from __future__ import annotations

from spherebot.config import DELETE_LAST_MESSAGE_COMMAND
from spherebot.errors import DeliveryFailure
from spherebot.logging import get_logger

logger = get_logger(__name__)

DELETED_NOTICE = "\N{WHITE HEAVY CHECK MARK} Last message deleted."
NOT_FOUND_NOTICE = "\N{CROSS MARK} I couldn't find my last message in this thread."
DELETE_REFUSED_NOTICE = (
    "\N{CROSS MARK} Sorry, I couldn't delete the message. "
    "It might be too old or I might not have permission."
)
DELETE_ERROR_NOTICE = "\N{CROSS MARK} An error occurred while trying to delete the message."

_CONFIRMATION_MARKS = ("\N{WHITE HEAVY CHECK MARK}", "\N{CROSS MARK}")


def is_delete_last_message(query: str) -> bool:
    return DELETE_LAST_MESSAGE_COMMAND in (query or "").lower()


def find_last_bot_message(messages: list[dict], bot_user_id: str) -> dict | None:
    """Most recent message by the bot that is not a command confirmation."""

    for message in reversed(messages):
        if message.get("user") != bot_user_id:
            continue
        text = str(message.get("text") or "")
        if any(mark in text for mark in _CONFIRMATION_MARKS):
            continue
        return message
    return None


def delete_last_message(messenger, channel_id: str, thread_ts: str, bot_user_id: str) -> bool:
    """Delete the bot's latest reply in the thread and confirm in-thread.

    Returns True when a message was deleted. Failures are reported to the
    user with a short notice and never raised.
    """

    try:
        history = messenger.thread_replies(channel_id, thread_ts, limit=20)
    except DeliveryFailure:
        logger.warning("Could not read thread %s/%s history", channel_id, thread_ts)
        _notify(messenger, channel_id, thread_ts, DELETE_ERROR_NOTICE)
        return False

    target = find_last_bot_message(history, bot_user_id)
    if target is None:
        _notify(messenger, channel_id, thread_ts, NOT_FOUND_NOTICE)
        return False

    try:
        messenger.delete(channel_id, str(target.get("ts")))
    except DeliveryFailure:
        logger.warning("Could not delete message %s in %s", target.get("ts"), channel_id)
        _notify(messenger, channel_id, thread_ts, DELETE_REFUSED_NOTICE)
        return False

    logger.info("Deleted bot message %s in %s", target.get("ts"), channel_id)
    _notify(messenger, channel_id, thread_ts, DELETED_NOTICE)
    return True


def _notify(messenger, channel_id: str, thread_ts: str, text: str) -> None:
    try:
        messenger.post(channel_id, thread_ts, text)
    except DeliveryFailure:
        logger.warning("Could not post command notice in %s", channel_id)
