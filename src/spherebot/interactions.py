"""Handle clicks on the rating buttons attached to replies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from spherebot.db.feedback import FeedbackEntry, FeedbackStore
from spherebot.errors import DeliveryFailure, StoreUnavailable
from spherebot.formatting.feedback import FEEDBACK_OPTIONS, FEEDBACK_PREFIX, parse_feedback_block_id
from spherebot.logging import get_logger

logger = get_logger(__name__)

THANKS = "\N{PERSON WITH FOLDED HANDS} Thanks!"

_EMOJI_BY_VALUE = {option.value: option.emoji for option in FEEDBACK_OPTIONS}


@dataclass(frozen=True)
class FeedbackAction:
    value: str
    action_id: str
    user_id: str | None
    channel_id: str | None
    message_ts: str | None
    message_text: str
    message_blocks: list[dict]
    question_ts: str | None
    workspace: str | None

    @classmethod
    def from_body(cls, body: dict[str, Any]) -> "FeedbackAction | None":
        """Parse a ``block_actions`` payload; None when it is not a rating."""

        actions = body.get("actions") or []
        if not actions or not isinstance(actions[0], dict):
            return None
        action = actions[0]
        action_id = str(action.get("action_id") or "")
        if not action_id.startswith(FEEDBACK_PREFIX):
            return None
        message = body.get("message") or {}
        question_ts, workspace = parse_feedback_block_id(action.get("block_id"))
        return cls(
            value=str(action.get("value") or action_id[len(FEEDBACK_PREFIX) :]),
            action_id=action_id,
            user_id=(body.get("user") or {}).get("id"),
            channel_id=(body.get("channel") or {}).get("id"),
            message_ts=message.get("ts"),
            message_text=str(message.get("text") or ""),
            message_blocks=list(message.get("blocks") or []),
            question_ts=question_ts,
            workspace=workspace,
        )


def acknowledged_blocks(blocks: list[dict], value: str) -> list[dict]:
    """Replace the rating controls with a thank-you context line."""

    kept = [block for block in blocks if block.get("type") not in {"divider", "actions"}]
    emoji = _EMOJI_BY_VALUE.get(value, "")
    kept.append(
        {
            "type": "context",
            "elements": [{"type": "mrkdwn", "text": f"{THANKS} (_{emoji}_)" if emoji else THANKS}],
        }
    )
    return kept


def handle_feedback(body: dict[str, Any], store: FeedbackStore, messenger) -> bool:
    """Store a rating and acknowledge it on the rated message.

    Returns True when the rating was stored. The acknowledgement is
    best-effort and never raises.
    """

    action = FeedbackAction.from_body(body)
    if action is None:
        return False
    logger.info(
        "Feedback %s from %s on %s (question %s, workspace %s)",
        action.value,
        action.user_id,
        action.message_ts,
        action.question_ts,
        action.workspace,
    )

    stored = True
    try:
        store.record(
            FeedbackEntry(
                feedback_value=action.value,
                user_id=action.user_id,
                channel_id=action.channel_id,
                bot_message_ts=action.message_ts,
                original_user_message_ts=action.question_ts,
                action_id=action.action_id,
                workspace=action.workspace,
                bot_message_text=action.message_text or None,
            )
        )
    except StoreUnavailable:
        logger.exception("Could not store feedback for %s", action.message_ts)
        stored = False

    if action.channel_id and action.message_ts:
        try:
            messenger.update(
                action.channel_id,
                action.message_ts,
                f"{action.message_text}\n\n{THANKS}".strip(),
                acknowledged_blocks(action.message_blocks, action.value),
            )
        except DeliveryFailure:
            logger.warning("Could not acknowledge feedback on %s", action.message_ts)
    return stored
