"""Decide whether a reply deserves rating buttons and attach them."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Sequence

from spherebot.config import DEFAULT_MIN_SUBSTANTIVE_LENGTH
from spherebot.formatting.chunks import Chunk

FEEDBACK_PREFIX = "feedback_"

FILLER_REPLIES = frozenset({"ok", "done", "hello", "hi", "hey", "thanks", "thank you"})

NON_SUBSTANTIVE_PREFIXES = (
    "sorry",
    "i cannot",
    "i am unable",
    "i don't know",
    "i do not know",
    "i have no information",
    "how can i help",
    "conversation reset",
    "context will be ignored",
    "hello ",
    "hi ",
    "hey ",
    "encountered an error",
)

INTERNAL_ERROR_MARKER = "encountered an error processing your request"


def is_substantive(raw_text: str | None, min_length: int = DEFAULT_MIN_SUBSTANTIVE_LENGTH) -> bool:
    text = (raw_text or "").strip().lower()
    if len(text) < min_length:
        return False
    if text in FILLER_REPLIES:
        return False
    if text.startswith(NON_SUBSTANTIVE_PREFIXES):
        return False
    if INTERNAL_ERROR_MARKER in text:
        return False
    return True


@dataclass(frozen=True)
class FeedbackOption:
    value: str
    emoji: str
    style: str | None = None

    @property
    def action_id(self) -> str:
        return f"{FEEDBACK_PREFIX}{self.value}"

    def to_element(self) -> dict:
        element = {
            "type": "button",
            "text": {"type": "plain_text", "text": self.emoji, "emoji": True},
            "value": self.value,
            "action_id": self.action_id,
        }
        if self.style:
            element["style"] = self.style
        return element


FEEDBACK_OPTIONS = (
    FeedbackOption("bad", "\N{THUMBS DOWN SIGN}", "danger"),
    FeedbackOption("ok", "\N{OK HAND SIGN}"),
    FeedbackOption("great", "\N{THUMBS UP SIGN}", "primary"),
)


@dataclass(frozen=True)
class FeedbackControls:
    """Three mutually exclusive rating buttons, rendered after the content."""

    block_id: str
    options: tuple[FeedbackOption, ...] = FEEDBACK_OPTIONS

    def to_blocks(self) -> list[dict]:
        return [
            {"type": "divider"},
            {
                "type": "actions",
                "block_id": self.block_id,
                "elements": [option.to_element() for option in self.options],
            },
        ]


def feedback_block_id(question_ts: str, workspace: str) -> str:
    return f"{FEEDBACK_PREFIX}{question_ts}_{workspace}"


def parse_feedback_block_id(block_id: str | None) -> tuple[str | None, str | None]:
    """Return ``(question_ts, workspace)`` from a feedback ``block_id``.

    Slack timestamps never contain underscores, so the first underscore
    after the prefix separates the two parts.
    """

    if not block_id or not block_id.startswith(FEEDBACK_PREFIX):
        return None, None
    question_ts, _, workspace = block_id[len(FEEDBACK_PREFIX) :].partition("_")
    return question_ts or None, workspace or None


def attach(
    chunks: Sequence[Chunk],
    raw_text: str | None,
    block_id: str,
    *,
    min_length: int = DEFAULT_MIN_SUBSTANTIVE_LENGTH,
) -> list[Chunk]:
    """Return ``chunks`` with rating controls on the last one.

    Nothing is attached when the reply is not substantive or when the last
    chunk is empty.
    """

    result = list(chunks)
    if not result or result[-1].is_empty:
        return result
    if not is_substantive(raw_text, min_length):
        return result
    result[-1] = replace(result[-1], feedback=FeedbackControls(block_id))
    return result
