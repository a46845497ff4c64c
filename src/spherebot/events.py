"""Inbound Slack message events."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

IGNORED_SUBTYPES = frozenset(
    {
        "bot_message",
        "message_deleted",
        "message_changed",
        "channel_join",
        "channel_leave",
        "thread_broadcast",
    }
)


def unescape_slack_text(text: str) -> str:
    raw = (text or "").strip()
    if not raw:
        return ""
    return raw.replace("&amp;", "&").replace("&lt;", "<").replace("&gt;", ">").strip()


class InboundEvent(BaseModel):
    """A ``message`` or ``app_mention`` event as delivered by Slack."""

    event_id: str
    channel_id: str = Field(alias="channel")
    user_id: str | None = Field(default=None, alias="user")
    text: str = ""
    ts: str
    thread_ts: str | None = None
    subtype: str | None = None
    bot_id: str | None = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @classmethod
    def from_slack(cls, event: dict[str, Any], event_id: str | None = None) -> "InboundEvent":
        """Build from the ``event`` payload; ``event_id`` comes from the envelope.

        Slack omits the envelope id in some delivery paths; the event
        timestamp then stands in as ``no-id:<event_ts>``.
        """

        ts = str(event.get("ts") or event.get("event_ts") or "")
        fallback = f"no-id:{event.get('event_ts') or ts}"
        return cls.model_validate(
            {
                **event,
                "ts": ts,
                "text": event.get("text") or "",
                "event_id": event_id or fallback,
            }
        )

    @property
    def thread_root_key(self) -> str:
        return self.thread_ts or self.ts

    @property
    def is_dm(self) -> bool:
        return self.channel_id.startswith("D")

    def mentions(self, bot_user_id: str | None) -> bool:
        return bool(bot_user_id) and f"<@{bot_user_id}>" in self.text

    def query_text(self, bot_user_id: str | None) -> str:
        """Message text with the bot mention removed and entities unescaped."""

        raw = self.text
        if bot_user_id:
            raw = raw.replace(f"<@{bot_user_id}>", "", 1)
        return unescape_slack_text(raw)

    def skip_reason(self, bot_user_id: str | None) -> str | None:
        if self.subtype in IGNORED_SUBTYPES:
            return f"subtype {self.subtype}"
        if self.bot_id:
            return "bot message"
        if not self.user_id:
            return "no user"
        if bot_user_id and self.user_id == bot_user_id:
            return "own message"
        if not self.text.strip():
            return "empty text"
        if not (self.is_dm or self.mentions(bot_user_id)):
            return "channel message without mention"
        return None

    def should_handle(self, bot_user_id: str | None) -> bool:
        return self.skip_reason(bot_user_id) is None
