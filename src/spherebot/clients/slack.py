"""Thin wrapper over ``slack_sdk.WebClient`` used by the pipeline."""

from __future__ import annotations

from typing import Any, Protocol

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from spherebot.errors import DeliveryFailure
from spherebot.logging import get_logger

logger = get_logger(__name__)


class Messenger(Protocol):
    def post(
        self,
        channel: str,
        thread_ts: str | None,
        fallback_text: str,
        blocks: list[dict] | None = None,
    ) -> str: ...

    def update(self, channel: str, ts: str, text: str, blocks: list[dict] | None = None) -> None: ...

    def delete(self, channel: str, ts: str) -> None: ...

    def thread_replies(self, channel: str, thread_ts: str, limit: int = 20) -> list[dict]: ...


def _error_code(exc: SlackApiError) -> str | None:
    response = getattr(exc, "response", None)
    if response is None:
        return None
    try:
        return str(response.get("error") or "") or None
    except AttributeError:
        return None


class SlackMessenger:
    """:class:`Messenger` backed by the Slack Web API."""

    def __init__(self, client: WebClient) -> None:
        self.client = client

    @classmethod
    def from_token(cls, token: str, *, timeout_seconds: int = 30) -> "SlackMessenger":
        return cls(WebClient(token=token, timeout=timeout_seconds))

    def _call(self, method: str, **kwargs: Any):
        try:
            return getattr(self.client, method)(**kwargs)
        except SlackApiError as exc:
            code = _error_code(exc)
            logger.warning("Slack %s failed (%s) channel=%s", method, code, kwargs.get("channel"))
            raise DeliveryFailure(f"slack {method} failed", error_code=code) from exc
        except (TimeoutError, OSError) as exc:
            # urllib's URLError is an OSError
            code = "timeout" if isinstance(exc, TimeoutError) else "network_error"
            logger.warning("Slack %s failed (%s: %s) channel=%s", method, code, exc, kwargs.get("channel"))
            raise DeliveryFailure(f"slack {method} failed", error_code=code) from exc

    def post(
        self,
        channel: str,
        thread_ts: str | None,
        fallback_text: str,
        blocks: list[dict] | None = None,
    ) -> str:
        kwargs: dict[str, Any] = {"channel": channel, "text": fallback_text}
        if thread_ts:
            kwargs["thread_ts"] = thread_ts
        if blocks:
            kwargs["blocks"] = blocks
        response = self._call("chat_postMessage", **kwargs)
        return str(response.get("ts") or "")

    def update(self, channel: str, ts: str, text: str, blocks: list[dict] | None = None) -> None:
        kwargs: dict[str, Any] = {"channel": channel, "ts": ts, "text": text}
        if blocks is not None:
            kwargs["blocks"] = blocks
        self._call("chat_update", **kwargs)

    def delete(self, channel: str, ts: str) -> None:
        self._call("chat_delete", channel=channel, ts=ts)

    def thread_replies(self, channel: str, thread_ts: str, limit: int = 20) -> list[dict]:
        response = self._call("conversations_replies", channel=channel, ts=thread_ts, limit=limit)
        messages = response.get("messages")
        return list(messages) if isinstance(messages, list) else []
