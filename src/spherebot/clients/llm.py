"""AnythingLLM REST client (workspaces, threads, chat).

Every call carries a finite timeout and is attempted once; callers treat any
:class:`UpstreamError` as terminal for the event at hand.
"""

from __future__ import annotations

import time
from typing import Any, Protocol
from urllib.parse import quote

import requests

from spherebot.errors import UpstreamError, UpstreamTimeout
from spherebot.logging import get_logger

logger = get_logger(__name__)


class LLMBackend(Protocol):
    def list_workspaces(self) -> list[str]: ...

    def create_thread(self, workspace: str) -> str: ...

    def chat(self, workspace: str, thread_id: str, text: str) -> str: ...


class AnythingLLMClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        list_timeout: float = 10.0,
        create_thread_timeout: float = 15.0,
        chat_timeout: float = 90.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.list_timeout = list_timeout
        self.create_thread_timeout = create_thread_timeout
        self.chat_timeout = chat_timeout
        self._http = session or requests.Session()

    @classmethod
    def from_settings(cls, settings) -> "AnythingLLMClient":
        return cls(
            settings.llm_base_url or "",
            settings.llm_api_key or "",
            list_timeout=settings.list_timeout_seconds,
            create_thread_timeout=settings.create_thread_timeout_seconds,
            chat_timeout=settings.chat_timeout_seconds,
        )

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {self.api_key}"}

    def _request(self, method: str, path: str, *, timeout: float, json: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        started = time.monotonic()
        try:
            response = self._http.request(
                method, url, json=json, headers=self._headers(), timeout=timeout
            )
            response.raise_for_status()
            payload = response.json()
        except requests.Timeout as exc:
            logger.warning("LLM request timed out after %ss: %s %s", timeout, method, path)
            raise UpstreamTimeout(f"{method} {path} timed out") from exc
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else "?"
            logger.warning("LLM request failed with HTTP %s: %s %s", status, method, path)
            raise UpstreamError(f"{method} {path} returned HTTP {status}") from exc
        except (requests.RequestException, ValueError) as exc:
            logger.warning("LLM request failed: %s %s (%s)", method, path, type(exc).__name__)
            raise UpstreamError(f"{method} {path} failed") from exc
        logger.debug(
            "LLM %s %s ok in %sms", method, path, int((time.monotonic() - started) * 1000)
        )
        return payload

    def list_workspaces(self) -> list[str]:
        payload = self._request("GET", "/api/v1/workspaces", timeout=self.list_timeout)
        workspaces = payload.get("workspaces") if isinstance(payload, dict) else None
        if not isinstance(workspaces, list):
            raise UpstreamError("workspace listing has no 'workspaces' array")
        slugs: list[str] = []
        for item in workspaces:
            slug = item.get("slug") if isinstance(item, dict) else None
            if isinstance(slug, str) and slug:
                slugs.append(slug)
        return slugs

    def create_thread(self, workspace: str) -> str:
        payload = self._request(
            "POST",
            f"/api/v1/workspace/{quote(workspace, safe='')}/thread/new",
            timeout=self.create_thread_timeout,
            json={},
        )
        thread = payload.get("thread") if isinstance(payload, dict) else None
        slug = thread.get("slug") if isinstance(thread, dict) else None
        if not isinstance(slug, str) or not slug:
            raise UpstreamError("thread creation response has no thread slug")
        logger.info("Created remote thread %s in workspace %s", slug, workspace)
        return slug

    def chat(self, workspace: str, thread_id: str, text: str) -> str:
        path = (
            f"/api/v1/workspace/{quote(workspace, safe='')}"
            f"/thread/{quote(thread_id, safe='')}/chat"
        )
        payload = self._request(
            "POST", path, timeout=self.chat_timeout, json={"message": text, "mode": "chat"}
        )
        reply = payload.get("textResponse") if isinstance(payload, dict) else None
        if not isinstance(reply, str) or not reply.strip():
            raise UpstreamError("chat response has no textResponse")
        return reply
