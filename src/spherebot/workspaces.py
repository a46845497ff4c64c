"""Two-tier cache of valid remote workspace slugs."""

from __future__ import annotations

import json
import threading
import time
from typing import Callable

from spherebot.config import (
    DEFAULT_WORKSPACE,
    DEFAULT_WORKSPACE_LOCAL_TTL,
    DEFAULT_WORKSPACE_SHARED_TTL,
    WORKSPACE_LIST_CACHE_KEY,
)
from spherebot.errors import StoreUnavailable, UpstreamError
from spherebot.logging import get_logger
from spherebot.store import KeyValueStore
from spherebot.tasks import InlineRunner, TaskRunner

logger = get_logger(__name__)


class WorkspaceCache:
    """Process-local tier (``local_ttl``) in front of a shared tier (``shared_ttl``).

    On a full miss the remote listing is fetched once; a non-empty answer
    fills the local tier immediately and the shared tier in the background.
    When every source fails the fixed default set is returned and nothing is
    cached, so the next call tries again.
    """

    def __init__(
        self,
        llm,
        store: KeyValueStore,
        *,
        local_ttl: int = DEFAULT_WORKSPACE_LOCAL_TTL,
        shared_ttl: int = DEFAULT_WORKSPACE_SHARED_TTL,
        default: tuple[str, ...] = (DEFAULT_WORKSPACE,),
        key: str = WORKSPACE_LIST_CACHE_KEY,
        clock: Callable[[], float] = time.monotonic,
        background: TaskRunner | None = None,
    ) -> None:
        if shared_ttl <= local_ttl:
            raise ValueError("shared_ttl must be greater than local_ttl")
        self._llm = llm
        self._store = store
        self.local_ttl = local_ttl
        self.shared_ttl = shared_ttl
        self.default = tuple(default)
        self._key = key
        self._clock = clock
        self._background = background or InlineRunner()
        self._lock = threading.Lock()
        self._local: tuple[str, ...] | None = None
        self._local_expires_at = 0.0

    def get(self) -> tuple[str, ...]:
        local = self._read_local()
        if local is not None:
            return local

        shared = self._read_shared()
        if shared:
            self._write_local(shared)
            return shared

        try:
            fetched = tuple(self._llm.list_workspaces())
        except UpstreamError:
            logger.warning("Workspace listing failed, using default set %s", self.default)
            return self.default
        if not fetched:
            logger.warning("Workspace listing was empty, using default set %s", self.default)
            return self.default

        self._write_local(fetched)
        self._background.add_task(self._write_shared, fetched, label="workspace-cache-write")
        logger.info("Loaded %d workspaces from backend", len(fetched))
        return fetched

    def invalidate(self) -> None:
        with self._lock:
            self._local = None
            self._local_expires_at = 0.0

    def _read_local(self) -> tuple[str, ...] | None:
        with self._lock:
            if self._local is not None and self._clock() < self._local_expires_at:
                return self._local
            return None

    def _write_local(self, workspaces: tuple[str, ...]) -> None:
        with self._lock:
            self._local = workspaces
            self._local_expires_at = self._clock() + self.local_ttl

    def _read_shared(self) -> tuple[str, ...] | None:
        try:
            raw = self._store.get(self._key)
        except StoreUnavailable:
            logger.warning("Shared workspace cache unavailable", exc_info=True)
            return None
        if not raw:
            return None
        try:
            value = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed shared workspace cache entry")
            return None
        if not isinstance(value, list):
            return None
        slugs = tuple(item for item in value if isinstance(item, str) and item)
        return slugs or None

    def _write_shared(self, workspaces: tuple[str, ...]) -> None:
        try:
            self._store.set(self._key, json.dumps(list(workspaces)), self.shared_ttl)
        except StoreUnavailable:
            logger.warning("Could not refresh shared workspace cache", exc_info=True)
