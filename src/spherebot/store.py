"""Shared key-value store used for event dedup and the workspace cache.

Only atomic, expiring operations are exposed. ``RedisStore`` is the
production backend; ``MemoryStore`` keeps the same semantics inside one
process and is used when no ``REDIS_URL`` is configured (and in tests).
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Protocol

import redis

from spherebot.errors import StoreUnavailable
from spherebot.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Atomically set ``key`` with expiry; True when newly set."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None: ...


class RedisStore:
    """:class:`KeyValueStore` backed by redis-py.

    Every redis failure is raised as :class:`StoreUnavailable`; callers decide
    whether that means fail open (dedup) or fall through (caches).
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, timeout_seconds: float = 2.0) -> "RedisStore":
        client = redis.Redis.from_url(
            url,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
            decode_responses=True,
        )
        return cls(client)

    def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        try:
            result = self._client.set(key, value, nx=True, ex=int(ttl_seconds))
        except redis.RedisError as exc:
            raise StoreUnavailable(f"redis SET NX failed for {key}") from exc
        return bool(result)

    def get(self, key: str) -> str | None:
        try:
            value = self._client.get(key)
        except redis.RedisError as exc:
            raise StoreUnavailable(f"redis GET failed for {key}") from exc
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self._client.set(key, value, ex=int(ttl_seconds))
        except redis.RedisError as exc:
            raise StoreUnavailable(f"redis SET failed for {key}") from exc

    def close(self) -> None:
        try:
            self._client.close()
        except redis.RedisError:
            logger.warning("Error closing redis connection", exc_info=True)


class MemoryStore:
    """In-process :class:`KeyValueStore` with lazy expiry.

    Writes also sweep expired entries, at most once per ``sweep_interval``
    seconds, so keys that are never read again do not pile up.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        *,
        sweep_interval: float = 60.0,
    ) -> None:
        self._clock = clock
        self._data: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def _sweep(self, now: float) -> None:
        # caller holds the lock
        if now < self._next_sweep:
            return
        expired = [key for key, (_, expires_at) in self._data.items() if expires_at <= now]
        for key in expired:
            del self._data[key]
        self._next_sweep = now + self._sweep_interval
        if expired:
            logger.debug("Swept %d expired keys", len(expired))

    def _live(self, key: str, now: float) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= now:
            del self._data[key]
            return None
        return value

    def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            if self._live(key, now) is not None:
                return False
            self._data[key] = (value, now + ttl_seconds)
            return True

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._live(key, self._clock())

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._data[key] = (value, now + ttl_seconds)


def build_store(redis_url: str | None) -> KeyValueStore:
    if redis_url:
        logger.info("Using redis key-value store")
        return RedisStore.from_url(redis_url)
    logger.warning("REDIS_URL not set; dedup and workspace cache are process-local")
    return MemoryStore()
