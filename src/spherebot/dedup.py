"""Admit each inbound event at most once within a time window."""

from __future__ import annotations

from spherebot.config import DEFAULT_DUPLICATE_EVENT_TTL, DUPLICATE_EVENT_PREFIX
from spherebot.errors import DuplicateEvent, StoreUnavailable
from spherebot.logging import get_logger
from spherebot.store import KeyValueStore

logger = get_logger(__name__)


class EventGate:
    """Dedup guard over a shared :class:`KeyValueStore`.

    The TTL should stay shorter than the platform's redelivery horizon is
    expected to be; once the marker expires the same id is admitted again.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl_seconds: int = DEFAULT_DUPLICATE_EVENT_TTL,
        prefix: str = DUPLICATE_EVENT_PREFIX,
    ) -> None:
        self._store = store
        self._ttl_seconds = int(ttl_seconds)
        self._prefix = prefix

    def admit(self, event_id: str) -> bool:
        """Return True the first time ``event_id`` is seen, False for repeats.

        An unreachable store admits the event.
        """

        key = f"{self._prefix}{event_id}"
        try:
            admitted = self._store.set_if_absent(key, "1", self._ttl_seconds)
        except StoreUnavailable:
            logger.warning("Dedup store unavailable, admitting event %s", event_id, exc_info=True)
            return True
        if not admitted:
            logger.info("Duplicate event skipped: %s", event_id)
        return admitted

    def check(self, event_id: str) -> None:
        """Like :meth:`admit`, but raise :class:`DuplicateEvent` for repeats."""

        if not self.admit(event_id):
            raise DuplicateEvent(event_id)
