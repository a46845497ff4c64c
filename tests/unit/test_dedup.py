"""Tests for the event gate."""

from unittest.mock import MagicMock

import pytest

from spherebot.dedup import EventGate
from spherebot.errors import DuplicateEvent, StoreUnavailable
from spherebot.store import MemoryStore


def test_admit_twice_inside_ttl_returns_true_then_false(clock):
    gate = EventGate(MemoryStore(clock=clock), ttl_seconds=600)

    assert gate.admit("Ev1") is True
    assert gate.admit("Ev1") is False


def test_admit_again_after_ttl_expires(clock):
    gate = EventGate(MemoryStore(clock=clock), ttl_seconds=600)

    assert gate.admit("Ev1") is True
    clock.advance(599)
    assert gate.admit("Ev1") is False
    clock.advance(2)
    assert gate.admit("Ev1") is True


def test_distinct_events_are_independent(clock):
    gate = EventGate(MemoryStore(clock=clock))

    assert gate.admit("Ev1") is True
    assert gate.admit("Ev2") is True


def test_admit_uses_prefixed_key_and_ttl():
    store = MagicMock()
    store.set_if_absent.return_value = True

    EventGate(store, ttl_seconds=42).admit("Ev9")

    store.set_if_absent.assert_called_once_with("slack_event_id:Ev9", "1", 42)


def test_unreachable_store_fails_open():
    store = MagicMock()
    store.set_if_absent.side_effect = StoreUnavailable("down")
    gate = EventGate(store)

    assert gate.admit("Ev1") is True
    assert gate.admit("Ev1") is True


def test_check_raises_duplicate_event(clock):
    gate = EventGate(MemoryStore(clock=clock), ttl_seconds=600)

    gate.check("Ev1")
    with pytest.raises(DuplicateEvent):
        gate.check("Ev1")
