"""
Unit tests for uplink_alerts.core.state.key_value_store.InMemoryKeyValueStore.
"""

from __future__ import annotations

from uplink_alerts.core.state.key_value_store import InMemoryKeyValueStore


def test_update_sets_value_and_returns_result() -> None:
    store: InMemoryKeyValueStore[int] = InMemoryKeyValueStore()
    result = store.update("k", lambda prev: (1 if prev is None else prev + 1, "created"))
    assert result == "created"
    assert store.get("k") == 1


def test_update_with_none_keeps_previous_value() -> None:
    store: InMemoryKeyValueStore[int] = InMemoryKeyValueStore()
    store.update("k", lambda prev: (5, None))
    store.update("k", lambda prev: (None, prev))
    assert store.get("k") == 5


def test_get_missing_returns_none() -> None:
    store: InMemoryKeyValueStore[int] = InMemoryKeyValueStore()
    assert store.get("nope") is None
    assert len(store) == 0
