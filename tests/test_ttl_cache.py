from __future__ import annotations

import pytest

from app.application.sync.ttl_cache import BoundedTtlCache


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = BoundedTtlCache(max_entries=10, ttl_seconds=30, clock=clock)
    cache.set("a", [1])

    clock.now += 29
    assert cache.get("a") == [1]
    clock.now += 1
    assert cache.get("a") is None
    assert len(cache) == 0


def test_least_recently_used_entry_is_evicted():
    cache = BoundedTtlCache(max_entries=2, ttl_seconds=60, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)

    assert cache.get("a") == 1
    assert cache.get("b") is None
    assert cache.get("c") == 3


def test_zero_ttl_is_not_stored():
    cache = BoundedTtlCache(max_entries=2, ttl_seconds=60, clock=FakeClock())
    cache.set("a", 1, ttl_seconds=0)

    assert cache.get("a") is None


def test_invalidate_clear_and_prewarm():
    cache = BoundedTtlCache(max_entries=5, ttl_seconds=60, clock=FakeClock())

    assert cache.prewarm([("a", 1), ("b", 2), ("c", 3)]) == 3
    cache.invalidate("a")
    assert cache.get("a") is None
    assert len(cache) == 2
    cache.clear()
    assert len(cache) == 0


def test_max_entries_must_be_positive():
    with pytest.raises(ValueError):
        BoundedTtlCache(max_entries=0, ttl_seconds=1)
