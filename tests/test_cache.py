# tests/test_cache.py

from __future__ import annotations

import pytest

from taskhive.llm.cache import TTLCache

from .fakes import FakeClock


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache: TTLCache[list[str]] = TTLCache(ttl_seconds=300.0, clock=clock)
    cache.set("deploy", ["Deploy app"])

    clock.advance(299.0)
    assert cache.get("deploy") == ["Deploy app"]

    clock.advance(1.0)
    assert cache.get("deploy") is None
    assert len(cache) == 0


def test_least_recently_used_entry_is_evicted() -> None:
    cache: TTLCache[int] = TTLCache(ttl_seconds=60.0, max_entries=2, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.get("a") == 1  # "b" is now the oldest

    cache.set("c", 3)

    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3


def test_invalid_size_is_rejected() -> None:
    with pytest.raises(ValueError):
        TTLCache(ttl_seconds=1.0, max_entries=0)
