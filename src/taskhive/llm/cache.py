# src/taskhive/llm/cache.py

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Generic, TypeVar

from ..core.ports import Clock

V = TypeVar("V")


class TTLCache(Generic[V]):
    """
    Bounded string-keyed cache with per-entry expiry.

    - entries expire `ttl_seconds` after they were stored (measured on `clock`)
    - when full, the least recently used entry is evicted
    - the clock is injectable so expiry is testable without sleeping
    """

    def __init__(self, *, ttl_seconds: float, max_entries: int = 256, clock: Clock = time.monotonic) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._ttl = float(ttl_seconds)
        self._max = int(max_entries)
        self._clock = clock
        self._items: OrderedDict[str, tuple[float, V]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._items)

    def get(self, key: str) -> V | None:
        item = self._items.get(key)
        if item is None:
            return None
        expires_at, value = item
        if self._clock() >= expires_at:
            del self._items[key]
            return None
        self._items.move_to_end(key)
        return value

    def set(self, key: str, value: V) -> None:
        self._items[key] = (self._clock() + self._ttl, value)
        self._items.move_to_end(key)
        while len(self._items) > self._max:
            self._items.popitem(last=False)

    def clear(self) -> None:
        self._items.clear()
