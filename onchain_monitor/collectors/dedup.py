"""Bounded seen-set for event identity keys."""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Hashable


class DedupCache:
    """Insertion-ordered set that evicts its oldest keys past *capacity*.

    Once the size exceeds ``capacity``, the oldest ``evict_fraction`` of
    capacity is dropped in one sweep. A key evicted this way is no longer
    recognised, so a redelivery older than the eviction horizon will be
    processed again.
    """

    def __init__(self, capacity: int = 10_000, evict_fraction: float = 0.10) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if not 0 < evict_fraction <= 1:
            raise ValueError("evict_fraction must be in (0, 1]")
        self._capacity = capacity
        self._evict_count = max(1, int(capacity * evict_fraction))
        self._keys: OrderedDict[Hashable, None] = OrderedDict()
        self._evicted = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def evicted(self) -> int:
        """Total keys evicted since creation."""
        return self._evicted

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def add(self, key: Hashable) -> None:
        if key in self._keys:
            return
        self._keys[key] = None
        if len(self._keys) > self._capacity:
            evict = min(self._evict_count, len(self._keys))
            for _ in range(evict):
                self._keys.popitem(last=False)
            self._evicted += evict

    def clear(self) -> None:
        self._keys.clear()
