"""
Time-bounded cache (``homestay_kernel.domain.cache``).

Settings that change rarely (payment test mode, gateway overrides) are read
through a ``TTLCache`` owned by the service that needs them.  The cache is an
explicit object with an injected Clock rather than module state, so tests
decide when entries expire.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Generic, Hashable, TypeVar

from homestay_kernel.domain.clock import Clock

V = TypeVar("V")


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: datetime


class TTLCache(Generic[V]):
    """Key/value cache whose entries expire ``ttl`` after being stored."""

    def __init__(self, clock: Clock, ttl: timedelta):
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        self._clock = clock
        self._ttl = ttl
        self._entries: dict[Hashable, _Entry[V]] = {}

    def get(self, key: Hashable) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock.now() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry.value

    def put(self, key: Hashable, value: V) -> None:
        self._entries[key] = _Entry(value, self._clock.now() + self._ttl)

    def get_or_load(self, key: Hashable, loader: Callable[[], V]) -> V:
        """
        Return the cached value, calling ``loader`` on a miss or expiry.

        A ``None`` result is cached too, so an absent setting is not
        re-queried until the entry expires.
        """
        entry = self._entries.get(key)
        if entry is not None and self._clock.now() < entry.expires_at:
            return entry.value
        value = loader()
        self.put(key, value)
        return value

    def invalidate(self, key: Hashable | None = None) -> None:
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Any) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock.now() < entry.expires_at
