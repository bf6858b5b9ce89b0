from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from cachetools import FIFOCache

""" Bounded address cache with per-entry expiry and first-in-first-out eviction. """


def cache_key(name: str, rtype: str) -> str:
    """Brief: Build the composite `name:type` key shared by the cache and pending table.

    Example:
        >>> cache_key("printer.local", "A")
        'printer.local:A'
    """
    return f"{name}:{rtype}"


@dataclass(frozen=True)
class CacheEntry:
    """An address learned from an mDNS answer and the epoch time it stops being usable."""

    address: str
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class AddressCache:
    """
    Thread-safe, size-bounded cache of resolved addresses.

    Inputs:
        capacity: Maximum number of entries kept (default 1000).
        clock: Callable returning the current epoch time in seconds.
    Outputs:
        AddressCache instance

    Notes:
        Expiry is lazy: get() returns expired entries unchanged and callers
        decide freshness. Expired entries stay until overwritten or evicted.
        Eviction is strictly by insertion order, never by recency of use or
        remaining TTL. Re-inserting a key that is already present moves it to
        the back of the eviction order.

    Example use:
        >>> cache = AddressCache(capacity=2)
        >>> cache.put("a.local", "A", "192.0.2.1", 60)
        >>> cache.get("a.local", "A").address
        '192.0.2.1'
        >>> cache.size()
        1
    """

    def __init__(
        self, capacity: int = 1000, clock: Optional[Callable[[], float]] = None
    ) -> None:
        if int(capacity) < 1:
            raise ValueError("cache capacity must be at least 1")
        self.capacity = int(capacity)
        self._clock = clock or time.time
        self._store: FIFOCache = FIFOCache(maxsize=self.capacity)
        self._lock = threading.RLock()

    def get(self, name: str, rtype: str) -> Optional[CacheEntry]:
        """
        Retrieves the entry stored for (name, rtype), fresh or not.

        Inputs:
            name: Normalized hostname.
            rtype: Record type ("A" or "AAAA").

        Outputs:
            The CacheEntry, or None if the key is not present.
        """
        with self._lock:
            return self._store.get(cache_key(name, rtype))

    def put(self, name: str, rtype: str, address: str, ttl: int) -> CacheEntry:
        """
        Stores an address for ttl seconds, evicting the oldest key when full.

        Inputs:
            name: Normalized hostname.
            rtype: Record type.
            address: IPv4/IPv6 literal as received.
            ttl: Lifetime in seconds.
        Outputs:
            The stored CacheEntry.

        Example use:
            >>> cache = AddressCache(capacity=1)
            >>> _ = cache.put("a.local", "A", "192.0.2.1", 60)
            >>> _ = cache.put("b.local", "A", "192.0.2.2", 60)
            >>> cache.get("a.local", "A") is None
            True
        """
        entry = CacheEntry(address=address, expires_at=self._clock() + int(ttl))
        key = cache_key(name, rtype)
        with self._lock:
            # Drop first so an overwrite re-enters at the back of the FIFO order.
            self._store.pop(key, None)
            # FIFOCache pops the oldest key before inserting when full.
            self._store[key] = entry
        return entry

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._store)

    def __len__(self) -> int:
        return self.size()

    def keys(self) -> list:
        """Return keys oldest-first (the order eviction will follow)."""
        with self._lock:
            return list(self._store.keys())

    def snapshot(self) -> Dict[str, Dict[str, object]]:
        """Brief: Diagnostic view of every entry with its remaining lifetime.

        Inputs:
          - None

        Outputs:
          - dict mapping `name:type` to {"address": str, "expiresIn": int},
            where expiresIn is whole seconds left, floored and never negative.
            Expired entries are reported with expiresIn 0. Nothing is mutated.
        """
        now = self._clock()
        with self._lock:
            items = list(self._store.items())
        return {
            key: {
                "address": entry.address,
                "expiresIn": max(0, int(math.floor(entry.expires_at - now))),
            }
            for key, entry in items
        }
