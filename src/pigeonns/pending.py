"""In-flight query bookkeeping.

A PendingQuery is the single join point for every caller waiting on the same
`name:type` key. All callers share one concurrent.futures.Future, so they all
observe exactly the same address or the same exception.

PendingQueryTable is not locked on its own; MdnsResolver owns it and only
touches it while holding its engine lock.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Callable, Dict, List, Optional


class PendingQuery:
    """Brief: One outstanding mDNS question and the callers joined on it.

    Inputs:
      - key: Composite cache key (`name:type`).
      - name: Normalized hostname that was queried.
      - rtype: Record type that was queried.

    Outputs:
      - PendingQuery instance whose `future` settles exactly once.
    """

    def __init__(self, key: str, name: str, rtype: str) -> None:
        self.key = key
        self.name = name
        self.rtype = rtype
        self.future: Future = Future()
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._settled = False

    @property
    def settled(self) -> bool:
        return self._settled

    def arm(self, timeout_ms: int, on_expire: Callable[["PendingQuery"], None]) -> None:
        """Brief: Start the timeout timer that calls on_expire(self) after timeout_ms.

        Inputs:
          - timeout_ms: Query window in milliseconds.
          - on_expire: Callback run on the timer thread.

        Outputs:
          - None
        """
        delay = max(0, int(timeout_ms)) / 1000.0
        timer = threading.Timer(delay, on_expire, args=(self,))
        timer.daemon = True
        timer.name = f"pigeonns-timeout-{self.key}"
        with self._lock:
            if self._settled:
                return
            self._timer = timer
        timer.start()

    def join(self) -> Future:
        return self.future

    def resolve(self, address: str) -> bool:
        """Settle every joined caller with address. Returns False if already settled."""
        if not self._finish():
            return False
        if self.future.done():
            return False
        self.future.set_result(address)
        return True

    def reject(self, exc: BaseException) -> bool:
        """Settle every joined caller with exc. Returns False if already settled."""
        if not self._finish():
            return False
        if self.future.done():
            return False
        self.future.set_exception(exc)
        return True

    def _finish(self) -> bool:
        with self._lock:
            if self._settled:
                return False
            self._settled = True
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        return True


class PendingQueryTable:
    """Brief: At most one PendingQuery per key.

    Inputs:
      - None

    Outputs:
      - PendingQueryTable instance.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, PendingQuery] = {}

    def get(self, key: str) -> Optional[PendingQuery]:
        return self._entries.get(key)

    def add(self, pending: PendingQuery) -> None:
        if pending.key in self._entries:
            raise KeyError(f"query already pending for {pending.key}")
        self._entries[pending.key] = pending

    def pop(self, key: str, pending: Optional[PendingQuery] = None) -> Optional[PendingQuery]:
        """Brief: Remove and return the entry for key.

        Inputs:
          - key: Composite key.
          - pending: When given, only remove if the current entry is this exact
            instance. A stale timer for an earlier query must not remove a
            newer query registered under the same key.

        Outputs:
          - The removed PendingQuery, or None.
        """
        current = self._entries.get(key)
        if current is None:
            return None
        if pending is not None and current is not pending:
            return None
        del self._entries[key]
        return current

    def drain(self) -> List[PendingQuery]:
        entries = list(self._entries.values())
        self._entries.clear()
        return entries

    def keys(self) -> List[str]:
        return list(self._entries.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
