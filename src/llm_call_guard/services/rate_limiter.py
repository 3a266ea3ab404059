from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Hashable


class _IdentityRecord:
    __slots__ = ("lock", "events", "retired")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.events: deque[float] = deque()
        # Set under lock when the record leaves the registry; holders must re-fetch
        self.retired = False


class SlidingWindowRateLimiter:
    """
    Per-identity sliding-window limiter.

    At most max_calls admissions per identity in any trailing window of
    window_s seconds. Timestamps that are window_s old or older are evicted
    lazily on the next check for the same identity.

    Each identity has its own lock, so read-prune-append is atomic per
    identity while different identities never contend. The registry lock
    guards creation and removal of records.

    Records whose timestamps have all expired are swept at most once per
    window, so the registry only holds identities seen in the last window.
    All callers of one instance must share the same monotonic clock.
    """

    def __init__(self, max_calls: int, window_s: float) -> None:
        self._max_calls = max_calls
        self._window_s = window_s
        self._registry_lock = threading.Lock()
        self._records: dict[Hashable, _IdentityRecord] = {}
        self._last_sweep: float | None = None

    @property
    def max_calls(self) -> int:
        return self._max_calls

    @property
    def window_s(self) -> float:
        return self._window_s

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._records)

    def _record(self, identity: Hashable) -> _IdentityRecord:
        with self._registry_lock:
            record = self._records.get(identity)
            if record is None:
                record = _IdentityRecord()
                self._records[identity] = record
            return record

    def _prune(self, events: deque[float], now: float) -> None:
        cutoff = now - self._window_s
        while events and events[0] <= cutoff:
            events.popleft()

    def _maybe_sweep(self, now: float) -> None:
        with self._registry_lock:
            if self._last_sweep is None:
                self._last_sweep = now
                return
            if now - self._last_sweep < self._window_s:
                return
            self._last_sweep = now

            for identity, record in list(self._records.items()):
                # Busy records are in use, skip them until the next sweep
                if not record.lock.acquire(blocking=False):
                    continue
                try:
                    self._prune(record.events, now)
                    if not record.events:
                        record.retired = True
                        del self._records[identity]
                finally:
                    record.lock.release()

    def is_allowed(self, identity: Hashable, now: float | None = None) -> bool:
        """
        Return True and record the call if identity is under its limit, else False.

        identity must be hashable (str, int, tuple, ...); it is used as a dict key.
        now must be a monotonic reading, non-decreasing across calls.
        """
        if self._max_calls <= 0:
            return False
        if self._window_s <= 0:
            return True

        if now is None:
            now = time.monotonic()

        self._maybe_sweep(now)

        while True:
            record = self._record(identity)
            with record.lock:
                if record.retired:
                    continue

                self._prune(record.events, now)

                if len(record.events) >= self._max_calls:
                    return False

                record.events.append(now)
                return True

    def remaining(self, identity: Hashable, now: float | None = None) -> int:
        if self._max_calls <= 0:
            return 0
        if self._window_s <= 0:
            return self._max_calls

        if now is None:
            now = time.monotonic()

        with self._registry_lock:
            record = self._records.get(identity)
        if record is None:
            return self._max_calls

        with record.lock:
            if record.retired:
                return self._max_calls
            self._prune(record.events, now)
            return self._max_calls - len(record.events)

    def reset(self, identity: Hashable | None = None) -> None:
        """
        Forget recorded calls for one identity, or for all identities.

        Safe under concurrent traffic: a caller holding a reset record
        re-fetches a fresh one instead of writing to the old one.
        """
        with self._registry_lock:
            if identity is None:
                targets = list(self._records.items())
            elif identity in self._records:
                targets = [(identity, self._records[identity])]
            else:
                targets = []

            for key, record in targets:
                with record.lock:
                    record.retired = True
                    record.events.clear()
                del self._records[key]
