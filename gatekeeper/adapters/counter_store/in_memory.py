"""In-memory fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Keys are spread over a fixed pool of lock stripes. Each stripe owns its
  records and an expiry heap, so there is no lock shared by every key and the
  number of locks never grows with traffic.
- Eviction is incremental: an increment evicts at most ``sweep_batch`` expired
  records from its own stripe.
"""

from __future__ import annotations

import heapq
import logging
import threading
from dataclasses import dataclass, field

from gatekeeper.adapters.counter_store.base import (
    AbstractCounterStore,
    CounterSnapshot,
    validate_counter_args,
    window_start_for,
)

logger = logging.getLogger(__name__)

_Key = tuple[str, str]


@dataclass
class _WindowState:
    window_start: int
    window_seconds: int
    count: int

    @property
    def window_end(self) -> int:
        return self.window_start + self.window_seconds


@dataclass
class _Stripe:
    lock: threading.Lock = field(default_factory=threading.Lock)
    records: dict[_Key, _WindowState] = field(default_factory=dict)
    # (window_end, window_start, key) per record created; entries for replaced records are skipped.
    expiry: list[tuple[int, int, _Key]] = field(default_factory=list)


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store keeping fixed-window counts in process-local stripes.

    A counter record whose window has passed is replaced by a fresh one on the
    next increment. Records for keys that stop receiving traffic are dropped
    as later increments on the same stripe pop them off its expiry heap, or
    all at once by ``evict_stale``.

    Important:
        This store is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will count
        independently. Use the Redis store for shared counters.
    """

    def __init__(self, *, lock_stripes: int = 64, sweep_batch: int = 8) -> None:
        """Initialize the in-memory store.

        Args:
            lock_stripes: Number of lock stripes keys are hashed onto.
            sweep_batch: Most expired records one increment may evict.

        Raises:
            ValueError: If lock_stripes or sweep_batch is invalid.
        """
        if lock_stripes < 1:
            raise ValueError("lock_stripes must be >= 1")
        if sweep_batch < 1:
            raise ValueError("sweep_batch must be >= 1")

        self._sweep_batch = sweep_batch
        self._stripes = tuple(_Stripe() for _ in range(lock_stripes))

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryCounterStore(keys={len(self)}, lock_stripes={len(self._stripes)}, "
            f"sweep_batch={self._sweep_batch})"
        )

    @property
    def lock_count(self) -> int:
        """Number of locks held by the store; fixed at construction."""
        return len(self._stripes)

    def _stripe_for(self, key: _Key) -> _Stripe:
        return self._stripes[hash(key) % len(self._stripes)]

    def increment_and_get(
        self,
        subject_id: str,
        action_type: str,
        now: float,
        *,
        window_seconds: int,
    ) -> CounterSnapshot:
        """Atomically increment the counter for (subject_id, action_type).

        Args:
            subject_id: Identity being rate limited.
            action_type: Throttled operation.
            now: UNIX time in seconds.
            window_seconds: Fixed window length.

        Returns:
            CounterSnapshot with the post-increment count.

        Raises:
            ValueError: If arguments are invalid.
        """
        validate_counter_args(subject_id, action_type, window_seconds)

        key = (subject_id, action_type)
        window_start = window_start_for(now, window_seconds)
        stripe = self._stripe_for(key)

        with stripe.lock:
            evicted = self._evict_expired(stripe, now, limit=self._sweep_batch)
            state = stripe.records.get(key)
            if state is None or state.window_start != window_start:
                state = _WindowState(window_start=window_start, window_seconds=window_seconds, count=0)
                stripe.records[key] = state
                heapq.heappush(stripe.expiry, (state.window_end, window_start, key))
            state.count += 1
            snapshot = CounterSnapshot(count=state.count, window_start=state.window_start)

        if evicted:
            logger.debug("counter_store.evicted", extra={"removed": evicted})
        return snapshot

    def peek(self, subject_id: str, action_type: str, now: float, *, window_seconds: int) -> CounterSnapshot:
        """Return the current count without incrementing it."""

        validate_counter_args(subject_id, action_type, window_seconds)

        key = (subject_id, action_type)
        window_start = window_start_for(now, window_seconds)
        stripe = self._stripe_for(key)
        with stripe.lock:
            state = stripe.records.get(key)
            if state is None or state.window_start != window_start:
                return CounterSnapshot(count=0, window_start=window_start)
            return CounterSnapshot(count=state.count, window_start=state.window_start)

    def evict_stale(self, now: float) -> int:
        """Drop every record whose window ended at or before ``now``.

        Stripes are swept one at a time, each under its own lock.

        Returns:
            Number of records removed.
        """

        removed = 0
        for stripe in self._stripes:
            with stripe.lock:
                removed += self._evict_expired(stripe, now)

        if removed:
            logger.debug(
                "counter_store.evicted",
                extra={"removed": removed, "remaining": len(self)},
            )
        return removed

    @staticmethod
    def _evict_expired(stripe: _Stripe, now: float, limit: int | None = None) -> int:
        """Pop up to ``limit`` expired heap entries; caller holds ``stripe.lock``."""

        removed = 0
        popped = 0
        expiry = stripe.expiry
        while expiry and expiry[0][0] <= now and (limit is None or popped < limit):
            _, window_start, key = heapq.heappop(expiry)
            popped += 1
            current = stripe.records.get(key)
            if current is not None and current.window_start == window_start:
                del stripe.records[key]
                removed += 1
        return removed

    def __len__(self) -> int:
        return sum(len(stripe.records) for stripe in self._stripes)
