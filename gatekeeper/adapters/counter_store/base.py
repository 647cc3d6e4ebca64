"""Counter store interfaces.

The decision engine depends on this abstraction (not the concrete
implementation) so the storage backend can be swapped without touching the
decision logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CounterSnapshot:
    """Result of one atomic increment.

    Attributes:
        count: Occurrences in the current window, including this one.
        window_start: UNIX epoch seconds at which the current window began.
    """

    count: int
    window_start: int


def window_start_for(now: float, window_seconds: int) -> int:
    """Return the start of the fixed window containing ``now``.

    Windows are aligned to the epoch: ``floor(now / window) * window``.
    """

    return int(now // window_seconds) * window_seconds


def validate_counter_args(subject_id: str, action_type: str, window_seconds: int) -> None:
    """Raise ValueError for arguments no backend can key a counter on."""

    if not subject_id:
        raise ValueError("subject_id must be a non-empty string")
    if not action_type:
        raise ValueError("action_type must be a non-empty string")
    if window_seconds < 1:
        raise ValueError("window_seconds must be >= 1")


class AbstractCounterStore(ABC):
    """Interface for per-(subject, action) fixed-window counters."""

    @abstractmethod
    def increment_and_get(
        self,
        subject_id: str,
        action_type: str,
        now: float,
        *,
        window_seconds: int,
    ) -> CounterSnapshot:
        """Atomically add one occurrence and return the post-increment count.

        Concurrent calls for the same key never lose an increment. A call
        landing in a newer window than the stored record starts again at 1.

        Args:
            subject_id: Identity being rate limited.
            action_type: Throttled operation.
            now: UNIX time in seconds.
            window_seconds: Fixed window length from the action's policy.

        Returns:
            CounterSnapshot for the window containing ``now``.

        Raises:
            ValueError: If the key or window is invalid.
            StoreUnavailableError: If the backend cannot be reached.
        """
        raise NotImplementedError

    def ping(self) -> bool:
        """Report whether the backend is reachable."""
        return True
