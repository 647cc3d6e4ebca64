"""Redis-backed fixed-window counter store.

Each (action, subject, window) gets its own key. ``INCR`` and ``EXPIREAT`` run
in one MULTI/EXEC pipeline, so the count is atomic across every process
sharing the Redis instance and each key expires when its window closes.
"""

from __future__ import annotations

import logging

import redis
from redis.exceptions import RedisError

from gatekeeper.adapters.counter_store.base import (
    AbstractCounterStore,
    CounterSnapshot,
    validate_counter_args,
    window_start_for,
)
from gatekeeper.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class RedisCounterStore(AbstractCounterStore):
    """Counter store shared by all workers through Redis."""

    def __init__(self, client: redis.Redis, *, key_prefix: str = "rate_limit") -> None:
        self._client = client
        self._key_prefix = key_prefix

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        key_prefix: str = "rate_limit",
        socket_timeout_seconds: float = 0.5,
    ) -> "RedisCounterStore":
        """Build a store from a Redis URL.

        The client connects lazily, so an unreachable server surfaces on the
        first increment as StoreUnavailableError rather than at startup.
        """
        client = redis.Redis.from_url(
            url,
            socket_connect_timeout=socket_timeout_seconds,
            socket_timeout=socket_timeout_seconds,
        )
        return cls(client, key_prefix=key_prefix)

    def _make_key(self, subject_id: str, action_type: str, window_start: int) -> str:
        return f"{self._key_prefix}:{action_type}:{subject_id}:{window_start}"

    def increment_and_get(
        self,
        subject_id: str,
        action_type: str,
        now: float,
        *,
        window_seconds: int,
    ) -> CounterSnapshot:
        validate_counter_args(subject_id, action_type, window_seconds)

        window_start = window_start_for(now, window_seconds)
        key = self._make_key(subject_id, action_type, window_start)

        try:
            with self._client.pipeline(transaction=True) as pipe:
                pipe.incr(key)
                pipe.expireat(key, window_start + window_seconds)
                count, _ = pipe.execute()
        except RedisError as exc:
            logger.error(
                "counter_store.redis_error",
                extra={
                    "action_type": action_type,
                    "error_type": type(exc).__name__,
                },
            )
            raise StoreUnavailableError(
                "Rate limit store is unavailable",
                details={"backend": "redis", "action_type": action_type},
            ) from exc

        return CounterSnapshot(count=int(count), window_start=window_start)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError:
            logger.warning("counter_store.redis_ping_failed")
            return False
