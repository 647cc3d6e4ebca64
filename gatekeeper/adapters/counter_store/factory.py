"""Factory pattern for creating counter store instances."""

from gatekeeper.adapters.counter_store.base import AbstractCounterStore
from gatekeeper.adapters.counter_store.in_memory import InMemoryCounterStore
from gatekeeper.adapters.counter_store.redis_store import RedisCounterStore
from gatekeeper.core.config import RateLimitSettings, settings
from gatekeeper.core.errors import ValidationAppError


def create_counter_store(rate_limit_settings: RateLimitSettings | None = None) -> AbstractCounterStore:
    """Instantiate the counter store named by the configured backend.

    Args:
        rate_limit_settings: Optional settings; defaults to the global settings.

    Returns:
        AbstractCounterStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend is unknown.
    """
    cfg = rate_limit_settings or settings.rate_limit
    backend = cfg.backend.lower()

    if backend == "memory":
        return InMemoryCounterStore(lock_stripes=cfg.lock_stripes, sweep_batch=cfg.sweep_batch)

    if backend == "redis":
        return RedisCounterStore.from_url(
            cfg.redis_url,
            key_prefix=cfg.redis_key_prefix,
            socket_timeout_seconds=cfg.redis_socket_timeout_seconds,
        )

    raise ValidationAppError(
        code="rate_limit_unknown_backend",
        message=(
            f"Unknown rate limit backend: '{backend}'. Supported backends: memory, redis"
        ),
    )
