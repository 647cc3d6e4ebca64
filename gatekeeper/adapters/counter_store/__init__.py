"""Counter store adapters.

The decision engine only depends on ``AbstractCounterStore``. Single-process
deployments use the in-memory store; multi-process deployments point every
worker at the same Redis instance.
"""

from gatekeeper.adapters.counter_store.base import AbstractCounterStore, CounterSnapshot
from gatekeeper.adapters.counter_store.factory import create_counter_store
from gatekeeper.adapters.counter_store.in_memory import InMemoryCounterStore
from gatekeeper.adapters.counter_store.redis_store import RedisCounterStore

__all__ = [
    "AbstractCounterStore",
    "CounterSnapshot",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "create_counter_store",
]
