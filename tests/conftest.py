"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set here before any gatekeeper module creates the
global settings instance.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from unittest.mock import Mock  # noqa: E402

import pytest  # noqa: E402

from gatekeeper.adapters.counter_store.in_memory import InMemoryCounterStore  # noqa: E402
from gatekeeper.core.rate_limit import reset_decision_engine  # noqa: E402
from gatekeeper.services.decision_engine import DecisionEngine  # noqa: E402
from gatekeeper.services.policy_registry import Policy, PolicyRegistry  # noqa: E402


@pytest.fixture
def scenario_policy() -> Policy:
    """Policy used by the documented scenarios: 60s window, 5 verified, 2 unverified."""
    return Policy(action_type="create_reel", window_seconds=60, max_count=5, unverified_max_count=2)


@pytest.fixture
def registry(scenario_policy: Policy) -> PolicyRegistry:
    return PolicyRegistry({scenario_policy.action_type: scenario_policy})


@pytest.fixture
def store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=1_000_020.0)


@pytest.fixture
def engine(registry: PolicyRegistry, store: InMemoryCounterStore, clock: Mock) -> DecisionEngine:
    return DecisionEngine(registry=registry, store=store, clock=clock)


@pytest.fixture(autouse=True)
def _fresh_process_engine():
    """Give every test its own process-wide engine (and empty counters)."""
    reset_decision_engine()
    yield
    reset_decision_engine()
