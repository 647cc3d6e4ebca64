"""Rate limiting integration for FastAPI routes.

This module wires the decision engine into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- Swap-friendly: the counter store can be replaced (e.g., Redis) behind an
  abstract interface.
- Fail closed: a store failure or timeout blocks the action unless the action
  type is explicitly listed in RATE_LIMIT_FAIL_OPEN_ACTIONS.

Subjects are identified by the ``X-Subject-Id`` header and their tier by
``X-Verification-Tier``. Both are owned by the identity subsystem in front of
this service; the core never looks them up itself.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Annotated, Awaitable, Callable

from fastapi import Header

from gatekeeper.adapters.counter_store.factory import create_counter_store
from gatekeeper.core.config import settings
from gatekeeper.core.errors import (
    RateLimitExceededError,
    StoreUnavailableError,
    ValidationAppError,
    VerificationRequiredError,
)
from gatekeeper.services.decision_engine import DecisionEngine, hash_subject_id
from gatekeeper.services.escalation import Decision, DecisionKind, VerificationTier
from gatekeeper.services.policy_registry import PolicyRegistry

logger = logging.getLogger(__name__)


_engine: DecisionEngine | None = None
_engine_config: tuple | None = None


def _current_engine_config() -> tuple:
    cfg = settings.rate_limit
    policies = tuple(
        sorted(
            (name, p.window_seconds, p.max_count, p.unverified_max_count)
            for name, p in cfg.policies.items()
        )
    )
    return (cfg.backend, cfg.redis_url, cfg.redis_key_prefix, cfg.lock_stripes, cfg.sweep_batch, policies)


def get_decision_engine() -> DecisionEngine:
    """Return a process-wide decision engine instance.

    The instance is cached in-module so counters survive across requests.
    If configuration changes (primarily in tests), the engine is rebuilt.

    Returns:
        DecisionEngine: Configured engine instance.
    """

    global _engine, _engine_config

    config = _current_engine_config()
    if _engine is None or _engine_config != config:
        _engine = DecisionEngine(
            registry=PolicyRegistry.from_settings(),
            store=create_counter_store(),
        )
        _engine_config = config

    return _engine


def reset_decision_engine() -> None:
    """Drop the cached engine so the next call rebuilds it."""

    global _engine, _engine_config
    _engine = None
    _engine_config = None


def parse_fail_open_actions(actions_string: str | None) -> set[str]:
    """Parse the comma-separated fail-open action list into a set."""
    if not actions_string:
        return set()
    return {action.strip() for action in actions_string.split(",") if action.strip()}


def parse_tier(value: str | None) -> VerificationTier:
    """Parse a verification tier header value.

    Missing values default to ``unverified``; unknown values are rejected.

    Raises:
        ValidationAppError: If the value is not a known tier.
    """
    if not value:
        return VerificationTier.UNVERIFIED
    try:
        return VerificationTier(value.strip().lower())
    except ValueError as exc:
        raise ValidationAppError(
            code="invalid_verification_tier",
            message=f"Unknown verification tier: '{value}'",
            details={"hint": "Use 'verified' or 'unverified'"},
        ) from exc


def retry_after_seconds(decision: Decision, now: float) -> int | None:
    """Seconds until the decision's window rolls over, or None without a window."""
    if decision.window_start is None or decision.window_seconds is None:
        return None
    return max(0, int(math.ceil(decision.window_start + decision.window_seconds - now)))


async def evaluate_action(
    subject_id: str,
    action_type: str,
    tier: VerificationTier | str,
    *,
    timestamp: float | None = None,
    engine: DecisionEngine | None = None,
) -> Decision:
    """Evaluate an action with timeout protection and fail-open handling.

    Runs the synchronous engine in the default executor under
    ``asyncio.wait_for``. A timeout is handled exactly like a store failure.

    Args:
        subject_id: Identity being rate limited.
        action_type: Throttled operation.
        tier: Subject's current verification tier.
        timestamp: Evaluation time (defaults to the engine clock).
        engine: Engine override; defaults to the process-wide engine.

    Returns:
        The engine's Decision, or an ``allowed`` decision when the store is
        down and the action is configured to fail open.

    Raises:
        StoreUnavailableError: On store failure or timeout for fail-closed actions.
    """
    engine = engine or get_decision_engine()
    tier = VerificationTier(tier)
    timeout_seconds = settings.rate_limit.store_timeout_seconds
    loop = asyncio.get_running_loop()

    try:
        return await asyncio.wait_for(
            loop.run_in_executor(None, engine.evaluate_for, subject_id, action_type, tier, timestamp),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        logger.warning(
            "rate_limit.evaluation_timeout",
            extra={"action_type": action_type, "timeout_seconds": timeout_seconds},
        )
        failure = StoreUnavailableError(
            "Rate limit store did not respond in time",
            code="store_timeout",
            details={"action_type": action_type},
        )
        failure.__cause__ = exc
    except StoreUnavailableError as exc:
        failure = exc

    if action_type in parse_fail_open_actions(settings.rate_limit.fail_open_actions):
        logger.warning(
            "rate_limit.fail_open",
            extra={
                "action_type": action_type,
                "subject_hash": hash_subject_id(subject_id),
                "error_code": failure.code,
            },
        )
        return Decision.not_configured(action_type)

    raise failure


async def enforce_action(
    subject_id: str,
    action_type: str,
    tier: VerificationTier | str,
    *,
    timestamp: float | None = None,
    engine: DecisionEngine | None = None,
) -> Decision:
    """Evaluate an action and raise when it must not proceed.

    Raises:
        VerificationRequiredError: The subject should verify identity first.
        RateLimitExceededError: The subject must wait for the window to roll over.
        StoreUnavailableError: The store is down and the action fails closed.
    """
    engine = engine or get_decision_engine()
    now = engine.now() if timestamp is None else timestamp
    decision = await evaluate_action(subject_id, action_type, tier, timestamp=now, engine=engine)

    if decision.kind is DecisionKind.ALLOWED:
        return decision

    details = {
        "action_type": action_type,
        "count": decision.count,
        "threshold": decision.threshold,
        "window_seconds": decision.window_seconds,
    }

    if decision.kind is DecisionKind.REQUIRES_VERIFICATION:
        raise VerificationRequiredError(
            code="rate_limit_verify",
            message="Action limit reached for unverified accounts. Verify your identity to continue.",
            details=details,
        )

    details["retry_after"] = retry_after_seconds(decision, now) or 0
    if decision.window_start is not None and decision.window_seconds is not None:
        details["reset_at"] = decision.window_start + decision.window_seconds
    raise RateLimitExceededError(
        code="rate_limit_exceeded",
        message="Rate limit exceeded. Try again later.",
        details=details,
    )


def require_action(action_type: str) -> Callable[..., Awaitable[None]]:
    """Build a FastAPI dependency that enforces the limit for ``action_type``.

    Usage:
        @router.post("/posts", dependencies=[Depends(require_action("create_post"))])
    """

    async def _dependency(
        x_subject_id: Annotated[str | None, Header(alias="X-Subject-Id")] = None,
        x_verification_tier: Annotated[str | None, Header(alias="X-Verification-Tier")] = None,
    ) -> None:
        await enforce_from_headers(action_type, x_subject_id, x_verification_tier)

    return _dependency


async def enforce_from_headers(
    action_type: str,
    x_subject_id: str | None,
    x_verification_tier: str | None,
) -> Decision | None:
    """Enforce ``action_type`` for the subject described by request headers.

    Returns None without evaluating when rate limiting is disabled.

    Raises:
        ValidationAppError: If the subject id is missing or the tier is unknown.
    """
    if not settings.rate_limit.enabled:
        logger.debug("rate_limit.skipped", extra={"reason": "rate_limit_disabled"})
        return None
    if not x_subject_id:
        raise ValidationAppError(
            code="missing_subject_id",
            message="Missing subject id. Provide X-Subject-Id header.",
        )
    return await enforce_action(x_subject_id, action_type, parse_tier(x_verification_tier))
