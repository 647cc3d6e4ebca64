"""Admission decision engine.

Evaluates whether a subject may perform an action right now. Each evaluation
performs at most one atomic counter increment followed by pure classification;
the engine keeps no state of its own and never retries.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Callable

from gatekeeper.adapters.counter_store.base import AbstractCounterStore
from gatekeeper.core.errors import StoreUnavailableError
from gatekeeper.services.escalation import (
    Decision,
    DecisionKind,
    EscalationClassifier,
    VerificationTier,
)
from gatekeeper.services.policy_registry import PolicyRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Subject:
    """Identity being rate limited, as known at the time of one call.

    The tier is supplied by the caller on every evaluation and is never
    cached, so a subject who verifies mid-window gets the verified ceiling on
    the very next call.
    """

    subject_id: str
    tier: VerificationTier = VerificationTier.UNVERIFIED

    def __post_init__(self) -> None:
        if not self.subject_id:
            raise ValueError("subject_id must be a non-empty string")


def hash_subject_id(subject_id: str) -> str:
    """Hash a subject id for logging without exposing the identity."""
    return hashlib.sha256(subject_id.encode()).hexdigest()[:16]


class DecisionEngine:
    """Combines policy lookup, atomic counting and escalation."""

    def __init__(
        self,
        *,
        registry: PolicyRegistry,
        store: AbstractCounterStore,
        classifier: EscalationClassifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._store = store
        self._classifier = classifier or EscalationClassifier()
        self._clock = clock

    @property
    def registry(self) -> PolicyRegistry:
        return self._registry

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    def now(self) -> float:
        return self._clock()

    def evaluate(self, subject: Subject, action_type: str, now: float) -> Decision:
        """Count one occurrence of ``action_type`` and decide on it.

        Args:
            subject: Identity and current verification tier.
            action_type: Throttled operation.
            now: UNIX time in seconds.

        Returns:
            Decision describing the outcome. Unconfigured actions are always
            allowed and never touch the counter store.

        Raises:
            StoreUnavailableError: If the counter store cannot be reached.
        """
        policy = self._registry.lookup(action_type)
        if policy is None:
            logger.debug(
                "rate_limit.not_configured",
                extra={"action_type": action_type},
            )
            return Decision.not_configured(action_type)

        try:
            snapshot = self._store.increment_and_get(
                subject.subject_id,
                action_type,
                now,
                window_seconds=policy.window_seconds,
            )
        except StoreUnavailableError:
            logger.error(
                "rate_limit.store_unavailable",
                extra={
                    "action_type": action_type,
                    "subject_hash": hash_subject_id(subject.subject_id),
                },
            )
            raise

        decision = self._classifier.classify(
            snapshot.count,
            policy,
            subject.tier,
            window_start=snapshot.window_start,
        )

        log = logger.info if decision.kind is DecisionKind.ALLOWED else logger.warning
        log(
            "rate_limit.decision",
            extra={
                "decision": decision.kind.value,
                "action_type": action_type,
                "tier": subject.tier.value,
                "subject_hash": hash_subject_id(subject.subject_id),
                "count": decision.count,
                "threshold": decision.threshold,
                "window_s": policy.window_seconds,
            },
        )
        return decision

    def evaluate_for(
        self,
        subject_id: str,
        action_type: str,
        tier: VerificationTier | str,
        timestamp: float | None = None,
    ) -> Decision:
        """Evaluate from primitive arguments; ``timestamp`` defaults to now."""
        subject = Subject(subject_id=subject_id, tier=VerificationTier(tier))
        now = self._clock() if timestamp is None else timestamp
        return self.evaluate(subject, action_type, now)
