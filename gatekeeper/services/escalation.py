"""Decision types and the tier escalation classifier.

The classifier turns a post-increment count into one of three outcomes. It is
a pure function of (count, policy, tier) and never touches storage, so the
three-way split can be tested without any counter store.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from gatekeeper.services.policy_registry import Policy


class VerificationTier(str, Enum):
    """Identity verification level of a subject."""

    UNVERIFIED = "unverified"
    VERIFIED = "verified"


class DecisionKind(str, Enum):
    """Outcome of a rate limit evaluation."""

    ALLOWED = "allowed"
    REQUIRES_VERIFICATION = "requires_verification"
    EXCEEDED = "exceeded"


@dataclass(frozen=True)
class Decision:
    """Result of evaluating one action request.

    Attributes:
        kind: Outcome of the evaluation.
        action_type: Evaluated action.
        count: Post-increment count (None when the action is not configured).
        threshold: Ceiling that produced the outcome.
        window_start: Start of the counted window in epoch seconds.
        window_seconds: Length of the counted window.
    """

    kind: DecisionKind
    action_type: str
    count: int | None = None
    threshold: int | None = None
    window_start: int | None = None
    window_seconds: int | None = None

    @property
    def allowed(self) -> bool:
        return self.kind is DecisionKind.ALLOWED

    @classmethod
    def not_configured(cls, action_type: str) -> "Decision":
        return cls(kind=DecisionKind.ALLOWED, action_type=action_type)


def ceiling_for(policy: Policy, tier: VerificationTier) -> int:
    """Return the ceiling that applies to ``tier`` under ``policy``."""
    if tier is VerificationTier.VERIFIED:
        return policy.max_count
    return policy.unverified_max_count


class EscalationClassifier:
    """Maps a count and tier onto allowed / requires_verification / exceeded.

    Ceilings are inclusive. An unverified subject past its own ceiling but
    still within the verified ceiling is offered verification instead of a
    plain denial. Past the verified ceiling every tier is exceeded.
    """

    def classify(
        self,
        count: int,
        policy: Policy,
        tier: VerificationTier,
        *,
        window_start: int | None = None,
    ) -> Decision:
        if count < 1:
            raise ValueError("count must be >= 1")

        ceiling = ceiling_for(policy, tier)

        if count <= ceiling:
            kind = DecisionKind.ALLOWED
            threshold = ceiling
        elif tier is VerificationTier.UNVERIFIED and count <= policy.max_count:
            kind = DecisionKind.REQUIRES_VERIFICATION
            threshold = policy.unverified_max_count
        else:
            kind = DecisionKind.EXCEEDED
            threshold = policy.max_count

        return Decision(
            kind=kind,
            action_type=policy.action_type,
            count=count,
            threshold=threshold,
            window_start=window_start,
            window_seconds=policy.window_seconds,
        )
