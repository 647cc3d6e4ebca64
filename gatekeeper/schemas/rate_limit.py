"""Pydantic schemas for rate limit evaluation requests and responses."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from gatekeeper.services.escalation import DecisionKind, VerificationTier


class EvaluateRequest(BaseModel):
    """Request to count and evaluate one action occurrence."""

    subject_id: str = Field(
        ..., min_length=1, description="Identity being rate limited (e.g. user id)."
    )
    action_type: str = Field(
        ..., min_length=1, description="Throttled operation, e.g. 'create_post'."
    )
    tier: VerificationTier = Field(
        VerificationTier.UNVERIFIED,
        description="Subject's current verification tier, owned by the identity system.",
    )
    timestamp: float | None = Field(
        default=None,
        ge=0,
        description="Evaluation time in UNIX seconds. Defaults to server time.",
    )


class DecisionResponse(BaseModel):
    """Outcome of an evaluation. Never contains user-facing text."""

    decision: DecisionKind = Field(..., description="allowed, requires_verification or exceeded.")
    action_type: str
    count: int | None = Field(
        default=None, description="Post-increment count; null when the action is not configured."
    )
    threshold: int | None = Field(
        default=None, description="Ceiling that produced the decision."
    )
    window_start: int | None = Field(
        default=None, description="Start of the counted window (UNIX seconds)."
    )
    window_seconds: int | None = Field(default=None, description="Window length in seconds.")
    retry_after_seconds: int | None = Field(
        default=None,
        description="Seconds until the window rolls over; set only when exceeded.",
    )


class PolicyResponse(BaseModel):
    """A configured rate limit policy."""

    action_type: str
    window_seconds: int
    max_count: int
    unverified_max_count: int


class PolicyListResponse(BaseModel):
    policies: List[PolicyResponse] = Field(default_factory=list)
