from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Response, status

from gatekeeper.core.auth import verify_api_key
from gatekeeper.core.rate_limit import (
    enforce_from_headers,
    evaluate_action,
    get_decision_engine,
    retry_after_seconds,
)
from gatekeeper.schemas.rate_limit import (
    DecisionResponse,
    EvaluateRequest,
    PolicyListResponse,
    PolicyResponse,
)
from gatekeeper.services.escalation import DecisionKind

router = APIRouter(tags=["Rate Limit"], dependencies=[Depends(verify_api_key)])


@router.post("/rate-limit/evaluate", response_model=DecisionResponse)
async def evaluate(payload: EvaluateRequest) -> DecisionResponse:
    """Count one occurrence of an action and return the decision.

    All three decision kinds are returned with HTTP 200; interpreting them is
    up to the caller. A store failure is reported as 503 unless the action is
    configured to fail open.
    """
    engine = get_decision_engine()
    now = engine.now() if payload.timestamp is None else payload.timestamp
    decision = await evaluate_action(
        payload.subject_id,
        payload.action_type,
        payload.tier,
        timestamp=now,
        engine=engine,
    )

    retry_after = None
    if decision.kind is DecisionKind.EXCEEDED:
        retry_after = retry_after_seconds(decision, now)

    return DecisionResponse(
        decision=decision.kind,
        action_type=decision.action_type,
        count=decision.count,
        threshold=decision.threshold,
        window_start=decision.window_start,
        window_seconds=decision.window_seconds,
        retry_after_seconds=retry_after,
    )


@router.get("/rate-limit/policies", response_model=PolicyListResponse)
def list_policies() -> PolicyListResponse:
    """List the policies loaded at startup."""
    registry = get_decision_engine().registry
    return PolicyListResponse(
        policies=[
            PolicyResponse(
                action_type=policy.action_type,
                window_seconds=policy.window_seconds,
                max_count=policy.max_count,
                unverified_max_count=policy.unverified_max_count,
            )
            for policy in registry.policies()
        ]
    )


@router.post(
    "/actions/{action_type}/enforce",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def enforce(
    action_type: str,
    x_subject_id: Annotated[str | None, Header(alias="X-Subject-Id")] = None,
    x_verification_tier: Annotated[str | None, Header(alias="X-Verification-Tier")] = None,
) -> Response:
    """Gate an action for the subject in the request headers.

    Returns 204 when the action may proceed. Blocked actions are rendered by
    the global exception handlers: 403 ``rate_limit_verify``, 429
    ``rate_limit_exceeded`` (with Retry-After) or 503 ``store_unavailable``.
    """
    await enforce_from_headers(action_type, x_subject_id, x_verification_tier)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
