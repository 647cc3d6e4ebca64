from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from gatekeeper.core.config import settings
from gatekeeper.core.rate_limit import get_decision_engine

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check used by load balancers and monitoring systems."""

    return {"status": "ok"}


@router.get("/health/ready")
def readiness_check() -> JSONResponse:
    """Readiness check: reports whether the counter store is reachable.

    Returns 503 when the store cannot be reached, since every rate limited
    action would then fail closed.
    """

    store_ok = get_decision_engine().store.ping()
    body = {
        "status": "ok" if store_ok else "unavailable",
        "backend": settings.rate_limit.backend,
    }
    return JSONResponse(status_code=200 if store_ok else 503, content=body)
