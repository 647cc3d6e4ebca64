"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) to
improve testability and separation of concerns compared to a monolithic main.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from gatekeeper.api.routes import health_router, rate_limit_router
from gatekeeper.core.config import settings
from gatekeeper.core.exception_handlers import setup_exception_handlers
from gatekeeper.core.logging import configure_logging
from gatekeeper.core.middleware import request_id_middleware
from gatekeeper.core.openapi import apply_openapi_customizations
from gatekeeper.core.rate_limit import get_decision_engine

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Gatekeeper API",
        description=(
            "Admission control for user actions. Counts each action per subject "
            "in a fixed window and answers allowed, requires_verification "
            "(unverified accounts past their ceiling) or exceeded."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(rate_limit_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    # Policies are static configuration: load them (and fail fast) at startup.
    engine = get_decision_engine()
    logger.info(
        "app.started",
        extra={
            "app_env": settings.app_env,
            "backend": settings.rate_limit.backend,
            "rate_limit_enabled": settings.rate_limit.enabled,
            "action_types": sorted(engine.registry.action_types()),
        },
    )

    return app
