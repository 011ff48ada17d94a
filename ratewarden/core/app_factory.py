from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) to
improve testability.
"""

from fastapi import FastAPI

from ratewarden.api.routes import health_router, limits_admin_router, limits_router
from ratewarden.core.config import settings
from ratewarden.core.exception_handlers import setup_exception_handlers
from ratewarden.core.logging import configure_logging
from ratewarden.core.middleware import request_context_middleware
from ratewarden.core.openapi import apply_openapi_customizations


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="ratewarden",
        description=(
            "Fixed-window rate limiting service. Records attempts per caller and "
            "action, reports remaining quota and reset time, and clears limits. "
            "Counters live in an expiring key-value store (in-memory or Redis) "
            "so every worker enforces the same limits."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    # Middleware
    app.middleware("http")(request_context_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(limits_router, prefix="/v1")
    app.include_router(limits_admin_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
