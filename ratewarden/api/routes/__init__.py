from __future__ import annotations

from ratewarden.api.routes.health import router as health_router
from ratewarden.api.routes.limits import admin_router as limits_admin_router
from ratewarden.api.routes.limits import router as limits_router

__all__ = ["health_router", "limits_admin_router", "limits_router"]
