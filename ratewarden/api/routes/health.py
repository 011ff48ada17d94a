from __future__ import annotations

from fastapi import APIRouter, Response, status

from ratewarden.core import rate_limit

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(response: Response) -> dict:
    """Health check endpoint.

    Used by load balancers and monitoring systems to determine service health.
    Reports the store backend and answers 503 when the store is unreachable,
    since no limit can be enforced without it.

    Returns:
        dict: ``status`` ("ok" or "degraded") and the ``store`` backend name.
    """

    store = rate_limit.get_store()
    if not store.ping():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "degraded", "store": store.backend_name}

    return {"status": "ok", "store": store.backend_name}
