"""Factory pattern for creating expiring store instances."""

from ratewarden.adapters.store.base import AbstractExpiringStore
from ratewarden.adapters.store.in_memory import InMemoryExpiringStore
from ratewarden.adapters.store.redis_store import RedisExpiringStore
from ratewarden.core.config import settings
from ratewarden.core.errors import ValidationAppError


def create_store() -> AbstractExpiringStore:
    """Factory function to instantiate the configured store backend.

    Reads configuration from ratewarden.core.config.settings (Pydantic Settings).
    Validates backend-specific requirements and routes to the matching store.

    Returns:
        AbstractExpiringStore: Configured store instance.

    Raises:
        ValidationAppError: If backend-specific requirements are not met.
    """
    backend = settings.store.backend.lower()

    if backend == "memory":
        return InMemoryExpiringStore(max_entries=settings.store.max_entries)

    if backend == "redis":
        if not settings.store.redis_url:
            raise ValidationAppError(
                code="store_missing_redis_url",
                message="Redis store requires STORE_REDIS_URL environment variable",
            )
        return RedisExpiringStore.from_url(
            settings.store.redis_url,
            namespace=settings.store.namespace,
            socket_timeout_seconds=settings.store.socket_timeout_seconds,
        )

    raise ValidationAppError(
        code="store_unknown_backend",
        message=(
            f"Unknown store backend: '{backend}'. Supported backends: memory, redis"
        ),
    )
