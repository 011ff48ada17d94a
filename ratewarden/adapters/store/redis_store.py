"""Redis-backed expiring store.

Values are stored as JSON strings with a native Redis TTL, so every API
worker (and any other process using the same namespace) shares one set of
counters. Hits are recorded by a server-side Lua script, which makes the
read-modify-write of a rate record atomic per key.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from redis import Redis
from redis.exceptions import RedisError

from ratewarden.adapters.store.base import AbstractAtomicHitStore, RateRecord
from ratewarden.core.errors import StoreAppError

logger = logging.getLogger(__name__)


# KEYS[1] = store key, ARGV[1] = now (epoch seconds), ARGV[2] = decay seconds
#
# A stored field counts only when it is a JSON integer literal (no sign,
# fraction or exponent), matching RateRecord.from_value. cjson decodes 3 and
# 3.0 to the same Lua number, so the raw token is checked as well.
_INCREMENT_HIT_SCRIPT = """
local now = tonumber(ARGV[1])
local decay = tonumber(ARGV[2])

local function counter(raw, record, field)
  local value = record[field]
  if type(value) ~= 'number' then
    return nil
  end
  local token = string.match(raw, '"' .. field .. '"%s*:%s*([^,}%s]+)')
  if not token or not string.match(token, '^%d+$') then
    return nil
  end
  return value
end

local hits = 0
local raw = redis.call('GET', KEYS[1])
if raw then
  local ok, record = pcall(cjson.decode, raw)
  if ok and type(record) == 'table' then
    local h = counter(raw, record, 'hits')
    local e = counter(raw, record, 'expires_at')
    if h and e and not (e ~= 0 and e < now) then
      hits = h
    end
  end
end
hits = hits + 1
local expires_at = now + decay
redis.call('SET', KEYS[1], cjson.encode({hits = hits, expires_at = expires_at}), 'EX', decay)
return {hits, expires_at}
"""


class RedisExpiringStore(AbstractAtomicHitStore):
    """Expiring store on top of a synchronous Redis client.

    Attributes:
        namespace: Prefix for all keys written to Redis.
    """

    backend_name = "redis"

    def __init__(self, client: Redis, *, namespace: str = "ratewarden") -> None:
        self._client = client
        self.namespace = namespace
        self._increment_hit = client.register_script(_INCREMENT_HIT_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        namespace: str = "ratewarden",
        socket_timeout_seconds: float | None = None,
    ) -> "RedisExpiringStore":
        client = Redis.from_url(url, socket_timeout=socket_timeout_seconds)
        return cls(client, namespace=namespace)

    def _make_key(self, key: str) -> str:
        """Create prefixed key for namespacing."""
        return f"{self.namespace}:{key}"

    def get(self, key: str) -> Any | None:
        try:
            raw = self._client.get(self._make_key(key))
        except RedisError as exc:
            raise self._unavailable("get", exc) from exc

        if raw is None:
            return None

        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(
                "store.undecodable_value",
                extra={"store_key": key[-16:], "backend": self.backend_name},
            )
            return None

    def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")

        payload = json.dumps(value)
        try:
            return bool(self._client.set(self._make_key(key), payload, ex=ttl_seconds))
        except RedisError as exc:
            raise self._unavailable("set", exc) from exc

    def delete(self, key: str) -> bool:
        try:
            return bool(self._client.delete(self._make_key(key)))
        except RedisError as exc:
            raise self._unavailable("delete", exc) from exc

    def increment_hit(self, key: str, *, now: int, decay_seconds: int) -> RateRecord:
        try:
            hits, expires_at = self._increment_hit(
                keys=[self._make_key(key)],
                args=[int(now), int(decay_seconds)],
            )
        except RedisError as exc:
            raise self._unavailable("increment_hit", exc) from exc

        return RateRecord(hits=int(hits), expires_at=int(expires_at))

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError as exc:
            logger.warning(
                "store.ping_failed",
                extra={"backend": self.backend_name, "error_type": type(exc).__name__},
            )
            return False

    def _unavailable(self, operation: str, exc: RedisError) -> StoreAppError:
        logger.error(
            "store.operation_failed",
            extra={
                "backend": self.backend_name,
                "operation": operation,
                "error_type": type(exc).__name__,
            },
        )
        return StoreAppError(
            code="store_unavailable",
            message=f"Rate limit store is unavailable ({operation} failed)",
            details={"backend": self.backend_name},
        )
