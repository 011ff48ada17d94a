"""Structured logging for the rate limit service.

- request_id propagation via contextvars
- field scrubbing: secrets are redacted, client addresses are replaced by a
  short digest so abuse can be correlated without storing addresses
- JSON formatter and stdout or rotating file output
"""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from ratewarden.core.config import LogSettings, settings

_request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

# Fields whose values never reach the output
SENSITIVE_KEYS_DEFAULT: frozenset[str] = frozenset(
    {
        "api_key",
        "x-api-key",
        "authorization",
        "token",
        "secret",
        "password",
        "app_api_keys",
        "app_admin_api_keys",
        "cookie",
        "set-cookie",
        "redis_url",
        "store_redis_url",
    }
)

# Fields logged as a short digest: repeat offenders stay traceable across
# events while the raw client address stays out of the logs.
PSEUDONYMIZED_KEYS_DEFAULT: frozenset[str] = frozenset({"client_ip"})

REDACTED = "[REDACTED]"

# LogRecord attributes that are not structured payload
_EXCLUDED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "stack",
    }
)


def set_request_id(request_id: str | None) -> None:
    """Store the current request id in a context variable."""

    _request_id_var.set(request_id)


def get_request_id() -> str | None:
    return _request_id_var.get()


def clear_request_id() -> None:
    _request_id_var.set(None)


def short_digest(value: str) -> str:
    """Return a short sha256 digest so identifiers can be correlated in logs
    without being written out."""

    return hashlib.sha256(value.encode()).hexdigest()[:16]


class Scrubber:
    """Rewrite structured log fields so secrets and client addresses stay out.

    Matching is by field name, case-insensitive, at any nesting depth inside
    mappings, lists and tuples.

    Args:
        sensitive_keys: Fields replaced by ``[REDACTED]``.
        pseudonymized_keys: Fields replaced by ``short_digest(str(value))``.
    """

    def __init__(
        self,
        sensitive_keys: Iterable[str] | None = None,
        pseudonymized_keys: Iterable[str] | None = None,
    ) -> None:
        self.sensitive_keys = {
            key.lower() for key in (sensitive_keys or SENSITIVE_KEYS_DEFAULT)
        }
        self.pseudonymized_keys = {
            key.lower() for key in (pseudonymized_keys or PSEUDONYMIZED_KEYS_DEFAULT)
        }

    def field(self, key: str, value: Any) -> Any:
        lowered = key.lower()
        if lowered in self.sensitive_keys:
            return REDACTED
        if lowered in self.pseudonymized_keys:
            return None if value is None else short_digest(str(value))
        return self.value(value)

    def value(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {k: self.field(str(k), v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return type(value)(self.value(v) for v in value)
        return value

    def record(self, record: LogRecord) -> dict[str, Any]:
        """Return the record's structured payload, scrubbed."""

        return {
            key: self.field(key, value)
            for key, value in record.__dict__.items()
            if key not in _EXCLUDED_ATTRS and not key.startswith("_")
        }


class RequestIdFilter(logging.Filter):
    """Attach request_id from context when absent on the record."""

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "request_id", None) is None:
            request_id = get_request_id()
            if request_id:
                record.request_id = request_id
        return True


class SensitiveDataFilter(logging.Filter):
    """Scrub the record in place before any formatter sees it."""

    def __init__(
        self,
        sensitive_keys: Iterable[str] | None = None,
        pseudonymized_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__()
        self.scrubber = Scrubber(sensitive_keys, pseudonymized_keys)

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        if getattr(record, "_scrubbed", False):
            return True
        for key, value in self.scrubber.record(record).items():
            setattr(record, key, value)
        record._scrubbed = True
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, request_id
    and the scrubbed extras."""

    def __init__(
        self,
        *,
        sensitive_keys: Iterable[str] | None = None,
        pseudonymized_keys: Iterable[str] | None = None,
        ensure_ascii: bool = True,
    ) -> None:
        super().__init__()
        self.scrubber = Scrubber(sensitive_keys, pseudonymized_keys)
        self.ensure_ascii = ensure_ascii

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id

        if getattr(record, "_scrubbed", False):
            payload.update(
                (key, value)
                for key, value in record.__dict__.items()
                if key not in _EXCLUDED_ATTRS and not key.startswith("_")
            )
        else:
            payload.update(self.scrubber.record(record))

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=self.ensure_ascii)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    """Return a stdout handler, or a (rotating) file handler when output=file."""

    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    file_path = Path(log_settings.file_path or "logs/ratewarden.log")
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if not log_settings.max_bytes:
        return logging.FileHandler(file_path, encoding="utf-8")
    return RotatingFileHandler(
        file_path,
        maxBytes=log_settings.max_bytes,
        backupCount=log_settings.backup_count,
        encoding="utf-8",
    )


def _build_formatter(log_settings: LogSettings) -> logging.Formatter:
    if log_settings.format.lower() == "plain":
        return logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    return JsonFormatter()


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install a single scrubbing handler on the root logger.

    Args:
        log_settings: Optional log settings; defaults to global settings if omitted.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(_build_formatter(cfg))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    # uvicorn installs its own handlers; keep its records off the root handler
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.access").propagate = False
