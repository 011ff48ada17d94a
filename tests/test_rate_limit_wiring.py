"""Tests for the process-wide store and limiter wiring."""

from __future__ import annotations

import logging
import threading
import time

import pytest
from fastapi import HTTPException

from ratewarden.adapters.store.in_memory import InMemoryExpiringStore
from ratewarden.core import rate_limit
from ratewarden.core.config import settings
from ratewarden.core.logging import short_digest
from ratewarden.services.rate_limiter import ip_key


@pytest.fixture(autouse=True)
def reset_wiring(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rate_limit, "_store", None)
    monkeypatch.setattr(rate_limit, "_store_config", None)
    monkeypatch.setattr(rate_limit, "_limiters", {})


def test_store_is_reused_while_settings_are_unchanged() -> None:
    assert rate_limit.get_store() is rate_limit.get_store()


@pytest.mark.parametrize(
    "field, value",
    [
        ("namespace", "other-namespace"),
        ("max_entries", 17),
        ("socket_timeout_seconds", 9.5),
    ],
)
def test_store_is_rebuilt_when_store_settings_change(monkeypatch, field, value) -> None:
    first = rate_limit.get_store()

    monkeypatch.setattr(settings.store, field, value)

    assert rate_limit.get_store() is not first


def test_limiters_follow_a_rebuilt_store(monkeypatch) -> None:
    before = rate_limit.get_action_limiter()

    monkeypatch.setattr(settings.store, "max_entries", 17)
    after = rate_limit.get_action_limiter()

    assert after is not before
    assert after.store is rate_limit.get_store()


def test_concurrent_first_use_builds_one_store(monkeypatch) -> None:
    built: list[InMemoryExpiringStore] = []

    def _slow_create_store() -> InMemoryExpiringStore:
        time.sleep(0.05)
        store = InMemoryExpiringStore()
        built.append(store)
        return store

    monkeypatch.setattr(rate_limit, "create_store", _slow_create_store)

    workers = 8
    barrier = threading.Barrier(workers)
    seen: list[object] = []

    def _worker() -> None:
        barrier.wait()
        seen.append(rate_limit.get_store())

    threads = [threading.Thread(target=_worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(built) == 1
    assert all(store is built[0] for store in seen)


def test_key_hash_matches_across_limiter_and_dependency_logs(monkeypatch, caplog) -> None:
    monkeypatch.setattr(settings.store, "backend", "memory")
    monkeypatch.setattr(settings.app, "rate_limit_enabled", True)
    monkeypatch.setattr(settings.app, "rate_limit_requests", 1)
    caplog.set_level(logging.DEBUG, logger="ratewarden")

    rate_limit.enforce_rate_limit()
    with pytest.raises(HTTPException) as exc_info:
        rate_limit.enforce_rate_limit()

    assert exc_info.value.status_code == 429

    expected = short_digest(ip_key("127.0.0.1", rate_limit.REQUEST_LIMIT_ACTION))
    hashes = {
        record.getMessage(): record.key_hash
        for record in caplog.records
        if hasattr(record, "key_hash")
    }
    assert hashes["rate_limit.hit"] == expected
    assert hashes["rate_limit.exceeded"] == expected
