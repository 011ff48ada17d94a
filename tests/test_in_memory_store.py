"""Unit tests for the in-memory expiring store."""

import threading

import pytest

from ratewarden.adapters.store.base import RateRecord
from ratewarden.adapters.store.in_memory import InMemoryExpiringStore


def test_set_and_get_updates_hit_miss_counters(memory_store) -> None:
    assert memory_store.get("missing") is None

    memory_store.set("key", {"hits": 1, "expires_at": 1060}, 60)

    assert memory_store.get("key") == {"hits": 1, "expires_at": 1060}
    stats = memory_store.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1


def test_expired_entry_is_evicted(memory_store, clock) -> None:
    memory_store.set("key", {"data": True}, 5)

    clock.advance(6)

    assert memory_store.get("key") is None
    assert memory_store.stats()["evictions"] == 1


def test_delete_reports_whether_key_existed(memory_store) -> None:
    memory_store.set("key", "value", 10)

    assert memory_store.delete("key") is True
    assert memory_store.delete("key") is False
    assert memory_store.get("key") is None


def test_lru_eviction_removes_least_recently_used(clock) -> None:
    store = InMemoryExpiringStore(max_entries=2, clock=clock)
    store.set("a", 1, 100)
    store.set("b", 2, 100)

    # Access "a" so that "b" becomes least recently used
    assert store.get("a") == 1

    store.set("c", 3, 100)

    assert store.get("a") == 1
    assert store.get("c") == 3
    assert store.get("b") is None


def test_expired_entries_swept_on_write(memory_store, clock) -> None:
    memory_store.set("old", 1, 5)
    clock.advance(10)

    memory_store.set("new", 2, 5)

    assert memory_store.stats()["entries"] == 1


def test_clear_all_resets_state(memory_store) -> None:
    memory_store.set("a", 1, 10)
    memory_store.set("b", 2, 10)
    memory_store.get("a")

    memory_store.clear_all()

    stats = memory_store.stats()
    assert stats["entries"] == 0
    assert stats["hits"] == 0
    assert stats["misses"] == 0
    assert stats["evictions"] == 0


@pytest.mark.parametrize("ttl", [0, -5])
def test_invalid_ttl_rejected(memory_store, ttl: int) -> None:
    with pytest.raises(ValueError):
        memory_store.set("key", 1, ttl)


def test_invalid_capacity_rejected() -> None:
    with pytest.raises(ValueError):
        InMemoryExpiringStore(max_entries=0)


class TestIncrementHit:
    def test_creates_record_on_first_hit(self, memory_store) -> None:
        record = memory_store.increment_hit("k", now=1000, decay_seconds=60)

        assert record == RateRecord(hits=1, expires_at=1060)
        assert memory_store.get("k") == {"hits": 1, "expires_at": 1060}

    def test_increments_within_window(self, memory_store) -> None:
        memory_store.increment_hit("k", now=1000, decay_seconds=60)
        record = memory_store.increment_hit("k", now=1010, decay_seconds=60)

        assert record == RateRecord(hits=2, expires_at=1070)

    def test_restarts_after_record_expiry(self, memory_store) -> None:
        # Stored TTL outlives the window: only the record's expires_at has passed
        memory_store.set("k", {"hits": 4, "expires_at": 1000}, 600)

        record = memory_store.increment_hit("k", now=1001, decay_seconds=60)

        assert record.hits == 1

    def test_restarts_on_malformed_value(self, memory_store) -> None:
        memory_store.set("k", "not-a-record", 60)

        record = memory_store.increment_hit("k", now=1000, decay_seconds=60)

        assert record.hits == 1

    def test_thread_safety_under_concurrent_hits(self, memory_store) -> None:
        total = 50

        def _hit() -> None:
            memory_store.increment_hit("shared", now=1000, decay_seconds=60)

        threads = [threading.Thread(target=_hit) for _ in range(total)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert memory_store.get("shared")["hits"] == total


class TestRateRecord:
    @pytest.mark.parametrize(
        "value",
        [None, "x", 3, [], {"hits": 1}, {"hits": 1.0, "expires_at": 5}, {"hits": 1, "expires_at": False}],
    )
    def test_from_value_rejects_malformed(self, value) -> None:
        assert RateRecord.from_value(value) is None

    def test_from_value_accepts_record(self) -> None:
        assert RateRecord.from_value({"hits": 3, "expires_at": 1060}) == RateRecord(3, 1060)

    def test_zero_expiry_never_expires(self) -> None:
        assert RateRecord(hits=2, expires_at=0).is_expired(now=10**10) is False
