"""Tests for the in-flight registry."""

import threading

from media_converter.conversion.inflight import InFlightRegistry
from media_converter.conversion.models import InFlightState


def test_reserve_then_duplicate():
    registry = InFlightRegistry()
    ok, entry = registry.reserve("abcd1234")
    assert ok
    assert entry.state == InFlightState.PENDING

    again, existing = registry.reserve("abcd1234")
    assert not again
    assert existing is entry
    assert len(registry) == 1


def test_release_allows_new_reservation():
    registry = InFlightRegistry()
    _, entry = registry.reserve("abcd1234")
    registry.release(entry)
    assert entry.state == InFlightState.DONE
    assert entry.done.is_set()
    assert registry.get("abcd1234") is None

    ok, fresh = registry.reserve("abcd1234")
    assert ok
    assert fresh is not entry


def test_stale_release_does_not_remove_newer_entry():
    registry = InFlightRegistry()
    _, first = registry.reserve("k")
    registry.release(first)
    _, second = registry.reserve("k")
    registry.release(first)
    assert registry.get("k") is second


def test_independent_fingerprints():
    registry = InFlightRegistry()
    assert registry.reserve("a")[0]
    assert registry.reserve("b")[0]
    assert len(registry) == 2


def test_concurrent_reserve_has_single_winner():
    registry = InFlightRegistry()
    barrier = threading.Barrier(16)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        ok, _ = registry.reserve("same")
        with lock:
            results.append(ok)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results.count(True) == 1


def test_wait_returns_when_released():
    registry = InFlightRegistry()
    _, entry = registry.reserve("k")
    seen = []

    def waiter():
        seen.append(registry.wait(entry, timeout=5))

    t = threading.Thread(target=waiter)
    t.start()
    registry.release(entry)
    t.join(timeout=5)
    assert seen == [True]
    assert entry.waiters == 0


def test_wait_times_out():
    registry = InFlightRegistry()
    _, entry = registry.reserve("k")
    assert registry.wait(entry, timeout=0.05) is False
