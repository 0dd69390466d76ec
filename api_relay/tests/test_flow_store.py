"""Tests for the pending-login session store: single use and expiry."""
import threading

from api_relay.flow_store import AuthSessionStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_create_then_consume_once():
    store = AuthSessionStore()
    sid = store.create("abc")
    assert store.consume(sid) == "abc"
    assert store.consume(sid) is None


def test_session_ids_are_unique():
    store = AuthSessionStore()
    ids = {store.create("v") for _ in range(100)}
    assert len(ids) == 100


def test_unknown_session_is_rejected():
    store = AuthSessionStore()
    assert store.consume("never-issued") is None


def test_expired_session_rejected_without_consume():
    clock = FakeClock()
    store = AuthSessionStore(ttl=600, clock=clock)
    sid = store.create("abc")
    clock.now += 600.5
    assert store.consume(sid) is None
    # expired entry is gone for good
    assert len(store) == 0


def test_session_valid_until_ttl():
    clock = FakeClock()
    store = AuthSessionStore(ttl=600, clock=clock)
    sid = store.create("abc")
    clock.now += 599
    assert store.consume(sid) == "abc"


def test_purge_expired_removes_abandoned_flows():
    clock = FakeClock()
    store = AuthSessionStore(ttl=10, clock=clock)
    store.create("old-1")
    store.create("old-2")
    clock.now += 11
    fresh = store.create("fresh")  # create sweeps too
    assert len(store) == 1
    assert store.purge_expired() == 0
    assert store.consume(fresh) == "fresh"


def test_concurrent_consume_has_exactly_one_winner():
    store = AuthSessionStore()
    sid = store.create("secret")
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(store.consume(sid))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results.count("secret") == 1
    assert results.count(None) == 7
