import threading
import time

import pytest

from sharepointclient.digest import TokenContext


class FakeContext:
    def __init__(self, value, fresh=True):
        self.form_digest_value = value
        self.fresh = fresh

    def is_up_to_date(self):
        return self.fresh


def counting_acquirer(*contexts):
    calls = []
    remaining = list(contexts)

    def acquire():
        calls.append(1)
        return remaining.pop(0)

    return acquire, calls


def test_acquires_when_empty():
    token_context = TokenContext()
    acquire, calls = counting_acquirer(FakeContext("a"))
    assert not token_context.is_fresh()
    assert token_context.ensure_fresh(acquire) == "a"
    assert len(calls) == 1
    assert token_context.is_fresh()


def test_fresh_context_is_reused():
    token_context = TokenContext()
    acquire, calls = counting_acquirer(FakeContext("a"), FakeContext("b"))
    token_context.ensure_fresh(acquire)
    assert token_context.ensure_fresh(acquire) == "a"
    assert len(calls) == 1


def test_stale_context_is_replaced():
    token_context = TokenContext()
    first = FakeContext("a")
    acquire, calls = counting_acquirer(first, FakeContext("b"))
    token_context.ensure_fresh(acquire)
    first.fresh = False
    assert token_context.ensure_fresh(acquire) == "b"
    assert len(calls) == 2
    assert token_context.context.form_digest_value == "b"


def test_acquiring_flag_is_set_only_during_acquisition():
    token_context = TokenContext()
    seen = []

    def acquire():
        seen.append(token_context.acquiring)
        return FakeContext("a")

    assert token_context.acquiring is False
    token_context.ensure_fresh(acquire)
    assert seen == [True]
    assert token_context.acquiring is False


def test_acquiring_flag_is_per_thread():
    token_context = TokenContext()
    seen_elsewhere = []

    def acquire():
        other = threading.Thread(target=lambda: seen_elsewhere.append(token_context.acquiring))
        other.start()
        other.join()
        return FakeContext("a")

    token_context.ensure_fresh(acquire)
    assert seen_elsewhere == [False]


def test_failed_acquisition_keeps_previous_context():
    token_context = TokenContext()
    stale = FakeContext("old")
    token_context.ensure_fresh(lambda: stale)
    stale.fresh = False

    def failing():
        raise RuntimeError("contextinfo down")

    with pytest.raises(RuntimeError, match="contextinfo down"):
        token_context.ensure_fresh(failing)
    assert token_context.context is stale
    assert token_context.acquiring is False


def test_failed_first_acquisition_caches_nothing():
    token_context = TokenContext()

    def failing():
        raise RuntimeError("no digest")

    with pytest.raises(RuntimeError):
        token_context.ensure_fresh(failing)
    assert token_context.context is None


def test_invalidate_forces_reacquisition():
    token_context = TokenContext()
    acquire, calls = counting_acquirer(FakeContext("a"), FakeContext("b"))
    token_context.ensure_fresh(acquire)
    token_context.invalidate()
    assert token_context.context is None
    assert token_context.ensure_fresh(acquire) == "b"
    assert len(calls) == 2


def test_concurrent_callers_trigger_one_acquisition():
    token_context = TokenContext()
    calls = []
    calls_lock = threading.Lock()
    barrier = threading.Barrier(10)
    results = []

    def acquire():
        with calls_lock:
            calls.append(1)
        time.sleep(0.05)
        return FakeContext("shared")

    def worker():
        barrier.wait()
        results.append(token_context.ensure_fresh(acquire))

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(calls) == 1
    assert results == ["shared"] * 10
