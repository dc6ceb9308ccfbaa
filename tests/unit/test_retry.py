"""Tests for deadlines and bounded retries of external calls."""

from __future__ import annotations

import threading
import time

import pytest

from fleetcore.core.errors import BackendUnavailable, NoMatchingImages, Timeout
from fleetcore.core.retry import Deadline, RetryPolicy, call_external


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class Flaky:
    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or BackendUnavailable("connection reset")
        self.calls = 0

    def __call__(self, value: str = "ok") -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return value


class TestDeadline:
    def test_no_timeout_never_expires(self):
        d = Deadline()
        assert d.remaining() is None
        assert not d.expired
        assert d.bound(5.0) == 5.0
        assert d.bound(None) is None

    def test_remaining_and_bound(self):
        clock = FakeClock()
        d = Deadline(10.0, clock=clock)
        clock.now += 4
        assert d.remaining() == pytest.approx(6.0)
        assert d.bound(60.0) == pytest.approx(6.0)
        assert d.bound(2.0) == 2.0
        assert d.bound(None) == pytest.approx(6.0)

    def test_expiry(self):
        clock = FakeClock()
        d = Deadline(1.0, clock=clock)
        clock.now += 2
        assert d.expired
        assert d.remaining() == 0.0
        with pytest.raises(Timeout):
            d.check("launch")


class TestCallExternal:
    def test_passes_arguments_through(self, fast_policy):
        assert call_external(Flaky(0), "hello", policy=fast_policy) == "hello"

    def test_retries_transport_failures(self, fast_policy):
        fn = Flaky(2)
        assert call_external(fn, policy=fast_policy) == "ok"
        assert fn.calls == 3

    def test_gives_up_after_attempts(self, fast_policy):
        fn = Flaky(10)
        with pytest.raises(BackendUnavailable):
            call_external(fn, policy=fast_policy)
        assert fn.calls == fast_policy.attempts

    def test_semantic_errors_not_retried(self, fast_policy):
        fn = Flaky(10, NoMatchingImages("none"))
        with pytest.raises(NoMatchingImages):
            call_external(fn, policy=fast_policy)
        assert fn.calls == 1

    def test_backoff_is_exponential_and_capped(self):
        sleeps: list[float] = []
        policy = RetryPolicy(attempts=5, multiplier=1, min_wait=1, max_wait=3, call_timeout=None)
        with pytest.raises(BackendUnavailable):
            call_external(Flaky(10), policy=policy, sleep=sleeps.append)
        assert sleeps == [1, 2, 3, 3]

    def test_expired_deadline_raises_timeout_without_calling(self, fast_policy):
        clock = FakeClock()
        deadline = Deadline(1.0, clock=clock)
        clock.now += 5
        fn = Flaky(0)
        with pytest.raises(Timeout):
            call_external(fn, deadline=deadline, policy=fast_policy)
        assert fn.calls == 0

    def test_slow_call_times_out(self):
        policy = RetryPolicy(attempts=3, multiplier=0, min_wait=0, max_wait=0, call_timeout=5.0)

        def _slow() -> str:
            time.sleep(1.0)
            return "late"

        with pytest.raises(Timeout):
            call_external(_slow, deadline=Deadline(0.1), policy=policy)

    def test_per_call_cap_retries_hung_call(self):
        policy = RetryPolicy(attempts=2, multiplier=0, min_wait=0, max_wait=0, call_timeout=0.05)
        calls = []

        def _hangs_once() -> str:
            calls.append(1)
            if len(calls) == 1:
                time.sleep(0.5)
            return "ok"

        assert call_external(_hangs_once, deadline=Deadline(5.0), policy=policy) == "ok"
        assert len(calls) == 2

    def test_non_idempotent_timeout_not_retried(self):
        policy = RetryPolicy(attempts=3, multiplier=0, min_wait=0, max_wait=0, call_timeout=0.05)
        calls = []
        late = threading.Event()
        seen = []

        def _hangs() -> str:
            calls.append(1)
            time.sleep(0.3)
            return "launched"

        def _cleanup(result: str) -> None:
            seen.append(result)
            late.set()

        with pytest.raises(Timeout):
            call_external(
                _hangs, deadline=Deadline(5.0), policy=policy,
                idempotent=False, on_abandoned=_cleanup,
            )
        assert len(calls) == 1
        assert late.wait(5.0)
        assert seen == ["launched"]

    def test_abandoned_failure_not_cleaned_up(self):
        policy = RetryPolicy(attempts=1, multiplier=0, min_wait=0, max_wait=0, call_timeout=0.05)
        done = threading.Event()
        seen = []

        def _hangs_then_fails() -> str:
            try:
                time.sleep(0.2)
                raise BackendUnavailable("connection reset")
            finally:
                done.set()

        with pytest.raises(Timeout):
            call_external(
                _hangs_then_fails, deadline=Deadline(5.0), policy=policy,
                idempotent=False, on_abandoned=seen.append,
            )
        assert done.wait(5.0)
        time.sleep(0.05)
        assert seen == []
