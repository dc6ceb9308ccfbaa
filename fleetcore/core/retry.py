"""Deadlines and bounded retries for every external call.

``call_external`` wraps one call to the cloud backend or a metadata source:

- the call runs with a timeout derived from the caller's remaining budget
  (and the policy's per-call cap);
- ``BackendUnavailable`` is retried with exponential backoff up to
  ``policy.attempts`` times, never past the deadline;
- a call marked non-idempotent that outlives its timeout is never
  repeated;
- every other error propagates on the first occurrence;
- once the deadline has passed the caller gets ``Timeout``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from functools import partial
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict
from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    stop_any,
    wait_exponential,
)

from fleetcore.core.errors import BackendUnavailable, Timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

_executor = ThreadPoolExecutor(max_workers=32, thread_name_prefix="fleetcore-call")


class RetryPolicy(BaseModel):
    """Retry and per-call timeout settings for transport failures."""

    model_config = ConfigDict(frozen=True)

    attempts: int = 5
    multiplier: float = 0.5
    min_wait: float = 0.5
    max_wait: float = 8.0
    call_timeout: float | None = 60.0  # seconds; None = bounded only by deadline


DEFAULT_POLICY = RetryPolicy()


class Deadline:
    """An absolute point in time derived from a caller's budget.

    Parameters
    ----------
    timeout:
        Budget in seconds.  ``None`` means no deadline.
    """

    def __init__(
        self, timeout: float | None = None, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._clock = clock
        self._expires_at = None if timeout is None else clock() + timeout

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def bound(self, cap: float | None) -> float | None:
        """The smaller of ``cap`` and the remaining budget."""
        remaining = self.remaining()
        if remaining is None:
            return cap
        if cap is None:
            return remaining
        return min(cap, remaining)

    def check(self, what: str) -> None:
        if self.expired:
            raise Timeout(f"deadline exceeded before {what}")


def _reap(on_abandoned: Callable[[Any], None], what: str, future: Future) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    logger.warning("%s finished after its caller gave up; cleaning up", what)
    try:
        on_abandoned(future.result())
    except Exception:
        logger.exception("Cleanup after abandoned %s failed", what)


def _run_bounded(
    fn: Callable[..., T], args: tuple, kwargs: dict, bound: float | None,
    deadline: Deadline, what: str, idempotent: bool,
    on_abandoned: Callable[[T], None] | None,
) -> T:
    if bound is None:
        return fn(*args, **kwargs)
    future = _executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=bound)
    except FutureTimeout:
        if not future.cancel() and on_abandoned is not None:
            future.add_done_callback(partial(_reap, on_abandoned, what))
        if deadline.expired:
            raise Timeout(f"deadline exceeded during {what}") from None
        if not idempotent:
            # Not retried: the abandoned call may still complete.
            raise Timeout(f"{what} did not answer within {bound:.1f}s") from None
        raise BackendUnavailable(f"{what} did not answer within {bound:.1f}s") from None


def call_external(
    fn: Callable[..., T],
    *args: Any,
    deadline: Deadline | None = None,
    policy: RetryPolicy = DEFAULT_POLICY,
    what: str = "backend call",
    sleep: Callable[[float], None] = time.sleep,
    idempotent: bool = True,
    on_abandoned: Callable[[T], None] | None = None,
    **kwargs: Any,
) -> T:
    """Invoke ``fn(*args, **kwargs)`` under the retry policy and deadline.

    A call that outlives its timeout keeps running in the background.
    ``idempotent=False`` turns such a timeout into ``Timeout`` instead of a
    retry, and ``on_abandoned`` receives the late result if one arrives.
    """
    deadline = deadline or Deadline()
    base_wait = wait_exponential(
        multiplier=policy.multiplier, min=policy.min_wait, max=policy.max_wait
    )

    def _wait(state: RetryCallState) -> float:
        return deadline.bound(base_wait(state)) or 0.0

    def _out_of_time(state: RetryCallState) -> bool:
        return deadline.expired

    def _attempt() -> T:
        deadline.check(what)
        return _run_bounded(
            fn, args, kwargs, deadline.bound(policy.call_timeout), deadline, what,
            idempotent, on_abandoned,
        )

    retrying = Retrying(
        stop=stop_any(stop_after_attempt(policy.attempts), _out_of_time),
        wait=_wait,
        retry=retry_if_exception_type(BackendUnavailable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )
    try:
        return retrying(_attempt)
    except BackendUnavailable as exc:
        if deadline.expired:
            raise Timeout(f"deadline exceeded retrying {what}: {exc}") from exc
        raise
