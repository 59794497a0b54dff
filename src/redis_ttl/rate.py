"""Request pacing for outbound TTL mutations.

A governor exposes a single blocking ``acquire`` call. The engine calls
it once before every mutation, so swapping the pacing strategy (token
bucket, no-op, fault injecting fakes in tests) never touches the engine.
"""

from __future__ import annotations

import abc
import threading
import time
from typing import Callable, Optional

from redis_ttl.exceptions import OperationCancelledError


class RateGovernor(abc.ABC):
    """Capability handing out one permit per outbound request."""

    @abc.abstractmethod
    def acquire(self, cancel: Optional[threading.Event] = None) -> None:
        """Block until a permit is available.

        Raises:
            OperationCancelledError: If *cancel* is set before a permit
                is granted.
            RateLimitError: If the governor itself cannot operate.
        """
        ...


class UnlimitedGovernor(RateGovernor):
    """Grants every request immediately."""

    def acquire(self, cancel: Optional[threading.Event] = None) -> None:
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError()


class TokenBucketGovernor(RateGovernor):
    """Thread-safe token bucket.

    Parameters:
        rate: Tokens added per second.
        burst: Bucket capacity; defaults to *rate* so a fresh bucket
            allows one second worth of requests at once.
        clock: Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        rate: float,
        burst: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rate <= 0:
            raise ValueError(f"rate must be greater than 0, got {rate}")
        self._rate = float(rate)
        self._capacity = float(burst if burst is not None else max(1, int(rate)))
        if self._capacity < 1:
            raise ValueError(f"burst must be at least 1, got {burst}")
        self._clock = clock
        self._tokens = self._capacity
        self._updated = clock()
        self._lock = threading.Lock()
        # Used for sleeping when the caller gives no cancel event
        self._idle = threading.Event()

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def capacity(self) -> float:
        return self._capacity

    def acquire(self, cancel: Optional[threading.Event] = None) -> None:
        waiter = cancel if cancel is not None else self._idle
        while True:
            if cancel is not None and cancel.is_set():
                raise OperationCancelledError()
            delay = self._try_take()
            if delay <= 0:
                return
            if waiter.wait(delay) and cancel is not None:
                raise OperationCancelledError()

    def _try_take(self) -> float:
        """Take a token and return 0, or return the seconds until one is available."""
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._updated)
            self._updated = now
            self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return 0.0
            return (1.0 - self._tokens) / self._rate


def governor_for(rps: Optional[int]) -> RateGovernor:
    """Build the governor for one shard run; ``None`` or 0 means unpaced."""

    if not rps:
        return UnlimitedGovernor()
    return TokenBucketGovernor(rate=rps, burst=rps)
