from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackoffStrategy:
    """Exponential backoff with jitter for retry delays.

    Computes sleep duration as base * 2^(attempt-1) plus random jitter,
    capped at a configurable maximum."""

    def __init__(self, base_seconds: float = 0.5, max_seconds: float = 10.0) -> None:
        self._base = base_seconds
        self._max = max_seconds

    def get_sleep(self, attempt: int, error_type: Optional[str] = None) -> float:
        """Calculate the backoff sleep duration in seconds for a given retry attempt."""
        exp = min(self._max, self._base * (2 ** max(attempt - 1, 0)))
        jitter = random.uniform(0, exp * 0.1)
        return exp + jitter


class RetryPolicy:
    """Pacing and retry rules shared by every network-facing component.

    pace() sleeps for a uniformly sampled human-like interval and is called
    after every successful page load. call() retries a callable on the given
    transient exceptions, sleeping per BackoffStrategy between attempts."""

    def __init__(
        self,
        min_delay: float = 1.0,
        max_delay: float = 10.0,
        max_retries: int = 3,
        backoff: Optional[BackoffStrategy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_delay < min_delay:
            raise ValueError("max_delay must be >= min_delay")
        self._min_delay = min_delay
        self._max_delay = max_delay
        self._max_retries = max(1, max_retries)
        self._backoff = backoff or BackoffStrategy()
        self._sleep = sleep

    @property
    def window(self) -> Tuple[float, float]:
        return self._min_delay, self._max_delay

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def sample_delay(self) -> float:
        return random.uniform(self._min_delay, self._max_delay)

    def pace(self) -> float:
        """Sleep for one sampled inter-request delay and return its length."""
        delay = self.sample_delay()
        logger.debug("Pacing for %.1fs", delay)
        self._sleep(delay)
        return delay

    def wait(self, seconds: float) -> None:
        """Sleep for a fixed interval (e.g. a manual-intervention window)."""
        if seconds > 0:
            self._sleep(seconds)

    def call(self, fn: Callable[[], T], retry_on: Tuple[Type[BaseException], ...]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn()
            except retry_on as exc:
                if attempt >= self._max_retries:
                    raise
                sleep_s = self._backoff.get_sleep(attempt, type(exc).__name__)
                logger.warning(
                    "Attempt %d/%d failed with %s; retrying in %.1fs",
                    attempt,
                    self._max_retries,
                    type(exc).__name__,
                    sleep_s,
                )
                self._sleep(sleep_s)
