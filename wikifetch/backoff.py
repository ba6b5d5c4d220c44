from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from .errors import NotFoundError, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackoffStrategy:
    """Exponential backoff with jitter for retry delays.

    Computes sleep duration as base * 2^(attempt-1) plus random jitter,
    capped at a configurable maximum."""

    def __init__(self, base_seconds: float = 0.1, max_seconds: float = 10.0) -> None:
        self._base = base_seconds
        self._max = max_seconds

    @property
    def base_seconds(self) -> float:
        return self._base

    def get_sleep(self, attempt: int, error_type: Optional[str] = None) -> float:
        """Calculate the backoff sleep duration in seconds for a given retry attempt."""
        exp = min(self._max, self._base * (2 ** max(attempt - 1, 0)))
        jitter = random.uniform(0, exp * 0.1)
        return exp + jitter


def default_should_retry(exc: BaseException) -> bool:
    """Retry everything except a 404; timeouts are always retried."""
    if isinstance(exc, TransportError) and exc.timeout:
        return True
    return not isinstance(exc, NotFoundError)


class BackoffPolicy:
    """Runs one unit of work, retrying failures with exponential backoff.

    At most max_retries retries follow the first attempt; after that the
    last error is re-raised unchanged."""

    def __init__(
        self,
        strategy: Optional[BackoffStrategy] = None,
        max_retries: int = 7,
        should_retry: Callable[[BaseException], bool] = default_should_retry,
        on_backoff: Optional[Callable[[int, float, BaseException], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._strategy = strategy or BackoffStrategy()
        self._max_retries = max_retries
        self._should_retry = should_retry
        self._on_backoff = on_backoff
        self._sleep = sleep

    @property
    def strategy(self) -> BackoffStrategy:
        return self._strategy

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def call(
        self,
        fn: Callable[[], T],
        on_retry: Optional[Callable[[int, float, BaseException], None]] = None,
    ) -> T:
        """Run fn, retrying per policy. on_retry is called before each retry sleep."""
        attempt = 0
        while True:
            try:
                return fn()
            except Exception as exc:
                if attempt >= self._max_retries or not self._should_retry(exc):
                    raise
                attempt += 1
                delay = self._strategy.get_sleep(attempt, type(exc).__name__)
                logger.info("[backoff] #%d after %d ms (%s)", attempt, int(delay * 1000), type(exc).__name__)
                if self._on_backoff:
                    self._on_backoff(attempt, delay, exc)
                if on_retry:
                    on_retry(attempt, delay, exc)
                self._sleep(delay)
