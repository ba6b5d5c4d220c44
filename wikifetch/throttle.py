from __future__ import annotations

import json
import logging
import math
import threading
import time
from contextlib import contextmanager
from typing import Iterator, Tuple

logger = logging.getLogger(__name__)


class RequestThrottle:
    """Admission control for outbound requests.

    claim() blocks until fewer than `limit` requests are in flight, then takes
    a slot; release() gives it back. Waiters are not served in arrival order.
    The limit only ever shrinks (on rate-limit responses) and never drops
    below one.
    """

    def __init__(self, initial_limit: int, poll_seconds: float = 0.2) -> None:
        self._lock = threading.Lock()
        self._cv = threading.Condition(self._lock)
        self._limit = max(1, int(initial_limit))
        self._active = 0
        self._poll_seconds = poll_seconds

    def claim(self) -> None:
        with self._cv:
            while self._active >= self._limit:
                self._cv.wait(timeout=self._poll_seconds)
            self._active += 1

    def release(self) -> None:
        with self._cv:
            self._active = max(0, self._active - 1)
            self._cv.notify_all()

    @contextmanager
    def slot(self) -> Iterator[None]:
        self.claim()
        try:
            yield
        finally:
            self.release()

    def shrink(self, factor: float = 0.9) -> Tuple[int, int]:
        """Lower the ceiling after a rate-limit response (rounded up, floor 1)."""
        with self._cv:
            old_limit = self._limit
            self._limit = max(1, min(old_limit, math.ceil(old_limit * factor)))
            self._cv.notify_all()
            new_limit = self._limit
        logger.info(
            json.dumps(
                {
                    "timestamp": time.time(),
                    "event": "throttle_shrink",
                    "reason": "http_429",
                    "old_limit": old_limit,
                    "new_limit": new_limit,
                },
                ensure_ascii=False,
            )
        )
        return old_limit, new_limit

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        return self._active
