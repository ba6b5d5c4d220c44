from __future__ import annotations

import time
from collections import deque
from dataclasses import asdict
from threading import Lock
from typing import Deque, Dict, List

from .models import FetchEvent, MetricsSnapshot


class FetchMetrics:
    """Thread-safe collector of fetch outcomes.

    Records one FetchEvent per fetch_json/fetch_content call and produces
    aggregated MetricsSnapshot objects over sliding time windows."""

    def __init__(self, maxlen: int = 10000) -> None:
        self._lock = Lock()
        self._events: Deque[tuple[float, FetchEvent]] = deque(maxlen=maxlen)

    def record(self, event: FetchEvent) -> None:
        with self._lock:
            self._events.append((time.time(), event))

    def snapshot(self, window_secs: int) -> MetricsSnapshot:
        """Return aggregated metrics for events within the last window_secs seconds."""
        now = time.time()
        cutoff = now - window_secs
        with self._lock:
            events: List[FetchEvent] = [e for ts, e in self._events if ts >= cutoff]
        total = len(events)
        return MetricsSnapshot(
            window_secs=window_secs,
            total_requests=total,
            success_count=sum(1 for e in events if e.success),
            disk_cache_hits=sum(1 for e in events if e.cache_hit == "disk"),
            object_store_hits=sum(1 for e in events if e.cache_hit == "object_store"),
            http_429_count=sum(1 for e in events if e.status_code == 429),
            http_404_count=sum(1 for e in events if e.status_code == 404),
            retry_count=sum(e.retries for e in events),
            bytes_saved=sum(e.bytes_saved for e in events),
            avg_latency_ms=(sum(e.latency_ms for e in events) / total) if total else 0.0,
            timestamp=now,
        )

    def export_json(self) -> List[Dict]:
        with self._lock:
            return [{"timestamp": ts, **asdict(e)} for ts, e in self._events]
