"""Tests for the FetchMetrics class."""

import unittest

from wikifetch.metrics import FetchMetrics
from wikifetch.models import FetchEvent


def _make_event(**overrides) -> FetchEvent:
    """Helper to build a FetchEvent with sensible defaults."""
    defaults = dict(
        url="https://example.org/a.png",
        kind="content",
        success=True,
        status_code=200,
        latency_ms=100,
    )
    defaults.update(overrides)
    return FetchEvent(**defaults)


class TestFetchMetrics(unittest.TestCase):
    """Verify event recording and snapshot aggregation."""

    def test_empty_snapshot(self):
        """Snapshot with no events should have all zeros."""
        snap = FetchMetrics().snapshot(window_secs=30)
        self.assertEqual(snap.total_requests, 0)
        self.assertEqual(snap.success_count, 0)
        self.assertEqual(snap.avg_latency_ms, 0.0)

    def test_counts_cache_hits(self):
        metrics = FetchMetrics()
        metrics.record(_make_event(cache_hit="disk"))
        metrics.record(_make_event(cache_hit="object_store"))
        metrics.record(_make_event())
        snap = metrics.snapshot(window_secs=30)
        self.assertEqual(snap.total_requests, 3)
        self.assertEqual(snap.disk_cache_hits, 1)
        self.assertEqual(snap.object_store_hits, 1)

    def test_counts_errors_and_retries(self):
        metrics = FetchMetrics()
        metrics.record(_make_event(success=False, status_code=404, error_type="NotFoundError"))
        metrics.record(_make_event(success=False, status_code=429, retries=7))
        metrics.record(_make_event(retries=2, bytes_saved=500))
        snap = metrics.snapshot(window_secs=30)
        self.assertEqual(snap.success_count, 1)
        self.assertEqual(snap.http_404_count, 1)
        self.assertEqual(snap.http_429_count, 1)
        self.assertEqual(snap.retry_count, 9)
        self.assertEqual(snap.bytes_saved, 500)

    def test_average_latency(self):
        metrics = FetchMetrics()
        metrics.record(_make_event(latency_ms=100))
        metrics.record(_make_event(latency_ms=200))
        self.assertAlmostEqual(metrics.snapshot(window_secs=30).avg_latency_ms, 150.0)

    def test_export_json(self):
        metrics = FetchMetrics()
        metrics.record(_make_event())
        exported = metrics.export_json()
        self.assertEqual(len(exported), 1)
        self.assertIn("url", exported[0])
        self.assertIn("timestamp", exported[0])


if __name__ == "__main__":
    unittest.main()
