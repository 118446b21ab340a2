"""Tests for the MetricsCollector class."""

import unittest

from product_scraper.metrics import MetricsCollector
from product_scraper.models import ProductRecord, ScrapeResult


def _make_result(**overrides) -> ScrapeResult:
    """Helper to build a ScrapeResult with sensible defaults."""
    defaults = dict(
        url="https://www.amazon.com/s?k=widget",
        success=True,
        latency_ms=100,
    )
    defaults.update(overrides)
    return ScrapeResult(**defaults)


class TestMetricsCollector(unittest.TestCase):
    """Verify metrics recording and snapshot aggregation."""

    def test_empty_snapshot(self):
        """Snapshot with no events should have all zeros."""
        metrics = MetricsCollector()
        snap = metrics.snapshot(window_secs=30)
        self.assertEqual(snap.total_requests, 0)
        self.assertEqual(snap.success_count, 0)
        self.assertEqual(snap.avg_latency_ms, 0.0)

    def test_records_success(self):
        """Successful results should be counted with their records."""
        record = ProductRecord(name="A", item_id="B0AAAAAAA1", canonical_link="", scraped_at="")
        metrics = MetricsCollector()
        metrics.record_result(_make_result(records=(record, record)))
        metrics.record_result(_make_result())
        snap = metrics.snapshot(window_secs=30)
        self.assertEqual(snap.total_requests, 2)
        self.assertEqual(snap.success_count, 2)
        self.assertEqual(snap.records_extracted, 2)

    def test_records_errors(self):
        """Failures should be split into blocks and timeouts."""
        metrics = MetricsCollector()
        metrics.record_result(_make_result(success=False, error_type="AcquisitionBlocked"))
        metrics.record_result(_make_result(success=False, error_type="ReadTimeout"))
        metrics.record_result(_make_result(success=False, error_type="ValueError"))
        snap = metrics.snapshot(window_secs=30)
        self.assertEqual(snap.total_requests, 3)
        self.assertEqual(snap.success_count, 0)
        self.assertEqual(snap.blocked_count, 1)
        self.assertEqual(snap.timeout_count, 1)

    def test_all_timeout_kinds_counted(self):
        """Every requests timeout variant and navigation timeouts count as timeouts."""
        metrics = MetricsCollector()
        for error_type in ("ConnectTimeout", "ReadTimeout", "Timeout", "NavigationTimeout", "TimeoutError"):
            metrics.record_result(_make_result(success=False, error_type=error_type))
        metrics.record_result(_make_result(success=False, error_type="ConnectionError"))
        self.assertEqual(metrics.snapshot(window_secs=30).timeout_count, 5)

    def test_average_latency(self):
        """Average latency should be computed correctly."""
        metrics = MetricsCollector()
        metrics.record_result(_make_result(latency_ms=100))
        metrics.record_result(_make_result(latency_ms=200))
        snap = metrics.snapshot(window_secs=30)
        self.assertAlmostEqual(snap.avg_latency_ms, 150.0)

    def test_export_json(self):
        """export_json should return all recorded events as flat dicts."""
        metrics = MetricsCollector()
        metrics.record_result(_make_result(success=False, error_type="AcquisitionBlocked", error="CAPTCHA"))
        exported = metrics.export_json()
        self.assertEqual(len(exported), 1)
        self.assertEqual(exported[0]["records"], 0)
        self.assertEqual(exported[0]["error"], "CAPTCHA")


if __name__ == "__main__":
    unittest.main()
