from __future__ import annotations

import time
from collections import deque
from threading import Lock
from typing import Deque, Dict, List, Optional

from .models import MetricsSnapshot, ScrapeResult

TIMEOUT_ERROR_TYPES = ("TimeoutError",)


def _is_timeout(error_type: Optional[str]) -> bool:
    # requests' Timeout family and NavigationTimeout all end in "Timeout".
    if not error_type:
        return False
    return error_type.endswith("Timeout") or error_type in TIMEOUT_ERROR_TYPES


class MetricsCollector:
    """Thread-safe collector of per-URL scrape outcomes.

    Records ScrapeResult events and produces aggregated MetricsSnapshot
    objects over configurable sliding time windows."""

    def __init__(self, maxlen: int = 10000) -> None:
        self._lock = Lock()
        self._events: Deque[tuple[float, ScrapeResult]] = deque(maxlen=maxlen)

    def record_result(self, result: ScrapeResult) -> None:
        """Record a scrape result with the current timestamp."""
        with self._lock:
            self._events.append((time.time(), result))

    def snapshot(self, window_secs: int) -> MetricsSnapshot:
        """Return aggregated metrics for events within the last window_secs seconds."""
        now = time.time()
        cutoff = now - window_secs
        with self._lock:
            events: List[ScrapeResult] = [e for ts, e in self._events if ts >= cutoff]
        total = len(events)
        avg_latency_ms = (sum(e.latency_ms for e in events) / total) if total else 0.0

        return MetricsSnapshot(
            window_secs=window_secs,
            total_requests=total,
            success_count=sum(1 for e in events if e.success),
            blocked_count=sum(1 for e in events if e.error_type == "AcquisitionBlocked"),
            timeout_count=sum(1 for e in events if _is_timeout(e.error_type)),
            records_extracted=sum(len(e.records) for e in events),
            avg_latency_ms=avg_latency_ms,
            timestamp=now,
        )

    def export_json(self) -> List[Dict]:
        """Export recorded events as a list of flat dictionaries."""
        with self._lock:
            return [
                {
                    "timestamp": ts,
                    "url": e.url,
                    "success": e.success,
                    "latency_ms": e.latency_ms,
                    "records": len(e.records),
                    "error_type": e.error_type,
                    "error": e.error,
                }
                for ts, e in self._events
            ]
