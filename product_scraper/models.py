from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class Price:
    display: str = "N/A"
    amount: Optional[float] = None


@dataclass(frozen=True)
class ProductRecord:
    name: str
    item_id: str
    canonical_link: str
    scraped_at: str
    price: Price = field(default_factory=Price)
    image_urls: Tuple[str, ...] = ()
    rating: Optional[float] = None
    review_count: int = 0
    referral_link: str = ""
    availability: str = ""
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["image_urls"] = list(self.image_urls)
        return data


class JobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Job:
    """Snapshot of one orchestrated run.

    The orchestrator swaps in a new instance on every change, so a Job
    handed to a reader never changes underneath it."""

    id: int
    status: JobStatus
    started_at: str
    target: str
    urls: Tuple[str, ...] = ()
    completed_at: Optional[str] = None
    error: Optional[str] = None
    progress: Optional[str] = None
    product_count: int = 0
    failures: Tuple[str, ...] = ()

    @property
    def finished(self) -> bool:
        return self.status is not JobStatus.RUNNING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "error": self.error,
            "progress": self.progress,
            "target": self.target,
            "urls": list(self.urls),
            "productCount": self.product_count,
            "failures": list(self.failures),
        }


@dataclass(frozen=True)
class ScrapeResult:
    url: str
    success: bool
    latency_ms: int
    records: Tuple[ProductRecord, ...] = ()
    error_type: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class MetricsSnapshot:
    window_secs: int
    total_requests: int
    success_count: int
    blocked_count: int
    timeout_count: int
    records_extracted: int
    avg_latency_ms: float
    timestamp: float
