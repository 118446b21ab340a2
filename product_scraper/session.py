from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .backoff import RetryPolicy
from .base import DETAIL_READY_SELECTORS, SEARCH_READY_SELECTORS, AcquisitionBackend, validate_content
from .errors import ConfigurationMissing
from .extractor import ExtractionContext, FieldExtractor, merge_details
from .metrics import MetricsCollector
from .models import ProductRecord, ScrapeResult

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


class ScrapeSession:
    """Turns one search URL into product records.

    Owns its acquisition backend exclusively: acquisition, the content
    gate, extraction and the trailing pacing delay all happen here."""

    def __init__(
        self,
        backend: AcquisitionBackend,
        extractor: FieldExtractor,
        policy: RetryPolicy,
        min_content_length: int = 8000,
        product_limit: int = 0,
        detail_limit: int = 0,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._backend = backend
        self._extractor = extractor
        self._policy = policy
        self._min_content_length = min_content_length
        self._product_limit = product_limit
        self._detail_limit = detail_limit
        self._metrics = metrics
        self._clock = clock

    @property
    def backend(self) -> AcquisitionBackend:
        return self._backend

    @property
    def extractor(self) -> FieldExtractor:
        return self._extractor

    def close(self) -> None:
        self._backend.close()

    def __enter__(self) -> "ScrapeSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def scrape_search_results(self, target_url: str) -> List[ProductRecord]:
        """Fetch, validate and extract one search page.

        Raises AcquisitionBlocked when the page cannot be obtained."""
        logger.info("Scraping search results: %s", target_url)
        html = self._backend.fetch(target_url, SEARCH_READY_SELECTORS)
        validate_content(html, self._min_content_length)

        records = self._extractor.extract_search_results(
            html,
            scraped_at=self._clock(),
            page_url=target_url,
            limit=self._product_limit,
        )
        logger.info("Extracted %d products from %s", len(records), target_url)
        self._policy.pace()

        if self._detail_limit > 0 and records:
            records = self._enrich(records)
        return records

    def scrape_product_details(self, product_url: str) -> ProductRecord:
        """Fetch one product page and extract its record."""
        html = self._backend.fetch(product_url, DETAIL_READY_SELECTORS)
        validate_content(html, self._min_content_length)
        context = ExtractionContext.from_html(html, product_url)
        record = self._extractor.extract_detail(context, scraped_at=self._clock())
        self._policy.pace()
        return record

    def _enrich(self, records: List[ProductRecord]) -> List[ProductRecord]:
        count = min(self._detail_limit, len(records))
        logger.info("Getting detailed info for top %d products", count)
        enriched = list(records)
        for i in range(count):
            try:
                detail = self.scrape_product_details(records[i].canonical_link)
            except ConfigurationMissing:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.warning("Detail fetch failed for %s: %s", records[i].item_id, exc)
                continue
            enriched[i] = merge_details(records[i], detail)
        return enriched

    def run(self, target_url: str) -> ScrapeResult:
        """Scrape one URL, turning any per-URL failure into a failed result.

        ConfigurationMissing is re-raised: it would fail every URL alike."""
        start_ms = self._now_ms()
        try:
            records = self.scrape_search_results(target_url)
        except ConfigurationMissing:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Scraping %s failed: %s", target_url, exc)
            result = ScrapeResult(
                url=target_url,
                success=False,
                latency_ms=self._now_ms() - start_ms,
                error_type=type(exc).__name__,
                error=str(exc),
            )
        else:
            result = ScrapeResult(
                url=target_url,
                success=True,
                latency_ms=self._now_ms() - start_ms,
                records=tuple(records),
            )
        if self._metrics:
            self._metrics.record_result(result)
        return result

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)
