from __future__ import annotations

import csv
import json
import logging
import os
import queue
import threading
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from .models import ProductRecord

logger = logging.getLogger(__name__)

# Column order of the products sheet.
SHEET_HEADERS = [
    "Product Name",
    "Description",
    "Images",
    "Price",
    "Rating",
    "Reviews",
    "ASIN",
    "Affiliate Link",
    "Product Link",
    "Availability",
    "Scraped At",
]


def record_to_row(record: ProductRecord) -> List[str]:
    """Flatten a record into one sheet row in SHEET_HEADERS order."""
    return [
        record.name,
        record.description or "",
        ", ".join(record.image_urls),
        record.price.display,
        "N/A" if record.rating is None else f"{record.rating:g}",
        str(record.review_count),
        record.item_id,
        record.referral_link,
        record.canonical_link,
        record.availability,
        record.scraped_at,
    ]


def _safe_target(target: str) -> str:
    name = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in target.strip())
    return name or "Products"


class StorageBase(ABC):
    """Abstract base class for all result sinks.

    A sink receives batches of records addressed to a named target
    (a sheet, a file). overwrite=True replaces the target's contents,
    otherwise rows are appended."""

    @abstractmethod
    def write_records(self, records: Sequence[ProductRecord], target: str, overwrite: bool = False) -> None:
        """Persist a batch of records to target."""

    @abstractmethod
    def close(self) -> None:
        """Flush pending writes and release resources."""


class JsonlStorage(StorageBase):
    """Stores records as JSON Lines, one file per target, using a background writer thread."""

    def __init__(self, directory: str) -> None:
        self._directory = directory
        self._queue: queue.Queue[Optional[Tuple[Sequence[ProductRecord], str, bool]]] = queue.Queue()
        self._thread = threading.Thread(target=self._writer, daemon=True)
        self._thread.start()

    def path_for(self, target: str) -> str:
        return os.path.join(self._directory, f"{_safe_target(target)}.jsonl")

    def write_records(self, records: Sequence[ProductRecord], target: str, overwrite: bool = False) -> None:
        """Enqueue a batch for background writing."""
        self._queue.put((tuple(records), target, overwrite))

    def close(self) -> None:
        """Signal the writer thread to flush and stop."""
        self._queue.put(None)
        self._thread.join(timeout=5)

    def _writer(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                break
            records, target, overwrite = item
            path = self.path_for(target)
            try:
                os.makedirs(self._directory, exist_ok=True)
                with open(path, "w" if overwrite else "a", encoding="utf-8") as f:
                    for record in records:
                        f.write(json.dumps(record.to_dict(), ensure_ascii=False) + "\n")
            except OSError:
                logger.exception("Failed to write %d records to %s", len(records), path)
                continue
            logger.info("Written %d products to %s", len(records), path)


class CsvStorage(StorageBase):
    """Writes sheet-style CSV files: a header row followed by one row per record."""

    def __init__(self, directory: str) -> None:
        self._directory = directory
        self._lock = threading.Lock()

    def path_for(self, target: str) -> str:
        return os.path.join(self._directory, f"{_safe_target(target)}.csv")

    def write_records(self, records: Sequence[ProductRecord], target: str, overwrite: bool = False) -> None:
        path = self.path_for(target)
        with self._lock:
            os.makedirs(self._directory, exist_ok=True)
            needs_header = overwrite or not os.path.exists(path) or os.path.getsize(path) == 0
            with open(path, "w" if overwrite else "a", encoding="utf-8", newline="") as f:
                writer = csv.writer(f)
                if needs_header:
                    writer.writerow(SHEET_HEADERS)
                for record in records:
                    writer.writerow(record_to_row(record))
        logger.info("Written %d products to %s", len(records), path)

    def close(self) -> None:
        pass
