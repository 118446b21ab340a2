from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Sequence

from .errors import AcquisitionBlocked

logger = logging.getLogger(__name__)

BLOCK_MARKERS = (
    "cf-challenge",
    "Enable JavaScript",
    "/errors/validateCaptcha",
)

DEFAULT_MIN_CONTENT_LENGTH = 8000

SEARCH_READY_SELECTORS = (
    '[data-component-type="s-search-result"]',
    ".s-result-item[data-asin]",
)
DETAIL_READY_SELECTORS = (
    "#productTitle",
    "#dp-container",
)


def validate_content(html: str, min_length: int = DEFAULT_MIN_CONTENT_LENGTH) -> None:
    """Reject block pages before any parsing is attempted.

    Raises AcquisitionBlocked for known challenge markers or for content
    shorter than min_length."""
    html = html or ""
    if len(html) < min_length:
        raise AcquisitionBlocked(f"Content too short ({len(html)} < {min_length} chars)")
    for marker in BLOCK_MARKERS:
        if marker in html:
            raise AcquisitionBlocked(f"Block page detected (marker {marker!r})")


class AcquisitionBackend(ABC):
    """Obtains the raw markup of a page despite anti-bot obstacles.

    Implementations own their connection or browser state exclusively; one
    instance serves one scrape session and is never shared across threads.
    """

    name = "base"

    def open(self) -> None:
        """Acquire long-lived resources. Called lazily before the first fetch."""

    def close(self) -> None:
        """Release resources. Safe to call more than once."""

    @abstractmethod
    def fetch(self, target_url: str, ready_selectors: Sequence[str] = SEARCH_READY_SELECTORS) -> str:
        """Return the page markup for target_url or raise AcquisitionBlocked."""

    def __enter__(self) -> "AcquisitionBackend":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
