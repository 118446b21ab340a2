from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Sequence

import requests

from .backoff import RetryPolicy
from .base import SEARCH_READY_SELECTORS, AcquisitionBackend
from .config import ScraperConfig
from .errors import AcquisitionBlocked, ConfigurationMissing

logger = logging.getLogger(__name__)

RELAY_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


class RelayBackend(AcquisitionBackend):
    """Fetch-and-parse backend routed through an unblocking relay.

    The relay renders the page on its side, so this backend only issues
    one GET per target. Without an access key there is no point trying:
    direct requests are blocked, so construction fails immediately."""

    name = "relay"

    def __init__(
        self,
        config: ScraperConfig,
        policy: RetryPolicy,
        http: Optional[Any] = None,
    ) -> None:
        if not config.relay_api_key:
            raise ConfigurationMissing("SCRAPER_API_KEY is required for the relay backend")
        self._config = config
        self._policy = policy
        self._http = http or requests

    def build_params(self, target_url: str) -> Dict[str, str]:
        params = {
            "api_key": self._config.relay_api_key,
            "url": target_url,
            "country_code": self._config.relay_country,
        }
        if self._config.relay_render:
            params["render"] = "true"
        if self._config.relay_premium:
            params["premium"] = "true"
        return params

    def fetch(self, target_url: str, ready_selectors: Sequence[str] = SEARCH_READY_SELECTORS) -> str:
        logger.info("Fetching via relay: %s", target_url)
        start = time.time()
        response = self._policy.call(
            lambda: self._http.get(
                self._config.relay_url,
                params=self.build_params(target_url),
                headers=RELAY_HEADERS,
                timeout=self._config.relay_timeout,
            ),
            retry_on=(requests.ConnectionError, requests.Timeout),
        )
        status_code = getattr(response, "status_code", None)
        if status_code is None or not 200 <= int(status_code) < 300:
            raise AcquisitionBlocked(f"Relay returned HTTP {status_code} for {target_url}")
        logger.debug("Relay answered in %dms", int((time.time() - start) * 1000))
        return response.text
