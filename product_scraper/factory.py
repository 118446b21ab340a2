from __future__ import annotations

from typing import Optional

from .backends import RelayBackend
from .backoff import BackoffStrategy, RetryPolicy
from .base import AcquisitionBackend
from .config import BACKEND_BROWSER, BACKEND_RELAY, ScraperConfig
from .extractor import FieldExtractor
from .metrics import MetricsCollector
from .navigator import BrowserBackend
from .session import ScrapeSession


class SessionFactory:
    """Builds scrape sessions with the backend named in the configuration.

    Every session gets its own backend instance, so browser or connection
    state is never shared between jobs."""

    def __init__(
        self,
        config: ScraperConfig,
        metrics: Optional[MetricsCollector] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._config = config
        self._metrics = metrics
        self._policy = policy

    def create_policy(self) -> RetryPolicy:
        if self._policy is not None:
            return self._policy
        min_delay, max_delay = self._config.delay_window()
        return RetryPolicy(
            min_delay=min_delay,
            max_delay=max_delay,
            max_retries=self._config.max_retries,
            backoff=BackoffStrategy(),
        )

    def create_backend(self, policy: RetryPolicy, name: Optional[str] = None) -> AcquisitionBackend:
        name = name or self._config.backend
        if name == BACKEND_RELAY:
            return RelayBackend(self._config, policy)
        if name == BACKEND_BROWSER:
            return BrowserBackend(self._config, policy)
        raise ValueError(f"Unknown backend: {name}")

    def create_session(self, affiliate_tag: Optional[str] = None) -> ScrapeSession:
        policy = self.create_policy()
        extractor = FieldExtractor(
            affiliate_tag=self._config.affiliate_tag if affiliate_tag is None else affiliate_tag,
            base_url=self._config.base_url,
            max_images=self._config.max_images,
        )
        return ScrapeSession(
            backend=self.create_backend(policy),
            extractor=extractor,
            policy=policy,
            min_content_length=self._config.min_content_length,
            product_limit=self._config.product_limit,
            detail_limit=self._config.detail_limit,
            metrics=self._metrics,
        )
