from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

BACKEND_RELAY = "relay"
BACKEND_BROWSER = "browser"

# (min, max) pacing window in seconds per backend
DEFAULT_DELAY_WINDOWS = {
    BACKEND_RELAY: (8.0, 10.0),
    BACKEND_BROWSER: (1.0, 3.0),
}


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None


def _get_float(env: Mapping[str, str], key: str) -> Optional[float]:
    raw = (env.get(key) or "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = (env.get(key) or "").strip().lower()
    if not raw:
        return default
    return raw not in {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ScraperConfig:
    """Runtime settings for acquisition, extraction and output.

    Built from the environment (and a local .env file) by from_env();
    tests construct it directly."""

    backend: str = BACKEND_RELAY
    base_url: str = "https://www.amazon.com"

    relay_api_key: str = ""
    relay_url: str = "https://api.scraperapi.com/"
    relay_proxy: str = "proxy-server.scraperapi.com:8001"
    relay_country: str = "us"
    relay_render: bool = True
    relay_premium: bool = True
    relay_timeout: int = 90

    affiliate_tag: str = ""
    product_limit: int = 0
    detail_limit: int = 0
    max_images: int = 5
    min_content_length: int = 8000

    min_delay: Optional[float] = None
    max_delay: Optional[float] = None
    max_retries: int = 3

    headless: bool = True
    region_postal_code: str = "10001"
    navigation_timeout: int = 30
    results_timeout: int = 15
    captcha_wait: float = 0.0

    output_dir: str = "output"
    output_sheet: str = "Products"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ScraperConfig":
        if env is None:
            load_dotenv()
            env = os.environ
        return cls(
            backend=(env.get("SCRAPER_BACKEND") or BACKEND_RELAY).strip().lower(),
            base_url=(env.get("SITE_BASE_URL") or cls.base_url).rstrip("/"),
            relay_api_key=(env.get("SCRAPER_API_KEY") or "").strip(),
            affiliate_tag=(env.get("AMAZON_AFFILIATE_TAG") or "").strip(),
            product_limit=_get_int(env, "PRODUCT_LIMIT", 0),
            detail_limit=_get_int(env, "DETAIL_LIMIT", 0),
            max_images=_get_int(env, "MAX_IMAGES", cls.max_images),
            min_content_length=_get_int(env, "MIN_CONTENT_LENGTH", cls.min_content_length),
            min_delay=_get_float(env, "SCRAPER_MIN_DELAY"),
            max_delay=_get_float(env, "SCRAPER_MAX_DELAY"),
            max_retries=_get_int(env, "SCRAPER_MAX_RETRIES", cls.max_retries),
            headless=_get_bool(env, "HEADLESS", True),
            region_postal_code=(env.get("REGION_POSTAL_CODE") or cls.region_postal_code).strip(),
            captcha_wait=_get_float(env, "CAPTCHA_WAIT") or 0.0,
            output_dir=env.get("OUTPUT_DIR") or cls.output_dir,
            output_sheet=env.get("OUTPUT_SHEET") or cls.output_sheet,
        )

    def delay_window(self) -> Tuple[float, float]:
        """Return the (min, max) pacing window, falling back to the backend default."""
        default_min, default_max = DEFAULT_DELAY_WINDOWS.get(self.backend, DEFAULT_DELAY_WINDOWS[BACKEND_RELAY])
        low = default_min if self.min_delay is None else self.min_delay
        high = default_max if self.max_delay is None else self.max_delay
        if high < low:
            raise ValueError(f"max_delay ({high}) must be >= min_delay ({low})")
        return low, high
