"""Browser backend: a small state machine driven through Playwright.

Search flow:  START -> HOMEPAGE_LOADED -> REGION_VERIFIED -> SEARCH_SUBMITTED -> RESULTS_PRESENT
Direct flow:  START -> DIRECT_LOADED -> RESULTS_PRESENT
Any state may end in BLOCKED (CAPTCHA without a wait window, or no content).

Interstitials are checked after every load. Every load is followed by the
pacing delay of the shared RetryPolicy.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import parse_qs, urlsplit

from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from .backoff import RetryPolicy
from .base import SEARCH_READY_SELECTORS, AcquisitionBackend
from .config import ScraperConfig
from .errors import AcquisitionBlocked, NavigationTimeout

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
EXTRA_HEADERS = {
    "Accept-Language": "en-US,en;q=0.9",
    "Upgrade-Insecure-Requests": "1",
}
LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-infobars",
    "--no-sandbox",
    "--disable-dev-shm-usage",
]

SEARCH_TERM_PARAMS = ("k", "field-keywords")

LOCATION_INDICATOR = "#glow-ingress-line2"
LOCATION_CONTROL = "#nav-global-location-popover-link"
POSTAL_CODE_INPUT = "#GLUXZipUpdateInput"
POSTAL_CODE_SUBMIT = "#GLUXZipUpdate"
SEARCH_INPUT = "#twotabsearchtextbox"
SEARCH_SUBMIT = "#nav-search-submit-button"
BOT_CHECK_CONTROLS = (
    "button:has-text('Continue shopping')",
    "input[type='submit'][value*='Continue']",
)
CAPTCHA_INDICATORS = (
    "#captchacharacters",
    "form[action*='validateCaptcha']",
)

REGION_SETTLE_SECONDS = 2.0


class AcquisitionState(str, Enum):
    START = "start"
    HOMEPAGE_LOADED = "homepage_loaded"
    REGION_VERIFIED = "region_verified"
    SEARCH_SUBMITTED = "search_submitted"
    DIRECT_LOADED = "direct_loaded"
    RESULTS_PRESENT = "results_present"
    BLOCKED = "blocked"


@dataclass
class AcquisitionSession:
    """Mutable state of one navigation sequence. Never shared between flows."""

    page: Any
    state: AcquisitionState = AcquisitionState.START
    cookies: List[Dict[str, str]] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)
    last_url: str = ""
    location_mismatch: bool = False
    bot_check_present: bool = False
    captcha_present: bool = False
    history: List[AcquisitionState] = field(default_factory=lambda: [AcquisitionState.START])

    def advance(self, state: AcquisitionState) -> None:
        logger.debug("Acquisition %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)


def extract_search_term(target: str) -> Optional[str]:
    """Search term carried by a target expression, if any.

    A bare expression (not a URL) is itself the term; a URL carries one in
    its `k` or `field-keywords` query parameter."""
    target = (target or "").strip()
    if not target:
        return None
    if not target.startswith(("http://", "https://")):
        return target
    query = parse_qs(urlsplit(target).query)
    for key in SEARCH_TERM_PARAMS:
        values = query.get(key)
        if values and values[0].strip():
            return values[0].strip()
    return None


def region_cookies(base_url: str) -> List[Dict[str, str]]:
    return [
        {"name": "i18n-prefs", "value": "USD", "url": base_url},
        {"name": "lc-main", "value": "en_US", "url": base_url},
    ]


class BrowserBackend(AcquisitionBackend):
    """Full navigation backend using a real (headless) Chromium.

    With a relay key, the browser is routed through the relay's proxy
    endpoint; without one it goes direct, which usually works for a while
    before bot checks kick in."""

    name = "browser"

    def __init__(
        self,
        config: ScraperConfig,
        policy: RetryPolicy,
        context_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._config = config
        self._policy = policy
        self._context_factory = context_factory
        self._base_url = config.base_url.rstrip("/")
        self._nav_timeout_ms = config.navigation_timeout * 1000
        self._results_timeout_ms = config.results_timeout * 1000
        self._playwright = None
        self._browser = None
        self._context = None

    def proxy_settings(self) -> Optional[Dict[str, str]]:
        if not self._config.relay_api_key:
            logger.warning("SCRAPER_API_KEY not set; browser backend will access the site directly")
            return None
        return {
            "server": f"http://{self._config.relay_proxy}",
            "username": "scraperapi",
            "password": self._config.relay_api_key,
        }

    def open(self) -> None:
        if self._context is not None:
            return
        if self._context_factory is not None:
            self._context = self._context_factory()
            return

        proxy = self.proxy_settings()
        launch_kwargs: Dict[str, Any] = {"headless": self._config.headless, "args": LAUNCH_ARGS}
        if proxy:
            launch_kwargs["proxy"] = proxy
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(**launch_kwargs)
        self._context = self._browser.new_context(
            user_agent=USER_AGENT,
            locale="en-US",
            viewport={"width": 1366, "height": 768},
            extra_http_headers=EXTRA_HEADERS,
            ignore_https_errors=proxy is not None,
        )
        logger.info("Browser launched (headless=%s, proxied=%s)", self._config.headless, proxy is not None)

    def close(self) -> None:
        if self._context is not None:
            self._context.close()
            self._context = None
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None

    def fetch(self, target_url: str, ready_selectors: Sequence[str] = SEARCH_READY_SELECTORS) -> str:
        self.open()
        page = self._context.new_page()
        session = AcquisitionSession(page=page, headers=dict(EXTRA_HEADERS))
        try:
            return self.navigate(session, target_url, ready_selectors)
        finally:
            page.close()

    def navigate(self, session: AcquisitionSession, target: str, ready_selectors: Sequence[str]) -> str:
        """Drive session from START to RESULTS_PRESENT and return the page markup."""
        term = extract_search_term(target)
        if term:
            logger.info("Searching for %r via the home page", term)
            self._load_homepage(session)
            self._verify_region(session)
            self._submit_search(session, term)
        else:
            logger.info("Loading %s directly", target)
            self._load(session, target)
            session.advance(AcquisitionState.DIRECT_LOADED)
        self._await_content(session, ready_selectors)
        return session.page.content()

    def _goto(self, session: AcquisitionSession, url: str) -> None:
        try:
            session.page.goto(url, wait_until="domcontentloaded", timeout=self._nav_timeout_ms)
        except PlaywrightTimeoutError:
            raise NavigationTimeout(f"Loading {url} exceeded {self._config.navigation_timeout}s") from None

    def _await_navigation(self, session: AcquisitionSession, action: Callable[[], Any], what: str) -> None:
        try:
            with session.page.expect_navigation(wait_until="domcontentloaded", timeout=self._nav_timeout_ms):
                action()
        except PlaywrightTimeoutError:
            raise NavigationTimeout(f"{what} did not navigate within {self._config.navigation_timeout}s") from None

    def _load(self, session: AcquisitionSession, url: str) -> None:
        try:
            self._goto(session, url)
        except NavigationTimeout as exc:
            logger.warning("%s; continuing", exc)
        session.last_url = session.page.url
        self._handle_interstitials(session)
        self._policy.pace()

    def _on_expected_host(self, session: AcquisitionSession) -> bool:
        return urlsplit(session.last_url).hostname == urlsplit(self._base_url).hostname

    def _load_homepage(self, session: AcquisitionSession) -> None:
        cookies = region_cookies(self._base_url)
        session.page.context.add_cookies(cookies)
        session.cookies = cookies

        self._load(session, self._base_url)
        if not self._on_expected_host(session):
            session.location_mismatch = True
            logger.warning("Redirected to %s; forcing %s", session.last_url, self._base_url)
            self._load(session, f"{self._base_url}/?language=en_US&currency=USD")
            session.location_mismatch = not self._on_expected_host(session)
        session.advance(AcquisitionState.HOMEPAGE_LOADED)

    def _region_matches(self, session: AcquisitionSession, postal_code: str) -> bool:
        indicator = session.page.query_selector(LOCATION_INDICATOR)
        if indicator is None:
            logger.debug("No location indicator on %s", session.last_url)
            return True
        text = indicator.inner_text() or ""
        return postal_code in text

    def _change_region(self, session: AcquisitionSession, postal_code: str) -> None:
        page = session.page
        try:
            page.click(LOCATION_CONTROL, timeout=self._nav_timeout_ms)
            page.wait_for_selector(POSTAL_CODE_INPUT, timeout=self._nav_timeout_ms)
            page.fill(POSTAL_CODE_INPUT, postal_code)
            page.click(POSTAL_CODE_SUBMIT, timeout=self._nav_timeout_ms)
        except PlaywrightTimeoutError:
            logger.warning("Region-change control unavailable on %s", session.last_url)
            return
        self._policy.wait(REGION_SETTLE_SECONDS)
        self._load(session, page.url)

    def _verify_region(self, session: AcquisitionSession) -> None:
        postal_code = self._config.region_postal_code
        if postal_code and not self._region_matches(session, postal_code):
            logger.info("Location indicator does not show %s; changing region", postal_code)
            self._change_region(session, postal_code)
            if not self._region_matches(session, postal_code):
                session.location_mismatch = True
                logger.warning("Region still not %s after one correction; continuing", postal_code)
        session.advance(AcquisitionState.REGION_VERIFIED)

    def _first_present(self, page: Any, selectors: Sequence[str]) -> Any:
        for selector in selectors:
            element = page.query_selector(selector)
            if element is not None:
                return element
        return None

    def _handle_interstitials(self, session: AcquisitionSession) -> None:
        page = session.page
        control = self._first_present(page, BOT_CHECK_CONTROLS)
        session.bot_check_present = control is not None
        if control is not None:
            logger.warning("Bot-check interstitial at %s; clicking through", page.url)
            try:
                self._await_navigation(session, control.click, "Bot-check continue")
            except NavigationTimeout as exc:
                logger.warning("%s; continuing", exc)
            session.last_url = page.url

        session.captcha_present = self._first_present(page, CAPTCHA_INDICATORS) is not None
        if not session.captcha_present:
            return
        if self._config.captcha_wait <= 0:
            session.advance(AcquisitionState.BLOCKED)
            raise AcquisitionBlocked(f"CAPTCHA presented at {page.url}")
        logger.warning(
            "CAPTCHA presented at %s; waiting %.0fs for manual intervention",
            page.url,
            self._config.captcha_wait,
        )
        self._policy.wait(self._config.captcha_wait)

    def _submit_search(self, session: AcquisitionSession, term: str) -> None:
        page = session.page
        try:
            page.fill(SEARCH_INPUT, term, timeout=self._nav_timeout_ms)
        except PlaywrightTimeoutError:
            session.advance(AcquisitionState.BLOCKED)
            raise AcquisitionBlocked(f"Search input not found at {session.last_url}") from None

        try:
            self._await_navigation(session, lambda: page.click(SEARCH_SUBMIT), "Search submit")
        except NavigationTimeout as exc:
            logger.warning("%s; results may already be present", exc)
        session.last_url = page.url
        session.advance(AcquisitionState.SEARCH_SUBMITTED)
        self._handle_interstitials(session)
        self._policy.pace()

    def _await_content(self, session: AcquisitionSession, ready_selectors: Sequence[str]) -> None:
        for selector in ready_selectors:
            try:
                session.page.wait_for_selector(selector, timeout=self._results_timeout_ms)
            except PlaywrightTimeoutError:
                logger.debug("No %s within %ss", selector, self._config.results_timeout)
                continue
            session.advance(AcquisitionState.RESULTS_PRESENT)
            return
        session.advance(AcquisitionState.BLOCKED)
        raise AcquisitionBlocked(f"No content found at {session.page.url}")
