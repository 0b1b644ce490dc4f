"""Browser session used by the visit pipeline."""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Deque, List, Optional, Protocol
from urllib.parse import urlsplit

import requests
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page, Request, Response, sync_playwright
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from ..core.config import CrawlConfig
from ..core.errors import NavigationError, SetupError
from ..core.models import CapturedRequest, CapturedResponse
from ..traffic.channel import TrafficChannel
from .links import gather_from_html, is_crawlable_href
from .utils import cookie_jar, filter_cookies

logger = logging.getLogger(__name__)

PAGE_REQUEST_LOG_LIMIT = 200
SCRIPT_FETCH_TIMEOUT = 15

LINKS_SCRIPT = """
() => Array.from(document.querySelectorAll('a[href]')).map(a => [a.getAttribute('href') || '', a.href])
"""


class BrowserSession(Protocol):
    def attach(self, channel: TrafficChannel) -> None:
        ...

    def navigate(self, url: str, timeout_ms: int) -> None:
        ...

    def settle(self, *, wait_for_idle: bool, idle_timeout_ms: int, grace_ms: int) -> None:
        ...

    def current_requests(self) -> List[CapturedRequest]:
        ...

    def title(self) -> str:
        ...

    def content(self) -> str:
        ...

    def extract_links(self) -> List[str]:
        ...

    def fetch_text(self, url: str) -> Optional[str]:
        ...

    def cookies(self) -> List[dict]:
        ...


class PlaywrightSession:
    """Chromium session driven through the Playwright sync API.

    One browser context lives for the whole run; each visit gets a fresh
    page. Context-level hooks publish every request and response to the
    traffic channel.
    """

    def __init__(self, config: CrawlConfig, channel: Optional[TrafficChannel] = None) -> None:
        self.config = config
        self.channel = channel
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Optional[Page] = None
        self._page_requests: Deque[CapturedRequest] = deque(maxlen=PAGE_REQUEST_LOG_LIMIT)
        self._http = requests.Session()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def attach(self, channel: TrafficChannel) -> None:
        self.channel = channel

    def start(self) -> None:
        launch_options: dict = {"headless": self.config.headless}
        if self.config.proxy:
            launch_options["proxy"] = {"server": self.config.proxy}
            self._http.proxies = {"http": self.config.proxy, "https": self.config.proxy}
        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(**launch_options)
            self._context = self._browser.new_context(
                ignore_https_errors=self.config.ignore_https_errors,
                user_agent=self.config.user_agent,
                bypass_csp=True,
            )
        except PlaywrightError as exc:
            self.close()
            raise SetupError(f"Could not launch the browser: {exc.message}") from exc
        self._context.on("request", self._on_request)
        self._context.on("response", self._on_response)
        self._http.headers["User-Agent"] = self.config.user_agent
        self._http.verify = not self.config.ignore_https_errors

    def close(self) -> None:
        self._close_page()
        for closer in (
            getattr(self._context, "close", None),
            getattr(self._browser, "close", None),
            getattr(self._playwright, "stop", None),
        ):
            if closer is None:
                continue
            try:
                closer()
            except PlaywrightError:
                logger.debug("Browser shutdown step failed", exc_info=True)
        self._context = self._browser = self._playwright = None
        self._http.close()

    def __enter__(self) -> "PlaywrightSession":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Page operations
    # ------------------------------------------------------------------
    def navigate(self, url: str, timeout_ms: int) -> None:
        self._close_page()
        self._page_requests.clear()
        try:
            self._page = self._context.new_page()
            self._page.on("request", self._remember_request)
            self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise NavigationError(url, f"timeout after {timeout_ms}ms") from exc
        except PlaywrightError as exc:
            raise NavigationError(url, exc.message) from exc

    def settle(self, *, wait_for_idle: bool, idle_timeout_ms: int, grace_ms: int) -> None:
        page = self._require_page()
        if wait_for_idle:
            try:
                page.wait_for_load_state("networkidle", timeout=idle_timeout_ms)
            except PlaywrightTimeoutError:
                logger.debug("Network never went idle on %s", page.url)
        page.wait_for_timeout(grace_ms)

    def current_requests(self) -> List[CapturedRequest]:
        return list(self._page_requests)

    def title(self) -> str:
        return self._require_page().title()

    def content(self) -> str:
        return self._require_page().content()

    def extract_links(self) -> List[str]:
        page = self._require_page()
        try:
            pairs = page.evaluate(LINKS_SCRIPT)
        except PlaywrightError:
            logger.debug("DOM link extraction failed on %s, parsing HTML instead", page.url, exc_info=True)
            return gather_from_html(page.content(), page.url)
        return [resolved for raw, resolved in pairs if is_crawlable_href(raw) and resolved]

    def fetch_text(self, url: str) -> Optional[str]:
        hostname = urlsplit(url).hostname or ""
        try:
            response = self._http.get(
                url,
                cookies=cookie_jar(filter_cookies(self.cookies(), hostname)),
                timeout=SCRIPT_FETCH_TIMEOUT,
            )
        except requests.RequestException:
            logger.debug("Could not fetch %s", url, exc_info=True)
            return None
        if response.status_code >= 400:
            return None
        return response.text

    def cookies(self) -> List[dict]:
        if self._context is None:
            return []
        return list(self._context.cookies())

    # ------------------------------------------------------------------
    # Event hooks
    # ------------------------------------------------------------------
    def _on_request(self, request: Request) -> None:
        if self.channel is not None:
            self.channel.publish(self._capture_request(request))

    def _on_response(self, response: Response) -> None:
        if self.channel is None:
            return
        request = response.request
        self.channel.publish(
            CapturedResponse.build(
                request.method,
                request.url,
                response.status,
                response.headers,
                status_text=response.status_text,
            )
        )

    def _remember_request(self, request: Request) -> None:
        self._page_requests.append(self._capture_request(request))

    @staticmethod
    def _capture_request(request: Request) -> CapturedRequest:
        try:
            body = request.post_data
        except (PlaywrightError, UnicodeDecodeError):
            body = None
        return CapturedRequest.build(
            request.method,
            request.url,
            request.headers,
            body,
            resource_type=request.resource_type,
        )

    def _require_page(self) -> Page:
        if self._page is None:
            raise RuntimeError("navigate() must be called before using the page")
        return self._page

    def _close_page(self) -> None:
        if self._page is None:
            return
        try:
            self._page.close()
        except PlaywrightError:
            logger.debug("Closing page failed", exc_info=True)
        self._page = None
