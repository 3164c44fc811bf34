"""
Surfaces: the thing a site adapter reads from.

A browser surface wraps a Playwright page; an API surface wraps a
requests session. Both expose goto/wait/storage_state/reset so the
engine and the polling loops do not care which one they drive.
"""
import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import requests
from playwright.sync_api import BrowserContext, Page, sync_playwright

from config import ACTION_TIMEOUT_MS, COOKIE_HEADER_WARN_CHARS, NAVIGATION_TIMEOUT_MS

logger = logging.getLogger(__name__)


class BrowserSurface:
    """A Playwright page plus the context that owns its cookies."""

    def __init__(self, context: BrowserContext, page: Page, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS):
        self.context = context
        self.page = page
        self.navigation_timeout_ms = navigation_timeout_ms
        self._last_url: Optional[str] = None

    @property
    def url(self) -> str:
        return self.page.url

    def goto(
        self, url: str, wait_until: str = "domcontentloaded", timeout_ms: Optional[int] = None
    ) -> None:
        self._last_url = url
        if timeout_ms is None:
            timeout_ms = self.navigation_timeout_ms
        self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)

    def wait(self, seconds: float) -> None:
        # Keeps Playwright's event loop running, unlike time.sleep
        self.page.wait_for_timeout(seconds * 1000)

    def content(self) -> str:
        return self.page.content()

    def storage_state(self) -> Dict[str, Any]:
        return self.context.storage_state()

    def reset(self) -> None:
        """Drop cookies and reload the last page, for a clean login."""
        self.context.clear_cookies()
        if self._last_url:
            self.goto(self._last_url)


class ApiSurface:
    """A requests session used by adapters that read JSON APIs."""

    def __init__(self, session: requests.Session, timeout: float = 30.0):
        self.session = session
        self.timeout = timeout
        self.url = ""

    def goto(self, url: str, timeout_ms: Optional[int] = None) -> None:
        self.url = url

    def wait(self, seconds: float) -> None:
        time.sleep(seconds)

    def post_json(self, url: str, payload: Dict[str, Any]) -> Any:
        response = self.session.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def storage_state(self) -> Dict[str, Any]:
        return {"cookies": requests.utils.dict_from_cookiejar(self.session.cookies)}

    def reset(self) -> None:
        self.session.cookies.clear()


@contextmanager
def open_browser_surface(
    storage_state: Optional[Dict[str, Any]] = None,
    headless: bool = False,
    navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS,
    watch_host: Optional[str] = None,
) -> Iterator[BrowserSurface]:
    """
    Launch Chromium and open one page, closing the browser on exit.

    Args:
        storage_state: Saved Playwright storage state to restore
        headless: Run without a visible window (manual login needs a window)
        navigation_timeout_ms: Timeout for page.goto
        watch_host: Log the cookie header size of requests to this host
    """
    with sync_playwright() as p:
        browser = p.chromium.launch(headless=headless)
        try:
            context_kwargs: Dict[str, Any] = {}
            if storage_state:
                context_kwargs["storage_state"] = storage_state
                logger.info("Loaded saved session")
            context = browser.new_context(**context_kwargs)
            context.set_default_timeout(ACTION_TIMEOUT_MS)
            context.set_default_navigation_timeout(navigation_timeout_ms)

            page = context.new_page()
            if watch_host:
                _watch_cookie_size(page, watch_host)

            yield BrowserSurface(context, page, navigation_timeout_ms)
        finally:
            browser.close()


@contextmanager
def open_api_surface(timeout: float = 30.0) -> Iterator[ApiSurface]:
    """Open a requests session, closing it on exit."""
    session = requests.Session()
    session.headers.update({"Content-Type": "application/json"})
    try:
        yield ApiSurface(session, timeout=timeout)
    finally:
        session.close()


def _watch_cookie_size(page: Page, host: str) -> None:
    def _on_request(request) -> None:
        if host not in request.url:
            return
        cookie_header = request.headers.get("cookie", "")
        logger.debug("[REQUEST] %s %s cookie=%d chars", request.method, request.url, len(cookie_header))
        if len(cookie_header) > COOKIE_HEADER_WARN_CHARS:
            logger.warning("Cookie header is very large: %d chars", len(cookie_header))

    def _on_response(response) -> None:
        if host in response.url and response.status == 400:
            logger.error("[400 ERROR] %s %s", response.url, response.status_text)

    page.on("request", _on_request)
    page.on("response", _on_response)
