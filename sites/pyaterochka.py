"""
Pyaterochka (5ka.ru) loyalty card points.
"""
import logging
from typing import Any, Optional

from playwright.sync_api import Error as PlaywrightError

from sites.base_site import SiteAdapter, SiteError, TrackedBalance
from sites.locators import first_text, is_present, is_visible

logger = logging.getLogger(__name__)

LOYALTY_POINTS_SELECTOR = '[data-qa="loyalty-points-value"]'
LOGIN_SELECTOR = 'a[href*="auth/realms"], button:has-text("Войти")'

# Shown by the server when the accumulated cookies no longer fit in a header
OVERSIZED_COOKIE_MARKERS = (
    "400 Bad Request",
    "Cookie Too Large",
    "Request Header Or Cookie Too Large",
)


class PyaterochkaSite(SiteAdapter):
    name = "pyaterochka"
    page_url = "https://5ka.ru/"
    settle_delay = 2.0

    def watch_host(self) -> Optional[str]:
        return "5ka.ru"

    def open_page(self, surface: Any) -> None:
        try:
            surface.goto(self.page_url)
        except PlaywrightError as e:
            # The page often keeps loading trackers; the check below decides
            logger.warning("Navigation to %s did not finish cleanly: %s", self.page_url, e)

        try:
            surface.page.wait_for_load_state("networkidle", timeout=10000)
        except PlaywrightError:
            pass
        surface.wait(1)

    def check_surface(self, surface: Any) -> None:
        content = surface.content()
        if any(marker in content for marker in OVERSIZED_COOKIE_MARKERS):
            raise SiteError(
                "5ka.ru answered with a 'Cookie Too Large' error page; "
                "the server is rejecting requests, try again later"
            )

    def has_authenticated_marker(self, surface: Any) -> bool:
        return is_visible(surface.page, LOYALTY_POINTS_SELECTOR)

    def has_unauthenticated_marker(self, surface: Any) -> bool:
        return is_present(surface.page, LOGIN_SELECTOR)

    def read_value(self, surface: Any, balance: TrackedBalance) -> Optional[str]:
        return first_text(surface.page, balance.locator or LOYALTY_POINTS_SELECTOR)
