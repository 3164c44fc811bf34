"""
Dixy "Club of Friends" bonus points.

The ledger keeps fractional accrual while the site shows whole points, so
the default rounding policy truncates both sides to integers.
"""
import logging
from typing import Any, Optional

from normalizer.amount_parser import RoundingPolicy
from sites.base_site import SiteAdapter, TrackedBalance
from sites.locators import click_if_present, first_text, is_visible, zoom_out

logger = logging.getLogger(__name__)

PROFILE_SELECTOR = '[data-testid="testid-auth-profile-text"]'
LOGIN_TEXT_SELECTOR = '[data-testid="testid-auth-login-text"]'
LOGIN_BUTTON_SELECTOR = '[data-testid="testid-auth-login-button"]'
POINTS_SELECTOR = '.clcaret-balance__count > span'


class DixySite(SiteAdapter):
    name = "dixy"
    page_url = "https://dixy.ru/personal/cashbacks/"
    default_rounding = RoundingPolicy.truncate()

    def has_authenticated_marker(self, surface: Any) -> bool:
        return is_visible(surface.page, PROFILE_SELECTOR)

    def has_unauthenticated_marker(self, surface: Any) -> bool:
        return is_visible(surface.page, LOGIN_TEXT_SELECTOR)

    def prepare_manual_login(self, surface: Any) -> None:
        super().prepare_manual_login(surface)
        zoom_out(surface.page)
        surface.wait(2)
        if is_visible(surface.page, LOGIN_TEXT_SELECTOR) and click_if_present(
            surface.page, LOGIN_BUTTON_SELECTOR
        ):
            logger.info("Opened the login form")
            surface.wait(2)

    def prepare_extraction(self, surface: Any, balance: TrackedBalance) -> None:
        # Login may have left us on another page
        if not surface.url.startswith(self.page_url):
            surface.goto(self.page_url)

    def read_value(self, surface: Any, balance: TrackedBalance) -> Optional[str]:
        return first_text(surface.page, balance.locator or POINTS_SELECTOR)
