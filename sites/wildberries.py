"""
Wildberries bank wallet balance shown in the site header.
"""
import logging
from typing import Any, Optional

from sites.base_site import SiteAdapter, TrackedBalance
from sites.locators import click_if_present, first_text, is_present, is_visible, zoom_out

logger = logging.getLogger(__name__)

BALANCE_SELECTOR = 'a.header__balance--bank'
LOGIN_BUTTON_SELECTOR = 'button:has-text("Войти")'
LOGIN_LINK_SELECTOR = 'a.navbar-pc__link.j-main-login'


class WildberriesSite(SiteAdapter):
    name = "wildberries"
    page_url = "https://www.wildberries.ru/"

    def has_authenticated_marker(self, surface: Any) -> bool:
        return is_visible(surface.page, BALANCE_SELECTOR)

    def has_unauthenticated_marker(self, surface: Any) -> bool:
        return is_present(surface.page, LOGIN_BUTTON_SELECTOR)

    def prepare_manual_login(self, surface: Any) -> None:
        super().prepare_manual_login(surface)
        zoom_out(surface.page)
        surface.wait(2)
        if click_if_present(surface.page, LOGIN_LINK_SELECTOR):
            logger.info("Opened the login page")
            surface.wait(2)
        else:
            logger.warning("Login link not found on page")

    def read_value(self, surface: Any, balance: TrackedBalance) -> Optional[str]:
        return first_text(surface.page, balance.locator or BALANCE_SELECTOR)
