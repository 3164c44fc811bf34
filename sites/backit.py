"""
Backit confirmed cashback balance.

Backit is the one integration that logs in by itself, using the email and
password from the credential source; the manual wait is the fallback.
"""
import logging
import time
from typing import Any, Optional

from playwright.sync_api import Error as PlaywrightError

from normalizer.amount_parser import RoundingPolicy
from sites.base_site import AuthState, SiteAdapter, TrackedBalance
from sites.locators import first_text, is_present, is_visible

logger = logging.getLogger(__name__)

USER_CARD_SELECTOR = '.mu-user-card__name'
LOGIN_BUTTON_SELECTOR = '.mu-auth__login-btn'
AUTH_FORM_SELECTOR = '.auth-form'
EMAIL_INPUT_SELECTOR = 'input[placeholder*="эл.почту"], input[placeholder*="логин"]'
PASSWORD_INPUT_SELECTOR = 'input[type="password"]'
SUBMIT_SELECTOR = 'button:has-text("Войти")'
BALANCE_SELECTOR = 'strong.base-balance-card__balance'

AUTH_PAGE_FRAGMENT = '/app-auth/'
LOGIN_RESULT_TIMEOUT_SECONDS = 15.0


class BackitSite(SiteAdapter):
    name = "backit"
    page_url = "https://backit.me/ru/cashback/mycashback"
    settle_delay = 3.0
    default_rounding = RoundingPolicy.round_to(2)

    def has_authenticated_marker(self, surface: Any) -> bool:
        if AUTH_PAGE_FRAGMENT in surface.url:
            return False
        return is_visible(surface.page, USER_CARD_SELECTOR)

    def has_unauthenticated_marker(self, surface: Any) -> bool:
        return AUTH_PAGE_FRAGMENT in surface.url or is_present(surface.page, LOGIN_BUTTON_SELECTOR)

    def detect(self, surface: Any) -> AuthState:
        state = super().detect(surface)
        if state is AuthState.AUTHENTICATED:
            user = first_text(surface.page, USER_CARD_SELECTOR)
            logger.info("Authenticated as: %s", (user or "").strip())
        return state

    def login(self, surface: Any) -> bool:
        email = self.credentials.get("email")
        password = self.credentials.get("password")
        if not email or not password:
            logger.error("Backit email or password not configured; falling back to manual login")
            return False

        page = surface.page
        try:
            if AUTH_PAGE_FRAGMENT not in surface.url:
                login_button = page.locator(LOGIN_BUTTON_SELECTOR).first
                if login_button.count() > 0:
                    login_button.click()
                    page.wait_for_selector(AUTH_FORM_SELECTOR, timeout=10000)
                    logger.info("Login modal opened")

            if not is_present(page, AUTH_FORM_SELECTOR):
                logger.warning("Login form not found")
                return False

            logger.info("Auto-filling login credentials...")
            page.locator(EMAIL_INPUT_SELECTOR).first.fill(email)
            page.locator(PASSWORD_INPUT_SELECTOR).first.fill(password)
            page.locator(SUBMIT_SELECTOR).first.click()
        except PlaywrightError as e:
            logger.error("Error during automatic login: %s", e)
            return False

        return self._wait_for_login_result(surface)

    def _wait_for_login_result(self, surface: Any) -> bool:
        deadline = time.monotonic() + LOGIN_RESULT_TIMEOUT_SECONDS
        while time.monotonic() < deadline:
            try:
                if self.has_authenticated_marker(surface):
                    logger.info("Automatic login succeeded (%s)", surface.url)
                    return True
            except PlaywrightError as e:
                logger.debug("Login result probe failed: %s", e)
            surface.wait(0.5)

        logger.warning("Automatic login did not complete in %.0fs", LOGIN_RESULT_TIMEOUT_SECONDS)
        return False

    def prepare_extraction(self, surface: Any, balance: TrackedBalance) -> None:
        if "/mycashback" not in surface.url:
            surface.goto(self.page_url)

    def read_value(self, surface: Any, balance: TrackedBalance) -> Optional[str]:
        return first_text(surface.page, balance.locator or BALANCE_SELECTOR)
