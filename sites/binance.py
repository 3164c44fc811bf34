"""
Binance BNB balance on the Spot and Funding wallets.

Both values need navigation before they render: Spot opens the BNB detail
panel (searching for it when the button is not on screen), Funding opens
the Convert modal of the BNB row and reads its prefilled amount.
"""
import logging
import re
from typing import Any, Optional

from playwright.sync_api import Error as PlaywrightError

from normalizer.amount_parser import NoNumericContent, normalize
from sites.base_site import AuthState, SiteAdapter, SiteError, TrackedBalance
from sites.locators import is_present, is_visible

logger = logging.getLogger(__name__)

SPOT_URL = "https://www.binance.com/en/my/wallet/account/main"
FUNDING_URL = "https://www.binance.com/en/my/wallet/funding"
DASHBOARD_URL = "https://www.binance.com/en/my/dashboard"

DASHBOARD_ICON_SELECTOR = 'a[href*="/my/dashboard"] .header-account-icon'
LOGIN_FORM_HEADING_SELECTOR = (
    '.content-card.first-screen-content .card-page-title, '
    '.content-card.first-screen-content [role="heading"]'
)
TOP_LOGIN_BUTTON_SELECTOR = '#toLoginPage'
LOGIN_PAGE_FRAGMENTS = ('accounts.binance.com/en/login', 'accounts.binance.com/login')

CAPTION_SELECTOR = 'div.headline6, .pc\\:headline6'
SIDEBAR_ITEM_SELECTOR = '.sidebar-menu-item-text'
SIDEBAR_ACTIVE_SELECTOR = '.sidebar-menu-item-text.text-active'
MODAL_CLOSE_SELECTOR = '#spot-history-sidebar-modal-close > svg'

SPOT_COIN_BUTTON_SELECTOR = 'div.subtitle3'
SPOT_VALUE_SELECTOR = 'div.headline4.text-t-primary'

FUNDING_COIN_ROW_SELECTOR = '#btn-CoinItem-handleClick-{coin}'
FUNDING_CONVERT_SELECTOR = '#funding-action-convert'
FUNDING_VALUE_SELECTOR = '#convert-input-From'

WALLETS = {
    "spot": {"caption": "Spot", "url": SPOT_URL},
    "funding": {"caption": "Funding", "url": FUNDING_URL},
}

COIN = "BNB"
STEP_TIMEOUT_MS = 20000
# Dashboard check while waiting for a manual login
DASHBOARD_CHECK_TIMEOUT_MS = 5000


class BinanceSite(SiteAdapter):
    name = "binance"
    page_url = SPOT_URL

    def has_authenticated_marker(self, surface: Any) -> bool:
        return is_visible(surface.page, DASHBOARD_ICON_SELECTOR)

    def has_unauthenticated_marker(self, surface: Any) -> bool:
        login_heading = surface.page.locator(LOGIN_FORM_HEADING_SELECTOR).filter(
            has_text="Log in"
        )
        login_heading_ru = surface.page.locator(LOGIN_FORM_HEADING_SELECTOR).filter(
            has_text="Вход"
        )
        return (
            login_heading.count() > 0
            or login_heading_ru.count() > 0
            or is_present(surface.page, TOP_LOGIN_BUTTON_SELECTOR)
        )

    def poll_auth_state(self, surface: Any) -> AuthState:
        if self.has_authenticated_marker(surface):
            return AuthState.AUTHENTICATED

        # Logged in on accounts.binance.com and sent elsewhere: go look at the dashboard
        url = surface.url
        on_login_page = any(fragment in url for fragment in LOGIN_PAGE_FRAGMENTS)
        if not on_login_page and "binance.com" in url:
            try:
                surface.goto(DASHBOARD_URL, timeout_ms=DASHBOARD_CHECK_TIMEOUT_MS)
            except PlaywrightError as e:
                logger.debug("Dashboard navigation failed: %s", e)
            surface.wait(1)
            if self.has_authenticated_marker(surface):
                return AuthState.AUTHENTICATED

        return AuthState.UNAUTHENTICATED

    def prepare_extraction(self, surface: Any, balance: TrackedBalance) -> None:
        wallet = self._wallet(balance)
        page = surface.page

        if is_visible(page, MODAL_CLOSE_SELECTOR):
            page.locator(MODAL_CLOSE_SELECTOR).first.click()
            surface.wait(0.5)

        sidebar_link = page.locator(SIDEBAR_ITEM_SELECTOR, has_text=WALLETS[wallet]["caption"]).first
        if sidebar_link.count() > 0:
            sidebar_link.click()
            surface.wait(1)
        else:
            surface.goto(WALLETS[wallet]["url"])

        self._wait_for_caption(page, WALLETS[wallet]["caption"])

        if wallet == "spot":
            self._open_spot_coin(surface)
        else:
            self._open_funding_convert(surface)

    def read_value(self, surface: Any, balance: TrackedBalance) -> Optional[str]:
        page = surface.page
        if self._wallet(balance) == "spot":
            locator = page.locator(SPOT_VALUE_SELECTOR)
            if locator.count() == 0:
                return None
            return locator.first.text_content()

        # The convert input is briefly empty or 0 while the modal loads
        value = page.locator(FUNDING_VALUE_SELECTOR).input_value()
        try:
            if normalize(value) > 0:
                return value
        except NoNumericContent:
            pass
        return None

    def _wallet(self, balance: TrackedBalance) -> str:
        wallet = str(balance.locator or balance.id).lower()
        if wallet not in WALLETS:
            raise SiteError(f"Unknown Binance wallet '{wallet}', expected one of {sorted(WALLETS)}")
        return wallet

    def _wait_for_caption(self, page: Any, caption: str) -> None:
        page.wait_for_selector(CAPTION_SELECTOR, timeout=STEP_TIMEOUT_MS)
        page.wait_for_function(
            """(caption) => Array.from(document.querySelectorAll('div.headline6, .pc\\\\:headline6'))
                .some(el => el.textContent.trim() === caption)""",
            arg=caption,
            timeout=STEP_TIMEOUT_MS,
        )

    def _open_spot_coin(self, surface: Any) -> None:
        page = surface.page
        page.locator(SIDEBAR_ACTIVE_SELECTOR, has_text="Spot").wait_for(
            state="visible", timeout=15000
        )

        coin_button = page.locator(SPOT_COIN_BUTTON_SELECTOR, has_text=_exact(COIN)).first
        if coin_button.count() > 0 and coin_button.is_visible():
            coin_button.click()
            surface.wait(1)
            return

        logger.warning("%s button not visible on the Spot page; using the search panel", COIN)
        self._search_coin(surface, "Spot")

        for _ in range(10):
            if coin_button.count() > 0 and coin_button.is_visible():
                coin_button.click()
                surface.wait(1)
                return
            surface.wait(0.5)

        raise SiteError(f"{COIN} row not found on the Spot page even after searching")

    def _open_funding_convert(self, surface: Any) -> None:
        page = surface.page
        self._search_coin(surface, "Funding")

        for _ in range(10):
            coin_row = page.locator(FUNDING_COIN_ROW_SELECTOR.format(coin=COIN)).first
            if coin_row.count() > 0 and coin_row.is_visible():
                convert_button = coin_row.locator("..").locator("..").first.locator(
                    FUNDING_CONVERT_SELECTOR
                )
                if convert_button.count() > 0 and convert_button.is_visible():
                    convert_button.click()
                    surface.wait(1)
                    return
            surface.wait(0.5)

        raise SiteError(f"Convert button for {COIN} not found on the Funding page")

    def _search_coin(self, surface: Any, caption: str) -> None:
        # The search field has no stable selector: focus it by tabbing from the caption
        page = surface.page
        caption_div = page.locator("div", has_text=_exact(caption)).first
        if caption_div.count() > 0 and caption_div.is_visible():
            caption_div.click()
            page.keyboard.press("Tab")
            surface.wait(0.2)
        page.keyboard.type(COIN)
        surface.wait(1)


def _exact(text: str) -> "re.Pattern":
    return re.compile(rf"^{re.escape(text)}$")
