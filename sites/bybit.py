"""
Bybit Funding account, one balance per coin.
"""
import logging
import re
from decimal import Decimal
from typing import Any, Dict

from normalizer.amount_parser import RoundingPolicy
from sites.base_site import SiteAdapter, TrackedBalance
from sites.locators import any_visible, is_present

logger = logging.getLogger(__name__)

USER_INFO_SELECTOR = '#USER-INFO-DRAWER, .user-drawer-wrapper__header, div.virtual__grid-row'
LOGIN_SELECTOR = (
    '#HEADER-LOGIN, .header-login, #HEADER-REGISTER, .header-register, '
    '#HEADER-RIGHT-LOGIN-REGISTER, .header-status'
)

ROW_SELECTOR = 'div.virtual__grid-row'
COIN_COLUMN_SELECTOR = '.virtual__grid-columns.column1'
VALUE_COLUMN_SELECTOR = '.virtual__grid-columns.column2'

# Ticker and coin name may be joined ("BTCBitcoin"), so stop before a lowercase letter
_SYMBOL = re.compile(r'[A-Z0-9]{2,12}(?![a-z])')


class BybitSite(SiteAdapter):
    name = "bybit"
    page_url = "https://www.bybit.com/user/assets/home/fiat"
    settle_delay = 3.0
    default_rounding = RoundingPolicy.round_to(4)
    default_tolerance = Decimal("0.0001")
    multi_asset = True

    def has_authenticated_marker(self, surface: Any) -> bool:
        return any_visible(surface.page, USER_INFO_SELECTOR)

    def has_unauthenticated_marker(self, surface: Any) -> bool:
        return is_present(surface.page, LOGIN_SELECTOR)

    def read_balances(self, surface: Any, balance: TrackedBalance) -> Dict[str, str]:
        rows = surface.page.locator(ROW_SELECTOR)
        balances: Dict[str, str] = {}
        for i in range(rows.count()):
            row = rows.nth(i)
            coin_text = row.locator(COIN_COLUMN_SELECTOR).first.text_content() or ""
            match = _SYMBOL.search(coin_text)
            if not match:
                continue
            value = row.locator(VALUE_COLUMN_SELECTOR).first.text_content()
            if value and value.strip():
                balances.setdefault(match.group(0), value)
        return balances
