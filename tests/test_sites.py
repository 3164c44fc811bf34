"""
Unit tests for authentication detection, extraction and the site adapters.
"""
import os
import sys
import unittest
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config, ConfigError
from normalizer.amount_parser import RoundingPolicy
from sites import SITES, available_sites, build_adapter
from sites.base_site import AuthState, ExtractionTimeout, SiteError, TrackedBalance
from sites.backit import BackitSite
from sites.binance import DASHBOARD_CHECK_TIMEOUT_MS, DASHBOARD_ICON_SELECTOR, BinanceSite
from sites.bybit import BybitSite
from sites.bybit import USER_INFO_SELECTOR
from sites.pyaterochka import LOYALTY_POINTS_SELECTOR, PyaterochkaSite
from sites.solana import SolanaSite
from sites.wildberries import BALANCE_SELECTOR, WildberriesSite
from tests.fakes import FakeClock, FakeSite, FakeSurface


class ScriptedSite(FakeSite):
    """FakeSite whose markers follow a script, one entry per probe."""

    def __init__(self, authenticated, unauthenticated, surface):
        super().__init__([], surface)
        self.authenticated = list(authenticated)
        self.unauthenticated = list(unauthenticated)

    def has_authenticated_marker(self, surface):
        value = self.authenticated.pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    def has_unauthenticated_marker(self, surface):
        return self.unauthenticated.pop(0)


class TestDetect(unittest.TestCase):
    """Tests for the two-sided authentication policy."""

    def setUp(self):
        self.surface = FakeSurface()

    def test_authenticated_marker(self):
        site = ScriptedSite([True], [], self.surface)
        self.assertIs(site.detect(self.surface), AuthState.AUTHENTICATED)
        self.assertEqual(self.surface.waits, [])

    def test_unauthenticated_marker(self):
        site = ScriptedSite([False], [True], self.surface)
        self.assertIs(site.detect(self.surface), AuthState.UNAUTHENTICATED)
        self.assertEqual(self.surface.waits, [])

    def test_authenticated_after_settle_delay(self):
        site = ScriptedSite([False, True], [False], self.surface)
        self.assertIs(site.detect(self.surface), AuthState.AUTHENTICATED)
        self.assertEqual(self.surface.waits, [site.settle_delay])

    def test_no_markers_is_indeterminate(self):
        site = ScriptedSite([False, False], [False], self.surface)
        self.assertIs(site.detect(self.surface), AuthState.INDETERMINATE)

    def test_probe_error_is_indeterminate(self):
        site = ScriptedSite([RuntimeError("detached")], [], self.surface)
        self.assertIs(site.detect(self.surface), AuthState.INDETERMINATE)


class TestExtract(unittest.TestCase):
    """Tests for polling extraction."""

    def setUp(self):
        self.clock = FakeClock()
        self.surface = FakeSurface(self.clock)
        self.balance = TrackedBalance(id="points", ledger_account="Assets:bonus")

    def test_polls_until_value_appears(self):
        values = iter([None, "", "  1 234,56 ₽ "])
        site = FakeSite([self.balance], self.surface)
        site.read_value = lambda surface, balance: next(values)

        raw = site.extract(self.surface, self.balance, timeout=30, interval=1, clock=self.clock)

        self.assertEqual(raw.text, "1 234,56 ₽")
        self.assertEqual(self.surface.waits, [1, 1])

    def test_read_errors_are_retried(self):
        outcomes = iter([RuntimeError("not attached"), "42"])

        def read_value(surface, balance):
            outcome = next(outcomes)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        site = FakeSite([self.balance], self.surface)
        site.read_value = read_value

        self.assertEqual(site.extract(self.surface, self.balance, 30, 1, self.clock).text, "42")

    def test_timeout(self):
        site = FakeSite([self.balance], self.surface, values={})

        with self.assertRaises(ExtractionTimeout):
            site.extract(self.surface, self.balance, timeout=3, interval=1, clock=self.clock)

        self.assertEqual(len(site.reads), 4)

    def test_extract_many(self):
        site = FakeSite([self.balance], self.surface)
        results = iter([{}, {"BTC": " 0.5 ", "USDT": "100"}])
        site.read_balances = lambda surface, balance: next(results)

        values = site.extract_many(self.surface, self.balance, 30, 1, self.clock)

        self.assertEqual({k: v.text for k, v in values.items()}, {"BTC": "0.5", "USDT": "100"})


class TestRegistry(unittest.TestCase):
    """Tests for building adapters from configuration."""

    def test_available_sites(self):
        self.assertEqual(
            available_sites(),
            ["backit", "binance", "bybit", "dixy", "pyaterochka", "solana", "wildberries"],
        )
        self.assertIs(SITES["bybit"], BybitSite)

    def test_site_defaults(self):
        config = Config({"sites": {"dixy": {"balances": [
            {"id": "points", "ledger_account": "Assets:bonus:Дикси:Клуб Друзей"},
        ]}}})

        adapter = build_adapter("dixy", config)

        balance = adapter.balances[0]
        self.assertEqual(balance.ledger_account, "Assets:bonus:Дикси:Клуб Друзей")
        self.assertEqual(balance.rounding, RoundingPolicy.truncate())
        self.assertEqual(balance.tolerance, Decimal("0"))
        self.assertFalse(balance.multi_asset)

    def test_configured_values_win(self):
        config = Config({"sites": {"bybit": {"balances": [
            {"id": "funding", "ledger_account": "Assets:Bybit", "tolerance": 0.01, "rounding": "round:2"},
        ]}}})

        balance = build_adapter("bybit", config).balances[0]

        self.assertEqual(balance.tolerance, Decimal("0.01"))
        self.assertEqual(balance.rounding, RoundingPolicy.round_to(2))
        self.assertTrue(balance.multi_asset)

    def test_only(self):
        config = Config({"sites": {"binance": {"balances": [
            {"id": "spot", "ledger_account": "Assets:Binance:Spot"},
            {"id": "funding", "ledger_account": "Assets:Binance:Funding"},
        ]}}})

        adapter = build_adapter("binance", config, only=["funding"])

        self.assertEqual([b.id for b in adapter.balances], ["funding"])
        with self.assertRaises(ConfigError):
            build_adapter("binance", config, only=["margin"])

    def test_invalid_configs(self):
        bad_configs = [
            {"sites": {"dixy": {"balances": [{"id": "points"}]}}},
            {"sites": {"dixy": {"balances": [{"id": "p", "ledger_account": "A", "tolerance": "x"}]}}},
            {"sites": {"dixy": {"balances": [{"id": "p", "ledger_account": "A", "tolerance": -1}]}}},
            {"sites": {"dixy": {"balances": [{"id": "p", "ledger_account": "A", "rounding": "up"}]}}},
            {"sites": {"dixy": {"balances": "points"}}},
            {},
        ]
        for data in bad_configs:
            with self.assertRaises(ConfigError):
                build_adapter("dixy", Config(data))

    def test_unknown_site(self):
        with self.assertRaises(ConfigError):
            build_adapter("mnogo", Config({}))

    def test_credentials_are_passed(self):
        config = Config({
            "credentials": {"backit": {"email": "me@example.com", "password": "secret"}},
            "sites": {"backit": {"balances": [{"id": "confirmed", "ledger_account": "Assets:backit"}]}},
        })

        adapter = build_adapter("backit", config)

        self.assertEqual(adapter.credentials["email"], "me@example.com")
        self.assertEqual(adapter.balances[0].rounding, RoundingPolicy.round_to(2))


class FakeLocator:
    """Minimal stand-in for a Playwright locator over a list of texts."""

    def __init__(self, texts=None, children=None, hidden=False):
        self.texts = texts or []
        self.children = children or {}
        self.hidden = hidden

    def count(self):
        return len(self.texts)

    @property
    def first(self):
        return FakeLocator(self.texts[:1], self.children, self.hidden)

    def nth(self, index):
        return self.children["rows"][index]

    def text_content(self):
        return self.texts[0] if self.texts else None

    def is_visible(self):
        return bool(self.texts) and not self.hidden

    def locator(self, selector):
        return self.children[selector]


class FakePage:
    def __init__(self, locators):
        self.locators = locators

    def locator(self, selector):
        return self.locators.get(selector, FakeLocator())


class TestAdapters(unittest.TestCase):
    """Tests for site-specific behavior that does not need a browser."""

    def test_pyaterochka_cookie_too_large(self):
        surface = FakeSurface(content="<h1>400 Bad Request</h1><center>Request Header Or Cookie Too Large</center>")
        site = PyaterochkaSite([])

        with self.assertRaises(SiteError):
            site.check_surface(surface)

    def test_pyaterochka_normal_page(self):
        PyaterochkaSite([]).check_surface(FakeSurface(content="<html>5ka</html>"))

    def test_bybit_reads_grid(self):
        def row(coin, value):
            return FakeLocator(["row"], {
                ".virtual__grid-columns.column1": FakeLocator([coin]),
                ".virtual__grid-columns.column2": FakeLocator([value]),
            })

        rows = [row("USDT Tether USDT", "100.0000"), row("BTC Bitcoin", "0.5"), row("", "1")]
        surface = FakeSurface()
        surface.page = FakePage({
            "div.virtual__grid-row": FakeLocator(["r"] * len(rows), {"rows": rows}),
        })

        balances = BybitSite([]).read_balances(surface, TrackedBalance("funding", "Assets:Bybit"))

        self.assertEqual(balances, {"USDT": "100.0000", "BTC": "0.5"})

    def test_bybit_ticker_joined_to_coin_name(self):
        def row(coin, value):
            return FakeLocator(["row"], {
                ".virtual__grid-columns.column1": FakeLocator([coin]),
                ".virtual__grid-columns.column2": FakeLocator([value]),
            })

        # text_content() joins child nodes without whitespace
        rows = [row("USDTTether USDT", "100.0000"), row("BTCBitcoin", "0.5"), row("ETH", "1.2")]
        surface = FakeSurface()
        surface.page = FakePage({
            "div.virtual__grid-row": FakeLocator(["r"] * len(rows), {"rows": rows}),
        })

        balances = BybitSite([]).read_balances(surface, TrackedBalance("funding", "Assets:Bybit"))

        self.assertEqual(balances, {"USDT": "100.0000", "BTC": "0.5", "ETH": "1.2"})

    def test_hidden_balance_markers_are_not_authenticated(self):
        cases = [
            (PyaterochkaSite, LOYALTY_POINTS_SELECTOR),
            (WildberriesSite, BALANCE_SELECTOR),
            (BinanceSite, DASHBOARD_ICON_SELECTOR),
        ]
        for site_class, selector in cases:
            surface = FakeSurface()
            surface.page = FakePage({selector: FakeLocator(["340"], hidden=True)})
            self.assertFalse(site_class([]).has_authenticated_marker(surface), site_class.name)

            surface.page = FakePage({selector: FakeLocator(["340"])})
            self.assertTrue(site_class([]).has_authenticated_marker(surface), site_class.name)

    def test_bybit_marker_needs_a_visible_match(self):
        drawer = FakeLocator(["drawer"], hidden=True)
        grid_row = FakeLocator(["USDT"])
        surface = FakeSurface()

        surface.page = FakePage({USER_INFO_SELECTOR: FakeLocator(["d"], {"rows": [drawer]})})
        self.assertFalse(BybitSite([]).has_authenticated_marker(surface))

        surface.page = FakePage({USER_INFO_SELECTOR: FakeLocator(["d", "r"], {"rows": [drawer, grid_row]})})
        self.assertTrue(BybitSite([]).has_authenticated_marker(surface))

    def test_binance_dashboard_check_uses_short_timeout(self):
        surface = FakeSurface()
        surface.page = FakePage({})
        surface.url = "https://www.binance.com/en/trade/BNB_USDT"

        state = BinanceSite([]).poll_auth_state(surface)

        self.assertIs(state, AuthState.UNAUTHENTICATED)
        self.assertEqual(surface.visited, ["https://www.binance.com/en/my/dashboard"])
        self.assertEqual(surface.goto_timeouts, [DASHBOARD_CHECK_TIMEOUT_MS])

    def test_binance_login_page_is_not_left(self):
        surface = FakeSurface()
        surface.page = FakePage({})
        surface.url = "https://accounts.binance.com/en/login"

        self.assertIs(BinanceSite([]).poll_auth_state(surface), AuthState.UNAUTHENTICATED)
        self.assertEqual(surface.visited, [])

    def test_solana_balance(self):
        class RpcSurface(FakeSurface):
            def post_json(self, url, payload):
                self.payload = payload
                return {"jsonrpc": "2.0", "result": {"context": {"slot": 1}, "value": 1500000000}}

        surface = RpcSurface()
        balance = TrackedBalance("phantom", "Assets:Phantom", locator="EvKsVjhg2LpSK6atVtaNMX5yD5cqiiC8VzyHojECwwKd")
        site = SolanaSite([balance])

        raw = site.extract(surface, balance, timeout=5, interval=1, clock=surface.clock)

        self.assertEqual(raw.text, "1.5")
        self.assertEqual(surface.payload["params"], [balance.locator])

    def test_backit_login_without_credentials(self):
        self.assertFalse(BackitSite([]).login(FakeSurface()))

    def test_binance_unknown_wallet(self):
        with self.assertRaises(SiteError):
            BinanceSite([]).prepare_extraction(FakeSurface(), TrackedBalance("margin", "Assets:Binance"))

    def test_solana_requires_address(self):
        site = SolanaSite([])
        with self.assertRaises(SiteError):
            site.extract(FakeSurface(), TrackedBalance("phantom", "Assets:Phantom"), timeout=1)


if __name__ == '__main__':
    unittest.main()
