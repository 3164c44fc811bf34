"""
Unit tests for the ledger CLI client.
"""
import os
import subprocess
import sys
import unittest
from decimal import Decimal
from unittest import mock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ledger_query.ledger_client import (
    LedgerClient, LedgerQueryFailed, NoBalanceFound,
    parse_balance_output, parse_balances_output,
)

MULTI_ASSET_OUTPUT = """\
          0.5000 BTC
             1.2 ETH
          100.00 USDT  Assets:cryptocurrency:Bybit:Funding
"""

NESTED_OUTPUT = """\
          150.00 USDT  Assets:cryptocurrency:Bybit
          100.00 USDT    Funding
           50.00 USDT    Spot
--------------------
          150.00 USDT
"""


def _completed(stdout="", returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestLedgerClient(unittest.TestCase):
    """Tests for running ledger queries."""

    def setUp(self):
        self.client = LedgerClient("/data/main.ledger", command="ledger", timeout=5)

    def test_build_command(self):
        self.assertEqual(
            self.client.build_command("Assets:bonus:Дикси:Клуб Друзей"),
            ["ledger", "-f", "/data/main.ledger", "balance", "Assets:bonus:Дикси:Клуб Друзей"],
        )

    def test_home_is_expanded(self):
        client = LedgerClient("~/ledger/ledger.ledger")
        self.assertFalse(client.ledger_file.startswith("~"))

    @mock.patch("ledger_query.ledger_client.subprocess.run")
    def test_query_balance(self, run):
        run.return_value = _completed("        1234.56 RUB  Assets:bonus\n")

        self.assertEqual(self.client.query_balance("Assets:bonus"), Decimal("1234.56"))

        argv = run.call_args[0][0]
        self.assertEqual(argv[-1], "Assets:bonus")
        self.assertEqual(run.call_args[1]["timeout"], 5)

    @mock.patch("ledger_query.ledger_client.subprocess.run")
    def test_query_balances(self, run):
        run.return_value = _completed(MULTI_ASSET_OUTPUT)

        balances = self.client.query_balances("Assets:cryptocurrency:Bybit:Funding")

        self.assertEqual(balances, {
            "BTC": Decimal("0.5000"),
            "ETH": Decimal("1.2"),
            "USDT": Decimal("100.00"),
        })

    @mock.patch("ledger_query.ledger_client.subprocess.run")
    def test_non_zero_exit(self, run):
        run.return_value = _completed(returncode=1, stderr="Error: Cannot read journal")
        with self.assertRaises(LedgerQueryFailed):
            self.client.query_balance("Assets:bonus")

    @mock.patch("ledger_query.ledger_client.subprocess.run")
    def test_missing_executable(self, run):
        run.side_effect = FileNotFoundError("ledger")
        with self.assertRaises(LedgerQueryFailed):
            self.client.query_balance("Assets:bonus")

    @mock.patch("ledger_query.ledger_client.subprocess.run")
    def test_timeout(self, run):
        run.side_effect = subprocess.TimeoutExpired(cmd="ledger", timeout=5)
        with self.assertRaises(LedgerQueryFailed):
            self.client.query_balance("Assets:bonus")

    @mock.patch("ledger_query.ledger_client.subprocess.run")
    def test_empty_output_is_not_zero(self, run):
        run.return_value = _completed("")
        with self.assertRaises(NoBalanceFound):
            self.client.query_balance("Assets:unknown")


class TestParseOutput(unittest.TestCase):
    """Tests for parsing ledger balance output."""

    def test_first_amount(self):
        self.assertEqual(parse_balance_output("  -12,50 EUR  Liabilities:card\n"), Decimal("-12.50"))

    def test_account_digits_are_ignored(self):
        output = "             340 Assets:bonus:карта лояльности Пятёрочки:8002\n"
        self.assertEqual(parse_balance_output(output), Decimal("340"))

    def test_no_amount(self):
        with self.assertRaises(NoBalanceFound):
            parse_balance_output("Assets:cash\n")

    def test_parent_total_wins(self):
        self.assertEqual(parse_balances_output(NESTED_OUTPUT), {"USDT": Decimal("150.00")})

    def test_prefix_commodity(self):
        self.assertEqual(parse_balances_output("$100.00  Assets:Cash\n"), {"$": Decimal("100.00")})

    def test_quoted_commodity(self):
        self.assertEqual(parse_balances_output('10 "BNB-USD"\n'), {"BNB-USD": Decimal("10")})

    def test_amount_without_leading_zero(self):
        self.assertEqual(parse_balances_output("  -.25 BNB  Assets:Binance\n"), {"BNB": Decimal("-0.25")})
        self.assertEqual(parse_balance_output("  .5 BTC\n"), Decimal("0.5"))

    def test_amount_without_commodity_is_skipped(self):
        with self.assertRaises(NoBalanceFound):
            parse_balances_output("             100  Assets:points\n")


if __name__ == '__main__':
    unittest.main()
