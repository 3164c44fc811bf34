"""
Integration tests for the command line and the Excel report.
"""
import os
import shutil
import sys
import tempfile
import unittest
from decimal import Decimal
from unittest import mock

from openpyxl import load_workbook

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import main as cli
from normalizer.amount_parser import RoundingPolicy
from output.report_generator import generate_report
from reconciler.balance_checker import ReconciliationResult, reconcile
from reconciler.engine import ExitCode, RunOutcome, RunReport

SAMPLE_CONFIG = """\
ledger:
  file: /data/main.ledger
sites:
  dixy:
    balances:
      - id: points
        ledger_account: "Assets:bonus:Дикси:Клуб Друзей"
  binance:
    balances:
      - id: spot
        ledger_account: "Assets:cryptocurrency:Binance:Spot"
      - id: funding
        ledger_account: "Assets:cryptocurrency:Binance:Funding"
"""


class TestReportGenerator(unittest.TestCase):
    """Tests for the Excel report."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_generate_report(self):
        report = RunReport(site="bybit", outcome=RunOutcome.ERROR)
        report.results = [
            reconcile("funding", Decimal("0.5"), Decimal("0.5"), Decimal("0.0001"),
                      RoundingPolicy.round_to(4), symbol="BTC"),
            reconcile("funding", Decimal("0"), Decimal("1.2"), Decimal("0.0001"),
                      RoundingPolicy.round_to(4), symbol="ETH"),
            ReconciliationResult.failed("spot", "no value after 30s"),
        ]
        output_path = os.path.join(self.temp_dir, "report.xlsx")

        self.assertEqual(generate_report([report], output_path), output_path)

        wb = load_workbook(output_path)
        self.assertEqual(wb.sheetnames, ["Results", "Summary"])

        results = wb["Results"]
        self.assertEqual(results.cell(row=1, column=1).value, "Site")
        self.assertEqual(results.cell(row=2, column=3).value, "BTC")
        self.assertEqual(results.cell(row=2, column=7).value, "MATCH")
        self.assertEqual(results.cell(row=3, column=7).value, "MISMATCH")
        self.assertAlmostEqual(results.cell(row=3, column=6).value, -1.2)
        self.assertEqual(results.cell(row=4, column=7).value, "ERROR")
        self.assertEqual(results.cell(row=4, column=8).value, "no value after 30s")

        summary = wb["Summary"]
        self.assertEqual(summary.cell(row=2, column=1).value, "bybit")
        self.assertEqual(summary.cell(row=2, column=4).value, 1)
        self.assertEqual(summary.cell(row=2, column=5).value, 1)
        self.assertEqual(summary.cell(row=2, column=6).value, 1)
        self.assertEqual(summary.cell(row=2, column=8).value, 2)


class TestCommandLine(unittest.TestCase):
    """Tests for main() exit codes."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = os.path.join(self.temp_dir, "config.yaml")
        with open(self.config_path, 'w', encoding='utf-8') as f:
            f.write(SAMPLE_CONFIG)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_missing_config(self):
        code = cli.main(["dixy", "--config", os.path.join(self.temp_dir, "missing.yaml")])
        self.assertEqual(code, ExitCode.ERROR)

    def test_site_required(self):
        self.assertEqual(cli.main(["--config", self.config_path]), ExitCode.ERROR)

    def test_unknown_site(self):
        self.assertEqual(cli.main(["mnogo", "--config", self.config_path]), ExitCode.ERROR)

    def test_unconfigured_site(self):
        self.assertEqual(cli.main(["bybit", "--config", self.config_path]), ExitCode.ERROR)

    def test_list_sites(self):
        self.assertEqual(cli.main(["--list-sites", "--config", self.config_path]), ExitCode.OK)

    @mock.patch("main.ReconciliationEngine")
    def test_exit_code_from_report(self, engine_cls):
        engine_cls.return_value.run.return_value = RunReport(site="binance", outcome=RunOutcome.MISMATCH)

        code = cli.main(["binance", "--only", "funding", "--config", self.config_path])

        self.assertEqual(code, 1)
        adapter, _, ledger = engine_cls.call_args[0]
        self.assertEqual([b.id for b in adapter.balances], ["funding"])
        self.assertEqual(ledger.ledger_file, "/data/main.ledger")

    @mock.patch("main.ReconciliationEngine")
    def test_report_option(self, engine_cls):
        engine_cls.return_value.run.return_value = RunReport(site="dixy", outcome=RunOutcome.AUTH_FAILED)
        report_path = os.path.join(self.temp_dir, "dixy.xlsx")

        code = cli.main(["dixy", "--config", self.config_path, "--report", report_path, "--headless"])

        self.assertEqual(code, 3)
        self.assertTrue(os.path.exists(report_path))
        settings = engine_cls.call_args[0][1]
        self.assertTrue(settings.headless)


if __name__ == '__main__':
    unittest.main()
