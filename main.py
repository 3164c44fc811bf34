#!/usr/bin/env python3
"""
Ledger Balance Checker - Main Entry Point

Reads a balance from a website or API, reads the expected balance from a
plain-text ledger, and reports whether they agree.

Usage:
    python main.py <site> [options]

Examples:
    python main.py pyaterochka
    python main.py binance --only funding
    python main.py bybit --config ~/finance/config.yaml --report bybit.xlsx

Exit codes:
    0  all balances matched
    1  at least one mismatch
    2  extraction, parsing, ledger or configuration error
    3  authentication could not be established
"""
import argparse
import logging
import sys
from typing import List, Optional

from config import APP_NAME, APP_VERSION, Config, ConfigError
from ledger_query.ledger_client import LedgerClient
from output.report_generator import generate_report
from reconciler.engine import ExitCode, ReconciliationEngine, RunReport
from sites import SITES, available_sites, build_adapter

logger = logging.getLogger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Reconcile a website balance against a ledger account.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py dixy
  python main.py binance --only spot
  python main.py bybit --report bybit.xlsx --headless

Environment Variables:
  LEDGER_FILE             - Ledger journal (default: ~/ledger/ledger.ledger)
  LEDGER_COMMAND          - Ledger executable (default: ledger)
  HEADLESS                - Run the browser headless (true/false)
  <SITE>_EMAIL/_PASSWORD  - Credentials for sites that log in by themselves
        """
    )

    parser.add_argument(
        'site',
        nargs='?',
        help=f"Site to check ({', '.join(available_sites())})"
    )
    parser.add_argument(
        '--config', '-c',
        default=None,
        help='Path to the YAML config file (default: ./config.yaml)'
    )
    parser.add_argument(
        '--only',
        action='append',
        default=None,
        metavar='ID',
        help='Only reconcile this balance id (can be repeated, e.g. --only spot)'
    )
    parser.add_argument(
        '--headless',
        action='store_true',
        default=None,
        help='Run the browser without a window (manual login is impossible)'
    )
    parser.add_argument(
        '--report', '-r',
        default=None,
        help='Write an Excel report of the run to this path'
    )
    parser.add_argument(
        '--list-sites',
        action='store_true',
        help='List integrated sites and their configured balances, then exit'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable debug logging'
    )

    return parser.parse_args(argv)


def list_sites(config: Config) -> None:
    """Print every integrated site and its configured balances."""
    print(f"\nIntegrated sites ({len(SITES)}):")
    for name in available_sites():
        balances = config.site_config(name).get("balances") or []
        print(f"  {name}")
        for entry in balances:
            if isinstance(entry, dict):
                print(f"    - {entry.get('id', name)}: {entry.get('ledger_account', '?')}")
        if not balances:
            print("    (not configured)")
    print()


def print_summary(report: RunReport) -> None:
    """Print the per-balance results and the outcome."""
    print(f"\n--- Results: {report.site} ---")
    for result in report.results:
        print(f"  {result.describe()}")
    if report.error:
        print(f"  Error: {report.error}")
    print(f"\nMatched: {report.matched}  Mismatched: {report.mismatched}  Errors: {report.errors}")
    print(f"Outcome: {report.outcome.value} (exit code {int(report.exit_code)})")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = Config.load(args.config)
    except ConfigError as e:
        print(f"Error: {e}")
        return ExitCode.ERROR

    if args.list_sites:
        try:
            list_sites(config)
        except ConfigError as e:
            print(f"Error: {e}")
            return ExitCode.ERROR
        return ExitCode.OK

    if not args.site:
        print(f"Error: a site is required ({', '.join(available_sites())})")
        return ExitCode.ERROR

    try:
        adapter = build_adapter(args.site, config, only=args.only)
        settings = config.run_settings(args.site, headless=args.headless)
        ledger = LedgerClient(
            config.ledger_file(),
            command=config.ledger_command(),
            timeout=config.ledger_timeout(),
        )
    except ConfigError as e:
        print(f"Error: {e}")
        return ExitCode.ERROR

    print(f"\n{'='*60}")
    print(f"{APP_NAME} v{APP_VERSION}")
    print(f"{'='*60}")
    print(f"Site: {args.site}")
    print(f"Config file: {config.path or '(defaults)'}")
    print(f"Ledger file: {ledger.ledger_file}")
    print(f"Session file: {settings.session_path}")
    print(f"Balances: {', '.join(b.id for b in adapter.balances)}")
    print(f"{'='*60}\n")

    report = ReconciliationEngine(adapter, settings, ledger).run()
    print_summary(report)

    if args.report:
        try:
            generate_report([report], args.report)
            print(f"Report saved to: {args.report}")
        except OSError as e:
            logger.error("Could not write report %s: %s", args.report, e)
            return max(report.exit_code, ExitCode.ERROR)

    print(f"\n{'='*60}\n")
    return int(report.exit_code)


if __name__ == "__main__":
    sys.exit(main())
