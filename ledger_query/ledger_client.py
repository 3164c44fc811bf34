"""
Ledger CLI client.

Runs `ledger -f <file> balance "<account>"` and reads the expected balance
(or one balance per commodity) from its output.
"""
import logging
import os
import re
import subprocess
from decimal import Decimal
from typing import Dict, List, Optional

from config import LEDGER_COMMAND, LEDGER_TIMEOUT_SECONDS
from normalizer.amount_parser import NoNumericContent, find_amounts, normalize

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """Base class for ledger query errors."""


class LedgerQueryFailed(LedgerError):
    """The ledger process could not be run or reported an error."""


class NoBalanceFound(LedgerError):
    """The ledger output did not contain a balance."""


# "0.12345678 BNB  Assets:..." (amount, then commodity)
_SUFFIX_COMMODITY = re.compile(r'^(?P<amount>[+-]?(?:\d|[.,]\d)[\d.,]*) (?P<symbol>"[^"]+"|[^\s\d.,+-][^\s]*)')
# "$100.00  Assets:..." (commodity, then amount)
_PREFIX_COMMODITY = re.compile(r'^(?P<symbol>[^\s\d.,+-]+)\s?(?P<amount>[+-]?(?:\d|[.,]\d)[\d.,]*)')


class LedgerClient:
    """
    Queries a plain-text ledger for expected balances.
    """

    def __init__(
        self,
        ledger_file: str,
        command: str = LEDGER_COMMAND,
        timeout: float = LEDGER_TIMEOUT_SECONDS,
    ):
        """
        Initialize the client.

        Args:
            ledger_file: Path to the ledger journal (~ is expanded)
            command: Ledger executable name or path
            timeout: Seconds to wait for the ledger process
        """
        self.ledger_file = os.path.expanduser(ledger_file)
        self.command = command
        self.timeout = timeout

    def build_command(self, account: str) -> List[str]:
        """Build the argv for a balance query."""
        return [self.command, "-f", self.ledger_file, "balance", account]

    def run(self, account: str) -> str:
        """
        Run a balance query and return its stdout.

        Raises:
            LedgerQueryFailed: If the process cannot start, times out or exits non-zero
        """
        argv = self.build_command(account)
        logger.debug("Running ledger: %s", argv)

        try:
            result = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise LedgerQueryFailed(f"Ledger executable not found: {self.command}") from e
        except subprocess.TimeoutExpired as e:
            raise LedgerQueryFailed(
                f"Ledger query for '{account}' timed out after {self.timeout}s"
            ) from e
        except OSError as e:
            raise LedgerQueryFailed(f"Cannot run ledger: {e}") from e

        if result.returncode != 0:
            message = (result.stderr or "").strip() or f"exit status {result.returncode}"
            logger.error("Error executing ledger command: %s", message)
            raise LedgerQueryFailed(f"Ledger query for '{account}' failed: {message}")

        return result.stdout

    def query_balance(self, account: str) -> Decimal:
        """
        Get the balance of a single-commodity account.

        Args:
            account: Ledger account path, e.g. "Assets:bonus:Dixy"

        Returns:
            The first amount in the ledger output
        """
        output = self.run(account)
        balance = parse_balance_output(output)
        logger.info("Ledger balance for %s: %s", account, balance)
        return balance

    def query_balances(self, account: str) -> Dict[str, Decimal]:
        """
        Get per-commodity balances of a multi-asset account.

        Args:
            account: Ledger account path

        Returns:
            Mapping of commodity symbol to balance
        """
        output = self.run(account)
        balances = parse_balances_output(output)
        logger.info("Ledger balances for %s: %s", account, balances)
        return balances


def parse_balance_output(output: str) -> Decimal:
    """
    Read the first amount from ledger balance output.

    Raises:
        NoBalanceFound: If the output contains no amount
    """
    amounts = find_amounts(output or "")
    if not amounts:
        logger.error("No valid number found in ledger output.")
        raise NoBalanceFound("No valid number found in ledger output")
    return amounts[0]


def parse_balances_output(output: str) -> Dict[str, Decimal]:
    """
    Read `<amount> <symbol>` lines from ledger balance output.

    The first occurrence of a symbol wins: ledger prints the parent total
    before sub-accounts and repeats the grand total after the rule line.

    Raises:
        NoBalanceFound: If no line matches
    """
    balances: Dict[str, Decimal] = {}
    for line in (output or "").splitlines():
        line = line.strip()
        # Skip blanks and the "--------" rule before the total
        if not line or set(line) == {'-'}:
            continue
        _add_line(balances, line)

    if not balances:
        logger.error("No balances found in ledger output.")
        raise NoBalanceFound("No '<amount> <symbol>' lines found in ledger output")
    return balances


def _add_line(balances: Dict[str, Decimal], line: str) -> None:
    parsed = _parse_line(line)
    if parsed is None:
        return
    symbol, amount = parsed
    if symbol not in balances:
        balances[symbol] = amount


def _parse_line(line: str) -> Optional[tuple]:
    match = _SUFFIX_COMMODITY.match(line) or _PREFIX_COMMODITY.match(line)
    if not match:
        return None
    symbol = match.group('symbol').strip('"')
    try:
        amount = normalize(match.group('amount'))
    except NoNumericContent:
        return None
    return symbol, amount
