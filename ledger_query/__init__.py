"""Ledger query module for expected balances."""
from ledger_query.ledger_client import (
    LedgerClient,
    LedgerError,
    LedgerQueryFailed,
    NoBalanceFound,
    parse_balance_output,
    parse_balances_output,
)

__all__ = [
    "LedgerClient", "LedgerError", "LedgerQueryFailed", "NoBalanceFound",
    "parse_balance_output", "parse_balances_output",
]
