"""Reconciliation module: balance comparison and the run engine."""
from reconciler.balance_checker import ReconciliationResult, compare, reconcile
from reconciler.engine import (
    AuthenticationTimeout,
    ExitCode,
    ReconciliationEngine,
    RunOutcome,
    RunReport,
    RunState,
    aggregate,
)

__all__ = [
    "AuthenticationTimeout", "ExitCode", "ReconciliationEngine", "ReconciliationResult",
    "RunOutcome", "RunReport", "RunState", "aggregate", "compare", "reconcile",
]
