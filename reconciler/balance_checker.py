"""
Balance comparison.

Compares the value shown by a site against the ledger's expected value:
1. Applying the tracked balance's rounding policy to both sides
2. Computing diff = actual - expected
3. Checking |diff| against the tolerance, at the tolerance's precision
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

from normalizer.amount_parser import RoundingPolicy, render

STATUS_MATCH = "MATCH"
STATUS_MISMATCH = "MISMATCH"
STATUS_ERROR = "ERROR"


@dataclass
class ReconciliationResult:
    """Result of reconciling one tracked balance (or one symbol of it)."""
    tracked_balance_id: str
    actual: Optional[Decimal]
    expected: Optional[Decimal]
    within_tolerance: bool
    diff: Optional[Decimal]
    symbol: Optional[str] = None
    error: Optional[str] = None

    @property
    def status(self) -> str:
        if self.error is not None:
            return STATUS_ERROR
        return STATUS_MATCH if self.within_tolerance else STATUS_MISMATCH

    @property
    def label(self) -> str:
        """Balance id, with the symbol for multi-asset results."""
        if self.symbol:
            return f"{self.tracked_balance_id}/{self.symbol}"
        return self.tracked_balance_id

    def describe(self) -> str:
        """One-line human readable summary."""
        if self.error is not None:
            return f"{self.label}: ERROR - {self.error}"
        if self.within_tolerance:
            return f"{self.label}: OK ({render(self.actual)})"
        return (
            f"{self.label}: MISMATCH remote {render(self.actual)} "
            f"vs ledger {render(self.expected)} (diff {render(self.diff)})"
        )

    @classmethod
    def failed(cls, tracked_balance_id: str, error: str, symbol: Optional[str] = None,
               actual: Optional[Decimal] = None,
               expected: Optional[Decimal] = None) -> "ReconciliationResult":
        """Result for a balance that could not be compared."""
        return cls(
            tracked_balance_id=tracked_balance_id,
            actual=actual,
            expected=expected,
            within_tolerance=False,
            diff=None,
            symbol=symbol,
            error=error,
        )


def compare(actual: Decimal, expected: Decimal, tolerance: Decimal) -> Tuple[bool, Decimal]:
    """
    Compare two normalized values.

    |actual - expected| is rounded half-up to the precision of tolerance
    before the check, so the effective bound is just under 1.5 times the
    tolerance: at 0.0001 a difference of 0.000149 passes and 0.00015 fails.

    Args:
        actual: Value read from the site
        expected: Value from the ledger
        tolerance: Largest allowed |actual - expected|; 0 means exact

    Returns:
        Tuple of (within tolerance, actual - expected)
    """
    diff = actual - expected
    if tolerance <= 0:
        return diff == 0, diff

    # Digits finer than the tolerance are noise, so 100.00011 vs 100.0
    # is within 0.0001 while 100.01 vs 100.0 is not.
    exponent = tolerance.normalize().as_tuple().exponent
    quantum = Decimal(1).scaleb(min(exponent, 0))
    magnitude = abs(diff).quantize(quantum, rounding=ROUND_HALF_UP)
    return magnitude <= tolerance, diff


def reconcile(
    tracked_balance_id: str,
    actual: Decimal,
    expected: Decimal,
    tolerance: Decimal,
    rounding: RoundingPolicy,
    symbol: Optional[str] = None,
) -> ReconciliationResult:
    """
    Apply the rounding policy to both values and compare them.

    Returns:
        ReconciliationResult carrying the rounded values and the diff
    """
    actual = rounding.apply(actual)
    expected = rounding.apply(expected)
    within_tolerance, diff = compare(actual, expected, tolerance)
    return ReconciliationResult(
        tracked_balance_id=tracked_balance_id,
        actual=actual,
        expected=expected,
        within_tolerance=within_tolerance,
        diff=diff,
        symbol=symbol,
    )
