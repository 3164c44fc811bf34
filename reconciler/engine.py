"""
Reconciliation engine: one run against one site.

Flow:
1. Load the cached session, discarding it when stale
2. Open the surface and the balance page
3. Detect the auth state; on anything but AUTHENTICATED, invalidate the
   cache and log in once (programmatically or manually), then re-check
4. Save the session
5. For each tracked balance: extract, normalize, query the ledger, compare
6. Aggregate the results into a worst-case outcome and exit code
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Callable, Dict, List, Optional

from config import RunSettings
from ledger_query.ledger_client import LedgerClient, LedgerError
from normalizer.amount_parser import NoNumericContent, normalize
from reconciler.balance_checker import ReconciliationResult, reconcile
from session import session_store
from session.login_waiter import wait_for_login
from session.session_store import SessionArtifact, SessionIOError
from sites.base_site import AuthState, SiteAdapter, SiteError, TrackedBalance

logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    """Process exit codes, ordered by severity."""
    OK = 0
    MISMATCH = 1
    ERROR = 2
    AUTH_FAILED = 3


class RunOutcome(Enum):
    """Aggregate outcome of a run."""
    ALL_MATCH = "all-match"
    MISMATCH = "mismatch"
    ERROR = "error"
    AUTH_FAILED = "auth-failed"

    @property
    def exit_code(self) -> ExitCode:
        return _OUTCOME_EXIT_CODES[self]


_OUTCOME_EXIT_CODES = {
    RunOutcome.ALL_MATCH: ExitCode.OK,
    RunOutcome.MISMATCH: ExitCode.MISMATCH,
    RunOutcome.ERROR: ExitCode.ERROR,
    RunOutcome.AUTH_FAILED: ExitCode.AUTH_FAILED,
}


class RunState(Enum):
    INIT = "init"
    SESSION_CHECK = "session-check"
    AUTHENTICATE = "authenticate"
    PROCEED = "proceed"
    EXTRACT = "extract"
    NORMALIZE = "normalize"
    COMPARE = "compare"
    REPORTED = "reported"


class AuthenticationTimeout(Exception):
    """A logged-in session could not be established."""


@dataclass
class RunReport:
    """Everything a run produced."""
    site: str
    results: List[ReconciliationResult] = field(default_factory=list)
    outcome: RunOutcome = RunOutcome.ALL_MATCH
    error: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def exit_code(self) -> ExitCode:
        return self.outcome.exit_code

    @property
    def matched(self) -> int:
        return sum(1 for r in self.results if r.status == "MATCH")

    @property
    def mismatched(self) -> int:
        return sum(1 for r in self.results if r.status == "MISMATCH")

    @property
    def errors(self) -> int:
        return sum(1 for r in self.results if r.status == "ERROR")


def aggregate(results: List[ReconciliationResult]) -> RunOutcome:
    """Worst-case outcome of a list of results: error > mismatch > match."""
    if any(r.error is not None for r in results):
        return RunOutcome.ERROR
    if any(not r.within_tolerance for r in results):
        return RunOutcome.MISMATCH
    return RunOutcome.ALL_MATCH


class ReconciliationEngine:
    """
    Drives one site adapter through a full reconciliation run.
    """

    def __init__(
        self,
        adapter: SiteAdapter,
        settings: RunSettings,
        ledger: LedgerClient,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize the engine.

        Args:
            adapter: Site adapter holding the tracked balances
            settings: Timeouts, session path and browser options
            ledger: Client for expected balances
            clock: Monotonic clock (seconds) for the polling loops
            now: Wall clock for session staleness
        """
        self.adapter = adapter
        self.settings = settings
        self.ledger = ledger
        self.clock = clock
        self.now = now
        self.state = RunState.INIT

    def run(self) -> RunReport:
        """
        Run the reconciliation.

        Returns:
            RunReport; never raises for site, ledger or session failures
        """
        report = RunReport(site=self.adapter.name, started_at=self.now())

        try:
            self._transition(RunState.SESSION_CHECK)
            artifact = self._load_session()
            storage_state = artifact.payload if artifact else None

            with self.adapter.open_surface(storage_state, self.settings) as surface:
                self.adapter.open_page(surface)
                self.adapter.check_surface(surface)

                if self.adapter.requires_authentication:
                    self._transition(RunState.AUTHENTICATE)
                    self._authenticate(surface, artifact)

                self._transition(RunState.PROCEED)
                for balance in self.adapter.balances:
                    report.results.extend(self._reconcile_balance(surface, balance))

            report.outcome = aggregate(report.results)

        except AuthenticationTimeout as e:
            logger.error("%s: authentication failed: %s", self.adapter.name, e)
            report.outcome = RunOutcome.AUTH_FAILED
            report.error = str(e)
        except (SiteError, SessionIOError) as e:
            logger.error("%s: run aborted: %s", self.adapter.name, e)
            report.outcome = RunOutcome.ERROR
            report.error = str(e)
        except Exception as e:
            logger.exception("%s: unexpected error", self.adapter.name)
            report.outcome = RunOutcome.ERROR
            report.error = f"Unexpected error: {e}"

        self._transition(RunState.REPORTED)
        report.finished_at = self.now()
        logger.info(
            "%s: %s (exit %d)", self.adapter.name, report.outcome.value, report.exit_code
        )
        return report

    # ------------------------------------------------------------------
    # Session and authentication
    # ------------------------------------------------------------------

    def _load_session(self) -> Optional[SessionArtifact]:
        path = self.settings.session_path
        artifact = session_store.load(path)
        if artifact is None:
            logger.info("No cached session at %s", path)
            return None

        if session_store.is_stale(artifact, self.settings.session_max_age, now=self.now()):
            logger.info(
                "Cached session is %.1f hours old, deleting to prevent cookie accumulation",
                artifact.age_seconds(self.now()) / 3600,
            )
            session_store.invalidate(path)
            return None

        return artifact

    def _authenticate(self, surface: Any, artifact: Optional[SessionArtifact]) -> None:
        state = self.adapter.detect(surface)
        if state is AuthState.AUTHENTICATED:
            if artifact is None:
                self._save_session(surface)
            return

        if state is AuthState.INDETERMINATE:
            logger.warning("%s: authentication state unclear, treating as logged out", self.adapter.name)

        session_store.invalidate(self.settings.session_path)
        surface.reset()

        logged_in = self.adapter.login(surface)
        if not logged_in:
            self.adapter.prepare_manual_login(surface)
            logged_in = wait_for_login(
                surface,
                self.adapter.poll_auth_state,
                max_wait=self.settings.login_timeout,
                check_interval=self.settings.login_check_interval,
                clock=self.clock,
            )
        if not logged_in:
            raise AuthenticationTimeout(
                f"login not completed within {self.settings.login_timeout:.0f}s"
            )

        # Login flows may leave the browser on another page
        self.adapter.open_page(surface)
        if self.adapter.detect(surface) is not AuthState.AUTHENTICATED:
            raise AuthenticationTimeout("login could not be verified after re-check")

        self._save_session(surface)

    def _save_session(self, surface: Any) -> None:
        session_store.save(self.settings.session_path, surface.storage_state())

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def _reconcile_balance(self, surface: Any, balance: TrackedBalance) -> List[ReconciliationResult]:
        try:
            if balance.multi_asset:
                return self._reconcile_many(surface, balance)
            return [self._reconcile_one(surface, balance)]
        except (SiteError, LedgerError, NoNumericContent) as e:
            logger.error("%s: %s", balance.id, e)
            return [ReconciliationResult.failed(balance.id, str(e))]
        except Exception as e:
            logger.exception("%s: unexpected error", balance.id)
            return [ReconciliationResult.failed(balance.id, f"Unexpected error: {e}")]

    def _reconcile_one(self, surface: Any, balance: TrackedBalance) -> ReconciliationResult:
        self._transition(RunState.EXTRACT)
        raw = self.adapter.extract(
            surface,
            balance,
            timeout=self.settings.extraction_timeout,
            interval=self.settings.extraction_interval,
            clock=self.clock,
        )

        self._transition(RunState.NORMALIZE)
        actual = normalize(raw.text)
        expected = self.ledger.query_balance(balance.ledger_account)

        self._transition(RunState.COMPARE)
        result = reconcile(balance.id, actual, expected, balance.tolerance, balance.rounding)
        _log_result(result)
        return result

    def _reconcile_many(self, surface: Any, balance: TrackedBalance) -> List[ReconciliationResult]:
        self._transition(RunState.EXTRACT)
        raw_values = self.adapter.extract_many(
            surface,
            balance,
            timeout=self.settings.extraction_timeout,
            interval=self.settings.extraction_interval,
            clock=self.clock,
        )
        expected = self.ledger.query_balances(balance.ledger_account)

        self._transition(RunState.NORMALIZE)
        actual: Dict[str, Decimal] = {}
        results = []
        for symbol, raw in raw_values.items():
            try:
                actual[symbol] = normalize(raw.text)
            except NoNumericContent as e:
                logger.error("%s/%s: %s", balance.id, symbol, e)
                results.append(ReconciliationResult.failed(balance.id, str(e), symbol=symbol))

        self._transition(RunState.COMPARE)
        failed_symbols = {r.symbol for r in results}
        # The site omits empty coins and ledger omits zero commodities
        for symbol in sorted((set(actual) | set(expected)) - failed_symbols):
            result = reconcile(
                balance.id,
                actual.get(symbol, Decimal(0)),
                expected.get(symbol, Decimal(0)),
                balance.tolerance,
                balance.rounding,
                symbol=symbol,
            )
            _log_result(result)
            results.append(result)
        return results

    def _transition(self, state: RunState) -> None:
        logger.debug("%s: %s -> %s", self.adapter.name, self.state.value, state.value)
        self.state = state


def _log_result(result: ReconciliationResult) -> None:
    if result.within_tolerance:
        logger.info(result.describe())
    else:
        logger.warning(result.describe())
