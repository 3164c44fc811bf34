"""
Abstract base class for site adapters.

A site adapter knows one integration: where its balance page (or API) is,
how to tell whether the current session is logged in, and how to read the
balance once it is. The reconciliation engine drives every adapter through
the same flow.
"""
import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional

from config import EXTRACTION_INTERVAL_SECONDS, EXTRACTION_TIMEOUT_SECONDS, RunSettings
from normalizer.amount_parser import RoundingPolicy

logger = logging.getLogger(__name__)


class AuthState(Enum):
    """Authentication state of a surface."""
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"
    # Neither marker found; callers treat it as unauthenticated
    INDETERMINATE = "indeterminate"


class SiteError(Exception):
    """A site returned a page or response that makes reconciliation impossible."""


class ExtractionTimeout(SiteError):
    """No non-empty value appeared before the extraction timeout."""


@dataclass(frozen=True)
class TrackedBalance:
    """
    One (site balance, ledger account) pair to reconcile.

    locator is opaque to the engine: each adapter decides what it holds
    (a CSS selector, an asset name, an address).
    """
    id: str
    ledger_account: str
    locator: Any = None
    tolerance: Decimal = Decimal("0")
    rounding: RoundingPolicy = field(default_factory=RoundingPolicy.exact)
    multi_asset: bool = False


@dataclass(frozen=True)
class RawValue:
    """Text read from a surface, with the time it was read."""
    text: str
    extracted_at: datetime = field(default_factory=datetime.now)


class SiteAdapter(ABC):
    """
    Base class for one integrated site.

    Subclasses set name/page_url and implement the marker probes and
    read_value (or read_balances for multi-asset balances).
    """

    name: str = ""
    page_url: str = ""
    requires_authentication: bool = True
    # Seconds to let asynchronous rendering finish before the second probe
    settle_delay: float = 2.0

    # Defaults for tracked balances that do not set their own
    default_rounding: RoundingPolicy = RoundingPolicy.exact()
    default_tolerance: Decimal = Decimal("0")
    multi_asset: bool = False

    def __init__(
        self,
        balances: List[TrackedBalance],
        credentials: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the adapter.

        Args:
            balances: Balances this run reconciles
            credentials: Resolved credentials for programmatic login, if any
        """
        self.balances = balances
        self.credentials = credentials or {}

    # ------------------------------------------------------------------
    # Surface lifecycle
    # ------------------------------------------------------------------

    @contextmanager
    def open_surface(
        self,
        storage_state: Optional[Dict[str, Any]],
        settings: RunSettings,
    ) -> Iterator[Any]:
        """
        Open a browser surface, restoring storage_state if given.

        The surface is closed when the block exits, whatever the outcome.
        """
        from sites.surface import open_browser_surface

        with open_browser_surface(
            storage_state,
            headless=settings.headless,
            navigation_timeout_ms=settings.navigation_timeout_ms,
            watch_host=self.watch_host(),
        ) as surface:
            yield surface

    def watch_host(self) -> Optional[str]:
        """Host whose request cookie sizes are logged; None to disable."""
        return None

    def open_page(self, surface: Any) -> None:
        """Navigate to the page the balance and the auth markers live on."""
        surface.goto(self.page_url)

    def check_surface(self, surface: Any) -> None:
        """
        Inspect the freshly opened page for server-side error pages.

        Raises:
            SiteError: If the site cannot be used this run
        """

    # ------------------------------------------------------------------
    # Authentication detection
    # ------------------------------------------------------------------

    @abstractmethod
    def has_authenticated_marker(self, surface: Any) -> bool:
        """Check for an element/field only present when logged in."""

    @abstractmethod
    def has_unauthenticated_marker(self, surface: Any) -> bool:
        """Check for a login button/form only present when logged out."""

    def detect(self, surface: Any) -> AuthState:
        """
        Classify the session of the surface.

        1. Authenticated marker present -> AUTHENTICATED
        2. Unauthenticated marker present -> UNAUTHENTICATED
        3. Wait settle_delay, then check the authenticated marker once more
        4. Otherwise INDETERMINATE
        """
        try:
            if self.has_authenticated_marker(surface):
                logger.info("%s: authenticated marker found", self.name)
                return AuthState.AUTHENTICATED

            if self.has_unauthenticated_marker(surface):
                logger.info("%s: login marker found - not authenticated", self.name)
                return AuthState.UNAUTHENTICATED

            surface.wait(self.settle_delay)

            if self.has_authenticated_marker(surface):
                logger.info("%s: authenticated marker found after wait", self.name)
                return AuthState.AUTHENTICATED
        except Exception as e:
            logger.warning("%s: authentication check failed: %s", self.name, e)

        logger.warning("%s: authentication status unclear", self.name)
        return AuthState.INDETERMINATE

    def poll_auth_state(self, surface: Any) -> AuthState:
        """Quick probe used while waiting for a manual login."""
        if self.has_authenticated_marker(surface):
            return AuthState.AUTHENTICATED
        return AuthState.UNAUTHENTICATED

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, surface: Any) -> bool:
        """
        Log in programmatically with self.credentials.

        Returns:
            True if the login went through; the default adapter cannot log
            in by itself and returns False so the manual wait takes over
        """
        return False

    def prepare_manual_login(self, surface: Any) -> None:
        """Bring the surface to a state where the user can log in."""
        logger.info("Please log in to %s manually in the opened browser tab.", self.name)

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def prepare_extraction(self, surface: Any, balance: TrackedBalance) -> None:
        """Run navigation steps needed before the value can be read."""

    def read_value(self, surface: Any, balance: TrackedBalance) -> Optional[str]:
        """Read the value once; None or "" means not rendered yet."""
        raise NotImplementedError(f"{self.name} does not read single values")

    def read_balances(self, surface: Any, balance: TrackedBalance) -> Dict[str, str]:
        """Read a symbol -> value mapping once; empty means not rendered yet."""
        raise NotImplementedError(f"{self.name} does not read multi-asset balances")

    def extract(
        self,
        surface: Any,
        balance: TrackedBalance,
        timeout: float = EXTRACTION_TIMEOUT_SECONDS,
        interval: float = EXTRACTION_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> RawValue:
        """
        Read a single value, polling until it is non-empty.

        Raises:
            ExtractionTimeout: If nothing appears within timeout seconds
        """
        self.prepare_extraction(surface, balance)
        text = self._poll(
            surface,
            lambda: self.read_value(surface, balance),
            balance,
            timeout,
            interval,
            clock,
        )
        logger.info("%s: read %r for %s", self.name, text, balance.id)
        return RawValue(text=text.strip())

    def extract_many(
        self,
        surface: Any,
        balance: TrackedBalance,
        timeout: float = EXTRACTION_TIMEOUT_SECONDS,
        interval: float = EXTRACTION_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> Dict[str, RawValue]:
        """
        Read all per-symbol values of a multi-asset balance.

        Raises:
            ExtractionTimeout: If no value appears within timeout seconds
        """
        self.prepare_extraction(surface, balance)
        values = self._poll(
            surface,
            lambda: self.read_balances(surface, balance),
            balance,
            timeout,
            interval,
            clock,
        )
        extracted_at = datetime.now()
        logger.info("%s: read %d values for %s", self.name, len(values), balance.id)
        return {
            symbol: RawValue(text=str(text).strip(), extracted_at=extracted_at)
            for symbol, text in values.items()
        }

    def _poll(self, surface, read, balance, timeout, interval, clock):
        start = clock()
        while True:
            try:
                value = read()
                if _is_present(value):
                    return value
            except Exception as e:
                logger.debug("%s: read for %s failed, retrying: %s", self.name, balance.id, e)

            if clock() - start >= timeout:
                break
            surface.wait(interval)

        raise ExtractionTimeout(
            f"{self.name}: no value for '{balance.id}' after {timeout:.0f}s"
        )


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, dict):
        return bool(value)
    return bool(str(value).strip())
