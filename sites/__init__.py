"""
Site adapters, one per integration, and the registry that builds them
from configuration.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Type

from config import Config, ConfigError
from normalizer.amount_parser import RoundingPolicy
from .base_site import (
    AuthState,
    ExtractionTimeout,
    RawValue,
    SiteAdapter,
    SiteError,
    TrackedBalance,
)
from .backit import BackitSite
from .binance import BinanceSite
from .bybit import BybitSite
from .dixy import DixySite
from .pyaterochka import PyaterochkaSite
from .solana import SolanaSite
from .wildberries import WildberriesSite

SITES: Dict[str, Type[SiteAdapter]] = {
    cls.name: cls
    for cls in (
        PyaterochkaSite,
        WildberriesSite,
        DixySite,
        BackitSite,
        BinanceSite,
        BybitSite,
        SolanaSite,
    )
}


def available_sites() -> List[str]:
    """Names of all integrated sites, sorted."""
    return sorted(SITES)


def build_balances(
    adapter_cls: Type[SiteAdapter],
    site_config: Dict[str, Any],
    only: Optional[List[str]] = None,
) -> List[TrackedBalance]:
    """
    Build the tracked balances of one site from its config section.

    Args:
        adapter_cls: Adapter class whose defaults fill unset fields
        site_config: The sites.<name> mapping
        only: Balance ids to keep; None keeps all

    Returns:
        List of TrackedBalance, in config order

    Raises:
        ConfigError: On a missing ledger account, a bad tolerance or
            rounding value, or an unknown id in only
    """
    entries = site_config.get("balances") or []
    if not isinstance(entries, list):
        raise ConfigError(f"'sites.{adapter_cls.name}.balances' must be a list")

    balances = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigError(f"Balance #{index + 1} of {adapter_cls.name} must be a mapping")

        balance_id = str(entry.get("id") or adapter_cls.name)
        ledger_account = entry.get("ledger_account")
        if not ledger_account:
            raise ConfigError(f"Balance '{balance_id}' of {adapter_cls.name} has no ledger_account")

        balances.append(TrackedBalance(
            id=balance_id,
            ledger_account=str(ledger_account),
            locator=entry.get("locator"),
            tolerance=_parse_tolerance(entry.get("tolerance"), adapter_cls.default_tolerance, balance_id),
            rounding=_parse_rounding(entry.get("rounding"), adapter_cls.default_rounding, balance_id),
            multi_asset=bool(entry.get("multi_asset", adapter_cls.multi_asset)),
        ))

    if only:
        known = {b.id for b in balances}
        unknown = [balance_id for balance_id in only if balance_id not in known]
        if unknown:
            raise ConfigError(
                f"Unknown balance id(s) for {adapter_cls.name}: {', '.join(unknown)} "
                f"(configured: {', '.join(sorted(known)) or 'none'})"
            )
        balances = [b for b in balances if b.id in only]

    if not balances:
        raise ConfigError(f"No balances configured for {adapter_cls.name}")
    return balances


def build_adapter(name: str, config: Config, only: Optional[List[str]] = None) -> SiteAdapter:
    """
    Create the adapter for a site with its balances and credentials.

    Raises:
        ConfigError: If the site is unknown or its config is invalid
    """
    adapter_cls = SITES.get(name)
    if adapter_cls is None:
        raise ConfigError(f"Unknown site '{name}'. Available: {', '.join(available_sites())}")

    balances = build_balances(adapter_cls, config.site_config(name), only)
    return adapter_cls(balances, credentials=config.credentials(name))


def _parse_tolerance(value: Any, default: Decimal, balance_id: str) -> Decimal:
    if value is None:
        return default
    try:
        # str() first so 0.0001 from YAML does not become its binary expansion
        tolerance = Decimal(str(value))
    except InvalidOperation:
        raise ConfigError(f"Invalid tolerance for '{balance_id}': {value!r}")
    if not tolerance.is_finite() or tolerance < 0:
        raise ConfigError(f"Tolerance for '{balance_id}' must be a non-negative number")
    return tolerance


def _parse_rounding(value: Any, default: RoundingPolicy, balance_id: str) -> RoundingPolicy:
    if value is None:
        return default
    try:
        return RoundingPolicy.parse(value)
    except ValueError as e:
        raise ConfigError(f"Invalid rounding for '{balance_id}': {e}")


__all__ = [
    'AuthState', 'ExtractionTimeout', 'RawValue', 'SiteAdapter', 'SiteError',
    'TrackedBalance', 'SITES', 'available_sites', 'build_adapter', 'build_balances',
]
