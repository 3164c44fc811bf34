"""
Solana wallet balance read from the public JSON-RPC API.

No login is involved; the locator of a tracked balance is the address.
"""
import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterator, Optional

from config import RunSettings
from normalizer.amount_parser import RoundingPolicy, render
from sites.base_site import SiteAdapter, SiteError, TrackedBalance
from sites.surface import open_api_surface

logger = logging.getLogger(__name__)

RPC_URL = "https://api.mainnet-beta.solana.com"
LAMPORTS_PER_SOL = Decimal(10) ** 9


class SolanaSite(SiteAdapter):
    name = "solana"
    page_url = RPC_URL
    requires_authentication = False
    default_rounding = RoundingPolicy.round_to(5)

    @contextmanager
    def open_surface(
        self,
        storage_state: Optional[Dict[str, Any]],
        settings: RunSettings,
    ) -> Iterator[Any]:
        with open_api_surface(timeout=settings.navigation_timeout_ms / 1000) as surface:
            yield surface

    def has_authenticated_marker(self, surface: Any) -> bool:
        return True

    def has_unauthenticated_marker(self, surface: Any) -> bool:
        return False

    def prepare_extraction(self, surface: Any, balance: TrackedBalance) -> None:
        if not balance.locator:
            raise SiteError(f"No address configured for '{balance.id}'")

    def read_value(self, surface: Any, balance: TrackedBalance) -> Optional[str]:
        response = surface.post_json(
            self.page_url,
            {"jsonrpc": "2.0", "id": 1, "method": "getBalance", "params": [balance.locator]},
        )
        if "error" in response:
            raise SiteError(f"RPC error: {response['error']}")

        lamports = response.get("result", {}).get("value")
        if lamports is None:
            return None
        return render(Decimal(lamports) / LAMPORTS_PER_SOL)
