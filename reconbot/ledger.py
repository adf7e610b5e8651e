"""
Ledger settlement for the simulated trade book.

Each pass refetches the market behind every open trade. A market the venue
has settled resolves the trade at its outcome; a market still trading marks
the trade at the current quote of the side it bought. Session monitoring
runs one pass before every sample so the capital it reports follows the
venues.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from reconbot.config import CatalogConfig
from reconbot.errors import UpstreamFetchError
from reconbot.models import Market, Platform
from reconbot.scanner import FetchResult, fetch_market
from reconbot.session import SessionStatus
from reconbot.storage import Storage

# Configure module logger
logger = logging.getLogger(__name__)

MarketLookup = Callable[[Platform, str, CatalogConfig], FetchResult]


@dataclass
class SettlementResult:
    """
    Outcome of one settlement pass.

    Attributes:
        resolved: Trade ids resolved in this pass
        marked: Trade ids marked to market in this pass
        missing: Trade ids whose market could not be found
        errors: Venue fetch failures
    """
    resolved: list[int] = field(default_factory=list)
    marked: list[int] = field(default_factory=list)
    missing: list[int] = field(default_factory=list)
    errors: list[UpstreamFetchError] = field(default_factory=list)


def market_id_for(subject_id: str) -> str:
    """Venue market id of a trade subject ("market" or "condition:market")."""
    return subject_id.rsplit(":", 1)[-1]


class LedgerSettler:
    """
    Resolves or marks open ledger trades against refetched venue markets.

    Args:
        storage: Repository holding the ledger
        catalog: Venue endpoints
        lookup: Single-market fetch function
    """

    def __init__(
        self,
        storage: Storage,
        catalog: Optional[CatalogConfig] = None,
        lookup: MarketLookup = fetch_market,
    ):
        self.storage = storage
        self.catalog = catalog or CatalogConfig()
        self.lookup = lookup

    def settle(self) -> SettlementResult:
        """
        Run one settlement pass over every open trade.

        Returns:
            SettlementResult
        """
        result = SettlementResult()
        trades = self.storage.get_open_trades()
        if not trades:
            return result

        markets: dict[tuple[Optional[str], str], Optional[Market]] = {}

        for trade in trades:
            key = (trade["platform"], market_id_for(trade["subject_id"]))
            if key not in markets:
                markets[key] = self._find_market(*key, result)

            market = markets[key]
            if market is None:
                result.missing.append(trade["id"])
                continue

            if market.resolved_yes is not None:
                if self.storage.resolve_trade(trade["id"], market.resolved_yes) is not None:
                    result.resolved.append(trade["id"])
                continue

            price = market.yes_price if trade["side"] == "YES" else market.no_price
            if self.storage.mark_trade(trade["id"], price):
                result.marked.append(trade["id"])

        logger.info(
            f"Settlement pass: {len(result.resolved)} resolved, {len(result.marked)} marked, "
            f"{len(result.missing)} missing, {len(result.errors)} fetch errors"
        )
        return result

    def session_status(self, initial_capital: float) -> SessionStatus:
        """Settle open trades, then snapshot the ledger for session monitoring."""
        self.settle()
        return self.storage.session_status(initial_capital)

    def _find_market(
        self,
        platform: Optional[str],
        market_id: str,
        result: SettlementResult,
    ) -> Optional[Market]:
        # Trades recorded without a venue are looked up on every venue
        platforms = [Platform(platform)] if platform else list(Platform)

        for venue in platforms:
            fetched = self.lookup(venue, market_id, self.catalog)
            result.errors.extend(fetched.errors)
            if fetched.items:
                return fetched.items[0]

        return None
