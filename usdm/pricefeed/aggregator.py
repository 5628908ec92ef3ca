"""
Price Aggregator

Turns the live submissions of a market into one current price.

Rule: median of the live prices. With an even count, the mean of the
two middle prices, truncated toward zero. The result does not depend on
submission order.

Nothing is cached. Calling again at a later block time may give a
different answer as submissions expire.
"""

from datetime import datetime
from typing import Dict, Iterable, List

from usdm.core.exceptions import NoLivePriceError
from usdm.core.fixedpoint import Dec
from usdm.core.models import CurrentPrice
from usdm.core.time import ensure_utc, format_block_time
from usdm.pricefeed.store import PriceSubmissionStore


def aggregate_prices(prices: Iterable[Dec]) -> Dec:
    """
    Median of prices. Pure function.

    Raises ValueError on an empty input. Callers that need a market-level
    error use PriceAggregator.aggregate().
    """
    ordered: List[Dec] = sorted(prices)
    if not ordered:
        raise ValueError("cannot aggregate an empty price set")

    mid = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


class PriceAggregator:
    """Computes current prices from a PriceSubmissionStore."""

    def __init__(self, store: PriceSubmissionStore):
        self.store = store

    def aggregate(self, market_id: str, now: datetime) -> CurrentPrice:
        """
        Current price of market_id at block time now.

        Raises:
            InvalidMarketError — market unknown or inactive
            NoLivePriceError   — every submission expired, or none posted
        """
        now  = ensure_utc(now)
        live = self.store.list_live(market_id, now)
        if not live:
            raise NoLivePriceError(
                "no live price for market",
                {"market_id": market_id, "at": format_block_time(now)},
            )
        return CurrentPrice(
            market_id=   market_id,
            price=       aggregate_prices(sub.price for sub in live),
            computed_at= now,
        )

    def current_prices(self, now: datetime) -> Dict[str, CurrentPrice]:
        """
        Current price of every active market that has one.
        Markets without a live price are omitted rather than raising.
        """
        prices = {}
        for market in self.store.markets():
            if not market.active:
                continue
            try:
                prices[market.market_id] = self.aggregate(market.market_id, now)
            except NoLivePriceError:
                continue
        return prices
