"""
Price submission store.

Holds the raw per-market, per-source submissions. Pure data: no
aggregation happens here and no aggregate is ever retained.

Validation order on submit():
    market (known, active) → source (authorized) → price (> 0) → expiry (> now)
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from usdm.core.crypto import is_valid_address
from usdm.core.exceptions import (
    InvalidExpiryError,
    InvalidMarketError,
    InvalidPriceError,
    InvalidSourceError,
)
from usdm.core.fixedpoint import Dec
from usdm.core.models import Market, PriceSubmission
from usdm.core.time import ensure_utc, format_block_time


class PriceSubmissionStore:
    """
    Per-market oracle submissions with expiry.

    A store instance is passed by reference into every component that
    reads prices, so each scenario or test can build an isolated one.
    """

    def __init__(self, markets: Optional[Iterable[Market]] = None):
        self._markets:     Dict[str, Market]                      = {}
        self._submissions: Dict[str, Dict[str, PriceSubmission]]  = {}
        if markets is not None:
            self.set_params(markets)

    # ── Market parameters ─────────────────────────────────────

    def set_params(self, markets: Iterable[Market]) -> None:
        """
        Install copies of the market list, so oracle changes made through
        the store never reach the caller's Market objects. Submissions for
        markets that remain configured are kept; those for dropped markets
        are discarded.
        """
        new_markets = {}
        for market in markets:
            if market.market_id in new_markets:
                raise InvalidMarketError(
                    "duplicate market id",
                    {"market_id": market.market_id},
                )
            new_markets[market.market_id] = Market.from_dict(market.to_dict())

        self._markets = new_markets
        self._submissions = {
            market_id: subs
            for market_id, subs in self._submissions.items()
            if market_id in new_markets
        }

    def markets(self) -> List[Market]:
        return list(self._markets.values())

    def get_market(self, market_id: str) -> Market:
        """Return a configured market or raise InvalidMarketError."""
        market = self._markets.get(market_id)
        if market is None:
            raise InvalidMarketError("unknown market", {"market_id": market_id})
        return market

    def get_active_market(self, market_id: str) -> Market:
        market = self.get_market(market_id)
        if not market.active:
            raise InvalidMarketError("market is inactive", {"market_id": market_id})
        return market

    def add_oracle(self, market_id: str, source: str) -> Market:
        """Admin action: authorize a new source. Idempotent."""
        market = self.get_market(market_id)
        if not is_valid_address(source):
            raise InvalidSourceError("malformed oracle address", {"source": source})
        if source not in market.oracles:
            market.oracles = market.oracles + (source,)
        return market

    def remove_oracle(self, market_id: str, source: str) -> Market:
        """
        Admin action: revoke a source. Its last submission is kept but no
        longer counts as live.
        """
        market = self.get_market(market_id)
        if source not in market.oracles:
            raise InvalidSourceError(
                "source is not an oracle for this market",
                {"market_id": market_id, "source": source},
            )
        market.oracles = tuple(o for o in market.oracles if o != source)
        return market

    # ── Submissions ───────────────────────────────────────────

    def submit(
        self,
        market_id: str,
        source:    str,
        price:     Dec,
        expiry:    datetime,
        now:       datetime,
    ) -> PriceSubmission:
        """
        Record a price from source, superseding its previous submission.

        Raises:
            InvalidMarketError — market unknown or inactive
            InvalidSourceError — source not authorized for the market
            InvalidPriceError  — price not strictly positive
            InvalidExpiryError — expiry not strictly after now
        """
        market = self.get_active_market(market_id)

        if not market.is_authorized(source):
            raise InvalidSourceError(
                "source is not authorized for this market",
                {"market_id": market_id, "source": source},
            )

        if not isinstance(price, Dec):
            raise InvalidPriceError(
                "price must be a fixed-point Dec",
                {"got": type(price).__name__},
            )
        if not price.is_positive():
            raise InvalidPriceError(
                "price must be positive",
                {"market_id": market_id, "price": str(price)},
            )

        now    = ensure_utc(now)
        expiry = ensure_utc(expiry)
        if expiry <= now:
            raise InvalidExpiryError(
                "expiry must be in the future",
                {
                    "expiry": format_block_time(expiry),
                    "now":    format_block_time(now),
                },
            )

        submission = PriceSubmission(
            market_id= market_id,
            source=    source,
            price=     price,
            expiry=    expiry,
        )
        self._submissions.setdefault(market_id, {})[source] = submission
        return submission

    def get_submission(self, market_id: str, source: str) -> Optional[PriceSubmission]:
        """Raw latest submission from source, live or not."""
        return self._submissions.get(market_id, {}).get(source)

    def list_live(self, market_id: str, now: datetime) -> List[PriceSubmission]:
        """
        Submissions that are unexpired at now, from sources still
        authorized, sorted by source address.

        This list is the sole input to aggregation.
        """
        market = self.get_active_market(market_id)
        now    = ensure_utc(now)
        live = [
            sub
            for source, sub in self._submissions.get(market_id, {}).items()
            if market.is_authorized(source) and sub.is_live(now)
        ]
        return sorted(live, key=lambda s: s.source)
