"""
Burn settlement engine.

Converts a stablecoin burn into collateral and governance payouts and
applies the balance changes as one atomic bank transaction.

Arithmetic (all Dec, every division truncates toward zero):
    collateral_equivalent = stable_amount / collateral_price_in_stable
    collateral_portion    = trunc(collateral_equivalent * ratio)
    governance_value      = collateral_equivalent - collateral_portion
    governance_portion    = trunc(governance_value / governance_price_in_collateral)

collateral_portion + governance_value == collateral_equivalent, exactly.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from usdm.bank.keeper import BankKeeper
from usdm.core.exceptions import InsufficientFundsError, InvalidPriceError
from usdm.core.fixedpoint import Dec
from usdm.core.models import (
    BurnBreakdown,
    BurnRequest,
    BurnResult,
    Denoms,
    validate_amount,
)
from usdm.core.time import ensure_utc
from usdm.journal.envelope import RecordType
from usdm.pricefeed.aggregator import PriceAggregator
from usdm.stablecoin.ratio import CollateralRatioPolicy, validate_ratio


def compute_burn(
    stable_amount:                  int,
    collateral_price_in_stable:     Dec,
    governance_price_in_collateral: Dec,
    ratio:                          Dec,
) -> BurnBreakdown:
    """
    Pure payout rule. No state, no side effects.

    A zero amount returns an all-zero breakdown without looking at the
    prices, so it succeeds even when they are meaningless.

    Raises:
        InvalidAmountError — stable_amount negative or not an int
        InvalidRatioError  — ratio outside [0, 1]
        InvalidPriceError  — a price is not strictly positive
    """
    validate_amount(stable_amount, "stable amount")
    ratio = validate_ratio(ratio)

    if stable_amount == 0:
        return BurnBreakdown(
            collateral_equivalent= Dec.zero(),
            collateral_portion=    0,
            governance_value=      Dec.zero(),
            governance_portion=    0,
            ratio=                 ratio,
        )

    for name, price in (
        ("collateral price", collateral_price_in_stable),
        ("governance price", governance_price_in_collateral),
    ):
        if not isinstance(price, Dec) or not price.is_positive():
            raise InvalidPriceError(f"{name} must be a positive Dec", {"price": str(price)})

    collateral_equivalent = Dec.from_int(stable_amount) / collateral_price_in_stable
    collateral_portion    = (collateral_equivalent * ratio).truncate_int()
    governance_value      = collateral_equivalent - collateral_portion
    governance_portion    = (governance_value / governance_price_in_collateral).truncate_int()

    return BurnBreakdown(
        collateral_equivalent= collateral_equivalent,
        collateral_portion=    collateral_portion,
        governance_value=      governance_value,
        governance_portion=    governance_portion,
        ratio=                 ratio,
    )


class BurnSettlementEngine:
    """
    Settles burn requests against live prices and the bank.

    Sequence for one burn, each step aborting the whole transition:
        1. request.validate_basic()      — before any state access
        2. zero amount                   — accepted no-op, no price lookup
        3. stable balance check          — InsufficientFundsError
        4. prices and ratio              — NoLivePriceError / InvalidRatioError
        5. one bank transaction          — burn stable, pay collateral
                                           from reserve, mint governance
        6. journal entry (if configured) — after commit
    """

    def __init__(
        self,
        aggregator:   PriceAggregator,
        bank:         BankKeeper,
        ratio_policy: CollateralRatioPolicy,
        denoms:       Optional[Denoms] = None,
        journal=      None,
    ):
        """
        Args:
            aggregator:   Source of current prices
            bank:         Balance custody collaborator
            ratio_policy: Source of the target collateral ratio
            denoms:       Asset denominations (defaults to the protocol's)
            journal:      Optional TransitionJournal receiving one entry per burn
        """
        self.aggregator   = aggregator
        self.bank         = bank
        self.ratio_policy = ratio_policy
        self.denoms       = denoms or Denoms()
        self.journal      = journal
        self._stats       = {"burns": 0, "stable_burned": 0, "collateral_paid": 0, "gov_minted": 0}

    def quote(self, stable_amount: int, now: datetime) -> BurnBreakdown:
        """Payout a burn of stable_amount would receive at now. Read-only."""
        validate_amount(stable_amount, "stable amount")
        if stable_amount == 0:
            return compute_burn(0, Dec.one(), Dec.one(), validate_ratio(self.ratio_policy.current_ratio()))

        now        = ensure_utc(now)
        coll_price = self.aggregator.aggregate(self.denoms.coll_price_pool, now).price
        gov_price  = self.aggregator.aggregate(self.denoms.gov_price_pool, now).price
        ratio      = validate_ratio(self.ratio_policy.current_ratio())
        return compute_burn(stable_amount, coll_price, gov_price, ratio)

    def burn(self, request: BurnRequest, now: datetime) -> BurnResult:
        """
        Settle one burn request.

        Returns:
            BurnResult with both amounts present (zero when not applicable)

        Raises:
            InvalidAddressError      — malformed requester
            InvalidAmountError       — negative amount
            InsufficientFundsError   — requester holds less than the amount
            InvalidMarketError       — a price market is missing or inactive
            NoLivePriceError         — a price market has no live submission
            InvalidRatioError        — the policy returned a ratio outside [0, 1]
            InsufficientReserveError — the reserve cannot cover the collateral
        """
        request.validate_basic()
        now = ensure_utc(now)

        if request.stable_amount == 0:
            return BurnResult(collateral=0, gov=0)

        held = self.bank.balance(request.requester, self.denoms.stable)
        if held < request.stable_amount:
            raise InsufficientFundsError(
                f"insufficient funds: {held}{self.denoms.stable} < "
                f"{request.stable_amount}{self.denoms.stable}",
                {"requester": request.requester},
            )

        breakdown = self.quote(request.stable_amount, now)
        result    = breakdown.result

        with self.bank.transaction() as tx:
            tx.send_to_reserve(request.requester, self.denoms.stable, request.stable_amount)
            tx.burn_from_reserve(self.denoms.stable, request.stable_amount)
            if result.collateral:
                tx.send_from_reserve(request.requester, self.denoms.collateral, result.collateral)
            if result.gov:
                tx.mint_to_reserve(self.denoms.governance, result.gov)
                tx.send_from_reserve(request.requester, self.denoms.governance, result.gov)

        self._stats["burns"]           += 1
        self._stats["stable_burned"]   += request.stable_amount
        self._stats["collateral_paid"] += result.collateral
        self._stats["gov_minted"]      += result.gov

        if self.journal is not None:
            self.journal.append(
                record_type= RecordType.BURN,
                payload=     self._burn_payload(request, breakdown),
                block_time=  now,
            )

        return result

    def get_stats(self) -> Dict[str, int]:
        """Totals over every burn settled by this engine instance."""
        return dict(self._stats)

    @staticmethod
    def _burn_payload(request: BurnRequest, breakdown: BurnBreakdown) -> Dict[str, Any]:
        payload = request.to_dict()
        payload.update(breakdown.result.to_dict())
        payload["collateral_equivalent"] = str(breakdown.collateral_equivalent)
        payload["ratio"] = str(breakdown.ratio)
        return payload
