"""
usdm/app.py

StablecoinApp: one USDM state machine.

Wires the submission store, aggregator, oracle ingress, bank, ratio policy
and burn settlement engine around a single BlockClock, and writes one
journal entry for every accepted transition.

Every public mutator follows the same shape:
    1. read block time from the clock
    2. apply the transition (raises on rejection, nothing journaled)
    3. journal it
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from usdm.bank.keeper import BankKeeper, InMemoryBank
from usdm.config import GenesisConfig
from usdm.core.crypto import Ed25519KeyManager
from usdm.core.exceptions import InvalidAmountError
from usdm.core.fixedpoint import Dec
from usdm.core.models import (
    BurnBreakdown,
    BurnRequest,
    BurnResult,
    Coin,
    Denoms,
    PriceSubmission,
)
from usdm.core.time import BlockClock, to_block_time
from usdm.journal.envelope import RecordType
from usdm.journal.journal import TransitionJournal
from usdm.pricefeed.aggregator import PriceAggregator
from usdm.pricefeed.ingress import OracleIngress, SignedPricePost
from usdm.pricefeed.store import PriceSubmissionStore
from usdm.stablecoin.ratio import AdjustableRatioPolicy
from usdm.stablecoin.settlement import BurnSettlementEngine


class StablecoinApp:
    """
    Serial state machine over the settlement core.

    Usage:
        app = StablecoinApp.from_genesis(GenesisConfig.from_yaml("genesis.yaml"))
        app.submit_price(SignedPricePost.create(...))
        app.clock.advance(seconds=5)
        result = app.burn_stable(requester, 10_000_000)
    """

    def __init__(
        self,
        store:        PriceSubmissionStore,
        bank:         BankKeeper,
        ratio_policy: AdjustableRatioPolicy,
        clock:        BlockClock,
        denoms:       Optional[Denoms] = None,
        journal:      Optional[TransitionJournal] = None,
    ):
        self.store        = store
        self.bank         = bank
        self.ratio_policy = ratio_policy
        self.clock        = clock
        self.denoms       = denoms or Denoms()
        self.journal      = journal

        self.aggregator = PriceAggregator(store)
        self.ingress    = OracleIngress(store)
        self.engine     = BurnSettlementEngine(
            aggregator=   self.aggregator,
            bank=         bank,
            ratio_policy= ratio_policy,
            denoms=       self.denoms,
            journal=      journal,
        )

    @classmethod
    def from_genesis(
        cls,
        config:       GenesisConfig,
        journal_path: Optional[Union[str, Path]] = None,
        key:          Optional[Ed25519KeyManager] = None,
        journal:      Optional[TransitionJournal] = None,
    ) -> "StablecoinApp":
        """
        Build a fresh state machine from a genesis config.

        A journal is attached when one is passed, or when key is given
        (in memory, or at journal_path). A genesis entry is written only
        into a journal that is still empty.
        """
        if journal is None and key is not None:
            journal = TransitionJournal(key, journal_path)

        bank = InMemoryBank()
        for address, coins in sorted(config.accounts.items()):
            bank.fund_account(address, _coins(coins))
        bank.fund_reserve(_coins(config.reserve))

        app = cls(
            store=        PriceSubmissionStore(config.markets),
            bank=         bank,
            ratio_policy= AdjustableRatioPolicy(config.collateral_ratio),
            clock=        BlockClock(config.genesis_time),
            denoms=       config.denoms,
            journal=      journal,
        )

        if journal is not None and journal.get_stats()["next_sequence"] == 0:
            app._record(RecordType.GENESIS, config.to_dict())
        return app

    @property
    def reserve_account(self) -> str:
        return self.bank.reserve_account

    # ── Oracle transitions ────────────────────────────────────

    def submit_price(
        self,
        post:      Union[SignedPricePost, str],
        source:    Optional[str] = None,
        price:     Optional[Union[Dec, str]] = None,
        expiry:    Optional[Union[datetime, str]] = None,
    ) -> PriceSubmission:
        """
        Accept a price at the current block time.

        Pass a SignedPricePost, or a market_id followed by source, price
        and expiry for a host that has already authenticated the source.
        """
        now = self.clock.now()
        if isinstance(post, SignedPricePost):
            submission = self.ingress.accept(post, now)
            payload    = {"post": post.to_dict(), "submission": submission.to_dict()}
        else:
            submission = self.store.submit(
                market_id= post,
                source=    source,
                price=     Dec.coerce(price),
                expiry=    to_block_time(expiry),
                now=       now,
            )
            payload = {"post": None, "submission": submission.to_dict()}

        self._record(RecordType.PRICE_POSTED, payload)
        return submission

    def add_oracle(self, market_id: str, source: str) -> None:
        self.store.add_oracle(market_id, source)
        self._record(RecordType.ORACLE_ADDED, {"market_id": market_id, "source": source})

    def remove_oracle(self, market_id: str, source: str) -> None:
        self.store.remove_oracle(market_id, source)
        self._record(RecordType.ORACLE_REMOVED, {"market_id": market_id, "source": source})

    # ── Governance ────────────────────────────────────────────

    def set_collateral_ratio(self, ratio: Union[Dec, str]) -> Dec:
        accepted = self.ratio_policy.set_ratio(ratio)
        self._record(RecordType.RATIO_SET, {"ratio": str(accepted)})
        return accepted

    # ── Funding ───────────────────────────────────────────────

    def fund_account(self, account: str, coins: Dict[str, int]) -> None:
        """Mint coins into account. Host-side faucet for tests and devnets."""
        self.bank.fund_account(account, _coins(coins))
        self._record(RecordType.ACCOUNT_FUNDED, {"account": account, "coins": dict(coins)})

    def fund_reserve(self, coins: Dict[str, int]) -> None:
        self.bank.fund_reserve(_coins(coins))
        self._record(RecordType.RESERVE_FUNDED, {"coins": dict(coins)})

    # ── Settlement ────────────────────────────────────────────

    def burn_stable(self, requester: str, stable_amount: int) -> BurnResult:
        """Burn at the current block time. The engine journals accepted burns."""
        return self.engine.burn(
            BurnRequest(requester=requester, stable_amount=stable_amount),
            self.clock.now(),
        )

    def quote_burn(self, stable_amount: int) -> BurnBreakdown:
        return self.engine.quote(stable_amount, self.clock.now())

    # ── Queries ───────────────────────────────────────────────

    def balance(self, account: str, denom: str) -> int:
        return self.bank.balance(account, denom)

    def current_price(self, market_id: str) -> Dec:
        return self.aggregator.aggregate(market_id, self.clock.now()).price

    # ── Internal ──────────────────────────────────────────────

    def _record(self, record_type: str, payload: Dict[str, Any]) -> None:
        if self.journal is not None:
            self.journal.append(
                record_type= record_type,
                payload=     payload,
                block_time=  self.clock.now(),
            )


def _coins(coins: Dict[str, int]):
    """Turn a {denom: amount} mapping into Coins, zero amounts skipped."""
    if not isinstance(coins, dict):
        raise InvalidAmountError("coins must be a mapping of denom to amount")
    return [Coin(denom, amount) for denom, amount in sorted(coins.items()) if amount]
