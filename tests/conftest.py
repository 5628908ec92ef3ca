"""
Shared fixtures for the USDM test suite.

Every test builds its own store, bank and clock, so nothing leaks between
tests. All times are block times derived from GENESIS_TIME; nothing here
reads the wall clock.
"""

from datetime import datetime, timedelta, timezone

import pytest

from usdm.bank.keeper import InMemoryBank
from usdm.config import GenesisConfig
from usdm.core.crypto import Ed25519KeyManager
from usdm.core.fixedpoint import Dec
from usdm.core.models import COLL_PRICE_POOL, GOV_PRICE_POOL, Coin, Market
from usdm.core.time import BlockClock
from usdm.pricefeed.aggregator import PriceAggregator
from usdm.pricefeed.store import PriceSubmissionStore
from usdm.stablecoin.ratio import FixedRatioPolicy
from usdm.stablecoin.settlement import BurnSettlementEngine


GENESIS_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)

# Balances used by the reference burn scenario
REQUESTER_STABLE = 1_000_000_000
RESERVE_COLL     = 100_000_000


def later(seconds: float) -> datetime:
    return GENESIS_TIME + timedelta(seconds=seconds)


def make_markets(*oracles: str):
    return [
        Market(COLL_PRICE_POOL, "uust", "uusdm", oracles=oracles),
        Market(GOV_PRICE_POOL, "umtrx", "uust", oracles=oracles),
    ]


def post_prices(store, source, coll="1", gov="10", now=GENESIS_TIME, ttl=60):
    """Submit one collateral and one governance price from source."""
    expiry = now + timedelta(seconds=ttl)
    store.submit(COLL_PRICE_POOL, source, Dec.from_str(coll), expiry, now)
    store.submit(GOV_PRICE_POOL, source, Dec.from_str(gov), expiry, now)


# ─────────────────────────────────────────────────────────────
# Keys and addresses
# ─────────────────────────────────────────────────────────────

@pytest.fixture
def oracle_key():
    return Ed25519KeyManager.generate()


@pytest.fixture
def oracle2_key():
    return Ed25519KeyManager.generate()


@pytest.fixture
def journal_key():
    return Ed25519KeyManager.generate()


@pytest.fixture
def requester():
    return Ed25519KeyManager.generate().address


# ─────────────────────────────────────────────────────────────
# Components
# ─────────────────────────────────────────────────────────────

@pytest.fixture
def clock():
    return BlockClock(GENESIS_TIME)


@pytest.fixture
def store(oracle_key, oracle2_key):
    return PriceSubmissionStore(make_markets(oracle_key.address, oracle2_key.address))


@pytest.fixture
def aggregator(store):
    return PriceAggregator(store)


@pytest.fixture
def bank(requester):
    bank = InMemoryBank()
    bank.fund_account(requester, [Coin("uusdm", REQUESTER_STABLE)])
    bank.fund_reserve([Coin("uust", RESERVE_COLL)])
    return bank


@pytest.fixture
def engine(aggregator, bank):
    return BurnSettlementEngine(aggregator, bank, FixedRatioPolicy("0.9"))


# ─────────────────────────────────────────────────────────────
# Genesis / app
# ─────────────────────────────────────────────────────────────

@pytest.fixture
def genesis_dict(oracle_key, requester):
    return {
        "genesis_time":     "2026-01-01T00:00:00.000Z",
        "collateral_ratio": "0.9",
        "denoms": {"stable": "uusdm", "collateral": "uust", "governance": "umtrx"},
        "markets": [m.to_dict() for m in make_markets(oracle_key.address)],
        "accounts": {requester: {"uusdm": REQUESTER_STABLE}},
        "reserve": {"uust": RESERVE_COLL},
    }


@pytest.fixture
def genesis(genesis_dict):
    return GenesisConfig.from_dict(genesis_dict)
