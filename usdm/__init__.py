"""
usdm/__init__.py

USDM: settlement core of a collateral-backed stablecoin.

Oracles post signed, expiring prices; the aggregator turns the live set
into one current price per market; burning the stablecoin pays out
collateral from the protocol reserve plus newly minted governance asset,
split by the collateral ratio. Every accepted transition is recorded in a
signed, hash-chained journal that can be verified and re-executed.
"""

__version__         = "0.3.0"
__journal_version__ = "1.0"

from usdm.core.exceptions import (
    UsdmError,
    ValidationError,
    InvalidMarketError,
    InvalidSourceError,
    InvalidPriceError,
    InvalidExpiryError,
    InvalidAddressError,
    InvalidAmountError,
    InvalidRatioError,
    ConfigError,
    PriceError,
    NoLivePriceError,
    SettlementError,
    InsufficientFundsError,
    InsufficientReserveError,
    JournalError,
)
from usdm.core.fixedpoint import Dec
from usdm.core.crypto import Ed25519KeyManager, address_from_public_key
from usdm.core.time import BlockClock
from usdm.core.models import (
    BurnRequest,
    BurnResult,
    Coin,
    Denoms,
    Market,
    PriceSubmission,
)
from usdm.bank import BankKeeper, InMemoryBank
from usdm.pricefeed import (
    OracleIngress,
    PriceAggregator,
    PriceSubmissionStore,
    SignedPricePost,
)
from usdm.stablecoin import (
    AdjustableRatioPolicy,
    BurnSettlementEngine,
    FixedRatioPolicy,
    compute_burn,
)
from usdm.journal import JournalReplayer, RecordType, TransitionJournal
from usdm.config import GenesisConfig, load_genesis_from_env
from usdm.app import StablecoinApp

__all__ = [
    # State machine
    "StablecoinApp",
    "GenesisConfig",
    "load_genesis_from_env",
    # Components
    "PriceSubmissionStore",
    "PriceAggregator",
    "OracleIngress",
    "SignedPricePost",
    "BankKeeper",
    "InMemoryBank",
    "BurnSettlementEngine",
    "compute_burn",
    "FixedRatioPolicy",
    "AdjustableRatioPolicy",
    "TransitionJournal",
    "JournalReplayer",
    "RecordType",
    # Types
    "Dec",
    "Coin",
    "Denoms",
    "Market",
    "PriceSubmission",
    "BurnRequest",
    "BurnResult",
    "BlockClock",
    "Ed25519KeyManager",
    "address_from_public_key",
    # Errors
    "UsdmError",
    "ValidationError",
    "InvalidMarketError",
    "InvalidSourceError",
    "InvalidPriceError",
    "InvalidExpiryError",
    "InvalidAddressError",
    "InvalidAmountError",
    "InvalidRatioError",
    "ConfigError",
    "PriceError",
    "NoLivePriceError",
    "SettlementError",
    "InsufficientFundsError",
    "InsufficientReserveError",
    "JournalError",
]
