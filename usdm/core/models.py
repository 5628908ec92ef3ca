"""
usdm/core/models.py

USDM Data Model.

Every model here is a plain dataclass with to_dict()/from_dict() for the
journal and the genesis file. Fixed-point values travel as decimal strings
and timestamps travel in block-time wire format, so a serialized model
never contains a float.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Tuple

from usdm.core.crypto import is_valid_address
from usdm.core.exceptions import InvalidAddressError, InvalidAmountError
from usdm.core.fixedpoint import Dec
from usdm.core.time import format_block_time, parse_block_time


# ─────────────────────────────────────────────────────────────
# Denominations and market identifiers
# ─────────────────────────────────────────────────────────────

MODULE_NAME = "stablecoin"

STABLE_DENOM = "uusdm"
COLL_DENOM   = "uust"
GOV_DENOM    = "umtrx"

# Price of one collateral unit in stable units
COLL_PRICE_POOL = f"{COLL_DENOM}:{STABLE_DENOM}"
# Price of one governance unit in collateral units
GOV_PRICE_POOL  = f"{GOV_DENOM}:{COLL_DENOM}"


@dataclass(frozen=True)
class Denoms:
    """The three assets the settlement core moves."""
    stable:     str = STABLE_DENOM
    collateral: str = COLL_DENOM
    governance: str = GOV_DENOM

    @property
    def coll_price_pool(self) -> str:
        return f"{self.collateral}:{self.stable}"

    @property
    def gov_price_pool(self) -> str:
        return f"{self.governance}:{self.collateral}"

    def to_dict(self) -> Dict[str, str]:
        return {
            "stable":     self.stable,
            "collateral": self.collateral,
            "governance": self.governance,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "Denoms":
        defaults = cls()
        return cls(
            stable=     data.get("stable", defaults.stable),
            collateral= data.get("collateral", defaults.collateral),
            governance= data.get("governance", defaults.governance),
        )


def validate_amount(amount, what: str = "amount") -> int:
    """Return amount if it is a non-negative int, else raise InvalidAmountError."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(
            f"{what} must be an integer",
            {"got": type(amount).__name__},
        )
    if amount < 0:
        raise InvalidAmountError(f"{what} must be non-negative", {"got": amount})
    return amount


# ─────────────────────────────────────────────────────────────
# Coin
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Coin:
    """An amount of a single denomination, in its smallest unit."""
    denom:  str
    amount: int

    def __post_init__(self) -> None:
        if not isinstance(self.denom, str) or not self.denom:
            raise ValueError("coin denom must be a non-empty string")
        validate_amount(self.amount, f"{self.denom} amount")

    def is_zero(self) -> bool:
        return self.amount == 0

    def __str__(self) -> str:
        return f"{self.amount}{self.denom}"


# ─────────────────────────────────────────────────────────────
# Market
# ─────────────────────────────────────────────────────────────

@dataclass
class Market:
    """
    A configured asset pair priced by oracle submissions.

    oracles is an ordered tuple of authorized source addresses.
    Only add_oracle()/remove_oracle() on the store change it.
    """
    market_id:   str
    base_asset:  str
    quote_asset: str
    oracles:     Tuple[str, ...] = ()
    active:      bool = True

    def __post_init__(self) -> None:
        self.oracles = tuple(self.oracles)

    def is_authorized(self, source: str) -> bool:
        return source in self.oracles

    def to_dict(self) -> Dict[str, Any]:
        return {
            "market_id":   self.market_id,
            "base_asset":  self.base_asset,
            "quote_asset": self.quote_asset,
            "oracles":     list(self.oracles),
            "active":      self.active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Market":
        return cls(
            market_id=   data["market_id"],
            base_asset=  data["base_asset"],
            quote_asset= data["quote_asset"],
            oracles=     tuple(data.get("oracles", ())),
            active=      data.get("active", True),
        )


# ─────────────────────────────────────────────────────────────
# Prices
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PriceSubmission:
    """One oracle's time-bounded price assertion for one market."""
    market_id: str
    source:    str
    price:     Dec
    expiry:    datetime

    def is_live(self, now: datetime) -> bool:
        return self.expiry > now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "market_id": self.market_id,
            "source":    self.source,
            "price":     str(self.price),
            "expiry":    format_block_time(self.expiry),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriceSubmission":
        return cls(
            market_id= data["market_id"],
            source=    data["source"],
            price=     Dec.from_str(data["price"]),
            expiry=    parse_block_time(data["expiry"]),
        )


@dataclass(frozen=True)
class CurrentPrice:
    """Aggregated price of a market at one block time. Never stored."""
    market_id:   str
    price:       Dec
    computed_at: datetime


# ─────────────────────────────────────────────────────────────
# Burn request / result
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BurnRequest:
    """Burn stable_amount of the stablecoin held by requester."""
    requester:     str
    stable_amount: int

    def validate_basic(self) -> None:
        """
        Stateless checks. Raised before any store or bank access.

        Raises:
            InvalidAddressError — requester is not a well-formed address
            InvalidAmountError  — amount negative or not an int
        """
        if not is_valid_address(self.requester):
            raise InvalidAddressError(
                "invalid requester address",
                {"requester": self.requester},
            )
        validate_amount(self.stable_amount, "stable amount")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requester":     self.requester,
            "stable_amount": self.stable_amount,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BurnRequest":
        return cls(
            requester=     data["requester"],
            stable_amount= data["stable_amount"],
        )


@dataclass(frozen=True)
class BurnResult:
    """Payout of one accepted burn. Both amounts are always present."""
    collateral: int = 0
    gov:        int = 0

    def __post_init__(self) -> None:
        validate_amount(self.collateral, "collateral amount")
        validate_amount(self.gov, "governance amount")

    def to_dict(self) -> Dict[str, int]:
        return {
            "collateral_amount": self.collateral,
            "gov_amount":        self.gov,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BurnResult":
        return cls(
            collateral= data["collateral_amount"],
            gov=        data["gov_amount"],
        )


@dataclass(frozen=True)
class BurnBreakdown:
    """
    Every intermediate value of the burn computation.

    collateral_portion + governance_value == collateral_equivalent holds
    exactly for every breakdown produced by compute_burn().
    """
    collateral_equivalent: Dec
    collateral_portion:    int
    governance_value:      Dec
    governance_portion:    int
    ratio:                 Dec = field(default_factory=Dec.zero)

    @property
    def result(self) -> BurnResult:
        return BurnResult(
            collateral= self.collateral_portion,
            gov=        self.governance_portion,
        )
