"""
usdm/config.py

Genesis configuration.

A genesis file fixes everything a fresh state machine starts from: the
block time, the three denominations, the initial collateral ratio, the
price markets with their authorized oracles, and the opening balances.
The same file rebuilds the starting state when a journal is re-executed.

Example genesis.yaml:

    genesis_time: "2026-01-01T00:00:00.000Z"
    collateral_ratio: "0.9"
    denoms:
      stable: uusdm
      collateral: uust
      governance: umtrx
    markets:
      - market_id: "uust:uusdm"
        base_asset: uust
        quote_asset: uusdm
        oracles: [usdm...]
    accounts:
      usdm...:
        uusdm: 1000000000
    reserve:
      uust: 100000000
"""

import os
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from usdm.core.crypto import is_valid_address
from usdm.core.exceptions import ConfigError
from usdm.core.fixedpoint import Dec
from usdm.core.models import Denoms, Market
from usdm.core.time import parse_block_time


GENESIS_ENV_VAR = "USDM_GENESIS"


@dataclass
class GenesisConfig:
    """Initial state of a USDM state machine."""

    genesis_time:     str
    collateral_ratio: str                        = "1"
    denoms:           Denoms                     = field(default_factory=Denoms)
    markets:          List[Market]               = field(default_factory=list)
    accounts:         Dict[str, Dict[str, int]]  = field(default_factory=dict)
    reserve:          Dict[str, int]             = field(default_factory=dict)

    # ── Loading ───────────────────────────────────────────────

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "GenesisConfig":
        """
        Load and validate a genesis YAML file.

        Raises:
            ConfigError — file missing, not a mapping, or invalid
        """
        path = Path(path)
        if not path.exists():
            raise ConfigError("genesis file not found", {"path": str(path)})

        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigError(f"genesis file is not valid YAML: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigError("genesis file must contain a mapping", {"path": str(path)})
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenesisConfig":
        """Build and validate. Raises ConfigError listing every problem."""
        try:
            config = cls(
                genesis_time=     str(data["genesis_time"]),
                collateral_ratio= str(data.get("collateral_ratio", "1")),
                denoms=           Denoms.from_dict(data.get("denoms") or {}),
                markets=          [Market.from_dict(m) for m in data.get("markets") or []],
                accounts=         {
                    str(addr): dict(coins or {})
                    for addr, coins in (data.get("accounts") or {}).items()
                },
                reserve=          dict(data.get("reserve") or {}),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise ConfigError(f"malformed genesis config: {exc!r}") from exc

        config.check()
        return config

    def to_dict(self) -> Dict[str, Any]:
        return {
            "genesis_time":     self.genesis_time,
            "collateral_ratio": self.collateral_ratio,
            "denoms":           self.denoms.to_dict(),
            "markets":          [m.to_dict() for m in self.markets],
            "accounts":         {a: dict(c) for a, c in self.accounts.items()},
            "reserve":          dict(self.reserve),
        }

    # ── Validation ────────────────────────────────────────────

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors"""
        errors = []

        try:
            parse_block_time(self.genesis_time)
        except ValueError:
            errors.append(
                f"genesis_time {self.genesis_time!r} must be YYYY-MM-DDTHH:MM:SS.mmmZ"
            )

        try:
            ratio = Dec.coerce(self.collateral_ratio)
            if ratio.is_negative() or ratio > Dec.one():
                errors.append("collateral_ratio must be in [0, 1]")
        except (TypeError, ValueError):
            errors.append(f"collateral_ratio {self.collateral_ratio!r} is not a decimal")

        denoms = [self.denoms.stable, self.denoms.collateral, self.denoms.governance]
        if len(set(denoms)) != 3 or not all(denoms):
            errors.append("denoms must be three distinct non-empty names")

        seen = set()
        for market in self.markets:
            if market.market_id in seen:
                errors.append(f"market {market.market_id}: duplicate market_id")
            seen.add(market.market_id)
            for oracle in market.oracles:
                if not is_valid_address(oracle):
                    errors.append(f"market {market.market_id}: malformed oracle {oracle!r}")

        for required in (self.denoms.coll_price_pool, self.denoms.gov_price_pool):
            if required not in seen:
                errors.append(f"market {required} is required for settlement")

        for address, coins in self.accounts.items():
            if not is_valid_address(address):
                errors.append(f"account {address!r}: malformed address")
            errors.extend(_coin_errors(f"account {address}", coins))

        errors.extend(_coin_errors("reserve", self.reserve))
        return errors

    def check(self) -> None:
        """Raise ConfigError if validate() finds anything; warn on inactive markets."""
        errors = self.validate()
        if errors:
            raise ConfigError(
                f"invalid genesis config: {len(errors)} problem(s)",
                {"errors": "; ".join(errors)},
            )

        inactive = [m.market_id for m in self.markets if not m.active]
        if inactive:
            warnings.warn(
                f"GenesisConfig: markets {inactive} are inactive; burns that need "
                "them will fail until they are activated.",
                RuntimeWarning,
                stacklevel=2,
            )


def _coin_errors(owner: str, coins: Dict[str, int]) -> List[str]:
    errors = []
    for denom, amount in coins.items():
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            errors.append(f"{owner}: {denom} amount must be a non-negative integer")
    return errors


def load_genesis_from_env(default: Optional[Union[str, Path]] = None) -> GenesisConfig:
    """
    Load the genesis file named by USDM_GENESIS, falling back to default.

    Raises:
        ConfigError — neither is set, or the file is invalid
    """
    path = os.environ.get(GENESIS_ENV_VAR) or default
    if not path:
        raise ConfigError(f"{GENESIS_ENV_VAR} is not set and no default given")
    return GenesisConfig.from_yaml(path)
