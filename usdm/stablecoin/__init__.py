"""
USDM Stablecoin - collateral ratio policy and burn settlement.
"""

from usdm.stablecoin.ratio import (
    AdjustableRatioPolicy,
    CollateralRatioPolicy,
    FixedRatioPolicy,
    parse_ratio,
    validate_ratio,
)
from usdm.stablecoin.settlement import BurnSettlementEngine, compute_burn

__all__ = [
    "BurnSettlementEngine",
    "compute_burn",
    "CollateralRatioPolicy",
    "FixedRatioPolicy",
    "AdjustableRatioPolicy",
    "parse_ratio",
    "validate_ratio",
]
