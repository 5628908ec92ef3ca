"""
USDM Price Feed

Oracle submissions in, one current price per market out.

Components:
- PriceSubmissionStore: raw per-source submissions with expiry
- PriceAggregator: median of the live set, recomputed on every call
- OracleIngress: Ed25519-authenticated entry point for oracle posts
"""

from usdm.pricefeed.aggregator import PriceAggregator, aggregate_prices
from usdm.pricefeed.ingress import OracleIngress, SignedPricePost
from usdm.pricefeed.store import PriceSubmissionStore

__all__ = [
    "PriceSubmissionStore",
    "PriceAggregator",
    "aggregate_prices",
    "OracleIngress",
    "SignedPricePost",
]
