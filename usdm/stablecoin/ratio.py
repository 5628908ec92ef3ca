"""
Collateral ratio policy.

The ratio is the fraction of a burn's payout value returned as collateral;
the rest is returned as governance asset. It is an external, time-varying
input. The engine never assumes a constant, only that each value it
receives lies in [0, 1], and it refuses anything else.
"""

from abc import ABC, abstractmethod
from typing import List, Tuple, Union

from usdm.core.exceptions import InvalidRatioError
from usdm.core.fixedpoint import Dec


def validate_ratio(ratio) -> Dec:
    """Return ratio if it is a Dec in [0, 1], else raise InvalidRatioError."""
    if not isinstance(ratio, Dec):
        raise InvalidRatioError(
            "collateral ratio must be a fixed-point Dec",
            {"got": type(ratio).__name__},
        )
    if ratio.is_negative() or ratio > Dec.one():
        raise InvalidRatioError(
            "collateral ratio must be within [0, 1]",
            {"ratio": str(ratio)},
        )
    return ratio


def parse_ratio(value: Union[Dec, str]) -> Dec:
    """Coerce and validate a ratio given as a Dec or decimal string."""
    try:
        ratio = Dec.coerce(value)
    except (TypeError, ValueError) as exc:
        raise InvalidRatioError(
            "collateral ratio is not a decimal",
            {"got": repr(value)},
        ) from exc
    return validate_ratio(ratio)


class CollateralRatioPolicy(ABC):
    """Source of the current target collateral ratio."""

    @abstractmethod
    def current_ratio(self) -> Dec:
        ...


class FixedRatioPolicy(CollateralRatioPolicy):
    """
    A ratio that never changes.

    Does not validate on construction; the engine validates on every read,
    so a misconfigured policy fails closed at burn time.
    """

    def __init__(self, ratio: Union[Dec, str]):
        self._ratio = Dec.coerce(ratio)

    def current_ratio(self) -> Dec:
        return self._ratio

    def __repr__(self) -> str:
        return f"FixedRatioPolicy({self._ratio})"


class AdjustableRatioPolicy(CollateralRatioPolicy):
    """
    A ratio changed by governance through set_ratio().

    Every accepted value is kept in history as (sequence, ratio) so an
    operator can see how the target moved.
    """

    def __init__(self, initial: Union[Dec, str]):
        self._ratio = parse_ratio(initial)
        self.history: List[Tuple[int, Dec]] = [(0, self._ratio)]

    def current_ratio(self) -> Dec:
        return self._ratio

    def set_ratio(self, ratio: Union[Dec, str]) -> Dec:
        self._ratio = parse_ratio(ratio)
        self.history.append((len(self.history), self._ratio))
        return self._ratio

    def __repr__(self) -> str:
        return f"AdjustableRatioPolicy({self._ratio})"
