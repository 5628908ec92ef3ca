"""
usdm/core/fixedpoint.py

Deterministic fixed-point decimal.

Every node replaying a transition must reach the same number bit for bit,
so this type never touches binary floating point:

    representation = int scaled by 10**18  (18 fractional digits)
    multiplication = exact product, then truncate toward zero
    division       = exact scaled quotient, truncate toward zero
    to integer     = truncate toward zero

Python's // floors toward negative infinity. _quo_trunc() is the only
division used in this module and it truncates toward zero regardless of
sign.
"""

import re
from dataclasses import dataclass
from typing import Union


PRECISION = 18
_SCALE    = 10 ** PRECISION

_DEC_RE = re.compile(r"^(-)?(\d+)(?:\.(\d+))?$")


def _quo_trunc(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero."""
    if denominator == 0:
        raise ZeroDivisionError("fixed-point division by zero")
    q = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -q
    return q


@dataclass(frozen=True, order=True)
class Dec:
    """
    Signed 18-decimal fixed-point number.

    Construct with Dec.from_str(), Dec.from_int(), Dec.zero() or Dec.one().
    The raw field holds value * 10**18 and is exposed for serialization only.
    """

    raw: int

    def __post_init__(self) -> None:
        if isinstance(self.raw, bool) or not isinstance(self.raw, int):
            raise TypeError(f"Dec raw value must be int, got {type(self.raw).__name__}")

    # ── Construction ──────────────────────────────────────────

    @classmethod
    def from_int(cls, value: int) -> "Dec":
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Dec.from_int expects int, got {type(value).__name__}")
        return cls(value * _SCALE)

    @classmethod
    def from_str(cls, text: str) -> "Dec":
        """
        Parse a decimal string such as "10", "0.9" or "-1.25".

        Rejects exponents, more than 18 fractional digits and empty input.
        """
        if not isinstance(text, str):
            raise TypeError(f"Dec.from_str expects str, got {type(text).__name__}")
        match = _DEC_RE.match(text.strip())
        if not match:
            raise ValueError(f"invalid decimal string: {text!r}")
        sign, whole, frac = match.groups()
        frac = frac or ""
        if len(frac) > PRECISION:
            raise ValueError(
                f"too many fractional digits in {text!r} (max {PRECISION})"
            )
        raw = int(whole) * _SCALE + int(frac.ljust(PRECISION, "0") or "0")
        return cls(-raw if sign else raw)

    @classmethod
    def coerce(cls, value: Union["Dec", int, str]) -> "Dec":
        """Accept a Dec, an int or a decimal string. Floats are refused."""
        if isinstance(value, Dec):
            return value
        if isinstance(value, float):
            raise TypeError("binary floats are not accepted; pass a decimal string")
        if isinstance(value, int) and not isinstance(value, bool):
            return cls.from_int(value)
        if isinstance(value, str):
            return cls.from_str(value)
        raise TypeError(f"cannot convert {type(value).__name__} to Dec")

    @classmethod
    def zero(cls) -> "Dec":
        return cls(0)

    @classmethod
    def one(cls) -> "Dec":
        return cls(_SCALE)

    # ── Predicates ────────────────────────────────────────────

    def is_zero(self) -> bool:
        return self.raw == 0

    def is_positive(self) -> bool:
        return self.raw > 0

    def is_negative(self) -> bool:
        return self.raw < 0

    # ── Arithmetic ────────────────────────────────────────────

    def __add__(self, other: Union["Dec", int]) -> "Dec":
        return Dec(self.raw + Dec.coerce(other).raw)

    def __sub__(self, other: Union["Dec", int]) -> "Dec":
        return Dec(self.raw - Dec.coerce(other).raw)

    def __neg__(self) -> "Dec":
        return Dec(-self.raw)

    def __mul__(self, other: Union["Dec", int]) -> "Dec":
        if isinstance(other, int) and not isinstance(other, bool):
            return Dec(self.raw * other)
        return Dec(_quo_trunc(self.raw * Dec.coerce(other).raw, _SCALE))

    def __truediv__(self, other: Union["Dec", int]) -> "Dec":
        if isinstance(other, int) and not isinstance(other, bool):
            return Dec(_quo_trunc(self.raw, other))
        return Dec(_quo_trunc(self.raw * _SCALE, Dec.coerce(other).raw))

    def truncate_int(self) -> int:
        """Drop the fractional part, rounding toward zero."""
        return _quo_trunc(self.raw, _SCALE)

    # ── Rendering ─────────────────────────────────────────────

    def __str__(self) -> str:
        sign  = "-" if self.raw < 0 else ""
        whole, frac = divmod(abs(self.raw), _SCALE)
        return f"{sign}{whole}.{frac:0{PRECISION}d}"

    def __repr__(self) -> str:
        return f"Dec('{self}')"
