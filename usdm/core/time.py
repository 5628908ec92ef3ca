"""
usdm/core/time.py

Block time. The ONLY clock in USDM.

The core never reads the wall clock. The host state machine supplies the
logical block time and every expiry check compares against it.

Wire format: YYYY-MM-DDTHH:MM:SS.mmmZ
             (milliseconds, explicit Z, no +00:00, no microseconds)

Every datetime entering the core passes through ensure_utc(), which cuts
it to whole milliseconds. Comparisons therefore see exactly the value the
journal records, and a replay at the journaled times decides the same way.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Union


_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$"
)


def ensure_utc(value: datetime) -> datetime:
    """
    Reject naive datetimes; normalize aware ones to UTC with
    sub-millisecond precision truncated.
    """
    if not isinstance(value, datetime):
        raise TypeError(f"expected datetime, got {type(value).__name__}")
    if value.tzinfo is None:
        raise ValueError("block time must be timezone-aware")
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def is_block_time(text) -> bool:
    """True iff text is a timestamp in wire format."""
    return isinstance(text, str) and bool(_TIMESTAMP_RE.match(text))


def format_block_time(value: datetime) -> str:
    """Render a datetime in wire format."""
    value = ensure_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_block_time(text: str) -> datetime:
    """Parse a wire-format timestamp. Raises ValueError on any other shape."""
    if not is_block_time(text):
        raise ValueError(
            f"timestamp {text!r} does not match YYYY-MM-DDTHH:MM:SS.mmmZ"
        )
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


def to_block_time(value: Union[datetime, str]) -> datetime:
    """Accept either a datetime or a wire-format string."""
    if isinstance(value, str):
        return parse_block_time(value)
    return ensure_utc(value)


class BlockClock:
    """
    Host-provided logical clock.

    Time only moves when the host calls advance() or set(). Moving
    backwards is refused: block time is monotonic.

    advance() accumulates exactly; now() reports the elapsed time cut to
    whole milliseconds, so several sub-millisecond advances still add up.
    """

    def __init__(self, start: Union[datetime, str]) -> None:
        self._exact = to_block_time(start)

    def now(self) -> datetime:
        return ensure_utc(self._exact)

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        """Move forward by seconds (and/or any timedelta keyword)."""
        delta = timedelta(seconds=seconds, **kwargs)
        if delta < timedelta(0):
            raise ValueError("block time cannot move backwards")
        self._exact = self._exact + delta
        return self.now()

    def set(self, value: Union[datetime, str]) -> datetime:
        value = to_block_time(value)
        if value < self.now():
            raise ValueError(
                f"block time cannot move backwards: {format_block_time(value)} "
                f"< {format_block_time(self.now())}"
            )
        self._exact = value
        return self.now()

    def __repr__(self) -> str:
        return f"BlockClock(now={format_block_time(self.now())})"
