"""Parsing of timer intervals such as "10ms" or "1 sec"."""

from __future__ import annotations

__all__ = [
    "TimerIntervalError",
    "parse_interval",
    "NSEC_PER_SEC",
    "NSEC_PER_MSEC",
    "NSEC_PER_USEC",
]

NSEC_PER_SEC = 1_000_000_000
NSEC_PER_MSEC = 1_000_000
NSEC_PER_USEC = 1_000

_INT_MAX = (1 << 31) - 1
_SUFFIX_MAX = 9

_FACTORS = {
    "s": NSEC_PER_SEC,
    "sec": NSEC_PER_SEC,
    "ms": NSEC_PER_MSEC,
    "msec": NSEC_PER_MSEC,
    "us": NSEC_PER_USEC,
    "usec": NSEC_PER_USEC,
}


class TimerIntervalError(ValueError):
    """Raised when a timer interval cannot be parsed."""

    def __init__(self, text: str):
        self.text = text
        super().__init__(f"cannot parse timer interval: {text}")


def parse_interval(text: str) -> int:
    """Return the interval in nanoseconds.

    The interval is a decimal count followed by a unit: s/sec, ms/msec or
    us/usec. Anything after a space in the unit is ignored.
    """
    if not isinstance(text, str):
        raise TypeError("wrong type of argument 1")

    end = 0
    while end < len(text) and text[end] in "0123456789":
        end += 1
    digits = text[:end]
    if not digits:
        raise TimerIntervalError(text)
    count = int(digits)
    if count > _INT_MAX:
        raise TimerIntervalError(text)

    suffix = text[end:end + _SUFFIX_MAX].split(" ", 1)[0].split("\0", 1)[0]
    factor = _FACTORS.get(suffix)
    if factor is None:
        raise TimerIntervalError(text)
    return factor * count