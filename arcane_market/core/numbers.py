from __future__ import annotations

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, ties away from zero for positive prices.

    Python's `round` uses banker's rounding (57.5 -> 58 but 56.5 -> 56); prices need
    one deterministic rule so replays agree.
    """

    return int(math.floor(value + 0.5))


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))
