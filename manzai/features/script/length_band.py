"""Target length and tolerance band policies.

The acceptable character band around a requested length is a product decision,
so each historical variant is a named policy selectable from configuration.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Protocol

MIN_FLOOR = 100
CHARS_PER_LINE = 35
MIN_LINES = 12


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


@dataclass(frozen=True)
class LengthBand:
    """Inclusive [min_len, max_len] character range around a target."""
    target: int
    min_len: int
    max_len: int

    @property
    def min_lines(self) -> int:
        return max(MIN_LINES, _ceil_div(self.min_len, CHARS_PER_LINE))

    def contains(self, length: int) -> bool:
        return self.min_len <= length <= self.max_len


class TolerancePolicy(Protocol):
    name: str

    def band(self, target: int) -> LengthBand:
        ...


@dataclass(frozen=True)
class RatioTolerance:
    """Band of target-below_pct% .. target+above_pct%, floor kept at MIN_FLOOR.

    Percentages stay integers so 350 +10% is exactly 385.
    """
    name: str
    below_pct: int
    above_pct: int

    def band(self, target: int) -> LengthBand:
        min_len = max(MIN_FLOOR, target * (100 - self.below_pct) // 100)
        max_len = max(min_len, _ceil_div(target * (100 + self.above_pct), 100))
        return LengthBand(target=target, min_len=min_len, max_len=max_len)


@dataclass(frozen=True)
class FloorTolerance:
    """Target is the floor; ceiling is ceiling_pct% of the target."""
    name: str
    ceiling_pct: int

    def band(self, target: int) -> LengthBand:
        min_len = max(MIN_FLOOR, target)
        max_len = max(min_len, _ceil_div(target * self.ceiling_pct, 100))
        return LengthBand(target=target, min_len=min_len, max_len=max_len)


TOLERANCE_POLICIES: Dict[str, TolerancePolicy] = {
    "pm10": RatioTolerance("pm10", 10, 10),
    "m10p25": RatioTolerance("m10p25", 10, 25),
    "floor_x1.5": FloorTolerance("floor_x1.5", 150),
    "pm5": RatioTolerance("pm5", 5, 5),
}

DEFAULT_TOLERANCE = "pm10"


def get_tolerance_policy(name: Optional[str]) -> TolerancePolicy:
    key = (name or DEFAULT_TOLERANCE).strip().lower()
    if key not in TOLERANCE_POLICIES:
        raise ValueError(f"Unknown length tolerance policy: {name}")
    return TOLERANCE_POLICIES[key]


def clamp_target_length(value, default: int = 350, maximum: int = 2000) -> int:
    """Coerce a requested length to a positive int no larger than maximum."""
    try:
        length = int(value)
    except (TypeError, ValueError):
        length = 0
    if length <= 0:
        length = default
    return min(length, maximum)
