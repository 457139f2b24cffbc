from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, List, Tuple

from .errors import InvalidRangeError
from .models import BinRecord, Envelope, PoolSnapshot

FALLBACK_ENVELOPE = Envelope(full_low=-99, full_high=1000)

# Preset window bounds offered next to "All" (percent move from the active bin)
MIN_OPTIONS: List[Tuple[str, int]] = [
    ("-1%", -1),
    ("-5%", -5),
    ("-10%", -10),
    ("-25%", -25),
    ("-50%", -50),
    ("-75%", -75),
    ("-99%", -99),
]
MAX_OPTIONS: List[Tuple[str, int]] = [
    ("+1%", 1),
    ("+5%", 5),
    ("+10%", 10),
    ("+25%", 25),
    ("+50%", 50),
    ("+100%", 100),
    ("+250%", 250),
    ("+500%", 500),
    ("+1000%", 1000),
]


def price_move_pct(bin_price: float, active_price: float) -> float:
    return (bin_price - active_price) / active_price * 100.0


def is_candidate(b: BinRecord) -> bool:
    """Bins that carry liquidity on either side, plus the active bin."""
    return b.has_liquidity or b.is_active_bin


def full_range(snapshot: PoolSnapshot) -> Envelope:
    """Integer-percent envelope of every liquid bin around the active price.

    Without a usable active price (or without bins) the wide fallback envelope is returned.
    """
    active_price = snapshot.active_price
    if active_price <= 0 or not snapshot.bins:
        return FALLBACK_ENVELOPE

    lo = 0.0
    hi = 0.0
    for b in snapshot.bins:
        if not is_candidate(b):
            continue
        price = b.price_value
        if not math.isfinite(price) or price <= 0:
            continue
        move = price_move_pct(price, active_price)
        if move < lo:
            lo = move
        if move > hi:
            hi = move
    return Envelope(full_low=math.floor(lo), full_high=math.ceil(hi))


def validate_bound(value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidRangeError(f"Invalid range bound: {value!r}")
    try:
        out = float(value)
    except (TypeError, ValueError):
        raise InvalidRangeError(f"Invalid range bound: {value!r}") from None
    if not math.isfinite(out):
        raise InvalidRangeError(f"Range bound must be finite: {value!r}")
    return out


@dataclass(frozen=True)
class RangeSelection:
    low: float
    high: float

    @staticmethod
    def full(envelope: Envelope) -> "RangeSelection":
        return RangeSelection(low=float(envelope.full_low), high=float(envelope.full_high))

    def reset(self, envelope: Envelope) -> "RangeSelection":
        return RangeSelection.full(envelope)

    def with_low(self, value: Any) -> "RangeSelection":
        return replace(self, low=validate_bound(value))

    def with_high(self, value: Any) -> "RangeSelection":
        return replace(self, high=validate_bound(value))

    def is_min_full(self, envelope: Envelope) -> bool:
        return self.low <= envelope.full_low

    def is_max_full(self, envelope: Envelope) -> bool:
        return self.high >= envelope.full_high

    def is_full_range(self, envelope: Envelope) -> bool:
        return self.is_min_full(envelope) and self.is_max_full(envelope)
