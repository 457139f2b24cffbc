from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .envelope import price_move_pct
from .formatting import format_price_movement
from .models import BinRecord, ChartView

SCALE_FLOOR = 0.01
# Denominator used when nothing survives the filter
EMPTY_MAX_USD_TOTAL = 1.0


def max_usd_total(
    bins: Iterable[BinRecord],
    usd_x: Optional[float],
    usd_y: Optional[float],
    floor: float = SCALE_FLOOR,
) -> float:
    """Largest per-bin USD total in ``bins``, never below ``floor``."""
    best = floor
    for b in bins:
        total = b.usd_total(usd_x, usd_y)
        if total > best:
            best = total
    return best


@dataclass(frozen=True)
class BinBar:
    bin_id: int
    x_usd: float
    y_usd: float
    total_usd: float
    bar_pct: float
    x_share_pct: float
    move_pct: float
    price: float
    is_active: bool
    label: str


def bin_bar(b: BinRecord, view: ChartView, usd_x: Optional[float], usd_y: Optional[float]) -> BinBar:
    """Geometry of one bar: length relative to the view's max and the X/Y split inside it."""
    px = usd_x if usd_x is not None else 0.0
    py = usd_y if usd_y is not None else 0.0
    x_usd = b.x_amount_decimal * px
    y_usd = b.y_amount_decimal * py
    total = x_usd + y_usd
    price = b.price_value
    move = price_move_pct(price, view.active_price) if view.active_price > 0 else 0.0
    return BinBar(
        bin_id=b.bin_id,
        x_usd=x_usd,
        y_usd=y_usd,
        total_usd=total,
        bar_pct=total / view.max_usd_total * 100.0,
        x_share_pct=(x_usd / total * 100.0) if total > 0 else 0.0,
        move_pct=move,
        price=price,
        is_active=b.is_active_bin,
        label="active" if b.is_active_bin else format_price_movement(move),
    )
