from __future__ import annotations

import math
from typing import List

from .envelope import is_candidate, price_move_pct
from .models import BinRecord, BinRow, ChartRow, ChartView, GapRow, PoolSnapshot
from .scale import EMPTY_MAX_USD_TOTAL, max_usd_total


def _empty_view(active_price: float) -> ChartView:
    return ChartView(rows=(), max_usd_total=EMPTY_MAX_USD_TOTAL, active_price=active_price, visible_bins=0, gap_bins=0)


def select_bins(snapshot: PoolSnapshot, range_low: float, range_high: float) -> List[BinRecord]:
    """Liquid bins (and the active bin) whose move from the active price lies in [low, high], by bin id.

    With no usable active price the window is bypassed and every candidate is kept.
    """
    active_price = snapshot.active_price
    kept: List[BinRecord] = []
    for b in snapshot.bins:
        if not is_candidate(b):
            continue
        if active_price <= 0:
            kept.append(b)
            continue
        price = b.price_value
        if not math.isfinite(price) or price <= 0:
            continue
        move = price_move_pct(price, active_price)
        if range_low <= move <= range_high:
            kept.append(b)
    kept.sort(key=lambda b: b.bin_id)
    return kept


def compile_rows(bins: List[BinRecord]) -> tuple[List[ChartRow], int]:
    """Interleave bin rows with one gap row per run of missing ids. Returns (rows, gap bin count)."""
    rows: List[ChartRow] = []
    gap_bins = 0
    prev = None
    for b in bins:
        if prev is not None:
            missing = b.bin_id - prev.bin_id - 1
            if missing > 0:
                gap_bins += missing
                rows.append(GapRow(from_bin_id=prev.bin_id + 1, to_bin_id=b.bin_id - 1, count=missing))
        rows.append(BinRow(bin=b))
        prev = b
    return rows, gap_bins


def build_chart_view(snapshot: PoolSnapshot, range_low: float, range_high: float) -> ChartView:
    active_price = snapshot.active_price
    if not snapshot.bins:
        return _empty_view(active_price)
    if not (math.isfinite(range_low) and math.isfinite(range_high)):
        return _empty_view(active_price)
    if range_low > range_high:
        return _empty_view(active_price)

    bins = select_bins(snapshot, range_low, range_high)
    if not bins:
        return _empty_view(active_price)

    rows, gap_bins = compile_rows(bins)
    return ChartView(
        rows=tuple(rows),
        max_usd_total=max_usd_total(bins, snapshot.token_x.usd_price, snapshot.token_y.usd_price),
        active_price=active_price,
        visible_bins=len(bins),
        gap_bins=gap_bins,
    )
