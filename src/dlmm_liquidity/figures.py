from __future__ import annotations

from typing import Iterable, List, Optional

import pandas as pd
import plotly.graph_objs as go
from plotly.subplots import make_subplots

from .formatting import format_full_amount, format_usd
from .models import Candle, ChartView, GapRow, PoolSnapshot
from .scale import bin_bar

ROW_COLUMNS = [
    "kind", "bin_id", "from_bin_id", "to_bin_id", "count", "price", "move_pct",
    "x_amount", "y_amount", "x_usd", "y_usd", "total_usd", "bar_pct", "x_share_pct",
    "is_active", "label",
]
CANDLE_COLUMNS = ["time", "open", "high", "low", "close", "volume"]

X_COLOR = "#3b82f6"
Y_COLOR = "#10b981"
UP_COLOR = "#22c55e"
DOWN_COLOR = "#ef4444"


def rows_frame(view: ChartView, snapshot: PoolSnapshot) -> pd.DataFrame:
    usd_x = snapshot.token_x.usd_price
    usd_y = snapshot.token_y.usd_price
    records: List[dict] = []
    for row in view.rows:
        if isinstance(row, GapRow):
            records.append({
                "kind": "gap",
                "from_bin_id": row.from_bin_id,
                "to_bin_id": row.to_bin_id,
                "count": row.count,
                "label": f"{row.count} empty bin{'s' if row.count > 1 else ''} ({row.from_bin_id} → {row.to_bin_id})",
            })
            continue
        b = row.bin
        bar = bin_bar(b, view, usd_x, usd_y)
        records.append({
            "kind": "bin",
            "bin_id": b.bin_id,
            "price": bar.price,
            "move_pct": bar.move_pct,
            "x_amount": b.x_amount_decimal,
            "y_amount": b.y_amount_decimal,
            "x_usd": bar.x_usd,
            "y_usd": bar.y_usd,
            "total_usd": bar.total_usd,
            "bar_pct": bar.bar_pct,
            "x_share_pct": bar.x_share_pct,
            "is_active": bar.is_active,
            "label": bar.label,
        })
    return pd.DataFrame(records, columns=ROW_COLUMNS)


def candles_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    df = pd.DataFrame([
        {"time": c.time, "open": c.open, "high": c.high, "low": c.low, "close": c.close, "volume": c.volume}
        for c in candles
    ], columns=CANDLE_COLUMNS)
    df["timestamp"] = pd.to_datetime(df["time"].astype("int64"), unit="s", utc=True)
    return df


def liquidity_figure(view: ChartView, snapshot: PoolSnapshot) -> go.Figure:
    """One horizontal bar per bin, X and Y stacked in USD; gaps become annotated empty rows."""
    df = rows_frame(view, snapshot)
    sym_x = snapshot.token_x.symbol
    sym_y = snapshot.token_y.symbol
    fig = go.Figure()
    if df.empty:
        fig.update_layout(height=200, annotations=[dict(text="No bins in range", showarrow=False)])
        return fig

    # Row keys keep the bin/gap order on the category axis (top to bottom by bin id)
    keys = [f"bin {int(r.bin_id)}" if r.kind == "bin" else f"gap {int(r.from_bin_id)}-{int(r.to_bin_id)}" for r in df.itertuples()]
    bins = df["kind"] == "bin"
    scale = view.max_usd_total
    x_len = (df["x_usd"].fillna(0.0) / scale * 100.0).where(bins, 0.0)
    y_len = (df["y_usd"].fillna(0.0) / scale * 100.0).where(bins, 0.0)
    hover = [
        (
            f"{sym_x}: {format_full_amount(r.x_amount)} ({format_usd(r.x_usd)})<br>"
            f"{sym_y}: {format_full_amount(r.y_amount)} ({format_usd(r.y_usd)})<br>"
            f"Bin TVL: {format_usd(r.total_usd)}<br>Price: {r.price:.6f} ({r.label})"
        ) if r.kind == "bin" else r.label
        for r in df.itertuples()
    ]
    fig.add_trace(go.Bar(y=keys, x=x_len, orientation="h", name=sym_x, marker_color=X_COLOR, hovertext=hover, hoverinfo="text"))
    fig.add_trace(go.Bar(y=keys, x=y_len, orientation="h", name=sym_y, marker_color=Y_COLOR, hovertext=hover, hoverinfo="text"))
    for i, (key, r) in enumerate(zip(keys, df.itertuples())):
        if r.kind == "gap":
            fig.add_annotation(y=key, x=0, text=r.label, showarrow=False, xanchor="left", font=dict(color="#6b7280", size=10))
        elif r.is_active:
            fig.add_hrect(y0=i - 0.5, y1=i + 0.5, fillcolor="rgba(250,204,21,0.12)", line_width=0, layer="below")

    fig.update_layout(
        barmode="stack",
        height=max(240, 18 * len(keys) + 60),
        margin=dict(l=10, r=10, t=10, b=30),
        xaxis=dict(title="Share of largest bin (USD)", range=[0, 100], ticksuffix="%"),
        yaxis=dict(autorange="reversed", type="category", tickfont=dict(size=9)),
        legend=dict(orientation="h"),
    )
    return fig


def price_figure(candles: Iterable[Candle], precision: Optional[int] = None, title: str = "") -> go.Figure:
    candles = list(candles)
    df = candles_frame(candles)
    fig = make_subplots(rows=2, cols=1, shared_xaxes=True, row_heights=[0.85, 0.15], vertical_spacing=0.02)
    if df.empty:
        fig.update_layout(height=400, title=title)
        return fig
    fig.add_trace(
        go.Candlestick(
            x=df["timestamp"], open=df["open"], high=df["high"], low=df["low"], close=df["close"],
            increasing_line_color=UP_COLOR, decreasing_line_color=DOWN_COLOR, name="Price",
        ),
        row=1, col=1,
    )
    colors = [UP_COLOR if c.is_up else DOWN_COLOR for c in candles]
    fig.add_trace(go.Bar(x=df["timestamp"], y=df["volume"], marker_color=colors, opacity=0.3, name="Volume"), row=2, col=1)
    tickformat = f".{precision}f" if precision is not None else None
    fig.update_layout(
        height=400,
        title=title,
        margin=dict(l=10, r=10, t=30 if title else 10, b=30),
        showlegend=False,
        xaxis_rangeslider_visible=False,
        yaxis=dict(tickformat=tickformat),
    )
    return fig
