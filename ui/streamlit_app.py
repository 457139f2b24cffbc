import os
import sys

import streamlit as st

# Ensure local src/ is on PYTHONPATH for `dlmm_liquidity` imports
BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_DIR = os.path.join(BASE_DIR, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from dlmm_liquidity.candles import INTERVALS, StreamState
from dlmm_liquidity.config import load_config
from dlmm_liquidity.envelope import MAX_OPTIONS, MIN_OPTIONS
from dlmm_liquidity.errors import DlmmLiquidityError
from dlmm_liquidity.figures import liquidity_figure, price_figure
from dlmm_liquidity.formatting import format_price, format_usd, format_volume, truncate_address
from dlmm_liquidity.main import build_tracker, open_tracker
from dlmm_liquidity.tracker import PoolTracker

DEMO_POOL = "5rCf1DM8LjKTw4YqhnoLcngyZYeNnQqztScTogYHAS6"

st.set_page_config(page_title="DLMM Liquidity Tracker", layout="wide")
st.title("DLMM Liquidity Tracker")
st.caption("Bin liquidity across the whole pool, USD-normalized, with a live price chart.")


def get_tracker(pool_address: str) -> PoolTracker:
    """One tracker per pool address per browser session; switching pools closes the old one."""
    cfg = load_config()
    return open_tracker(
        st.session_state, pool_address, lambda address: build_tracker(cfg, address), interval=cfg.default_interval
    )


def render_token(col, token) -> None:
    with col:
        badge = " ✓" if token.is_verified else ""
        st.subheader(f"{token.symbol}{badge}")
        st.caption(f"{token.name} · {truncate_address(token.mint, 6)}")
        stats = []
        if token.usd_price is not None:
            stats.append(f"Price: ${token.usd_price:.3g}" if token.usd_price < 0.01 else f"Price: ${token.usd_price:,.2f}")
        if token.mcap is not None:
            stats.append(f"MCap: {format_usd(token.mcap)}")
        if token.liquidity is not None:
            stats.append(f"Liquidity: {format_usd(token.liquidity)}")
        if token.holder_count is not None:
            stats.append(f"Holders: {token.holder_count:,}")
        if token.organic_score is not None and token.organic_score_label:
            stats.append(f"Organic: {token.organic_score:.0f} ({token.organic_score_label})")
        st.write(" | ".join(stats) or "No market data")


@st.fragment(run_every=load_config().candle_refresh_seconds)
def price_panel(tracker: PoolTracker) -> None:
    controller = tracker.candles
    if tracker.tick():
        # a resync committed a new snapshot: redraw the bin view too
        st.rerun()
    series = controller.series
    labels = list(INTERVALS)
    choice = st.radio("Interval", labels, index=labels.index(series.interval or "5m"), horizontal=True)
    if choice != series.interval:
        before = tracker.snapshot
        series = tracker.select_interval(choice)
        if tracker.snapshot is not before:
            st.rerun()
    if series.state is StreamState.FAILED:
        st.error(f"Chart error: {series.error}")
        return
    candle = controller.display_candle()
    if candle is not None:
        p = series.precision
        st.caption(
            f"O {format_price(candle.open, p)}  H {format_price(candle.high, p)}  "
            f"L {format_price(candle.low, p)}  C {format_price(candle.close, p)}  V {format_volume(candle.volume)}"
        )
    controller.consume_fit()
    st.plotly_chart(
        price_figure(series.candles, precision=series.precision, title=f"{tracker.snapshot.token_x.symbol} Price"),
        use_container_width=True,
    )


def range_controls(tracker: PoolTracker) -> None:
    env = tracker.envelope
    sel = tracker.selection
    st.markdown("**Price range from active bin**")
    min_labels = ["All"] + [label for label, _ in MIN_OPTIONS]
    max_labels = ["All"] + [label for label, _ in MAX_OPTIONS]
    min_values = {label: value for label, value in MIN_OPTIONS}
    max_values = {label: value for label, value in MAX_OPTIONS}
    c1, c2, c3 = st.columns([3, 3, 1])
    cur_min = "All" if sel.is_min_full(env) else next((k for k, v in min_values.items() if v == sel.low), "All")
    cur_max = "All" if sel.is_max_full(env) else next((k for k, v in max_values.items() if v == sel.high), "All")
    low = c1.radio("Min (price drop)", min_labels, index=min_labels.index(cur_min), horizontal=True)
    high = c2.radio("Max (price increase)", max_labels, index=max_labels.index(cur_max), horizontal=True)
    if c3.button("Full Range", type="primary" if sel.is_full_range(env) else "secondary"):
        tracker.reset_range()
        return
    tracker.set_range(
        env.full_low if low == "All" else min_values[low],
        env.full_high if high == "All" else max_values[high],
    )


address = st.text_input("Pool address", value=st.session_state.get("pool_address", DEMO_POOL))
if address:
    st.session_state["pool_address"] = address.strip()
    try:
        tracker = get_tracker(address)
    except DlmmLiquidityError as exc:
        st.error(f"Error: {exc}")
        st.stop()

    snap = tracker.snapshot
    st.caption(f"Pool {snap.pool_address} · bin step {snap.bin_step} · active bin {snap.active_bin_id}")
    col_x, col_y = st.columns(2)
    render_token(col_x, snap.token_x)
    render_token(col_y, snap.token_y)

    price_panel(tracker)

    range_controls(tracker)
    view = tracker.view()
    st.caption(f"{view.visible_bins} bins with liquidity · {view.gap_bins} empty bins in range")
    st.plotly_chart(liquidity_figure(view, tracker.snapshot), use_container_width=True)
