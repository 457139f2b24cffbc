from __future__ import annotations

import argparse
import logging
import signal
import threading
from typing import Any, Callable, List, MutableMapping, Optional

from .candles import CandleStreamController, validate_interval
from .config import AppConfig, load_config
from .envelope import validate_bound
from .errors import DlmmLiquidityError
from .formatting import format_usd, truncate_address
from .http_client import JsonHttpClient
from .models import GapRow
from .sources import JupiterCandleSource, JupiterTokenSource, PoolApiSnapshotSource
from .tracker import PoolTracker

logger = logging.getLogger("dlmm_liquidity")


def build_tracker(cfg: AppConfig, pool_address: str) -> PoolTracker:
    def client(url: str) -> JsonHttpClient:
        return JsonHttpClient(
            url,
            max_retries=cfg.max_retries,
            backoff_seconds=cfg.backoff_seconds,
            request_rps=cfg.request_rps,
            timeout=cfg.request_timeout_seconds,
        )

    clients = [client(cfg.token_api_url), client(cfg.pool_api_url), client(cfg.chart_api_url)]
    token_client, pool_client, chart_client = clients
    tokens = JupiterTokenSource(token_client)
    snapshots = PoolApiSnapshotSource(pool_client, tokens)
    candles = CandleStreamController(
        JupiterCandleSource(chart_client),
        refresh_seconds=cfg.candle_refresh_seconds,
        quote=cfg.quote_currency,
    )
    try:
        return PoolTracker(
            pool_address, snapshots, candles,
            cooldown=cfg.pool_refetch_cooldown_seconds, resources=clients,
        )
    except DlmmLiquidityError:
        for c in clients:
            c.close()
        raise


def open_tracker(
    store: MutableMapping[str, Any],
    pool_address: str,
    factory: Callable[[str], PoolTracker],
    interval: Optional[str] = None,
    key: str = "tracker",
) -> PoolTracker:
    """Return the stored tracker for ``pool_address`` or replace it with a freshly loaded one.

    The previous tracker is removed from ``store`` before it is closed, and a tracker
    whose load fails is closed and never stored.
    """
    address = pool_address.strip()
    current = store.get(key)
    if current is not None and not current.closed and current.pool_address == address:
        return current
    store.pop(key, None)
    if current is not None:
        current.close()
    tracker = factory(address)
    try:
        tracker.load()
        if interval and tracker.candles is not None:
            tracker.select_interval(interval)
    except DlmmLiquidityError:
        tracker.close()
        raise
    store[key] = tracker
    return tracker


def summarize(tracker: PoolTracker) -> List[str]:
    snap = tracker.snapshot
    view = tracker.view()
    env = tracker.envelope
    lines = [
        f"Pool {truncate_address(snap.pool_address)} {snap.token_x.symbol}/{snap.token_y.symbol} "
        f"bin step {snap.bin_step} active bin {snap.active_bin_id}",
        f"Range {tracker.selection.low:+.0f}% .. {tracker.selection.high:+.0f}% "
        f"(full {env.full_low:+d}% .. {env.full_high:+d}%): {view.visible_bins} bins, {view.gap_bins} empty",
    ]
    bars = iter(tracker.bars(view))
    for row in view.rows:
        if isinstance(row, GapRow):
            lines.append(f"  {'':>8}  {row.count} empty bin{'s' if row.count > 1 else ''} ({row.from_bin_id} -> {row.to_bin_id})")
            continue
        bar = next(bars)
        width = int(round(bar.bar_pct / 100.0 * 40))
        lines.append(f"  {bar.bin_id:>8}  {'#' * width:<40}  {format_usd(bar.total_usd):>10}  {bar.label}")
    return lines


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Track bin liquidity and price for a DLMM pool")
    parser.add_argument("pool", help="Pool address")
    parser.add_argument("--interval", default=None, help="Candle interval (1m,5m,15m,1h,4h,1d,1w)")
    parser.add_argument("--low", type=float, default=None, help="Lower bound, percent move from the active bin")
    parser.add_argument("--high", type=float, default=None, help="Upper bound, percent move from the active bin")
    parser.add_argument("--once", action="store_true", help="Print the bin view and exit")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    cfg = load_config()
    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        interval = validate_interval(args.interval or cfg.default_interval)
        low = validate_bound(args.low) if args.low is not None else None
        high = validate_bound(args.high) if args.high is not None else None
        tracker = open_tracker({}, args.pool, lambda address: build_tracker(cfg, address))
    except DlmmLiquidityError as exc:
        logger.error("%s", exc)
        return 1

    tracker.set_range(low, high)
    for line in summarize(tracker):
        print(line)
    if args.once:
        tracker.close()
        return 0

    stop = threading.Event()

    def handle_sigterm(signum, frame):  # noqa: ARG001
        stop.set()
        logger.info("Shutdown signal received.")

    signal.signal(signal.SIGINT, handle_sigterm)
    signal.signal(signal.SIGTERM, handle_sigterm)

    series = tracker.select_interval(interval)
    if series.error:
        logger.error("Price chart unavailable: %s", series.error)

    last_active = tracker.snapshot.active_bin_id
    while not stop.is_set():
        refreshed = tracker.tick()
        latest = tracker.candles.series.latest
        if refreshed and tracker.snapshot.active_bin_id != last_active:
            last_active = tracker.snapshot.active_bin_id
            for line in summarize(tracker):
                print(line)
        elif latest is not None:
            logger.debug("Latest close %s", latest.close)
        stop.wait(1.0)

    tracker.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
