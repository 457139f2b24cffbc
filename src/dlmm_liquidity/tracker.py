from __future__ import annotations

import logging
import time
from typing import Any, Callable, Iterable, List, Optional

from .candles import CandleSeries, CandleStreamController
from .envelope import RangeSelection, full_range
from .errors import UpstreamError
from .models import ChartView, Envelope, PoolSnapshot
from .resync import POOL_REFETCH_COOLDOWN_SECONDS, ResyncContext, ResyncDecision, evaluate
from .rows import build_chart_view
from .scale import BinBar, bin_bar
from .sources import SnapshotSource, validate_address

logger = logging.getLogger(__name__)


class PoolTracker:
    """One pool view: the committed snapshot, the range selection, the candle stream and the resync policy.

    Snapshots are replaced wholesale. A fetch that completes after ``close()`` or after a
    newer fetch was started does not touch the view.
    """

    def __init__(
        self,
        pool_address: str,
        snapshots: SnapshotSource,
        candles: Optional[CandleStreamController] = None,
        cooldown: float = POOL_REFETCH_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        resources: Iterable[Any] = (),
    ):
        self.pool_address = validate_address(pool_address)
        self._snapshots = snapshots
        self._candles = candles
        self._cooldown = float(cooldown)
        self._clock = clock
        self._snapshot: Optional[PoolSnapshot] = None
        self._envelope: Optional[Envelope] = None
        self._selection: Optional[RangeSelection] = None
        self._resync: Optional[ResyncContext] = None
        self._generation = 0
        self._closed = False
        # closed together with the tracker (HTTP clients)
        self._resources = list(resources)
        if candles is not None:
            candles.subscribe(self.on_candles)

    # --- snapshot ---

    @property
    def snapshot(self) -> Optional[PoolSnapshot]:
        return self._snapshot

    @property
    def envelope(self) -> Envelope:
        if self._envelope is None:
            raise RuntimeError("Pool not loaded")
        return self._envelope

    @property
    def selection(self) -> RangeSelection:
        if self._selection is None:
            raise RuntimeError("Pool not loaded")
        return self._selection

    @property
    def resync_context(self) -> Optional[ResyncContext]:
        return self._resync

    @property
    def closed(self) -> bool:
        return self._closed

    def _commit(self, snapshot: PoolSnapshot, generation: int, initial: bool) -> bool:
        if self._closed or generation != self._generation:
            logger.debug("Discarding stale snapshot for %s", self.pool_address)
            return False
        fetched_at = self._clock()
        self._snapshot = snapshot
        self._envelope = full_range(snapshot)
        if initial or self._selection is None:
            self._selection = RangeSelection.full(self._envelope)
        reference = snapshot.token_x.usd_price
        if self._resync is None:
            self._resync = ResyncContext.for_snapshot(reference, snapshot.bin_step, fetched_at, cooldown=self._cooldown)
        else:
            self._resync = self._resync.after_fetch(reference, snapshot.bin_step, fetched_at)
        return True

    def load(self) -> PoolSnapshot:
        """Initial load. Upstream failures propagate to the caller."""
        self._generation += 1
        generation = self._generation
        snapshot = self._snapshots.fetch_snapshot(self.pool_address)
        if self._commit(snapshot, generation, initial=True):
            logger.info(
                "Loaded pool %s: %d bins, active bin %d, bin step %d",
                self.pool_address, len(snapshot.bins), snapshot.active_bin_id, snapshot.bin_step,
            )
        return snapshot

    def refresh(self) -> bool:
        """Background refresh; failures keep the last-good snapshot."""
        if self._closed:
            return False
        self._generation += 1
        generation = self._generation
        try:
            snapshot = self._snapshots.fetch_snapshot(self.pool_address)
        except UpstreamError as exc:
            logger.warning("Background refresh of %s failed: %s", self.pool_address, exc)
            return False
        committed = self._commit(snapshot, generation, initial=False)
        if committed:
            logger.info("Refreshed pool %s (active bin %d)", self.pool_address, snapshot.active_bin_id)
        return committed

    # --- range view ---

    def set_range(self, low: Any = None, high: Any = None) -> RangeSelection:
        sel = self.selection
        if low is not None:
            sel = sel.with_low(low)
        if high is not None:
            sel = sel.with_high(high)
        self._selection = sel
        return sel

    def reset_range(self) -> RangeSelection:
        self._selection = self.selection.reset(self.envelope)
        return self._selection

    def view(self) -> ChartView:
        if self._snapshot is None:
            raise RuntimeError("Pool not loaded")
        sel = self.selection
        return build_chart_view(self._snapshot, sel.low, sel.high)

    def bars(self, view: Optional[ChartView] = None) -> List[BinBar]:
        view = view or self.view()
        snap = self._snapshot
        return [bin_bar(b, view, snap.token_x.usd_price, snap.token_y.usd_price) for b in view.bins]

    # --- candles / resync ---

    @property
    def candles(self) -> Optional[CandleStreamController]:
        return self._candles

    def select_interval(self, interval: str, count: Optional[int] = None) -> CandleSeries:
        if self._candles is None or self._snapshot is None:
            raise RuntimeError("Candle stream needs a loaded pool and a candle controller")
        return self._candles.select(self._snapshot.token_x.mint, interval, count=count)

    def on_candles(self, series: CandleSeries) -> ResyncDecision:
        if self._closed or self._resync is None:
            return ResyncDecision.NONE
        latest = series.latest
        decision = evaluate(self._resync, latest.close if latest else None, self._clock())
        if decision is ResyncDecision.DROPPED:
            logger.debug("Resync for %s dropped: cooldown not elapsed", self.pool_address)
        elif decision is ResyncDecision.REFRESH:
            logger.info("Price moved past one bin step for %s, refreshing bins", self.pool_address)
            self.refresh()
        return decision

    def tick(self) -> bool:
        """Poll candles when due. True when the poll committed a new snapshot."""
        if self._candles is None or self._closed or not self._candles.poll_due():
            return False
        before = self._snapshot
        self._candles.poll()
        return self._snapshot is not before

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._candles is not None:
            self._candles.close()
        for resource in self._resources:
            resource.close()
        self._resources.clear()
