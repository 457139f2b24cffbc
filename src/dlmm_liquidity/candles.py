from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from .errors import InvalidIntervalError
from .models import Candle

logger = logging.getLogger(__name__)

MAX_CANDLES = 1000
REFRESH_SECONDS = 10

# label -> (upstream interval name, default candle count)
INTERVALS: Dict[str, Tuple[str, int]] = {
    "1m": ("1_MINUTE", 700),
    "5m": ("5_MINUTE", 700),
    "15m": ("15_MINUTE", 700),
    "1h": ("1_HOUR", 700),
    "4h": ("4_HOUR", 700),
    "1d": ("1_DAY", 365),
    "1w": ("1_WEEK", 200),
}
_UPSTREAM_TO_LABEL = {v[0]: k for k, v in INTERVALS.items()}


def validate_interval(value: str) -> str:
    """Return the canonical label (``"5m"``) for a label or upstream name; raise on anything else."""
    if isinstance(value, str):
        key = value.strip()
        if key.lower() in INTERVALS:
            return key.lower()
        if key.upper() in _UPSTREAM_TO_LABEL:
            return _UPSTREAM_TO_LABEL[key.upper()]
    raise InvalidIntervalError(f"Invalid interval {value!r}. Use: {', '.join(INTERVALS)}")


def upstream_interval(label: str) -> str:
    return INTERVALS[validate_interval(label)][0]


def default_candle_count(label: str) -> int:
    return INTERVALS[validate_interval(label)][1]


def clamp_candle_count(count: int) -> int:
    return max(1, min(int(count), MAX_CANDLES))


def dedupe_candles(candles: Iterable[Candle]) -> Tuple[Candle, ...]:
    """Order by time; a repeated timestamp keeps the last candle seen."""
    by_time: Dict[int, Candle] = {}
    for c in candles:
        by_time[c.time] = c
    return tuple(by_time[t] for t in sorted(by_time))


def detect_precision(candles: Iterable[Candle]) -> int:
    closes = np.array([c.close for c in candles], dtype=float)
    if closes.size == 0:
        return 2
    mid = float(np.mean(closes))
    if mid >= 1000:
        return 2
    if mid >= 1:
        return 4
    if mid >= 0.01:
        return 6
    if mid >= 0.0001:
        return 8
    return 10


class StreamState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    REFRESHING = "refreshing"
    FAILED = "failed"


@dataclass(frozen=True)
class CandleSeries:
    state: StreamState = StreamState.IDLE
    mint: Optional[str] = None
    interval: Optional[str] = None
    candles: Tuple[Candle, ...] = ()
    by_time: Mapping[int, Candle] = field(default_factory=lambda: MappingProxyType({}))
    needs_fit: bool = False
    error: Optional[str] = None
    generation: int = 0

    @property
    def latest(self) -> Optional[Candle]:
        return self.candles[-1] if self.candles else None

    @property
    def precision(self) -> int:
        return detect_precision(self.candles)

    def candle_at(self, ts: Optional[int]) -> Optional[Candle]:
        if ts is None:
            return None
        return self.by_time.get(int(ts))


# --- Pure transitions ---

def select_series(series: CandleSeries, mint: str, interval: str) -> CandleSeries:
    """Discard the previous series and start loading a new one (any state -> LOADING)."""
    return CandleSeries(
        state=StreamState.LOADING,
        mint=mint,
        interval=validate_interval(interval),
        generation=series.generation + 1,
    )


def begin_refresh(series: CandleSeries) -> CandleSeries:
    if series.state is not StreamState.READY:
        return series
    return replace(series, state=StreamState.REFRESHING)


def apply_candles(series: CandleSeries, generation: int, candles: Iterable[Candle]) -> CandleSeries:
    if generation != series.generation:
        return series
    if series.state not in (StreamState.LOADING, StreamState.REFRESHING):
        return series
    ordered = dedupe_candles(candles)
    return replace(
        series,
        state=StreamState.READY,
        candles=ordered,
        by_time=MappingProxyType({c.time: c for c in ordered}),
        # only the initial load asks for a refit of the visible extent
        needs_fit=True if series.state is StreamState.LOADING else series.needs_fit,
        error=None,
    )


def apply_failure(series: CandleSeries, generation: int, error: str) -> CandleSeries:
    if generation != series.generation:
        return series
    if series.state is StreamState.LOADING:
        return replace(series, state=StreamState.FAILED, error=error)
    if series.state is StreamState.REFRESHING:
        return replace(series, state=StreamState.READY)
    return series


def consume_fit(series: CandleSeries) -> Tuple[CandleSeries, bool]:
    if not series.needs_fit:
        return series, False
    return replace(series, needs_fit=False), True


def invalidate(series: CandleSeries) -> CandleSeries:
    """Make every in-flight completion stale."""
    return replace(series, generation=series.generation + 1)


# --- Controller ---

SeriesListener = Callable[[CandleSeries], None]


class CandleStreamController:
    """Drives the candle state machine from a candle source and a fixed polling period."""

    def __init__(
        self,
        source,
        refresh_seconds: float = REFRESH_SECONDS,
        quote: str = "usd",
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._refresh_seconds = float(refresh_seconds)
        self._quote = quote
        self._clock = clock
        self._series = CandleSeries()
        self._count = 0
        self._last_poll_at: Optional[float] = None
        self._listeners: List[SeriesListener] = []

    @property
    def series(self) -> CandleSeries:
        return self._series

    def subscribe(self, listener: SeriesListener) -> None:
        self._listeners.append(listener)

    def _emit(self) -> None:
        for listener in self._listeners:
            listener(self._series)

    def select(self, mint: str, interval: str, count: Optional[int] = None) -> CandleSeries:
        self._series = select_series(self._series, mint, interval)
        label = self._series.interval or interval
        self._count = clamp_candle_count(count if count is not None else default_candle_count(label))
        generation = self._series.generation
        try:
            candles = self._source.fetch_candles(mint, label, self._quote, self._count)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Initial candle load failed for %s %s: %s", mint, label, exc)
            self._series = apply_failure(self._series, generation, str(exc))
            self._last_poll_at = self._clock()
            return self._series
        before = self._series
        self._series = apply_candles(self._series, generation, candles)
        self._last_poll_at = self._clock()
        if self._series is not before:
            logger.info("Loaded %d candles for %s %s", len(self._series.candles), mint, label)
            self._emit()
        return self._series

    def poll_due(self, now: Optional[float] = None) -> bool:
        if self._last_poll_at is None:
            return False
        now = self._clock() if now is None else now
        return now - self._last_poll_at >= self._refresh_seconds

    def poll(self) -> CandleSeries:
        """One timer tick: READY -> REFRESHING -> READY. Other states ignore the tick."""
        if self._series.state is not StreamState.READY:
            return self._series
        self._series = begin_refresh(self._series)
        generation = self._series.generation
        mint = self._series.mint or ""
        label = self._series.interval or ""
        self._last_poll_at = self._clock()
        try:
            candles = self._source.fetch_candles(mint, label, self._quote, self._count)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Candle refresh failed for %s %s, keeping last series: %s", mint, label, exc)
            self._series = apply_failure(self._series, generation, str(exc))
            return self._series
        before = self._series
        self._series = apply_candles(self._series, generation, candles)
        if self._series is not before:
            self._emit()
        return self._series

    def hover(self, ts: Optional[int]) -> Optional[Candle]:
        return self._series.candle_at(ts)

    def display_candle(self, ts: Optional[int] = None) -> Optional[Candle]:
        """Hovered candle if any, else the latest one."""
        return self.hover(ts) or self._series.latest

    def consume_fit(self) -> bool:
        self._series, fit = consume_fit(self._series)
        return fit

    def close(self) -> None:
        self._series = replace(invalidate(self._series), state=StreamState.IDLE)
        self._listeners.clear()

