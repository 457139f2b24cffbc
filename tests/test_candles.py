import pytest

from dlmm_liquidity.candles import (
    CandleSeries,
    CandleStreamController,
    StreamState,
    apply_candles,
    apply_failure,
    begin_refresh,
    clamp_candle_count,
    consume_fit,
    dedupe_candles,
    default_candle_count,
    detect_precision,
    invalidate,
    select_series,
    upstream_interval,
    validate_interval,
)
from dlmm_liquidity.errors import InvalidIntervalError, UpstreamUnavailableError

from conftest import MINT_X, MINT_Y


class FakeCandleSource:
    def __init__(self, batches):
        self.batches = list(batches)
        self.calls = []

    def fetch_candles(self, mint, interval, quote, count):
        self.calls.append((mint, interval, quote, count))
        item = self.batches.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def test_validate_interval_accepts_labels_and_upstream_names():
    assert validate_interval("5m") == "5m"
    assert validate_interval("1H") == "1h"
    assert validate_interval("1_DAY") == "1d"
    assert upstream_interval("15m") == "15_MINUTE"
    assert upstream_interval("1w") == "1_WEEK"


@pytest.mark.parametrize("value", ["2m", "", "minute", None])
def test_validate_interval_rejects_unknown(value):
    with pytest.raises(InvalidIntervalError):
        validate_interval(value)


def test_default_counts_and_clamp():
    assert default_candle_count("5m") == 700
    assert default_candle_count("1d") == 365
    assert default_candle_count("1w") == 200
    assert clamp_candle_count(5000) == 1000
    assert clamp_candle_count(0) == 1


def test_dedupe_candles_orders_by_time_last_wins(make_candle):
    out = dedupe_candles([make_candle(3, 1.0), make_candle(1, 2.0), make_candle(3, 5.0)])
    assert [c.time for c in out] == [1, 3]
    assert out[1].close == 5.0


@pytest.mark.parametrize(
    "close,expected",
    [(2500.0, 2), (150.0, 4), (0.5, 6), (0.002, 8), (0.00001, 10)],
)
def test_detect_precision(make_candle, close, expected):
    assert detect_precision([make_candle(1, close)]) == expected


def test_detect_precision_empty():
    assert detect_precision([]) == 2


# --- pure transitions ---

def test_select_always_starts_loading():
    s = select_series(CandleSeries(), MINT_X, "5m")
    assert s.state is StreamState.LOADING
    assert s.generation == 1
    assert s.candles == ()
    again = select_series(s, MINT_Y, "1h")
    assert again.state is StreamState.LOADING
    assert again.generation == 2
    assert again.mint == MINT_Y


def test_initial_load_asks_for_fit_once(make_candle):
    s = select_series(CandleSeries(), MINT_X, "5m")
    s = apply_candles(s, s.generation, [make_candle(2, 1.0), make_candle(1, 1.0)])
    assert s.state is StreamState.READY
    assert s.needs_fit
    assert [c.time for c in s.candles] == [1, 2]
    s, fit = consume_fit(s)
    assert fit
    s, fit = consume_fit(s)
    assert not fit


def test_refresh_does_not_refit(make_candle):
    s = select_series(CandleSeries(), MINT_X, "5m")
    s = apply_candles(s, s.generation, [make_candle(1, 1.0)])
    s, _ = consume_fit(s)
    s = begin_refresh(s)
    assert s.state is StreamState.REFRESHING
    s = apply_candles(s, s.generation, [make_candle(1, 1.0), make_candle(2, 1.1)])
    assert s.state is StreamState.READY
    assert not s.needs_fit
    assert s.latest.close == 1.1


def test_stale_completion_is_ignored(make_candle):
    s = select_series(CandleSeries(), MINT_X, "5m")
    old_gen = s.generation
    s = select_series(s, MINT_X, "1h")
    assert apply_candles(s, old_gen, [make_candle(1, 1.0)]) is s
    assert apply_failure(s, old_gen, "boom") is s
    assert apply_candles(invalidate(s), s.generation, [make_candle(1, 1.0)]).state is StreamState.LOADING


def test_begin_refresh_only_from_ready():
    s = select_series(CandleSeries(), MINT_X, "5m")
    assert begin_refresh(s) is s


def test_failure_during_load_and_refresh(make_candle):
    s = select_series(CandleSeries(), MINT_X, "5m")
    failed = apply_failure(s, s.generation, "boom")
    assert failed.state is StreamState.FAILED
    assert failed.error == "boom"

    ready = apply_candles(s, s.generation, [make_candle(1, 1.0)])
    refreshing = begin_refresh(ready)
    back = apply_failure(refreshing, refreshing.generation, "timeout")
    assert back.state is StreamState.READY
    assert back.candles == ready.candles
    assert back.error is None


def test_candle_at(make_candle):
    s = select_series(CandleSeries(), MINT_X, "5m")
    s = apply_candles(s, s.generation, [make_candle(60, 1.0), make_candle(120, 2.0)])
    assert s.candle_at(120).close == 2.0
    assert s.candle_at(90) is None
    assert s.candle_at(None) is None


# --- controller ---

def test_controller_select_and_poll(clock, make_candle):
    source = FakeCandleSource([
        [make_candle(1, 1.0)],
        [make_candle(1, 1.0), make_candle(2, 1.2)],
    ])
    seen = []
    ctl = CandleStreamController(source, refresh_seconds=10, quote="usd", clock=clock)
    ctl.subscribe(seen.append)

    series = ctl.select(MINT_X, "1d")
    assert series.state is StreamState.READY
    assert source.calls[0] == (MINT_X, "1d", "usd", 365)
    assert len(seen) == 1

    assert not ctl.poll_due()
    clock.advance(10)
    assert ctl.poll_due()
    series = ctl.poll()
    assert series.state is StreamState.READY
    assert series.latest.close == 1.2
    assert len(seen) == 2
    assert not ctl.poll_due()


def test_controller_fit_consumed_once(clock, make_candle):
    ctl = CandleStreamController(FakeCandleSource([[make_candle(1, 1.0)]]), clock=clock)
    ctl.select(MINT_X, "5m")
    assert ctl.consume_fit()
    assert not ctl.consume_fit()


def test_controller_initial_failure_is_failed(clock):
    ctl = CandleStreamController(FakeCandleSource([UpstreamUnavailableError("down")]), clock=clock)
    series = ctl.select(MINT_X, "5m", count=50)
    assert series.state is StreamState.FAILED
    assert "down" in series.error
    # polling does not leave FAILED
    clock.advance(60)
    assert ctl.poll() is series


def test_controller_poll_failure_keeps_series(clock, make_candle):
    source = FakeCandleSource([[make_candle(1, 1.0)], RuntimeError("timeout")])
    ctl = CandleStreamController(source, clock=clock)
    first = ctl.select(MINT_X, "5m")
    clock.advance(10)
    after = ctl.poll()
    assert after.state is StreamState.READY
    assert after.candles == first.candles


def test_controller_passes_count_clamped(clock, make_candle):
    source = FakeCandleSource([[make_candle(1, 1.0)]])
    ctl = CandleStreamController(source, clock=clock)
    ctl.select(MINT_X, "5m", count=4000)
    assert source.calls[0][3] == 1000


def test_hover_and_display_candle(clock, make_candle):
    ctl = CandleStreamController(FakeCandleSource([[make_candle(60, 1.0), make_candle(120, 2.0)]]), clock=clock)
    ctl.select(MINT_X, "1m")
    assert ctl.hover(60).close == 1.0
    assert ctl.hover(61) is None
    assert ctl.display_candle(61).close == 2.0
    assert ctl.display_candle().close == 2.0


def test_close_goes_idle_and_drops_listeners(clock, make_candle):
    seen = []
    ctl = CandleStreamController(FakeCandleSource([[make_candle(1, 1.0)]]), clock=clock)
    ctl.subscribe(seen.append)
    ctl.select(MINT_X, "5m")
    gen = ctl.series.generation
    ctl.close()
    assert ctl.series.state is StreamState.IDLE
    assert ctl.series.generation == gen + 1
    clock.advance(60)
    ctl.poll()
    assert len(seen) == 1
