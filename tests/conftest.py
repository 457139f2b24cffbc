from typing import Optional

import pytest

from dlmm_liquidity.models import BinRecord, Candle, PoolSnapshot, TokenDescriptor

POOL = "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"
MINT_X = "So11111111111111111111111111111111111111112"
MINT_Y = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_bin():
    def _make(bin_id: int, price: float, x: float = 1.0, y: float = 0.0, active: bool = False) -> BinRecord:
        return BinRecord(
            bin_id=bin_id,
            x_amount=str(int(x * 10**9)),
            y_amount=str(int(y * 10**6)),
            x_amount_decimal=x,
            y_amount_decimal=y,
            price=str(price),
            price_per_token=str(price),
            supply="0",
            is_active_bin=active,
        )

    return _make


@pytest.fixture
def make_snapshot():
    def _make(bins, usd_x: Optional[float] = 1.0, usd_y: Optional[float] = 1.0, bin_step: int = 25) -> PoolSnapshot:
        active = next((b.bin_id for b in bins if b.is_active_bin), 0)
        return PoolSnapshot(
            pool_address=POOL,
            active_bin_id=active,
            bin_step=bin_step,
            token_x=TokenDescriptor(mint=MINT_X, decimals=9, symbol="SOL", name="Wrapped SOL", usd_price=usd_x),
            token_y=TokenDescriptor(mint=MINT_Y, decimals=6, symbol="USDC", name="USD Coin", usd_price=usd_y),
            bins=tuple(bins),
        )

    return _make


@pytest.fixture
def make_candle():
    def _make(t: int, close: float, open_: Optional[float] = None, volume: float = 10.0) -> Candle:
        o = close if open_ is None else open_
        return Candle(time=t, open=o, high=max(o, close), low=min(o, close), close=close, volume=volume)

    return _make
