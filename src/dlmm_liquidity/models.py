from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union


def _opt_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        out = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return out if math.isfinite(out) else None


def _opt_int(value: Any) -> Optional[int]:
    f = _opt_float(value)
    return int(f) if f is not None else None


@dataclass(frozen=True)
class TokenDescriptor:
    mint: str
    decimals: int
    symbol: str
    name: str
    icon: str = ""
    usd_price: Optional[float] = None
    mcap: Optional[float] = None
    liquidity: Optional[float] = None
    holder_count: Optional[int] = None
    website: Optional[str] = None
    twitter: Optional[str] = None
    organic_score: Optional[float] = None
    organic_score_label: Optional[str] = None
    is_verified: bool = False

    @staticmethod
    def from_asset(mint: str, decimals: int, asset: Optional[Dict[str, Any]]) -> "TokenDescriptor":
        """Build a descriptor from a token-metadata record, falling back when the record is missing."""
        a = asset or {}
        return TokenDescriptor(
            mint=mint,
            decimals=int(decimals),
            symbol=a.get("symbol") or mint[:4],
            name=a.get("name") or "Unknown",
            icon=a.get("icon") or "",
            usd_price=_opt_float(a.get("usdPrice")),
            mcap=_opt_float(a.get("mcap")),
            liquidity=_opt_float(a.get("liquidity")),
            holder_count=_opt_int(a.get("holderCount")),
            website=a.get("website") or None,
            twitter=a.get("twitter") or None,
            organic_score=_opt_float(a.get("organicScore")),
            organic_score_label=a.get("organicScoreLabel") or None,
            is_verified=bool(a.get("isVerified", False)),
        )


@dataclass(frozen=True)
class BinRecord:
    bin_id: int
    x_amount: str
    y_amount: str
    x_amount_decimal: float
    y_amount_decimal: float
    price: str
    price_per_token: str
    supply: str
    is_active_bin: bool = False

    @property
    def price_value(self) -> float:
        """Numeric price per token; NaN when the exact string does not parse."""
        try:
            return float(self.price_per_token)
        except (TypeError, ValueError):
            return math.nan

    @property
    def has_liquidity(self) -> bool:
        return self.x_amount_decimal > 0 or self.y_amount_decimal > 0

    def usd_total(self, usd_x: Optional[float], usd_y: Optional[float]) -> float:
        px = usd_x if usd_x is not None else 0.0
        py = usd_y if usd_y is not None else 0.0
        return self.x_amount_decimal * px + self.y_amount_decimal * py


@dataclass(frozen=True)
class PoolSnapshot:
    pool_address: str
    active_bin_id: int
    bin_step: int
    token_x: TokenDescriptor
    token_y: TokenDescriptor
    bins: Tuple[BinRecord, ...] = ()

    @property
    def active_bin(self) -> Optional[BinRecord]:
        for b in self.bins:
            if b.is_active_bin:
                return b
        return None

    @property
    def active_price(self) -> float:
        # 0.0 stands for "no usable active price"; callers treat <= 0 as the fallback case
        active = self.active_bin
        if active is None:
            return 0.0
        price = active.price_value
        return price if math.isfinite(price) else 0.0


@dataclass(frozen=True)
class Candle:
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @staticmethod
    def from_json(data: Dict[str, Any]) -> "Candle":
        return Candle(
            time=int(data["time"]),
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
            volume=float(data.get("volume") or 0.0),
        )

    @property
    def is_up(self) -> bool:
        return self.close >= self.open


@dataclass(frozen=True)
class BinRow:
    bin: BinRecord
    kind: str = field(default="bin", init=False)


@dataclass(frozen=True)
class GapRow:
    from_bin_id: int
    to_bin_id: int
    count: int
    kind: str = field(default="gap", init=False)


ChartRow = Union[BinRow, GapRow]


@dataclass(frozen=True)
class ChartView:
    rows: Tuple[ChartRow, ...]
    max_usd_total: float
    active_price: float
    visible_bins: int
    gap_bins: int

    @property
    def bins(self) -> Tuple[BinRecord, ...]:
        return tuple(r.bin for r in self.rows if isinstance(r, BinRow))

    @property
    def is_empty(self) -> bool:
        return not self.rows


@dataclass(frozen=True)
class Envelope:
    full_low: int
    full_high: int
