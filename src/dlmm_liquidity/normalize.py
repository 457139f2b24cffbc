from __future__ import annotations

import math
from decimal import Decimal, DecimalException, localcontext
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .models import BinRecord, PoolSnapshot, TokenDescriptor

# Raw reserves are u64/u128 integers; 60 significant digits keeps the division exact
_DECIMAL_PRECISION = 60


def to_decimal_amount(raw: Any, decimals: int) -> float:
    """Convert an integer reserve (exact string) into token units.

    Missing or unparsable reserves are treated as zero liquidity.
    """
    if raw is None:
        return 0.0
    text = str(raw).strip()
    if not text:
        return 0.0
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PRECISION
        try:
            amount = Decimal(text)
            if not amount.is_finite():
                return 0.0
            out = float(amount.scaleb(-int(decimals)))
        except DecimalException:
            return 0.0
    return out if math.isfinite(out) else 0.0


def _exact_str(value: Any, default: str = "0") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def normalize_bin(raw: Mapping[str, Any], decimals_x: int, decimals_y: int, active_bin_id: Optional[int]) -> BinRecord:
    bin_id = int(raw["binId"])
    x_amount = _exact_str(raw.get("xAmount"))
    y_amount = _exact_str(raw.get("yAmount"))
    return BinRecord(
        bin_id=bin_id,
        x_amount=x_amount,
        y_amount=y_amount,
        x_amount_decimal=to_decimal_amount(x_amount, decimals_x),
        y_amount_decimal=to_decimal_amount(y_amount, decimals_y),
        price=_exact_str(raw.get("price")),
        price_per_token=_exact_str(raw.get("pricePerToken"), default=_exact_str(raw.get("price"))),
        supply=_exact_str(raw.get("supply")),
        is_active_bin=active_bin_id is not None and bin_id == active_bin_id,
    )


def normalize_bins(
    raw_bins: Iterable[Mapping[str, Any]],
    decimals_x: int,
    decimals_y: int,
    active_bin_id: Optional[int],
) -> Tuple[BinRecord, ...]:
    """Normalize raw bins, ordered by bin id; a repeated id keeps its last record."""
    by_id: Dict[int, BinRecord] = {}
    for raw in raw_bins:
        rec = normalize_bin(raw, decimals_x, decimals_y, active_bin_id)
        by_id[rec.bin_id] = rec
    return tuple(by_id[k] for k in sorted(by_id))


def assemble_snapshot(raw: Mapping[str, Any], token_meta: Mapping[str, Mapping[str, Any]]) -> PoolSnapshot:
    """Build an immutable snapshot from a raw pool payload and a (partial) token metadata mapping."""
    tx = raw.get("tokenX") or {}
    ty = raw.get("tokenY") or {}
    mint_x = str(tx["mint"])
    mint_y = str(ty["mint"])
    dec_x = int(tx["decimals"])
    dec_y = int(ty["decimals"])
    active_bin_id = raw.get("activeBinId")
    active_bin_id = int(active_bin_id) if active_bin_id is not None else None

    token_x = TokenDescriptor.from_asset(mint_x, dec_x, token_meta.get(mint_x))
    token_y = TokenDescriptor.from_asset(mint_y, dec_y, token_meta.get(mint_y))
    bins = normalize_bins(raw.get("bins") or [], dec_x, dec_y, active_bin_id)

    return PoolSnapshot(
        pool_address=str(raw.get("poolAddress") or ""),
        active_bin_id=active_bin_id if active_bin_id is not None else 0,
        bin_step=int(raw.get("binStep") or 0),
        token_x=token_x,
        token_y=token_y,
        bins=bins,
    )
