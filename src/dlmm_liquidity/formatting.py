from __future__ import annotations


def truncate_address(addr: str, keep: int = 4) -> str:
    if len(addr) <= keep * 2:
        return addr
    return f"{addr[:keep]}...{addr[-keep:]}"


def _compact(n: float) -> str:
    if n >= 1_000_000_000:
        return f"{n / 1_000_000_000:.2f}B"
    if n >= 1_000_000:
        return f"{n / 1_000_000:.2f}M"
    if n >= 1_000:
        return f"{n / 1_000:.2f}K"
    if n >= 1:
        return f"{n:.2f}"
    return f"{n:.3g}"


def format_full_amount(n: float) -> str:
    if n == 0:
        return "0"
    text = f"{n:,.6f}".rstrip("0").rstrip(".")
    return text or "0"


def format_usd(n: float) -> str:
    return "$" + _compact(n)


def format_price_movement(pct: float) -> str:
    pct = pct + 0.0  # -0.0 -> 0.0
    sign = "+" if pct >= 0 else ""
    return f"{sign}{pct:.2f}%"


def format_price(price: float, precision: int) -> str:
    return f"${price:.{precision}f}"


def format_volume(v: float) -> str:
    if v >= 1e9:
        return f"{v / 1e9:.1f}B"
    if v >= 1e6:
        return f"{v / 1e6:.1f}M"
    if v >= 1e3:
        return f"{v / 1e3:.1f}K"
    return f"{v:.0f}"
