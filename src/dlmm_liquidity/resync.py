"""Price-deviation resync policy between the candle stream and the bin snapshot.

The policy is a pure predicate over an explicit ``ResyncContext``. A tick whose
close moved at least one bin step away from the snapshot's reference price asks
for a refresh; the refresh only runs when the cooldown since the last completed
snapshot fetch has elapsed. Requests inside the cooldown are dropped, not queued.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

POOL_REFETCH_COOLDOWN_SECONDS = 30.0


def bin_step_threshold(bin_step: int) -> float:
    """Bin step is expressed in basis points: 25 -> 0.0025."""
    return bin_step / 10_000


def price_deviation(latest_close: float, reference_price: float) -> float:
    return abs(latest_close - reference_price) / reference_price


class ResyncDecision(Enum):
    NONE = "none"          # price still inside the current bin step
    DROPPED = "dropped"    # threshold crossed but cooldown not elapsed
    REFRESH = "refresh"    # fetch a new snapshot

    @property
    def should_refresh(self) -> bool:
        return self is ResyncDecision.REFRESH


@dataclass(frozen=True)
class ResyncContext:
    reference_price: Optional[float]
    last_fetch_at: float
    threshold: float
    cooldown: float = POOL_REFETCH_COOLDOWN_SECONDS

    @staticmethod
    def for_snapshot(
        reference_price: Optional[float],
        bin_step: int,
        fetched_at: float,
        cooldown: float = POOL_REFETCH_COOLDOWN_SECONDS,
    ) -> "ResyncContext":
        return ResyncContext(
            reference_price=reference_price,
            last_fetch_at=fetched_at,
            threshold=bin_step_threshold(bin_step),
            cooldown=cooldown,
        )

    def after_fetch(self, reference_price: Optional[float], bin_step: int, fetched_at: float) -> "ResyncContext":
        return replace(
            self,
            reference_price=reference_price,
            threshold=bin_step_threshold(bin_step),
            last_fetch_at=fetched_at,
        )


def threshold_crossed(ctx: ResyncContext, latest_close: Optional[float]) -> bool:
    if latest_close is None or not ctx.reference_price or ctx.reference_price <= 0:
        return False
    if ctx.threshold <= 0:
        return False
    return price_deviation(latest_close, ctx.reference_price) >= ctx.threshold


def cooldown_elapsed(ctx: ResyncContext, now: float) -> bool:
    return now - ctx.last_fetch_at >= ctx.cooldown


def evaluate(ctx: ResyncContext, latest_close: Optional[float], now: float) -> ResyncDecision:
    if not threshold_crossed(ctx, latest_close):
        return ResyncDecision.NONE
    if not cooldown_elapsed(ctx, now):
        return ResyncDecision.DROPPED
    return ResyncDecision.REFRESH
