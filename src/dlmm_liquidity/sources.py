from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Protocol

from solders.pubkey import Pubkey

from .candles import clamp_candle_count, dedupe_candles, upstream_interval, validate_interval
from .errors import (
    ApiResponseError,
    InvalidAddressError,
    PoolNotFoundError,
    UpstreamError,
    UpstreamUnavailableError,
)
from .http_client import JsonHttpClient
from .models import Candle, PoolSnapshot
from .normalize import assemble_snapshot

logger = logging.getLogger(__name__)


def validate_address(address: str) -> str:
    """Return the trimmed address if it is a valid 32-byte base58 public key."""
    text = (address or "").strip()
    if not text:
        raise InvalidAddressError("Address is required")
    try:
        Pubkey.from_string(text)
    except ValueError:
        raise InvalidAddressError(f"Invalid address: {text!r}") from None
    return text


class SnapshotSource(Protocol):
    def fetch_snapshot(self, pool_address: str) -> PoolSnapshot: ...


class CandleSource(Protocol):
    def fetch_candles(self, mint: str, interval: str, quote: str, count: int) -> List[Candle]: ...


class TokenMetadataSource(Protocol):
    def fetch_token_infos(self, mints: Iterable[str]) -> Dict[str, Dict[str, Any]]: ...


class JupiterTokenSource:
    """Token metadata by mint. Missing entries and failed lookups are not errors."""

    def __init__(self, client: JsonHttpClient):
        self._client = client

    def fetch_token_infos(self, mints: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        wanted = [m for m in dict.fromkeys(mints) if m]
        if not wanted:
            return {}
        try:
            data = self._client.get_json("assets/search", params={"query": ",".join(wanted)})
        except UpstreamError as exc:
            logger.warning("Token metadata lookup failed: %s", exc)
            return {}
        if not isinstance(data, list):
            logger.warning("Unexpected token metadata response: %r", type(data).__name__)
            return {}
        out: Dict[str, Dict[str, Any]] = {}
        for asset in data:
            if isinstance(asset, dict) and asset.get("id"):
                out[str(asset["id"])] = asset
        return out


class JupiterCandleSource:
    def __init__(self, client: JsonHttpClient, clock: Callable[[], float] = time.time):
        self._client = client
        self._clock = clock

    def fetch_candles(self, mint: str, interval: str, quote: str = "usd", count: int = 300) -> List[Candle]:
        # validated client-side, before any request
        label = validate_interval(interval)
        if not mint:
            raise InvalidAddressError("mint is required")
        params = {
            "interval": upstream_interval(label),
            "to": int(self._clock() * 1000),
            "candles": clamp_candle_count(count),
            "type": "price",
            "quote": quote,
        }
        data = self._client.get_json(f"charts/{mint}", params=params)
        raw = data.get("candles") if isinstance(data, dict) else None
        candles: List[Candle] = []
        for item in raw or []:
            try:
                candles.append(Candle.from_json(item))
            except (KeyError, TypeError, ValueError, ArithmeticError):
                logger.debug("Skipping malformed candle: %r", item)
        return list(dedupe_candles(candles))


class PoolApiSnapshotSource:
    """Raw bin snapshots from the pool API, enriched with token metadata."""

    def __init__(self, client: JsonHttpClient, tokens: TokenMetadataSource):
        self._client = client
        self._tokens = tokens

    def fetch_raw(self, pool_address: str) -> Mapping[str, Any]:
        address = validate_address(pool_address)
        try:
            data = self._client.get_json(f"pool/{address}")
        except ApiResponseError as exc:
            if exc.status_code == 400:
                raise InvalidAddressError(f"Invalid pool address: {address}") from exc
            if exc.status_code == 404:
                raise PoolNotFoundError(f"Pool not found: {address}") from exc
            raise UpstreamUnavailableError(str(exc)) from exc
        if not isinstance(data, dict):
            raise UpstreamUnavailableError(f"Unexpected pool payload for {address}")
        if data.get("error"):
            raise UpstreamUnavailableError(str(data["error"]))
        data.setdefault("poolAddress", address)
        return data

    def fetch_snapshot(self, pool_address: str) -> PoolSnapshot:
        raw = self.fetch_raw(pool_address)
        try:
            mints = [raw["tokenX"]["mint"], raw["tokenY"]["mint"]]
        except (KeyError, TypeError):
            raise UpstreamUnavailableError(f"Pool payload without token mints: {pool_address}") from None
        meta = self._tokens.fetch_token_infos(mints)
        try:
            return assemble_snapshot(raw, meta)
        except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
            raise UpstreamUnavailableError(f"Malformed pool payload for {pool_address}: {exc}") from exc
