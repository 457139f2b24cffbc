import os
from dataclasses import dataclass


@dataclass
class AppConfig:
    pool_api_url: str
    token_api_url: str
    chart_api_url: str
    # Polling / resync
    candle_refresh_seconds: int
    pool_refetch_cooldown_seconds: int
    default_interval: str
    quote_currency: str
    # HTTP behaviour
    request_rps: float
    max_retries: int
    backoff_seconds: float
    request_timeout_seconds: float
    log_level: str


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(float(val))
    except Exception:
        return default


def _get_env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except Exception:
        return default


def _get_env_str(name: str, default: str) -> str:
    val = os.getenv(name)
    if val is None or val.strip() == "":
        return default
    return val.strip()


def load_config() -> AppConfig:
    # The pool API serves raw bin snapshots; token and chart data come from Jupiter's data API
    pool_api_url = _get_env_str("DLMM_POOL_API_URL", "http://localhost:3000/api")
    token_api_url = _get_env_str("TOKEN_API_URL", "https://datapi.jup.ag/v1")
    chart_api_url = _get_env_str("CHART_API_URL", "https://datapi.jup.ag/v2")

    candle_refresh_seconds = _get_env_int("CANDLE_REFRESH_SECONDS", 10)
    pool_refetch_cooldown_seconds = _get_env_int("POOL_REFETCH_COOLDOWN_SECONDS", 30)
    default_interval = _get_env_str("DEFAULT_INTERVAL", "5m")
    quote_currency = _get_env_str("QUOTE_CURRENCY", "usd")

    request_rps = _get_env_float("REQUEST_RPS", 3.0)
    max_retries = _get_env_int("MAX_RETRIES", 3)
    backoff_seconds = _get_env_float("BACKOFF_SECONDS", 0.8)
    request_timeout_seconds = _get_env_float("REQUEST_TIMEOUT_SECONDS", 30.0)
    log_level = _get_env_str("LOG_LEVEL", "INFO").upper()

    return AppConfig(
        pool_api_url=pool_api_url.rstrip("/"),
        token_api_url=token_api_url.rstrip("/"),
        chart_api_url=chart_api_url.rstrip("/"),
        candle_refresh_seconds=max(1, candle_refresh_seconds),
        pool_refetch_cooldown_seconds=max(0, pool_refetch_cooldown_seconds),
        default_interval=default_interval,
        quote_currency=quote_currency,
        request_rps=request_rps,
        max_retries=max(1, max_retries),
        backoff_seconds=max(0.0, backoff_seconds),
        request_timeout_seconds=request_timeout_seconds,
        log_level=log_level,
    )
