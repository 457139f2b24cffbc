from __future__ import annotations


class DlmmLiquidityError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(DlmmLiquidityError, ValueError):
    """Rejected input; raised before any request is made."""


class InvalidAddressError(ValidationError):
    pass


class InvalidIntervalError(ValidationError):
    pass


class InvalidRangeError(ValidationError):
    pass


class UpstreamError(DlmmLiquidityError):
    pass


class UpstreamUnavailableError(UpstreamError):
    pass


class PoolNotFoundError(UpstreamError):
    pass


class ApiResponseError(UpstreamError):
    """Non-retryable HTTP status returned by an upstream API."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"HTTP {status_code}: {body[:200]}")
        self.status_code = status_code
        self.body = body
