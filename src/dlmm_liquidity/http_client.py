from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import httpx

from .errors import ApiResponseError, UpstreamUnavailableError

logger = logging.getLogger(__name__)


class JsonHttpClient:
    def __init__(
        self,
        base_url: str,
        max_retries: int = 3,
        backoff_seconds: float = 0.8,
        request_rps: float = 3.0,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._max_retries = max(1, int(max_retries))
        self._backoff = backoff_seconds
        self._client = httpx.Client(timeout=timeout, transport=transport)
        # Simple rate limiter based on min interval between calls
        self._min_interval = 1.0 / max(0.1, float(request_rps))
        self._last_request_ts = 0.0

    def _throttle(self) -> None:
        now = time.monotonic()
        sleep_for = (self._last_request_ts + self._min_interval) - now
        if sleep_for > 0:
            time.sleep(sleep_for)

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET ``path`` and decode JSON.

        Network errors, 429 and 5xx are retried with exponential backoff and end in
        ``UpstreamUnavailableError``; any other 4xx raises ``ApiResponseError`` at once.
        """
        url = f"{self._base_url}/{path.lstrip('/')}"
        last_exc: Optional[Exception] = None
        for attempt in range(self._max_retries):
            try:
                self._throttle()
                resp = self._client.get(url, params=params)
                self._last_request_ts = time.monotonic()
                status = resp.status_code
                if status == 429 or status >= 500:
                    last_exc = ApiResponseError(status, resp.text)
                elif status >= 400:
                    raise ApiResponseError(status, resp.text)
                else:
                    return resp.json()
            except ApiResponseError:
                raise
            except (httpx.HTTPError, ValueError) as exc:
                last_exc = exc
            logger.debug("GET %s failed (attempt %d/%d): %s", url, attempt + 1, self._max_retries, last_exc)
            if attempt + 1 < self._max_retries:
                time.sleep(self._backoff * (2 ** attempt))
        raise UpstreamUnavailableError(f"GET {url} failed after {self._max_retries} attempts: {last_exc}")

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "JsonHttpClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
