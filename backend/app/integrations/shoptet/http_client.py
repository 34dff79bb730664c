"""
Low-level HTTP client for the Shoptet REST API: auth header, timeouts, retries.
  - one instance per shop (the private API token is per shop);
  - network errors / 5xx / 429 are retried with exponential backoff + jitter;
  - 401/403 -> RemoteAuthExpired, other 4xx -> RemoteListFailure, no retry;
  - get_json only, it knows nothing about order fields.
"""

from __future__ import annotations
import logging
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import urljoin

import requests

from app.core.config import settings
from app.integrations.shoptet.errors import (
    RemoteAuthExpired, RemoteListFailure, RemotePayloadError, RemoteRateLimited,
)
from app.utils.backoff import calc_backoff_seconds, retry_after_seconds

logger = logging.getLogger(__name__)

TOKEN_HEADER = "Shoptet-Private-Api-Token"


class ShoptetHttpClient:
    """Shoptet API client for a single shop."""

    def __init__(
        self,
        api_token: str,
        base_url: Optional[str] = None,
        connect_timeout: Optional[int] = None,
        read_timeout: Optional[int] = None,
        max_attempts: Optional[int] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = (base_url or settings.SHOPTET_BASE_URL).rstrip("/") + "/"
        self.api_token = api_token
        self.connect_timeout = connect_timeout or settings.SHOPTET_CONNECT_TIMEOUT
        self.read_timeout = read_timeout or settings.SHOPTET_READ_TIMEOUT
        self.max_attempts = max_attempts or settings.SHOPTET_HTTP_RETRIES
        self._session = session or requests.Session()
        self._sleep = sleep

    # ---------- Public ----------
    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        resp = self._request("GET", path, params=params)
        return self._as_json(resp)

    # ---------- Internals ----------
    def _as_json(self, resp: requests.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            text = (resp.text or "")[:500]
            raise RemotePayloadError(f"non-JSON response (status={resp.status_code}): {text}") from e

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        if not self.api_token:
            raise RemoteAuthExpired("shop API token not configured")

        url = urljoin(self.base_url, path.lstrip("/"))
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/vnd.shoptet.v1.0",
            TOKEN_HEADER: self.api_token,
        }
        timeout = (self.connect_timeout, self.read_timeout)

        for attempt in range(1, self.max_attempts + 1):
            last = attempt == self.max_attempts
            try:
                resp = self._session.request(method, url, headers=headers, timeout=timeout, **kwargs)
            except requests.RequestException as e:
                if last:
                    raise RemoteListFailure(f"request error: {e}") from e
                self._backoff(attempt)
                continue

            logger.debug("Shoptet response: %s %s -> %s", method, url, resp.status_code)

            if resp.status_code == 429:
                retry_after = retry_after_seconds(
                    resp.headers.get("Retry-After"), settings.SHOPTET_HTTP_BACKOFF_MAX_SEC
                )
                if last:
                    raise RemoteRateLimited(f"429 after {attempt} attempts: {url}", retry_after=retry_after)
                self._backoff(attempt, retry_after)
                continue

            if resp.status_code in (401, 403):
                raise RemoteAuthExpired(f"{resp.status_code} from {url}: {(resp.text or '')[:300]}")

            if resp.status_code >= 500:
                if last:
                    raise RemoteListFailure(f"{resp.status_code} after {attempt} attempts: {(resp.text or '')[:300]}")
                self._backoff(attempt)
                continue

            if resp.status_code >= 400:
                raise RemoteListFailure(f"{resp.status_code} client error: {(resp.text or '')[:300]}")

            return resp

        raise RemoteListFailure("unreachable retry loop")

    def _backoff(self, attempt: int, retry_after: Optional[float] = None) -> None:
        delay = retry_after if retry_after is not None else calc_backoff_seconds(
            attempt, max_seconds=settings.SHOPTET_HTTP_BACKOFF_MAX_SEC
        )
        logger.info("Shoptet request retry attempt=%d sleep=%.1fs", attempt, delay)
        self._sleep(delay)
