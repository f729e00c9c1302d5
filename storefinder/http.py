"""HTTP client with retry/backoff and request metrics."""
from __future__ import annotations

import json
import logging
import random
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from .cancellation import CancellationToken, check_cancelled, sleep_or_cancel
from .errors import MalformedResponseError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

REQUEST_KINDS = ("places", "oracle", "geocoder")
RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


@dataclass
class RequestMetrics:
    network_places: int = 0
    network_oracle: int = 0
    network_geocoder: int = 0
    cache_hits: int = 0
    fallbacks_places: int = 0
    fallbacks_oracle: int = 0
    fallbacks_pipeline: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def inc_network(self, kind: str) -> None:
        if kind not in REQUEST_KINDS:
            raise ValueError(f"Unknown request kind: {kind}")
        with self._lock:
            name = f"network_{kind}"
            setattr(self, name, getattr(self, name) + 1)

    def inc_cache_hit(self) -> None:
        with self._lock:
            self.cache_hits += 1

    def inc_fallback(self, kind: str) -> None:
        if kind not in ("places", "oracle", "pipeline"):
            raise ValueError(f"Unknown fallback kind: {kind}")
        with self._lock:
            name = f"fallbacks_{kind}"
            setattr(self, name, getattr(self, name) + 1)

    def as_dict(self) -> Dict[str, int]:
        with self._lock:
            return {
                "network_places": self.network_places,
                "network_oracle": self.network_oracle,
                "network_geocoder": self.network_geocoder,
                "cache_hits": self.cache_hits,
                "fallbacks_places": self.fallbacks_places,
                "fallbacks_oracle": self.fallbacks_oracle,
                "fallbacks_pipeline": self.fallbacks_pipeline,
            }


class HttpClient:
    def __init__(
        self,
        timeout: int = 10,
        retry_max: int = 2,
        backoff_base: float = 0.5,
        backoff_max: float = 4.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.retry_max = max(1, retry_max)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.session = session or requests.Session()

    def post_json(
        self,
        url: str,
        body: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        merged = {"Content-Type": "application/json"}
        if headers:
            merged.update(headers)
        payload = json.dumps(body)
        return self._request("POST", url, cancel_token, data=payload, headers=merged)

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        return self._request("GET", url, cancel_token, params=params, headers=headers)

    def _request(
        self, method: str, url: str, cancel_token: Optional[CancellationToken], **kwargs: Any
    ) -> Dict[str, Any]:
        for attempt in range(1, self.retry_max + 1):
            check_cancelled(cancel_token)
            try:
                if method == "POST":
                    resp = self.session.post(url, timeout=self.timeout, **kwargs)
                else:
                    resp = self.session.get(url, timeout=self.timeout, **kwargs)
            except requests.RequestException as exc:
                if attempt >= self.retry_max:
                    raise UpstreamUnavailableError(f"{method} {url} failed: {exc}") from exc
                logger.warning("%s %s failed (attempt %s): %s", method, url, attempt, exc)
                self._sleep_backoff(attempt, cancel_token)
                continue

            # A response that lands after cancellation is discarded.
            check_cancelled(cancel_token)
            status = resp.status_code
            if 200 <= status < 300:
                try:
                    data = resp.json()
                except ValueError as exc:
                    logger.error("Non-JSON response from %s", url)
                    raise MalformedResponseError(f"Non-JSON response from {url}") from exc
                if not isinstance(data, dict):
                    raise MalformedResponseError(
                        f"Expected JSON object from {url}, got {type(data).__name__}"
                    )
                return data

            if status in RETRYABLE_STATUSES:
                logger.warning("HTTP %s from %s (attempt %s)", status, url, attempt)
                if attempt >= self.retry_max:
                    raise UpstreamUnavailableError(f"HTTP {status} from {url}")
                if not self._sleep_retry_after(resp, cancel_token):
                    self._sleep_backoff(attempt, cancel_token)
                continue

            # Non-retryable
            logger.error("HTTP %s from %s", status, url)
            raise UpstreamUnavailableError(f"HTTP {status} from {url}")

        raise UpstreamUnavailableError("Unexpected HTTP retry loop exit")

    def _sleep_backoff(self, attempt: int, cancel_token: Optional[CancellationToken] = None) -> None:
        base = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        jitter = random.uniform(0, self.backoff_base)
        sleep_or_cancel(base + jitter, cancel_token)

    def _sleep_retry_after(
        self, resp: requests.Response, cancel_token: Optional[CancellationToken] = None
    ) -> bool:
        retry_after = resp.headers.get("Retry-After")
        if not retry_after:
            return False
        try:
            delay = float(retry_after)
        except ValueError:
            return False
        delay = max(0.0, min(delay, self.backoff_max))
        sleep_or_cancel(delay, cancel_token)
        return True
