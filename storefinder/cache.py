"""Process-wide in-memory TTL cache for classification and candidate results."""
from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from . import config
from .models import GeoPoint, Part

logger = logging.getLogger(__name__)

SWEEP_EVERY_WRITES = 64


def make_cache_key(namespace: str, payload: Dict[str, Any]) -> str:
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    raw = f"{namespace}|{body}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def classification_cache_key(part: Part) -> str:
    return make_cache_key("classify", {"part": part.signature()})


def search_cache_key(part: Part, origin: GeoPoint, max_distance_miles: float, result_cap: int) -> str:
    lat, lon = origin.rounded(config.CACHE_ORIGIN_DECIMALS)
    return make_cache_key(
        "search",
        {
            "part": part.signature(),
            "lat": lat,
            "lon": lon,
            "max_distance_miles": round(float(max_distance_miles), 2),
            "result_cap": int(result_cap),
        },
    )


@dataclass
class _Entry:
    value: Any
    expires_at: float


class TTLCache:
    """Thread-safe key/value cache with per-entry expiry.

    Expired entries are dropped lazily on read. Every ``sweep_every`` writes
    the whole table is swept, so keys that are never read again still go.
    """

    def __init__(
        self,
        ttl_seconds: float = config.CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sweep_every: int = SWEEP_EVERY_WRITES,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if sweep_every < 1:
            raise ValueError("sweep_every must be >= 1")
        self.sweep_every = sweep_every
        self._writes = 0
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= now:
                del self._entries[key]
                logger.debug("Cache entry expired: %s", key[:16])
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else float(ttl_seconds)
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl)
            self._writes += 1
            due = self._writes % self.sweep_every == 0
        if due:
            self.sweep()

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
