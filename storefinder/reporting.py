"""Result serialization and output helpers."""
from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, TextIO

from .geo import format_distance
from .models import PriceEstimate, RankedStore, SearchResult


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


@contextmanager
def atomic_writer(
    path: str,
    mode: str = "w",
    encoding: str = "utf-8",
) -> Iterator[TextIO]:
    dir_path = os.path.dirname(path) or "."
    base = os.path.basename(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{base}.", suffix=".tmp", dir=dir_path)
    try:
        with os.fdopen(fd, mode, encoding=encoding) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def write_json_object(path: str, payload: Dict[str, Any]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)


def price_to_dict(price: Optional[PriceEstimate]) -> Optional[Dict[str, Any]]:
    if price is None:
        return None
    return {
        "amount": price.amount,
        "currency": price.currency,
        "rangeLow": price.range_low,
        "rangeHigh": price.range_high,
        "formatted": price.formatted,
        "range": price.range_formatted,
    }


def store_to_dict(store: RankedStore) -> Dict[str, Any]:
    candidate = store.store
    row: Dict[str, Any] = {
        "id": candidate.id,
        "name": candidate.name,
        "address": candidate.address,
        "coordinates": {
            "lat": candidate.location.latitude,
            "lng": candidate.location.longitude,
        },
        "distanceMiles": store.distance_miles,
        "distanceFormatted": format_distance(store.distance_miles),
        "likelihood": store.likelihood,
        "availabilityLabel": store.availability_label.value,
        "reason": candidate.reason or "",
        "estimatedPrice": price_to_dict(store.estimated_price),
        "relevanceScore": round(store.relevance_score, 2),
        "phone": candidate.phone,
        "rating": candidate.rating,
        "ratingCount": candidate.rating_count,
        "directionsUrl": store.directions_url,
        "provenance": store.provenance,
    }
    if candidate.website:
        row["website"] = candidate.website
    return row


def result_to_dict(result: SearchResult) -> Dict[str, Any]:
    return {
        "generatedAt": utc_now_iso(),
        "provenance": result.provenance,
        "degraded": result.degraded,
        "fromCache": result.from_cache,
        "advisory": result.advisory,
        "stores": [store_to_dict(s) for s in result.stores],
    }


def render_summary(result: SearchResult) -> List[str]:
    lines: List[str] = []
    if result.degraded:
        lines.append("NOTE: synthetic results (live store data unavailable)")
    if not result.stores:
        lines.append("No stores found.")
    for i, store in enumerate(result.stores, start=1):
        price = store.estimated_price.range_formatted if store.estimated_price else "n/a"
        lines.append(
            f"{i}. {store.name} - {format_distance(store.distance_miles)} - "
            f"{store.availability_label.value} ({store.likelihood}%) - est. {price}"
        )
    if result.advisory:
        lines.append(result.advisory)
    return lines
