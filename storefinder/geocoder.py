"""Postal code to coordinate lookup."""
from __future__ import annotations

import logging
import re
from typing import Dict, Optional

from . import config
from .cancellation import CancellationToken
from .errors import MalformedResponseError, UpstreamUnavailableError
from .http import HttpClient, RequestMetrics
from .models import GeoPoint

logger = logging.getLogger(__name__)

US_ZIP_RE = re.compile(r"^\d{5}$")

# Used when the lookup service is unreachable.
KNOWN_ZIP_CODES: Dict[str, GeoPoint] = {
    "10001": GeoPoint(40.7505, -73.9934),
    "90210": GeoPoint(34.0901, -118.4065),
    "60601": GeoPoint(41.8781, -87.6298),
    "77001": GeoPoint(29.7604, -95.3698),
    "33101": GeoPoint(25.7617, -80.1918),
    "55101": GeoPoint(44.9537, -93.0900),
    "30301": GeoPoint(33.7490, -84.3880),
    "02101": GeoPoint(42.3601, -71.0589),
    "98101": GeoPoint(47.6062, -122.3321),
    "80201": GeoPoint(39.7392, -104.9903),
}


class Geocoder:
    def geocode(
        self, postal_code: str, cancel_token: Optional[CancellationToken] = None
    ) -> Optional[GeoPoint]:
        raise NotImplementedError


class ZippopotamGeocoder(Geocoder):
    def __init__(self, http_client: HttpClient, metrics: Optional[RequestMetrics] = None) -> None:
        self.http = http_client
        self.metrics = metrics

    def geocode(
        self, postal_code: str, cancel_token: Optional[CancellationToken] = None
    ) -> Optional[GeoPoint]:
        code = (postal_code or "").strip()
        if not US_ZIP_RE.match(code):
            return None
        if self.metrics is not None:
            self.metrics.inc_network("geocoder")
        try:
            data = self.http.get_json(
                config.ZIPPOPOTAM_URL_TEMPLATE.format(postal_code=code), cancel_token=cancel_token
            )
            return parse_zippopotam_response(data)
        except (UpstreamUnavailableError, MalformedResponseError) as exc:
            logger.warning("ZIP lookup for %s failed: %s", code, exc)
            return KNOWN_ZIP_CODES.get(code)


def parse_zippopotam_response(data: Dict) -> Optional[GeoPoint]:
    places = data.get("places") or []
    if not places:
        return None
    first = places[0]
    try:
        point = GeoPoint(latitude=float(first["latitude"]), longitude=float(first["longitude"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedResponseError(f"unexpected ZIP lookup payload: {exc}") from exc
    return point if point.is_valid() else None
