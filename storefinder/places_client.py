"""Places API (New) nearby-search client and response parsing."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from . import config
from .cancellation import CancellationToken
from .errors import MalformedResponseError
from .http import HttpClient, RequestMetrics
from .models import SOURCE_GOOGLE_PLACES, CandidateStore, GeoPoint, tags_from_places_types

logger = logging.getLogger(__name__)


class PlacesClient:
    def __init__(
        self,
        http_client: HttpClient,
        api_key: str,
        field_mask: str = config.PLACES_FIELD_MASK,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.http = http_client
        self.api_key = api_key
        self.field_mask = field_mask
        self.metrics = metrics

    @property
    def max_radius_m(self) -> float:
        return config.PLACES_MAX_RADIUS_M

    def search_nearby(
        self,
        origin: GeoPoint,
        included_types: Sequence[str],
        radius_m: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[CandidateStore]:
        body = build_nearby_search_body(origin, included_types, radius_m)
        headers = {
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": self.field_mask,
        }
        if self.metrics is not None:
            self.metrics.inc_network("places")
        response = self.http.post_json(
            config.PLACES_NEARBY_SEARCH_URL, body, headers=headers, cancel_token=cancel_token
        )
        return parse_places_response(response)


def build_nearby_search_body(
    origin: GeoPoint,
    included_types: Sequence[str],
    radius_m: float,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "maxResultCount": config.PLACES_MAX_RESULT_COUNT,
        "locationRestriction": {
            "circle": {
                "center": {"latitude": origin.latitude, "longitude": origin.longitude},
                "radius": float(radius_m),
            }
        },
    }
    if included_types:
        body["includedTypes"] = list(included_types)
    return body


# Adapter/mapper for Places response fields

def parse_places_response(response: Dict[str, Any]) -> List[CandidateStore]:
    places = response.get("places") or []
    if not isinstance(places, list):
        raise MalformedResponseError("places field is not a list")
    parsed: List[CandidateStore] = []
    for p in places:
        if not isinstance(p, dict):
            continue
        place_id = p.get("id") or p.get("placeId") or p.get("name")
        if not place_id:
            continue
        display = p.get("displayName")
        if isinstance(display, dict):
            name = display.get("text") or display.get("value")
        else:
            name = display
        location = p.get("location") or p.get("latLng") or {}
        lat = location.get("latitude", location.get("lat"))
        lon = location.get("longitude", location.get("lng", location.get("lon")))
        try:
            point = GeoPoint(latitude=float(lat), longitude=float(lon))
        except (TypeError, ValueError):
            logger.debug("Skipping place %s without usable coordinates", place_id)
            continue
        types = [str(t) for t in (p.get("types") or [])]
        business_status = p.get("businessStatus") or p.get("business_status")
        rating = p.get("rating")
        user_rating_count = p.get("userRatingCount") or p.get("user_ratings_total")
        parsed.append(
            CandidateStore(
                id=str(place_id),
                name=name or "Unknown Store",
                address=p.get("formattedAddress") or "Address not available",
                location=point,
                types=tags_from_places_types(types),
                raw_types=tuple(types),
                rating=float(rating) if rating is not None else 0.0,
                rating_count=int(user_rating_count) if user_rating_count is not None else 0,
                phone=p.get("internationalPhoneNumber") or p.get("nationalPhoneNumber") or "",
                operational=business_status is None
                or business_status == config.BUSINESS_STATUS_OPERATIONAL,
                website=p.get("websiteUri") or None,
                maps_uri=p.get("googleMapsUri") or None,
                source=SOURCE_GOOGLE_PLACES,
            )
        )
    return parsed
