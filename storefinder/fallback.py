"""Synthetic last-resort stores for when no live data is available.

These are presentation placeholders, not businesses: every store produced
here carries source="synthetic" and results built from them carry
provenance="synthetic".
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from . import config
from .filters import filter_by_distance
from .geo import distance_miles, haversine_miles, offset_point
from .models import (
    SOURCE_SYNTHETIC,
    CandidateStore,
    GeoPoint,
    Part,
    RankedStore,
    tags_from_places_types,
)
from .pricing import PricingEstimator
from .ranking import RelevanceRanker

logger = logging.getLogger(__name__)

# Share of the distance budget the farthest synthetic store may use.
BUDGET_SHARE = 0.8

ARCHETYPES: List[Dict[str, Any]] = [
    {
        "id": "synthetic_home_depot",
        "name": "The Home Depot",
        "d_lat": 0.01,
        "d_lon": 0.01,
        "rating": 4.2,
        "rating_count": 1250,
        "phone": "(555) 123-4567",
        "types": ["home_goods_store", "hardware_store"],
        "likelihood": 85,
        "reason": "Major home improvement retailer with appliance parts section",
    },
    {
        "id": "synthetic_lowes",
        "name": "Lowe's Home Improvement",
        "d_lat": -0.01,
        "d_lon": 0.01,
        "rating": 4.1,
        "rating_count": 980,
        "phone": "(555) 234-5678",
        "types": ["home_goods_store", "hardware_store"],
        "likelihood": 80,
        "reason": "Home improvement store with appliance section",
    },
    {
        "id": "synthetic_parts_center",
        "name": "Local Appliance Parts Center",
        "d_lat": 0.005,
        "d_lon": -0.01,
        "rating": 4.5,
        "rating_count": 156,
        "phone": "(555) 345-6789",
        "types": ["store"],
        "likelihood": 92,
        "reason": "Specialized appliance parts retailer",
    },
    {
        "id": "synthetic_ace",
        "name": "Ace Hardware",
        "d_lat": -0.005,
        "d_lon": -0.01,
        "rating": 4.3,
        "rating_count": 324,
        "phone": "(555) 456-7890",
        "types": ["hardware_store"],
        "likelihood": 80,
        "reason": "Hardware store that often stocks common appliance parts",
    },
    {
        "id": "synthetic_sears",
        "name": "Sears Parts & Repair",
        "d_lat": 0.015,
        "d_lon": 0.0,
        "rating": 4.0,
        "rating_count": 89,
        "phone": "(555) 567-8901",
        "types": ["store"],
        "likelihood": 95,
        "reason": "Appliance parts specialist with extensive inventory",
    },
]


def _place_within_budget(origin: GeoPoint, d_lat: float, d_lon: float, max_distance_miles: float) -> GeoPoint:
    raw = haversine_miles(origin.latitude, origin.longitude, origin.latitude + d_lat, origin.longitude + d_lon)
    target = max_distance_miles * BUDGET_SHARE
    if raw > target > 0:
        scale = target / raw
        d_lat *= scale
        d_lon *= scale
    point = offset_point(origin, d_lat, d_lon)
    # Rounding to 0.1 mi can still overshoot very small budgets.
    while distance_miles(origin, point) > max_distance_miles:
        d_lat /= 2
        d_lon /= 2
        point = offset_point(origin, d_lat, d_lon)
    return point


class FallbackStoreGenerator:
    def __init__(
        self,
        ranker: Optional[RelevanceRanker] = None,
        pricing: Optional[PricingEstimator] = None,
    ) -> None:
        self.ranker = ranker or RelevanceRanker()
        self.pricing = pricing or PricingEstimator()

    def candidates(self, origin: GeoPoint, max_distance_miles: float) -> List[CandidateStore]:
        address = f"Near {origin.latitude:.3f}, {origin.longitude:.3f}"
        stores: List[CandidateStore] = []
        for archetype in ARCHETYPES:
            point = _place_within_budget(origin, archetype["d_lat"], archetype["d_lon"], max_distance_miles)
            stores.append(
                CandidateStore(
                    id=archetype["id"],
                    name=archetype["name"],
                    address=address,
                    location=point,
                    types=tags_from_places_types(archetype["types"]),
                    raw_types=tuple(archetype["types"]),
                    rating=archetype["rating"],
                    rating_count=archetype["rating_count"],
                    phone=archetype["phone"],
                    operational=True,
                    source=SOURCE_SYNTHETIC,
                    distance_miles=distance_miles(origin, point),
                    likelihood=archetype["likelihood"],
                    reason=archetype["reason"],
                )
            )
        return stores

    def generate(
        self,
        origin: GeoPoint,
        part: Part,
        max_distance_miles: float,
        result_cap: int = config.DEFAULT_RESULT_CAP,
    ) -> List[RankedStore]:
        logger.warning("Generating synthetic fallback stores for %s", part.name)
        nearby = filter_by_distance(self.candidates(origin, max_distance_miles), origin, max_distance_miles)
        ranked = self.ranker.rank(nearby, result_cap, origin=origin)
        return [self.pricing.attach(part, r) for r in ranked]
