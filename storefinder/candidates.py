"""Candidate store search with a synthetic fallback tier."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence

from . import config
from .cancellation import CancellationToken
from .errors import MalformedResponseError, UpstreamUnavailableError
from .fallback import FallbackStoreGenerator
from .geo import distance_miles
from .http import RequestMetrics
from .models import CandidateStore, GeoPoint, StoreTypeTag, places_types_for_tags
from .places_client import PlacesClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateSearchOutcome:
    candidates: List[CandidateStore] = field(default_factory=list)
    synthetic: bool = False
    error: Optional[str] = None


def search_radius_m(max_distance_miles: float, provider_max_m: Optional[float] = None) -> float:
    radius = float(max_distance_miles) * config.METERS_PER_MILE
    if provider_max_m is not None:
        radius = min(radius, float(provider_max_m))
    return radius


class CandidateSearchClient:
    def __init__(
        self,
        provider: Optional[PlacesClient],
        fallback: Optional[FallbackStoreGenerator] = None,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.provider = provider
        self.fallback = fallback or FallbackStoreGenerator()
        self.metrics = metrics

    def search(
        self,
        origin: GeoPoint,
        tags: Sequence[StoreTypeTag],
        max_distance_miles: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> CandidateSearchOutcome:
        if self.provider is None:
            logger.warning("No places provider configured; using synthetic stores")
            return self.fallback_outcome(origin, max_distance_miles, "no_provider")

        radius_m = search_radius_m(max_distance_miles, getattr(self.provider, "max_radius_m", None))
        included_types = places_types_for_tags(tags)
        try:
            places = self.provider.search_nearby(
                origin, included_types, radius_m, cancel_token=cancel_token
            )
        except (UpstreamUnavailableError, MalformedResponseError) as exc:
            logger.warning("Places search failed: %s; using synthetic stores", exc)
            return self.fallback_outcome(origin, max_distance_miles, str(exc))

        if not places:
            logger.info("Places search returned no results; using synthetic stores")
            return self.fallback_outcome(origin, max_distance_miles, "empty_result")

        candidates: List[CandidateStore] = []
        for place in places:
            if not place.operational:
                logger.debug("Dropping %s: not operational", place.name)
                continue
            dist = distance_miles(origin, place.location)
            if not math.isfinite(dist) or dist > max_distance_miles:
                logger.debug("Dropping %s: %.1f mi outside search budget", place.name, dist)
                continue
            candidates.append(replace(place, distance_miles=dist))

        logger.info(
            "Places search: %d returned, %d operational within %.1f mi",
            len(places),
            len(candidates),
            max_distance_miles,
        )
        return CandidateSearchOutcome(candidates=candidates, synthetic=False)

    def fallback_outcome(self, origin: GeoPoint, max_distance_miles: float, reason: str) -> CandidateSearchOutcome:
        if self.metrics is not None:
            self.metrics.inc_fallback("places")
        return CandidateSearchOutcome(
            candidates=self.fallback.candidates(origin, max_distance_miles),
            synthetic=True,
            error=reason,
        )
