"""Authoritative maximum-distance enforcement."""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Iterable, List

from .geo import distance_miles
from .models import CandidateStore, GeoPoint

logger = logging.getLogger(__name__)


def filter_by_distance(
    candidates: Iterable[CandidateStore],
    origin: GeoPoint,
    max_distance_miles: float,
) -> List[CandidateStore]:
    """Recompute every candidate's distance and drop those beyond the budget.

    Distances already set upstream are ignored; providers and the synthetic
    generator are not trusted to respect the bound.
    """
    kept: List[CandidateStore] = []
    for store in candidates:
        if store.location is None or not store.location.is_valid():
            logger.debug("Dropping %s: missing or invalid coordinates", store.name)
            continue
        dist = distance_miles(origin, store.location)
        if not math.isfinite(dist):
            logger.debug("Dropping %s: distance is not finite", store.name)
            continue
        if dist > max_distance_miles:
            logger.debug(
                "Dropping %s: %.1f mi exceeds %.1f mi limit", store.name, dist, max_distance_miles
            )
            continue
        kept.append(replace(store, distance_miles=dist))
    return kept
