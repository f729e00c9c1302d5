"""Relevance scoring and ordering of verified candidates."""
from __future__ import annotations

from typing import Iterable, List, Optional

from . import config
from .geo import directions_url, distance_miles
from .models import (
    PROVENANCE_LIVE,
    PROVENANCE_SYNTHETIC,
    AvailabilityLabel,
    CandidateStore,
    GeoPoint,
    RankedStore,
)


def relevance_score(likelihood: float, distance: float, penalty_per_mile: float) -> float:
    return float(likelihood) - float(distance) * float(penalty_per_mile)


def compare_ranked(a: RankedStore, b: RankedStore, tie_threshold: float) -> int:
    """Negative when a belongs before b.

    Scores at least tie_threshold apart are ordered by score; closer scores
    are ordered by distance so the nearer store wins.
    """
    diff = a.relevance_score - b.relevance_score
    if diff != 0 and abs(diff) >= tie_threshold:
        return -1 if diff > 0 else 1
    if a.distance_miles != b.distance_miles:
        return -1 if a.distance_miles < b.distance_miles else 1
    if a.relevance_score != b.relevance_score:
        return -1 if diff > 0 else 1
    if a.id != b.id:
        return -1 if a.id < b.id else 1
    return 0


def order_ranked(items: Iterable[RankedStore], tie_threshold: float) -> List[RankedStore]:
    # The comparator is not transitive, so a library sort gives no guarantee
    # about neighbours. Insertion sort keeps every adjacent pair consistent.
    ordered: List[RankedStore] = []
    presorted = sorted(items, key=lambda r: (-r.relevance_score, r.distance_miles, r.id))
    for item in presorted:
        pos = len(ordered)
        while pos > 0 and compare_ranked(ordered[pos - 1], item, tie_threshold) > 0:
            pos -= 1
        ordered.insert(pos, item)
    return ordered


class RelevanceRanker:
    def __init__(
        self,
        penalty_per_mile: Optional[float] = None,
        tie_threshold: Optional[float] = None,
    ) -> None:
        self._penalty_per_mile = penalty_per_mile
        self._tie_threshold = tie_threshold

    @property
    def penalty_per_mile(self) -> float:
        if self._penalty_per_mile is not None:
            return self._penalty_per_mile
        return config.DISTANCE_PENALTY_PER_MILE

    @property
    def tie_threshold(self) -> float:
        if self._tie_threshold is not None:
            return self._tie_threshold
        return config.TIE_BREAK_THRESHOLD

    def to_ranked(self, store: CandidateStore, origin: Optional[GeoPoint] = None) -> RankedStore:
        dist = store.distance_miles
        if dist is None:
            if origin is None:
                raise ValueError(f"Candidate {store.id} has no distance and no origin was given")
            dist = distance_miles(origin, store.location)
        likelihood = int(store.likelihood or 0)
        if store.maps_uri:
            url = store.maps_uri
        elif origin is not None:
            url = directions_url(origin, store.location)
        else:
            url = ""
        return RankedStore(
            store=store,
            distance_miles=dist,
            likelihood=likelihood,
            availability_label=AvailabilityLabel.for_likelihood(likelihood),
            relevance_score=relevance_score(likelihood, dist, self.penalty_per_mile),
            directions_url=url,
            provenance=PROVENANCE_SYNTHETIC if store.is_synthetic else PROVENANCE_LIVE,
        )

    def rank(
        self,
        candidates: Iterable[CandidateStore],
        result_cap: Optional[int] = None,
        origin: Optional[GeoPoint] = None,
    ) -> List[RankedStore]:
        cap = config.DEFAULT_RESULT_CAP if result_cap is None else int(result_cap)
        ranked = [self.to_ranked(store, origin) for store in candidates]
        return order_ranked(ranked, self.tie_threshold)[: max(0, cap)]
