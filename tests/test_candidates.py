import math

import pytest

from storefinder.candidates import CandidateSearchClient, search_radius_m
from storefinder.errors import MalformedResponseError, UpstreamUnavailableError
from storefinder.http import RequestMetrics
from storefinder.models import CandidateStore, GeoPoint, StoreTypeTag

ORIGIN = GeoPoint(34.0522, -118.2437)
MILES_PER_DEGREE_LAT = 3959.0 * math.pi / 180.0


def north_of(origin, miles):
    return GeoPoint(origin.latitude + miles / MILES_PER_DEGREE_LAT, origin.longitude)


def place(place_id, miles, operational=True, distance_claim=None):
    return CandidateStore(
        id=place_id,
        name=f"Store {place_id}",
        address="Somewhere",
        location=north_of(ORIGIN, miles),
        types=(StoreTypeTag.HARDWARE,),
        operational=operational,
        distance_miles=distance_claim,
    )


class FakeProvider:
    max_radius_m = 50000.0

    def __init__(self, places=None, exc=None):
        self.places = places or []
        self.exc = exc
        self.calls = []

    def search_nearby(self, origin, included_types, radius_m, cancel_token=None):
        self.calls.append({"origin": origin, "included_types": list(included_types), "radius_m": radius_m})
        if self.exc is not None:
            raise self.exc
        return list(self.places)


def test_search_radius_conversion_and_cap():
    assert search_radius_m(5.0) == pytest.approx(8046.7)
    assert search_radius_m(5.0, 50000.0) == pytest.approx(8046.7)
    assert search_radius_m(40.0, 50000.0) == 50000.0
    assert search_radius_m(40.0) == pytest.approx(64373.6)


def test_search_sends_types_and_radius():
    provider = FakeProvider([place("a", 1.0)])
    client = CandidateSearchClient(provider)

    client.search(ORIGIN, [StoreTypeTag.HARDWARE, StoreTypeTag.HOME_GOODS], 5.0)

    call = provider.calls[0]
    assert call["included_types"] == ["hardware_store", "home_goods_store", "home_improvement_store"]
    assert call["radius_m"] == pytest.approx(8046.7)


def test_first_pass_drops_far_and_closed_places_and_recomputes_distance():
    provider = FakeProvider(
        [
            place("near", 1.8, distance_claim=9.9),
            place("closed", 2.0, operational=False),
            place("far", 7.0, distance_claim=1.0),
        ]
    )

    outcome = CandidateSearchClient(provider).search(ORIGIN, [StoreTypeTag.HARDWARE], 5.0)

    assert not outcome.synthetic
    assert [c.id for c in outcome.candidates] == ["near"]
    assert outcome.candidates[0].distance_miles == 1.8


@pytest.mark.parametrize(
    "exc",
    [UpstreamUnavailableError("HTTP 503"), MalformedResponseError("places field is not a list")],
)
def test_provider_errors_use_synthetic_fallback(exc):
    metrics = RequestMetrics()
    outcome = CandidateSearchClient(FakeProvider(exc=exc), metrics=metrics).search(
        ORIGIN, [StoreTypeTag.HARDWARE], 5.0
    )
    assert outcome.synthetic
    assert outcome.error
    assert 1 <= len(outcome.candidates) <= 5
    assert all(c.is_synthetic for c in outcome.candidates)
    assert metrics.fallbacks_places == 1


def test_empty_provider_result_uses_synthetic_fallback():
    outcome = CandidateSearchClient(FakeProvider([])).search(ORIGIN, [StoreTypeTag.HARDWARE], 5.0)
    assert outcome.synthetic
    assert outcome.error == "empty_result"


def test_missing_provider_uses_synthetic_fallback():
    outcome = CandidateSearchClient(None).search(ORIGIN, [StoreTypeTag.HARDWARE], 2.0)
    assert outcome.synthetic
    assert all(c.distance_miles <= 2.0 for c in outcome.candidates)


def test_all_places_filtered_is_not_a_fallback():
    outcome = CandidateSearchClient(FakeProvider([place("far", 12.0)])).search(
        ORIGIN, [StoreTypeTag.HARDWARE], 5.0
    )
    assert not outcome.synthetic
    assert outcome.candidates == []
