import math

from storefinder.filters import filter_by_distance
from storefinder.models import CandidateStore, GeoPoint

ORIGIN = GeoPoint(34.0522, -118.2437)
MILES_PER_DEGREE_LAT = 3959.0 * math.pi / 180.0


def candidate(store_id, miles, distance_claim=None, location=None):
    return CandidateStore(
        id=store_id,
        name=store_id,
        address="",
        location=location or GeoPoint(ORIGIN.latitude + miles / MILES_PER_DEGREE_LAT, ORIGIN.longitude),
        distance_miles=distance_claim,
        likelihood=100,
    )


def test_store_beyond_budget_is_dropped_even_with_perfect_likelihood():
    kept = filter_by_distance(
        [candidate("seven", 7.0), candidate("two", 2.4)],
        ORIGIN,
        5.0,
    )
    assert [c.id for c in kept] == ["two"]


def test_upstream_distances_are_ignored():
    kept = filter_by_distance(
        [candidate("liar", 7.0, distance_claim=0.5), candidate("honest", 1.8, distance_claim=99.0)],
        ORIGIN,
        5.0,
    )
    assert [(c.id, c.distance_miles) for c in kept] == [("honest", 1.8)]


def test_store_exactly_on_the_boundary_is_kept():
    kept = filter_by_distance([candidate("edge", 5.0)], ORIGIN, 5.0)
    assert [c.distance_miles for c in kept] == [5.0]


def test_invalid_coordinates_are_dropped():
    kept = filter_by_distance(
        [
            candidate("nan", 0, location=GeoPoint(float("nan"), -118.0)),
            candidate("out_of_range", 0, location=GeoPoint(95.0, -118.0)),
            candidate("ok", 0.0),
        ],
        ORIGIN,
        5.0,
    )
    assert [c.id for c in kept] == ["ok"]


def test_empty_input():
    assert filter_by_distance([], ORIGIN, 5.0) == []
