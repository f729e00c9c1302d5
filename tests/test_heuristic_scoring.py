import pytest

from storefinder.availability import AvailabilityVerifier, HeuristicScorer
from storefinder.models import CandidateStore, GeoPoint, StoreTypeTag
from storefinder.oracle_client import NoopOracleClient


def store(name, types=(), raw_types=(), distance=None, store_id=None):
    return CandidateStore(
        id=store_id or name.lower().replace(" ", "_"),
        name=name,
        address="1 Main St",
        location=GeoPoint(34.05, -118.24),
        types=tuple(types),
        raw_types=tuple(raw_types),
        distance_miles=distance,
    )


def test_excluded_name_word_scores_zero_even_for_a_chain():
    likelihood, reason = HeuristicScorer().score(
        store("Home Depot Cafe", types=[StoreTypeTag.HARDWARE], distance=0.5)
    )
    assert likelihood == 0
    assert "cafe" in reason


def test_excluded_words_match_whole_words_only():
    scorer = HeuristicScorer()
    assert scorer.exclusion_match(store("Barnes Hardware")) is None
    assert scorer.exclusion_match(store("Joe's Bar")) == "bar"


def test_excluded_places_type_scores_zero():
    likelihood, _ = HeuristicScorer().score(
        store("Acme Supply", raw_types=["gas_station", "store"], distance=0.3)
    )
    assert likelihood == 0


def test_keyword_groups_take_strongest_match_per_group():
    scorer = HeuristicScorer()
    assert scorer.keyword_hits("Appliance Parts Depot") == [("appliance parts", 55), ("appliance", 35)]
    assert scorer.keyword_hits("Ace Hardware") == [("ace hardware", 30), ("hardware", 25)]
    assert scorer.keyword_hits("Corner Market") == []


def test_tag_bonus_sums_tags():
    scorer = HeuristicScorer()
    assert scorer.tag_bonus(store("X", types=[StoreTypeTag.HARDWARE, StoreTypeTag.HOME_GOODS])) == 45
    assert scorer.tag_bonus(store("X", types=[StoreTypeTag.GENERIC])) == 0


@pytest.mark.parametrize(
    "distance,bonus",
    [(0.0, 15), (1.0, 15), (1.5, 10), (2.0, 10), (2.5, 5), (3.0, 5), (3.1, 0), (None, 0)],
)
def test_proximity_tiers(distance, bonus):
    assert HeuristicScorer().proximity_bonus(distance) == bonus


def test_score_adds_rules():
    scorer = HeuristicScorer()
    assert scorer.score(store("Corner Market", distance=4.0))[0] == 20
    assert scorer.score(store("Bob's Hardware", distance=5.0))[0] == 45
    likelihood, reason = scorer.score(store("Bob's Hardware", types=[StoreTypeTag.HARDWARE], distance=0.5))
    assert likelihood == 85
    assert reason.startswith("Heuristic:")
    assert "hardware" in reason


def test_score_is_clamped_to_100():
    likelihood, _ = HeuristicScorer().score(
        store("Sears Appliance Parts Repair Hardware", types=[StoreTypeTag.HARDWARE], distance=0.2)
    )
    assert likelihood == 100


def test_heuristic_mode_drops_below_min_likelihood():
    verifier = AvailabilityVerifier(NoopOracleClient())
    candidates = [
        store("The Home Depot", types=[StoreTypeTag.HARDWARE], distance=1.8),
        store("Bob's Hardware", distance=5.0),
        store("Joe's Pizza", raw_types=["restaurant"], distance=0.2),
    ]

    verified = verifier.verify_with_heuristics(candidates)

    assert [s.name for s in verified] == ["The Home Depot"]
    assert verified[0].likelihood == 95
    assert verified[0].reason.startswith("Heuristic:")


def test_min_likelihood_is_configurable():
    verifier = AvailabilityVerifier(NoopOracleClient(), min_likelihood=40)
    verified = verifier.verify_with_heuristics([store("Bob's Hardware", distance=5.0)])
    assert [s.likelihood for s in verified] == [45]
