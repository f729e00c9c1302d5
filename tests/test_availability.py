import json

import pytest

from storefinder.availability import AvailabilityVerifier, parse_evaluations
from storefinder.http import RequestMetrics
from storefinder.models import SOURCE_SYNTHETIC, CandidateStore, GeoPoint, Part, StoreTypeTag
from storefinder.oracle_client import BaseOracleClient

PART = Part(name="Dishwasher Door Seal", category="Seals & Gaskets")


class FakeOracle(BaseOracleClient):
    model = "fake"

    def __init__(self, text="", error_type=None):
        self.text = text
        self.error_type = error_type
        self.prompts = []

    def _call_api(self, prompt_text, max_tokens):
        self.prompts.append(prompt_text)
        if self.error_type:
            return "", self.error_type, f"{self.error_type}: boom"
        return self.text, None, None


def store(store_id, name, distance, types=(), source="google_places", likelihood=None):
    return CandidateStore(
        id=store_id,
        name=name,
        address=f"{store_id} Main St",
        location=GeoPoint(34.05, -118.24),
        types=tuple(types),
        distance_miles=distance,
        source=source,
        likelihood=likelihood,
    )


def live_candidates():
    return [
        store("c", "Corner Market", 1.5),
        store("a", "The Home Depot", 0.5, types=[StoreTypeTag.HARDWARE]),
        store("b", "Joe's Pizza", 1.0),
    ]


def test_oracle_mode_accepts_at_or_above_min_likelihood():
    text = "Here you go:\n" + json.dumps(
        [
            {"index": 1, "likelihood": 90, "reason": "Home improvement chain"},
            {"index": 2, "likelihood": 5, "reason": "Restaurant"},
            {"index": 3, "likelihood": 60, "reason": "Sometimes stocks seals"},
            {"index": 9, "likelihood": 99, "reason": "Out of range"},
        ]
    )
    oracle = FakeOracle(text)

    verified = AvailabilityVerifier(oracle).verify(live_candidates(), PART)

    # Presented closest first: a (0.5), b (1.0), c (1.5).
    assert [(s.id, s.likelihood) for s in verified] == [("a", 90), ("c", 60)]
    assert verified[0].reason == "Home improvement chain"
    prompt = oracle.prompts[0]
    assert prompt.index("The Home Depot") < prompt.index("Joe's Pizza") < prompt.index("Corner Market")


def test_oracle_sees_at_most_fifteen_closest_candidates():
    candidates = [store(f"s{i:02d}", f"Store {i}", i * 0.1) for i in range(20)]
    oracle = FakeOracle('[{"index": 15, "likelihood": 80, "reason": "ok"}]')

    verified = AvailabilityVerifier(oracle).verify(candidates, PART)

    assert [s.id for s in verified] == ["s14"]
    assert "\n15. Store 14" in oracle.prompts[0]
    assert "\n16. " not in oracle.prompts[0]


def test_no_qualifying_store_falls_back_to_heuristics():
    metrics = RequestMetrics()
    oracle = FakeOracle('[{"index": 1, "likelihood": 30, "reason": "meh"}]')

    verified = AvailabilityVerifier(oracle, metrics=metrics).verify(live_candidates(), PART)

    assert [s.id for s in verified] == ["a"]
    assert verified[0].reason.startswith("Heuristic:")
    assert metrics.fallbacks_oracle == 1
    assert metrics.network_oracle == 1


@pytest.mark.parametrize(
    "text,error_type",
    [
        ("Sorry, I cannot rate these stores.", None),
        ('[{"index": "one", "likelihood": 90, "reason": "x"}]', None),
        ('[{"index": 1, "likelihood": 250, "reason": "x"}]', None),
        ('[{"index": 1, "reason": "x"}]', None),
        ("", "request_error"),
    ],
)
def test_oracle_failures_fall_back_to_heuristics(text, error_type):
    verified = AvailabilityVerifier(FakeOracle(text, error_type)).verify(live_candidates(), PART)
    assert [s.id for s in verified] == ["a"]
    assert verified[0].likelihood == 20 + 40 + 25 + 15


def test_synthetic_candidates_pass_through_without_oracle():
    oracle = FakeOracle("[]")
    synthetic = store("synthetic_sears", "Sears Parts & Repair", 1.0, source=SOURCE_SYNTHETIC, likelihood=95)

    verified = AvailabilityVerifier(oracle).verify([synthetic], PART)

    assert verified == [synthetic]
    assert oracle.prompts == []


def test_parse_evaluations_accepts_wrapped_object_and_rounds():
    evaluations = parse_evaluations({"stores": [{"index": 2, "likelihood": 84.6, "reason": " ok "}]})
    assert evaluations[0].index == 2
    assert evaluations[0].likelihood == 85
    assert evaluations[0].reason == "ok"


def test_parse_evaluations_rejects_bad_shapes():
    with pytest.raises(ValueError):
        parse_evaluations({"result": []})
    with pytest.raises(ValueError):
        parse_evaluations(["not an object"])
    with pytest.raises(ValueError):
        parse_evaluations([{"index": True, "likelihood": 50}])
    with pytest.raises(ValueError):
        parse_evaluations([{"index": 1, "likelihood": 50, "reason": 7}])
