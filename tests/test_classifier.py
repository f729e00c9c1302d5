import pytest

from storefinder.cache import TTLCache
from storefinder.classifier import StoreTypeClassifier, fallback_tags, parse_tag_list
from storefinder.http import RequestMetrics
from storefinder.models import ALL_TAGS, StoreTypeTag
from storefinder.oracle_client import BaseOracleClient, NoopOracleClient


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


def test_prose_wrapped_answer_keeps_known_tags_in_order():
    oracle = FakeOracle('Sure! ["hardware_store", "pet_store", "home_goods_store"]')
    tags = StoreTypeClassifier(oracle).classify("Dishwasher Door Seal", "Seals & Gaskets")
    assert tags == [StoreTypeTag.HARDWARE, StoreTypeTag.HOME_GOODS]
    assert "Dishwasher Door Seal" in oracle.prompts[0]
    assert "Seals & Gaskets" in oracle.prompts[0]


def test_store_is_accepted_as_generic():
    oracle = FakeOracle('["store", "electronics_store"]')
    tags = StoreTypeClassifier(oracle).classify("Control Board")
    assert tags == [StoreTypeTag.GENERIC, StoreTypeTag.ELECTRONICS]


def test_only_unknown_tags_falls_back_to_all():
    metrics = RequestMetrics()
    oracle = FakeOracle('["pet_store", "bakery"]')
    tags = StoreTypeClassifier(oracle, metrics=metrics).classify("Widget")
    assert tags == list(ALL_TAGS)
    assert metrics.fallbacks_oracle == 1


@pytest.mark.parametrize(
    "text",
    [
        "I am not able to answer that.",
        "[1, 2, 3]",
        '{"answer": "hardware"}',
    ],
)
def test_malformed_answers_fall_back_to_all(text):
    tags = StoreTypeClassifier(FakeOracle(text)).classify("Widget")
    assert tags == fallback_tags()


def test_oracle_error_falls_back_to_all():
    tags = StoreTypeClassifier(FakeOracle(error_type="http_error")).classify("Widget")
    assert set(tags) == set(StoreTypeTag)


def test_unavailable_oracle_is_not_called():
    tags = StoreTypeClassifier(NoopOracleClient()).classify("Widget")
    assert tags == fallback_tags()


def test_result_is_cached_per_part():
    metrics = RequestMetrics()
    oracle = FakeOracle('["hardware_store"]')
    classifier = StoreTypeClassifier(oracle, cache=TTLCache(60), metrics=metrics)

    first = classifier.classify("Drain Pump", "Motors & Pumps")
    second = classifier.classify("  drain   pump ", "motors & pumps")

    assert first == second == [StoreTypeTag.HARDWARE]
    assert len(oracle.prompts) == 1
    assert metrics.network_oracle == 1
    assert metrics.cache_hits == 1


def test_fallback_is_not_cached():
    oracle = FakeOracle("no json here")
    classifier = StoreTypeClassifier(oracle, cache=TTLCache(60))
    classifier.classify("Widget")
    classifier.classify("Widget")
    assert len(oracle.prompts) == 2


def test_parse_tag_list_accepts_wrapped_object():
    assert parse_tag_list({"store_types": ["hardware_store"]}) == [StoreTypeTag.HARDWARE]


def test_parse_tag_list_dedupes():
    assert parse_tag_list(["hardware_store", "HARDWARE_STORE", "store"]) == [
        StoreTypeTag.HARDWARE,
        StoreTypeTag.GENERIC,
    ]


def test_parse_tag_list_rejects_non_strings():
    with pytest.raises(ValueError):
        parse_tag_list(["hardware_store", 3])
    with pytest.raises(ValueError):
        parse_tag_list("hardware_store")
