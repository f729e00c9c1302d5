"""Likelihood-of-availability scoring for candidate stores.

Two modes share one output contract (likelihood 0-100 plus a short reason):

* oracle mode asks the classification oracle to rate up to
  ORACLE_MAX_CANDIDATES of the closest candidates;
* heuristic mode applies the rule table in config.HeuristicWeights.

Oracle failures, schema errors, or an answer with no qualifying store all fall
through to heuristic mode.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from . import config
from .cancellation import CancellationToken
from .http import RequestMetrics
from .models import CandidateStore, Part
from .oracle_client import BaseOracleClient

logger = logging.getLogger(__name__)

VERIFY_PROMPT = """You are an expert in appliance parts retail. Decide which of these stores would ACTUALLY carry this specific appliance part.

Part: {name}
Category: {category}

Stores to evaluate:
{store_list}

For each store, give a likelihood score (0-100) that it carries this SPECIFIC part. Be strict:
- High scores only for stores that sell appliance parts (home improvement chains, appliance repair, parts stores).
- Restaurants, clothing stores, gas stations, banks and similar businesses get 0-10.

Respond with a JSON array only, for example:
[{{"index": 1, "likelihood": 85, "reason": "Home improvement store with appliance parts section"}}, {{"index": 2, "likelihood": 5, "reason": "Restaurant"}}]"""


@dataclass(frozen=True)
class Evaluation:
    index: int
    likelihood: int
    reason: str


def _normalize_name(name: Optional[str]) -> str:
    return (name or "").lower().replace("’", "'")


def _word_match(word: str, text: str) -> bool:
    return re.search(r"\b" + re.escape(word) + r"\b", text) is not None


class HeuristicScorer:
    def __init__(self, weights: Optional[config.HeuristicWeights] = None) -> None:
        self._weights = weights

    @property
    def weights(self) -> config.HeuristicWeights:
        return self._weights if self._weights is not None else config.HEURISTIC_WEIGHTS

    def exclusion_match(self, store: CandidateStore) -> Optional[str]:
        name = _normalize_name(store.name)
        for word in self.weights.excluded_name_words:
            if word and _word_match(word, name):
                return word
        excluded_types = set(self.weights.excluded_types)
        for raw in store.raw_types:
            if raw.lower() in excluded_types:
                return raw.lower()
        return None

    def keyword_hits(self, name: str) -> List[Tuple[str, int]]:
        """Strongest matching keyword per group."""
        lowered = _normalize_name(name)
        hits: List[Tuple[str, int]] = []
        for keywords in self.weights.keyword_groups.values():
            best: Optional[Tuple[str, int]] = None
            for keyword, weight in keywords.items():
                if keyword in lowered and (best is None or weight > best[1]):
                    best = (keyword, weight)
            if best is not None:
                hits.append(best)
        return hits

    def tag_bonus(self, store: CandidateStore) -> int:
        return sum(self.weights.tag_weights.get(tag.value, 0) for tag in store.types)

    def proximity_bonus(self, distance: Optional[float]) -> int:
        if distance is None or not math.isfinite(distance):
            return 0
        for max_miles, bonus in self.weights.proximity_tiers:
            if distance <= max_miles:
                return bonus
        return 0

    def score(self, store: CandidateStore) -> Tuple[int, str]:
        excluded = self.exclusion_match(store)
        if excluded is not None:
            return 0, f"Heuristic: excluded business category ({excluded})"

        score = self.weights.base
        notes: List[str] = []
        hits = self.keyword_hits(store.name)
        for keyword, weight in hits:
            score += weight
        if hits:
            notes.append("name suggests " + ", ".join(k for k, _ in hits))
        tag_bonus = self.tag_bonus(store)
        if tag_bonus:
            score += tag_bonus
            notes.append("store type " + ", ".join(t.value for t in store.types))
        proximity = self.proximity_bonus(store.distance_miles)
        if proximity:
            score += proximity
            notes.append("close by")

        likelihood = max(0, min(100, int(score)))
        reason = "Heuristic: " + ("; ".join(notes) if notes else "no appliance parts signals")
        return likelihood, reason


def parse_evaluations(data: Any) -> List[Evaluation]:
    """Validate the oracle's per-store answer.

    Accepts a JSON array of {index, likelihood, reason} objects or an object
    wrapping it under "stores"/"evaluations". Raises ValueError otherwise.
    """
    if isinstance(data, dict):
        data = data.get("stores", data.get("evaluations"))
    if not isinstance(data, list):
        raise ValueError(f"expected a JSON array of evaluations, got {type(data).__name__}")
    evaluations: List[Evaluation] = []
    for item in data:
        if not isinstance(item, dict):
            raise ValueError("evaluation entries must be objects")
        index = item.get("index")
        likelihood = item.get("likelihood")
        if isinstance(index, bool) or not isinstance(index, int):
            raise ValueError(f"evaluation index must be an integer, got {index!r}")
        if isinstance(likelihood, bool) or not isinstance(likelihood, (int, float)):
            raise ValueError(f"likelihood must be a number, got {likelihood!r}")
        if not 0 <= likelihood <= 100:
            raise ValueError(f"likelihood out of range: {likelihood}")
        reason = item.get("reason") or ""
        if not isinstance(reason, str):
            raise ValueError("reason must be a string")
        evaluations.append(Evaluation(index=index, likelihood=int(round(likelihood)), reason=reason.strip()))
    return evaluations


def format_store_list(stores: Sequence[CandidateStore]) -> str:
    lines = []
    for i, store in enumerate(stores, start=1):
        types = ", ".join(t.value for t in store.types) or "Unknown"
        distance = f"{store.distance_miles:.1f} mi" if store.distance_miles is not None else "distance unknown"
        lines.append(f"{i}. {store.name} - {store.address} (Types: {types}) - {distance}")
    return "\n".join(lines)


class AvailabilityVerifier:
    def __init__(
        self,
        oracle: BaseOracleClient,
        scorer: Optional[HeuristicScorer] = None,
        metrics: Optional[RequestMetrics] = None,
        min_likelihood: Optional[int] = None,
    ) -> None:
        self.oracle = oracle
        self.scorer = scorer or HeuristicScorer()
        self.metrics = metrics
        self._min_likelihood = min_likelihood

    @property
    def min_likelihood(self) -> int:
        if self._min_likelihood is not None:
            return self._min_likelihood
        return config.MIN_LIKELIHOOD

    def verify(
        self,
        candidates: Sequence[CandidateStore],
        part: Part,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[CandidateStore]:
        synthetic = [c for c in candidates if c.is_synthetic]
        live = [c for c in candidates if not c.is_synthetic]

        verified: List[CandidateStore] = []
        if live:
            oracle_result = (
                self.verify_with_oracle(live, part, cancel_token=cancel_token)
                if self.oracle.available
                else None
            )
            if oracle_result:
                verified = oracle_result
            else:
                verified = self.verify_with_heuristics(live)

        logger.info(
            "Availability: %d live candidates -> %d verified, %d synthetic kept",
            len(live),
            len(verified),
            len(synthetic),
        )
        return verified + synthetic

    def verify_with_heuristics(self, candidates: Sequence[CandidateStore]) -> List[CandidateStore]:
        verified: List[CandidateStore] = []
        for store in candidates:
            likelihood, reason = self.scorer.score(store)
            if likelihood < self.min_likelihood:
                logger.debug("Heuristic drop %s (%d): %s", store.name, likelihood, reason)
                continue
            verified.append(replace(store, likelihood=likelihood, reason=reason))
        return verified

    def verify_with_oracle(
        self,
        candidates: Sequence[CandidateStore],
        part: Part,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Optional[List[CandidateStore]]:
        """Oracle-rated candidates, or None when the heuristic path should run."""
        presented = sorted(
            candidates,
            key=lambda c: (c.distance_miles if c.distance_miles is not None else math.inf, c.id),
        )[: config.ORACLE_MAX_CANDIDATES]
        prompt = VERIFY_PROMPT.format(
            name=part.describe(),
            category=part.category or "Unknown",
            store_list=format_store_list(presented),
        )
        if self.metrics is not None:
            self.metrics.inc_network("oracle")
        result = self.oracle.generate_json(
            "verify_availability",
            prompt,
            validator=parse_evaluations,
            max_tokens=config.VERIFY_MAX_TOKENS,
            cancel_token=cancel_token,
        )
        if not result.ok:
            logger.warning(
                "Availability oracle unavailable (%s); using heuristic scoring",
                result.error or result.status,
            )
            self._record_fallback()
            return None

        by_index: Dict[int, Evaluation] = {}
        for evaluation in result.data:
            if 1 <= evaluation.index <= len(presented) and evaluation.index not in by_index:
                by_index[evaluation.index] = evaluation

        verified: List[CandidateStore] = []
        for index in sorted(by_index):
            evaluation = by_index[index]
            if evaluation.likelihood < self.min_likelihood:
                continue
            store = presented[index - 1]
            verified.append(
                replace(
                    store,
                    likelihood=evaluation.likelihood,
                    reason=evaluation.reason or "Rated likely by availability oracle",
                )
            )

        if not verified:
            logger.info("Oracle rated no store as likely; using heuristic scoring")
            self._record_fallback()
            return None
        return verified

    def _record_fallback(self) -> None:
        if self.metrics is not None:
            self.metrics.inc_fallback("oracle")
