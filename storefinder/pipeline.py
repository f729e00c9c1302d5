"""Pipeline orchestration."""
from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from concurrent.futures import wait
from dataclasses import replace
from typing import Any, List, Optional, Sequence, Tuple

from . import config
from .availability import AvailabilityVerifier
from .cache import TTLCache, search_cache_key
from .cancellation import CancellationToken
from .candidates import CandidateSearchClient, CandidateSearchOutcome
from .classifier import StoreTypeClassifier, fallback_tags
from .errors import InvalidInputError, SearchCancelledError, StoreFinderError
from .fallback import FallbackStoreGenerator
from .filters import filter_by_distance
from .geocoder import Geocoder, ZippopotamGeocoder
from .http import HttpClient, RequestMetrics
from .models import (
    PROVENANCE_LIVE,
    PROVENANCE_SYNTHETIC,
    CandidateStore,
    Part,
    RankedStore,
    SearchRequest,
    SearchResult,
    StoreTypeTag,
)
from .oracle_client import BaseOracleClient, oracle_from_env
from .places_client import PlacesClient
from .pricing import PricingEstimator
from .ranking import RelevanceRanker

logger = logging.getLogger(__name__)

ADVISORY_EMPTY = (
    "No stores within {miles:g} mi look likely to carry this part. "
    "Try a larger radius or a different postal code."
)
ADVISORY_SYNTHETIC = (
    "Live store data is unavailable; showing typical stores for this kind of part. "
    "Call ahead to confirm availability."
)

# Poll interval while waiting on concurrent upstream calls.
CANCEL_POLL_SECONDS = 0.05


class StoreLocator:
    def __init__(
        self,
        classifier: StoreTypeClassifier,
        search_client: CandidateSearchClient,
        verifier: AvailabilityVerifier,
        ranker: Optional[RelevanceRanker] = None,
        pricing: Optional[PricingEstimator] = None,
        fallback: Optional[FallbackStoreGenerator] = None,
        cache: Optional[TTLCache] = None,
        geocoder: Optional[Geocoder] = None,
        metrics: Optional[RequestMetrics] = None,
        warm_start: bool = False,
        executor: Optional[ThreadPoolExecutor] = None,
        upstream_wait_seconds: Optional[float] = None,
    ) -> None:
        self.classifier = classifier
        self.search_client = search_client
        self.verifier = verifier
        self.ranker = ranker or RelevanceRanker()
        self.pricing = pricing or PricingEstimator()
        self.fallback = fallback or FallbackStoreGenerator(self.ranker, self.pricing)
        self.cache = cache
        self.geocoder = geocoder
        self.metrics = metrics
        self.warm_start = warm_start
        self._executor = executor
        self._owns_executor = executor is None
        if upstream_wait_seconds is None:
            upstream_wait_seconds = float(
                config.ORACLE_TIMEOUT_SECONDS + config.HTTP_TIMEOUT_SECONDS * config.HTTP_RETRY_MAX
            )
        self.upstream_wait_seconds = upstream_wait_seconds

    def close(self) -> None:
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def find_stores(
        self,
        request: SearchRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SearchResult:
        request.validate()
        token = cancel_token or CancellationToken()
        logger.info(
            "Finding stores within %.1f mi for part: %s", request.max_distance_miles, request.part.name
        )

        try:
            verified, synthetic, from_cache = self._verified_candidates(request, token)
            token.raise_if_cancelled()
            stores = self._rank_and_price(request, verified)
        except (SearchCancelledError, InvalidInputError):
            raise
        except Exception:
            logger.exception("Store search pipeline failed; using synthetic stores")
            if self.metrics is not None:
                self.metrics.inc_fallback("pipeline")
            return self._synthetic_result(request)

        if not stores:
            logger.info("No stores passed filtering within %.1f mi", request.max_distance_miles)
            return SearchResult(
                stores=[],
                advisory=ADVISORY_EMPTY.format(miles=request.max_distance_miles),
                degraded=synthetic,
                provenance=PROVENANCE_SYNTHETIC if synthetic else PROVENANCE_LIVE,
                from_cache=from_cache,
            )

        for store in stores:
            logger.debug(
                "- %s: %.1f mi (likelihood: %d%%)", store.name, store.distance_miles, store.likelihood
            )
        logger.info("Returning %d stores within %.1f mi", len(stores), request.max_distance_miles)
        return SearchResult(
            stores=stores,
            advisory=ADVISORY_SYNTHETIC if synthetic else None,
            degraded=synthetic,
            provenance=PROVENANCE_SYNTHETIC if synthetic else PROVENANCE_LIVE,
            from_cache=from_cache,
        )

    def find_stores_by_postal_code(
        self,
        part: Part,
        postal_code: str,
        max_distance_miles: Optional[float] = None,
        result_cap: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SearchResult:
        if self.geocoder is None:
            raise InvalidInputError("No geocoder is configured for postal code searches")
        try:
            origin = self.geocoder.geocode(postal_code, cancel_token=cancel_token)
        except SearchCancelledError:
            raise
        except StoreFinderError as exc:
            raise InvalidInputError(f"Could not resolve postal code {postal_code!r}") from exc
        if origin is None:
            raise InvalidInputError(f"Invalid postal code or location not found: {postal_code!r}")
        logger.info("Postal code %s resolved to (%s, %s)", postal_code, origin.latitude, origin.longitude)
        request = SearchRequest(
            part=part,
            origin=origin,
            max_distance_miles=(
                config.DEFAULT_MAX_DISTANCE_MILES if max_distance_miles is None else max_distance_miles
            ),
            result_cap=config.DEFAULT_RESULT_CAP if result_cap is None else result_cap,
        )
        return self.find_stores(request, cancel_token=cancel_token)

    def _verified_candidates(
        self, request: SearchRequest, token: CancellationToken
    ) -> Tuple[Sequence[CandidateStore], bool, bool]:
        key = None
        if self.cache is not None:
            key = search_cache_key(
                request.part, request.origin, request.max_distance_miles, request.result_cap
            )
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Search cache hit for %s", request.part.name)
                if self.metrics is not None:
                    self.metrics.inc_cache_hit()
                return cached, False, True

        outcome = self._discover(request, token)
        token.raise_if_cancelled()
        verified = self.verifier.verify(outcome.candidates, request.part, cancel_token=token)

        if key is not None and not outcome.synthetic:
            self.cache.set(key, tuple(verified))
        return verified, outcome.synthetic, False

    def _discover(self, request: SearchRequest, token: CancellationToken) -> CandidateSearchOutcome:
        part = request.part
        if not self.warm_start:
            token.raise_if_cancelled()
            tags = self.classifier.classify(part.name, part.category, cancel_token=token)
            token.raise_if_cancelled()
            return self.search_client.search(
                request.origin, tags, request.max_distance_miles, cancel_token=token
            )

        # Each stage gets its own child token so a timed-out stage can be
        # stopped while the request carries on.
        classify_token = token.child()
        search_token = token.child()
        executor = self._get_executor()
        classify_future = executor.submit(
            self.classifier.classify, part.name, part.category, cancel_token=classify_token
        )
        search_future = executor.submit(
            self.search_client.search,
            request.origin,
            fallback_tags(),
            request.max_distance_miles,
            cancel_token=search_token,
        )
        futures = [classify_future, search_future]
        deadline = time.monotonic() + self.upstream_wait_seconds
        try:
            tags = self._await(classify_future, deadline, token)
        except FutureTimeoutError:
            logger.warning("Store type classification timed out; using all store types")
            classify_token.cancel()
            tags = fallback_tags()
        except SearchCancelledError:
            self._cancel(futures)
            raise
        try:
            outcome = self._await(search_future, deadline, token)
        except FutureTimeoutError:
            logger.warning("Places search timed out; using synthetic stores")
            search_token.cancel()
            return self.search_client.fallback_outcome(
                request.origin, request.max_distance_miles, "timeout"
            )
        except SearchCancelledError:
            self._cancel(futures)
            raise
        return narrow_to_tags(outcome, tags)

    def _await(self, future: Future, deadline: float, token: CancellationToken) -> Any:
        while True:
            token.raise_if_cancelled()
            if future.done():
                return future.result()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                raise FutureTimeoutError()
            done, _ = wait([future], timeout=min(CANCEL_POLL_SECONDS, remaining))
            if done:
                return future.result()

    @staticmethod
    def _cancel(futures: List[Future]) -> None:
        for future in futures:
            future.cancel()

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="storefinder")
            self._owns_executor = True
        return self._executor

    def _rank_and_price(
        self, request: SearchRequest, verified: Sequence[CandidateStore]
    ) -> List[RankedStore]:
        nearby = filter_by_distance(verified, request.origin, request.max_distance_miles)
        ranked = self.ranker.rank(nearby, request.result_cap, origin=request.origin)
        return [self.pricing.attach(request.part, store) for store in ranked]

    def _synthetic_result(self, request: SearchRequest) -> SearchResult:
        stores = self.fallback.generate(
            request.origin, request.part, request.max_distance_miles, request.result_cap
        )
        return SearchResult(
            stores=stores,
            advisory=ADVISORY_SYNTHETIC,
            degraded=True,
            provenance=PROVENANCE_SYNTHETIC,
        )


def narrow_to_tags(outcome: CandidateSearchOutcome, tags: Sequence[StoreTypeTag]) -> CandidateSearchOutcome:
    """Keep warm-start candidates matching the classified tags, or all if none match."""
    if outcome.synthetic or set(tags) == set(fallback_tags()):
        return outcome
    wanted = set(tags)
    narrowed = [c for c in outcome.candidates if wanted.intersection(c.types)]
    if not narrowed:
        return outcome
    return replace(outcome, candidates=narrowed)


def build_locator(
    places_api_key: Optional[str],
    oracle: Optional[BaseOracleClient] = None,
    cache_ttl_seconds: Optional[float] = None,
    warm_start: bool = False,
    metrics: Optional[RequestMetrics] = None,
    http_client: Optional[HttpClient] = None,
) -> StoreLocator:
    """Wire the services once at process start."""
    metrics = metrics or RequestMetrics()
    http_client = http_client or HttpClient(
        timeout=config.HTTP_TIMEOUT_SECONDS,
        retry_max=config.HTTP_RETRY_MAX,
        backoff_base=config.HTTP_BACKOFF_BASE,
        backoff_max=config.HTTP_BACKOFF_MAX,
    )
    oracle = oracle or oracle_from_env()
    cache = TTLCache(cache_ttl_seconds or config.CACHE_TTL_SECONDS)
    ranker = RelevanceRanker()
    pricing = PricingEstimator()
    fallback = FallbackStoreGenerator(ranker, pricing)
    provider = PlacesClient(http_client, places_api_key, metrics=metrics) if places_api_key else None
    if provider is None:
        logger.warning("Google Places API key not found; store search will use synthetic stores")
    return StoreLocator(
        classifier=StoreTypeClassifier(oracle, cache=cache, metrics=metrics),
        search_client=CandidateSearchClient(provider, fallback=fallback, metrics=metrics),
        verifier=AvailabilityVerifier(oracle, metrics=metrics),
        ranker=ranker,
        pricing=pricing,
        fallback=fallback,
        cache=cache,
        geocoder=ZippopotamGeocoder(http_client, metrics=metrics),
        metrics=metrics,
        warm_start=warm_start,
    )
