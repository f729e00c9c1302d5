"""Store-type classification for a part."""
from __future__ import annotations

import logging
from typing import Any, List, Optional

from . import config
from .cache import TTLCache, classification_cache_key
from .cancellation import CancellationToken
from .http import RequestMetrics
from .models import ALL_TAGS, Part, StoreTypeTag
from .oracle_client import BaseOracleClient

logger = logging.getLogger(__name__)

MAX_TAGS = 4

CLASSIFY_PROMPT = """You are an expert in appliance parts retail. I need to find stores that carry this specific appliance part:

Part: {name}
Category: {category}

Respond with a JSON array of store types that would SPECIFICALLY carry appliance parts like this. Choose only from:
- hardware_store (Home Depot, Lowe's, Ace Hardware)
- home_goods_store (appliance sections)
- electronics_store (for electronic appliance parts)
- generic_store (general retail, only if appliance-related)

Example response: ["hardware_store", "home_goods_store"]

Be very selective: only include store types that would actually have appliance parts inventory."""


def fallback_tags() -> List[StoreTypeTag]:
    return list(ALL_TAGS)


def parse_tag_list(data: Any) -> List[StoreTypeTag]:
    """Validate an oracle tag answer and keep known tags in order.

    Raises ValueError when the payload is not a list of strings.
    """
    if isinstance(data, dict):
        data = data.get("store_types", data.get("types"))
    if not isinstance(data, list):
        raise ValueError(f"expected a JSON array of store types, got {type(data).__name__}")
    tags: List[StoreTypeTag] = []
    for item in data:
        if not isinstance(item, str):
            raise ValueError(f"store type entries must be strings, got {type(item).__name__}")
        tag = StoreTypeTag.parse(item)
        if tag is None:
            logger.debug("Dropping unknown store type from oracle: %r", item)
            continue
        if tag not in tags:
            tags.append(tag)
    return tags[:MAX_TAGS]


class StoreTypeClassifier:
    def __init__(
        self,
        oracle: BaseOracleClient,
        cache: Optional[TTLCache] = None,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.oracle = oracle
        self.cache = cache
        self.metrics = metrics

    def classify(
        self,
        part_name: str,
        part_category: str = "",
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[StoreTypeTag]:
        if not self.oracle.available:
            return fallback_tags()

        part = Part(name=part_name, category=part_category or "")
        key = classification_cache_key(part)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                if self.metrics is not None:
                    self.metrics.inc_cache_hit()
                return list(cached)

        prompt = CLASSIFY_PROMPT.format(name=part_name, category=part_category or "Unknown")
        if self.metrics is not None:
            self.metrics.inc_network("oracle")
        result = self.oracle.generate_json(
            "classify_store_types",
            prompt,
            validator=parse_tag_list,
            max_tokens=config.CLASSIFY_MAX_TOKENS,
            cancel_token=cancel_token,
        )
        if not result.ok or not result.data:
            reason = "no valid tags" if result.ok else (result.error or result.status)
            logger.warning("Store type classification unavailable (%s); using all store types", reason)
            if self.metrics is not None:
                self.metrics.inc_fallback("oracle")
            return fallback_tags()

        tags = list(result.data)
        logger.info("Oracle store types for %s: %s", part_name, [t.value for t in tags])
        if self.cache is not None:
            self.cache.set(key, tuple(tags))
        return tags
