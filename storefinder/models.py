"""Request, candidate and result types."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from . import config
from .errors import InvalidInputError


class StoreTypeTag(str, Enum):
    HARDWARE = "hardware_store"
    HOME_GOODS = "home_goods_store"
    ELECTRONICS = "electronics_store"
    GENERIC = "generic_store"

    @classmethod
    def parse(cls, value: object) -> Optional["StoreTypeTag"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        # The oracle may answer with the provider's own name for the generic tag.
        if normalized == "store":
            return cls.GENERIC
        for tag in cls:
            if tag.value == normalized:
                return tag
        return None


ALL_TAGS: Tuple[StoreTypeTag, ...] = tuple(StoreTypeTag)

# Places API types searched for each tag.
TAG_PLACES_TYPES: Dict[StoreTypeTag, Tuple[str, ...]] = {
    StoreTypeTag.HARDWARE: ("hardware_store",),
    StoreTypeTag.HOME_GOODS: ("home_goods_store", "home_improvement_store"),
    StoreTypeTag.ELECTRONICS: ("electronics_store",),
    StoreTypeTag.GENERIC: ("store",),
}

_PLACES_TYPE_TAGS: Dict[str, StoreTypeTag] = {
    "hardware_store": StoreTypeTag.HARDWARE,
    "home_goods_store": StoreTypeTag.HOME_GOODS,
    "home_improvement_store": StoreTypeTag.HOME_GOODS,
    "furniture_store": StoreTypeTag.HOME_GOODS,
    "electronics_store": StoreTypeTag.ELECTRONICS,
    "appliance_store": StoreTypeTag.ELECTRONICS,
    "store": StoreTypeTag.GENERIC,
    "department_store": StoreTypeTag.GENERIC,
    "discount_store": StoreTypeTag.GENERIC,
    "warehouse_store": StoreTypeTag.GENERIC,
}


def tags_from_places_types(types: Iterable[str]) -> Tuple[StoreTypeTag, ...]:
    tags: List[StoreTypeTag] = []
    for raw in types:
        tag = _PLACES_TYPE_TAGS.get(str(raw).lower())
        if tag is not None and tag not in tags:
            tags.append(tag)
    return tuple(tags)


def places_types_for_tags(tags: Iterable[StoreTypeTag]) -> List[str]:
    included: List[str] = []
    for tag in tags:
        for place_type in TAG_PLACES_TYPES.get(tag, ()):
            if place_type not in included:
                included.append(place_type)
    return included


class AvailabilityLabel(str, Enum):
    LIKELY = "Likely"
    POSSIBLE = "Possible"
    CALL_TO_CONFIRM = "CallToConfirm"
    UNLIKELY = "Unlikely"

    @classmethod
    def for_likelihood(cls, likelihood: int) -> "AvailabilityLabel":
        if likelihood >= config.LABEL_LIKELY_MIN:
            return cls.LIKELY
        if likelihood >= config.LABEL_POSSIBLE_MIN:
            return cls.POSSIBLE
        if likelihood >= config.LABEL_CALL_MIN:
            return cls.CALL_TO_CONFIRM
        return cls.UNLIKELY


SOURCE_GOOGLE_PLACES = "google_places"
SOURCE_SYNTHETIC = "synthetic"

PROVENANCE_LIVE = "live"
PROVENANCE_SYNTHETIC = "synthetic"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _normalize(text: Optional[str]) -> str:
    return " ".join((text or "").split()).casefold()


@dataclass(frozen=True)
class Part:
    name: str
    category: str = ""
    brand: Optional[str] = None

    def signature(self) -> str:
        return "|".join((_normalize(self.name), _normalize(self.category), _normalize(self.brand)))

    def describe(self) -> str:
        text = self.name
        if self.brand:
            text = f"{self.brand} {text}"
        return text


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float

    def is_valid(self) -> bool:
        if not (_is_number(self.latitude) and _is_number(self.longitude)):
            return False
        lat = float(self.latitude)
        lon = float(self.longitude)
        if not (math.isfinite(lat) and math.isfinite(lon)):
            return False
        return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0

    def rounded(self, decimals: int) -> Tuple[float, float]:
        return round(self.latitude, decimals), round(self.longitude, decimals)


@dataclass(frozen=True)
class SearchRequest:
    part: Part
    origin: GeoPoint
    max_distance_miles: float = config.DEFAULT_MAX_DISTANCE_MILES
    result_cap: int = config.DEFAULT_RESULT_CAP

    def validate(self) -> None:
        if self.part is None or not (self.part.name or "").strip():
            raise InvalidInputError("A part name is required")
        if self.origin is None or not self.origin.is_valid():
            raise InvalidInputError("A valid origin location is required")
        if not _is_number(self.max_distance_miles):
            raise InvalidInputError("max_distance_miles must be a number")
        budget = float(self.max_distance_miles)
        if not math.isfinite(budget) or budget <= 0:
            raise InvalidInputError("max_distance_miles must be greater than 0")
        if isinstance(self.result_cap, bool) or not isinstance(self.result_cap, int) or self.result_cap < 1:
            raise InvalidInputError("result_cap must be a positive integer")


@dataclass(frozen=True)
class CandidateStore:
    id: str
    name: str
    address: str
    location: GeoPoint
    types: Tuple[StoreTypeTag, ...] = ()
    raw_types: Tuple[str, ...] = ()
    rating: float = 0.0
    rating_count: int = 0
    phone: str = ""
    operational: bool = True
    website: Optional[str] = None
    maps_uri: Optional[str] = None
    source: str = SOURCE_GOOGLE_PLACES
    distance_miles: Optional[float] = None
    likelihood: Optional[int] = None
    reason: Optional[str] = None

    @property
    def is_synthetic(self) -> bool:
        return self.source == SOURCE_SYNTHETIC


@dataclass(frozen=True)
class PriceEstimate:
    amount: int
    currency: str
    range_low: int
    range_high: int

    @property
    def formatted(self) -> str:
        return f"${self.amount}"

    @property
    def range_formatted(self) -> str:
        return f"${self.range_low}-${self.range_high}"


@dataclass(frozen=True)
class RankedStore:
    store: CandidateStore
    distance_miles: float
    likelihood: int
    availability_label: AvailabilityLabel
    relevance_score: float
    estimated_price: Optional[PriceEstimate] = None
    directions_url: str = ""
    provenance: str = PROVENANCE_LIVE

    @property
    def id(self) -> str:
        return self.store.id

    @property
    def name(self) -> str:
        return self.store.name

    @property
    def location(self) -> GeoPoint:
        return self.store.location


@dataclass(frozen=True)
class SearchResult:
    stores: List[RankedStore] = field(default_factory=list)
    advisory: Optional[str] = None
    degraded: bool = False
    provenance: str = PROVENANCE_LIVE
    from_cache: bool = False
