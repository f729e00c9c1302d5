"""Project configuration.

Loads optional overrides from locator_config.json when available, falling
back to sensible defaults. Keep API request shapes and scoring tables
centralized here.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- API endpoints ---

PLACES_NEARBY_SEARCH_URL = "https://places.googleapis.com/v1/places:searchNearby"
OPENAI_API_BASE_DEFAULT = "https://api.openai.com/v1"
ZIPPOPOTAM_URL_TEMPLATE = "https://api.zippopotam.us/us/{postal_code}"

# --- Field masks ---

PLACES_FIELD_MASK = (
    "places.id,places.displayName,places.formattedAddress,places.location,"
    "places.googleMapsUri,places.rating,places.userRatingCount,"
    "places.businessStatus,places.types,places.internationalPhoneNumber,"
    "places.websiteUri"
)

# --- Places API request shape ---

METERS_PER_MILE = 1609.34
PLACES_MAX_RADIUS_M = 50000.0
PLACES_MAX_RESULT_COUNT = 20
BUSINESS_STATUS_OPERATIONAL = "OPERATIONAL"

# --- Search defaults ---

DEFAULT_MAX_DISTANCE_MILES = 5.0
DEFAULT_RESULT_CAP = 5
MIN_LIKELIHOOD = 60
DISTANCE_EPSILON_MILES = 0.05

# --- Ranking ---

DISTANCE_PENALTY_PER_MILE = 5.0
TIE_BREAK_THRESHOLD = 10.0

# --- Availability labels (lower bounds) ---

LABEL_LIKELY_MIN = 85
LABEL_POSSIBLE_MIN = 70
LABEL_CALL_MIN = 50

# --- Oracle ---

ORACLE_MAX_CANDIDATES = 15
ORACLE_TIMEOUT_SECONDS = 15
ORACLE_TEMPERATURE = 0.1
OPENAI_MODEL_DEFAULT = "gpt-4o-mini"
CLASSIFY_MAX_TOKENS = 200
VERIFY_MAX_TOKENS = 800

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 10
HTTP_RETRY_MAX = 2
HTTP_BACKOFF_BASE = 0.5
HTTP_BACKOFF_MAX = 4.0

# --- Cache ---

CACHE_TTL_SECONDS = 300.0
CACHE_ORIGIN_DECIMALS = 2

# --- Pricing ---

PRICE_CURRENCY = "USD"
PRICE_DEFAULT_BASE = 35
PRICE_RANGE_FRACTION = 0.15

# Highest matching entry wins.
PRICE_TABLE: List[Tuple[str, int]] = [
    ("knob", 15),
    ("handle", 18),
    ("belt", 20),
    ("filter", 25),
    ("hose", 25),
    ("seal", 30),
    ("gasket", 30),
    ("switch", 30),
    ("bearing", 35),
    ("valve", 40),
    ("thermostat", 45),
    ("element", 45),
    ("igniter", 45),
    ("motor", 85),
    ("pump", 85),
    ("compressor", 110),
    ("control", 120),
    ("board", 120),
]

PRICE_LIKELIHOOD_TIERS: List[Tuple[int, float]] = [
    (85, 0.90),
    (70, 1.00),
    (0, 1.10),
]
PRICE_BIG_BOX_NAMES: List[str] = ["home depot", "lowe", "menards"]
PRICE_BIG_BOX_MULTIPLIER = 0.95
PRICE_SPECIALTY_NAMES: List[str] = ["parts", "appliance"]
PRICE_SPECIALTY_MULTIPLIER = 1.05


# --- Heuristic availability scoring ---

@dataclass(frozen=True)
class HeuristicWeights:
    """Rule table for the offline availability scorer.

    Keyword groups are matched against the lowercased store name. Each group
    contributes its strongest matching keyword; groups add up.
    """

    base: int = 20
    keyword_groups: Dict[str, Dict[str, int]] = field(
        default_factory=lambda: {
            "chain": {
                "home depot": 40,
                "lowe's": 40,
                "lowes": 40,
                "menards": 40,
                "sears": 45,
                "ace hardware": 30,
                "true value": 30,
            },
            "parts": {"appliance parts": 55, "parts": 45},
            "appliance": {"appliance": 35},
            "repair": {"repair": 30},
            "hardware": {"hardware": 25},
        }
    )
    tag_weights: Dict[str, int] = field(
        default_factory=lambda: {
            "hardware_store": 25,
            "home_goods_store": 20,
            "electronics_store": 15,
        }
    )
    # (max miles, bonus), checked in order.
    proximity_tiers: Tuple[Tuple[float, int], ...] = ((1.0, 15), (2.0, 10), (3.0, 5))
    excluded_name_words: Tuple[str, ...] = (
        "restaurant", "food", "foods", "grill", "diner", "pizza", "burger",
        "coffee", "cafe", "bakery", "bar", "clothing", "apparel", "boutique",
        "beauty", "salon", "spa", "nails", "barber", "gas", "fuel", "bank",
        "credit union", "pharmacy", "drug", "auto", "automotive", "tire",
        "car wash", "hotel", "motel", "inn", "church", "temple", "mosque",
        "synagogue", "school", "academy", "university", "hospital", "gym",
        "fitness",
    )
    excluded_types: Tuple[str, ...] = (
        "restaurant", "food", "meal_takeaway", "meal_delivery", "cafe",
        "coffee_shop", "bakery", "bar", "clothing_store", "shoe_store",
        "beauty_salon", "hair_care", "hair_salon", "spa", "nail_salon",
        "gas_station", "bank", "atm", "pharmacy", "drugstore", "car_dealer",
        "car_repair", "car_wash", "car_rental", "auto_parts_store", "lodging",
        "hotel", "motel", "church", "place_of_worship", "mosque", "synagogue",
        "hindu_temple", "school", "primary_school", "secondary_school",
        "university", "hospital", "gym", "fitness_center",
    )


HEURISTIC_WEIGHTS = HeuristicWeights()


def load_search_config(path: Optional[str] = None) -> bool:
    """Load locator overrides from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "locator_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    globals_ref = globals()

    search = data.get("search", {})
    if "max_distance_miles" in search:
        globals_ref["DEFAULT_MAX_DISTANCE_MILES"] = float(search["max_distance_miles"])
    if "result_cap" in search:
        globals_ref["DEFAULT_RESULT_CAP"] = int(search["result_cap"])
    if "min_likelihood" in search:
        globals_ref["MIN_LIKELIHOOD"] = int(search["min_likelihood"])

    ranking = data.get("ranking", {})
    if "distance_penalty_per_mile" in ranking:
        globals_ref["DISTANCE_PENALTY_PER_MILE"] = float(ranking["distance_penalty_per_mile"])
    if "tie_break_threshold" in ranking:
        globals_ref["TIE_BREAK_THRESHOLD"] = float(ranking["tie_break_threshold"])

    cache = data.get("cache", {})
    if "ttl_seconds" in cache:
        globals_ref["CACHE_TTL_SECONDS"] = float(cache["ttl_seconds"])

    http = data.get("http", {})
    if "timeout_seconds" in http:
        globals_ref["HTTP_TIMEOUT_SECONDS"] = int(http["timeout_seconds"])
    if "oracle_timeout_seconds" in http:
        globals_ref["ORACLE_TIMEOUT_SECONDS"] = int(http["oracle_timeout_seconds"])

    heuristic = data.get("heuristic", {})
    if heuristic:
        overrides: Dict[str, Any] = {}
        if "base" in heuristic:
            overrides["base"] = int(heuristic["base"])
        if "tag_weights" in heuristic:
            overrides["tag_weights"] = {str(k): int(v) for k, v in heuristic["tag_weights"].items()}
        if "excluded_name_words" in heuristic:
            overrides["excluded_name_words"] = tuple(heuristic["excluded_name_words"])
        if "excluded_types" in heuristic:
            overrides["excluded_types"] = tuple(heuristic["excluded_types"])
        globals_ref["HEURISTIC_WEIGHTS"] = replace(HEURISTIC_WEIGHTS, **overrides)

    return True
