"""Deterministic per-store price estimates."""
from __future__ import annotations

from dataclasses import replace
from typing import Optional

from . import config
from .models import Part, PriceEstimate, RankedStore


def base_price_for(part: Part) -> int:
    """Highest table entry matching the category, else the part name, else the default."""
    for text in (part.category, part.name):
        lowered = (text or "").lower()
        matches = [price for keyword, price in config.PRICE_TABLE if keyword in lowered]
        if matches:
            return max(matches)
    return config.PRICE_DEFAULT_BASE


def likelihood_multiplier(likelihood: int) -> float:
    for floor, multiplier in config.PRICE_LIKELIHOOD_TIERS:
        if likelihood >= floor:
            return multiplier
    return config.PRICE_LIKELIHOOD_TIERS[-1][1]


def store_multiplier(store_name: Optional[str]) -> float:
    name = (store_name or "").lower()
    if any(n in name for n in config.PRICE_BIG_BOX_NAMES):
        return config.PRICE_BIG_BOX_MULTIPLIER
    if any(n in name for n in config.PRICE_SPECIALTY_NAMES):
        return config.PRICE_SPECIALTY_MULTIPLIER
    return 1.0


class PricingEstimator:
    def __init__(self, range_fraction: Optional[float] = None) -> None:
        self.range_fraction = (
            config.PRICE_RANGE_FRACTION if range_fraction is None else float(range_fraction)
        )

    def estimate(self, part: Part, store: RankedStore) -> PriceEstimate:
        base = base_price_for(part)
        multiplier = likelihood_multiplier(store.likelihood) * store_multiplier(store.name)
        amount = int(round(base * multiplier))
        return PriceEstimate(
            amount=amount,
            currency=config.PRICE_CURRENCY,
            range_low=int(round(amount * (1 - self.range_fraction))),
            range_high=int(round(amount * (1 + self.range_fraction))),
        )

    def attach(self, part: Part, store: RankedStore) -> RankedStore:
        return replace(store, estimated_price=self.estimate(part, store))
