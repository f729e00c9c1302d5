"""Error taxonomy for the store locator."""
from __future__ import annotations


class StoreFinderError(RuntimeError):
    pass


class UpstreamUnavailableError(StoreFinderError):
    """Raised when a provider or oracle is unreachable, times out, or returns non-2xx."""


class MalformedResponseError(StoreFinderError):
    """Raised when an upstream payload cannot be parsed or fails validation."""


class InvalidInputError(StoreFinderError, ValueError):
    """Raised for requests that must be rejected (bad location, part, or budget)."""


class SearchCancelledError(StoreFinderError):
    pass
