"""Provider error taxonomy.

Adapters raise these internally and convert them into failed
ProviderResult envelopes at their boundary, so nothing in the aggregation
or presentation layers ever sees a raw exception. Kept in one module to
avoid circular imports between providers and market_data.
"""

from enum import Enum


class ProviderErrorKind(str, Enum):
    """Classification attached to every failed provider result."""

    NETWORK = "network"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    NOT_FOUND = "not_found"
    SCHEMA = "schema"


class PairwatchError(Exception):
    """Base exception for all pairwatch errors."""


class ProviderError(PairwatchError):
    """Base class for upstream provider failures."""

    kind: ProviderErrorKind = ProviderErrorKind.NETWORK

    def __init__(self, message: str = "", status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NetworkError(ProviderError):
    """Transport failure, timeout, or unexpected non-2xx status."""

    kind = ProviderErrorKind.NETWORK


class AuthError(ProviderError):
    """Missing or rejected credentials (401/403)."""

    kind = ProviderErrorKind.AUTH


class RateLimitError(ProviderError):
    """Provider asked us to slow down (429)."""

    kind = ProviderErrorKind.RATE_LIMIT


class NotFoundError(ProviderError):
    """Requested token, pair, or catalog id does not exist upstream."""

    kind = ProviderErrorKind.NOT_FOUND


class SchemaError(ProviderError):
    """Response body did not have a recognised shape."""

    kind = ProviderErrorKind.SCHEMA
