"""Abstract provider interfaces and the adapter failure boundary.

Defines the contract for the three upstream provider roles. Resolution
code depends only on these interfaces, keeping provider-specific request
shapes and field names inside the concrete adapters.

Every public adapter method returns a ProviderResult and never raises:
``guarded`` converts the ProviderError taxonomy (and anything unexpected)
into a failed envelope at the boundary.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from decimal import Decimal, InvalidOperation
from typing import Any, TypeVar

from pairwatch.exceptions import ProviderError, ProviderErrorKind
from pairwatch.logging import get_logger
from pairwatch.models import (
    ZERO,
    PairRef,
    PairSnapshot,
    PricePoint,
    ProviderResult,
    SwapEndpoint,
    SwapPage,
    VolumePoint,
    WindowKey,
)

logger = get_logger(__name__)

T = TypeVar("T")


def parse_decimal(raw: Any, default: Decimal = ZERO) -> Decimal:
    """Convert a provider number or numeric string to Decimal.

    None, empty strings, booleans and non-finite values yield ``default``.
    """
    if raw is None or raw == "" or isinstance(raw, bool):
        return default
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        return default
    if not value.is_finite():
        return default
    return value


async def guarded(provider_id: str, call: Awaitable[T]) -> ProviderResult[T]:
    """Await an adapter call and wrap the outcome in a ProviderResult."""
    try:
        value = await call
    except asyncio.CancelledError:
        raise
    except ProviderError as e:
        logger.warning(
            "provider_call_failed",
            provider=provider_id,
            kind=e.kind.value,
            status=e.status,
            error=str(e),
        )
        return ProviderResult.fail(provider_id, e.kind, str(e))
    except Exception as e:
        logger.warning("provider_unexpected_error", provider=provider_id, exc_info=True)
        return ProviderResult.fail(provider_id, ProviderErrorKind.SCHEMA, str(e))
    return ProviderResult.ok(provider_id, value)


class SwapSource(ABC):
    """Trade-ledger provider: swap history and the ledger's token price."""

    provider_id: str

    @abstractmethod
    async def fetch_transactions(
        self,
        pair: PairRef,
        window: WindowKey | None = None,
        endpoint: SwapEndpoint | None = None,
        now_ms: int | None = None,
    ) -> ProviderResult[SwapPage]:
        """Fetch recent swaps, newest first.

        Without ``endpoint`` the adapter picks its preferred listing and may
        fall back to another; the page records which one answered. With
        ``window`` set, pages back through ``endpoint`` until the window
        ending at ``now_ms`` is covered and returns only records inside it
        (supplementary widening call).
        """
        ...

    @abstractmethod
    async def fetch_token_price(self, pair: PairRef) -> ProviderResult[Decimal]:
        """Fetch the ledger's USD price for the pair's base token."""
        ...

    async def close(self) -> None:
        """Release network resources."""


class ChartSource(ABC):
    """Price/chart provider: catalog id resolution, spot price, history."""

    provider_id: str

    @abstractmethod
    async def resolve_id(self, pair: PairRef) -> ProviderResult[str]:
        """Map the pair's base token to the provider's catalog id."""
        ...

    @abstractmethod
    async def fetch_price(self, coin_id: str) -> ProviderResult[Decimal]:
        """Fetch the current USD price for a catalog id."""
        ...

    @abstractmethod
    async def fetch_price_series(self, coin_id: str) -> ProviderResult[list[PricePoint]]:
        """Fetch the historical price series, ascending by time."""
        ...

    @abstractmethod
    async def fetch_volume_series(self, coin_id: str) -> ProviderResult[list[VolumePoint]]:
        """Fetch the rolling 24h volume series, ascending by time."""
        ...

    async def close(self) -> None:
        """Release network resources."""


class PairSource(ABC):
    """Pair aggregator: liquidity, embedded price, coarse period changes."""

    provider_id: str

    @abstractmethod
    async def fetch_pair_snapshot(self, pair: PairRef) -> ProviderResult[PairSnapshot]:
        """Fetch the aggregator's view of the pair."""
        ...

    async def close(self) -> None:
        """Release network resources."""
