"""Shared data models for the pair panel engine.

CRITICAL: All monetary values, prices and percentages use Decimal. Never use
float for USD amounts or price changes; provider payloads are converted with
Decimal(str(value)) at the adapter boundary.

Snapshots and aggregation states are frozen and replaced wholesale each
tick; nothing downstream of an adapter mutates them.
"""

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Generic, TypeVar

from pairwatch.exceptions import ProviderErrorKind

T = TypeVar("T")

ZERO = Decimal("0")


class TradeSide(str, Enum):
    """Swap direction relative to the base token."""

    BUY = "buy"
    SELL = "sell"


class WindowKey(str, Enum):
    """Trailing statistics windows shown on the panel."""

    M5 = "5m"
    H1 = "1h"
    H4 = "4h"
    H24 = "24h"

    @property
    def duration_ms(self) -> int:
        """Window length in milliseconds."""
        return _WINDOW_DURATIONS_MS[self]


_WINDOW_DURATIONS_MS: dict[WindowKey, int] = {
    WindowKey.M5: 5 * 60 * 1000,
    WindowKey.H1: 60 * 60 * 1000,
    WindowKey.H4: 4 * 60 * 60 * 1000,
    WindowKey.H24: 24 * 60 * 60 * 1000,
}

#: Windows ordered shortest first.
WINDOW_KEYS: tuple[WindowKey, ...] = tuple(WindowKey)


@dataclass(frozen=True)
class TokenRef:
    """A token identity on some chain."""

    address: str
    symbol: str = ""
    name: str = ""


@dataclass(frozen=True)
class PairRef:
    """The pair the panel is observing."""

    pair_address: str
    chain: str  # EVM chain id as given by the caller, e.g. "0x1"
    base_token: TokenRef
    quote_token: TokenRef

    @property
    def pair_id(self) -> str:
        return f"{self.chain}:{self.pair_address}".lower()


@dataclass(frozen=True)
class NormalizedTransaction:
    """A single swap, provider-agnostic."""

    tx_hash: str
    timestamp_ms: int
    side: TradeSide
    base_amount: Decimal
    quote_amount: Decimal
    base_usd_price: Decimal
    quote_usd_price: Decimal
    usd_value: Decimal  # >= 0; 0 means "unknown", resolved by the aggregator
    wallet_address: str = ""


class SwapEndpoint(str, Enum):
    """Which trade-ledger listing a page of swaps came from."""

    TOKEN = "token"
    PAIR = "pair"


@dataclass(frozen=True)
class SwapPage:
    """One ledger response: swaps newest first plus how they were requested.

    ``page_limit`` is the page size of the endpoint that answered, so a
    caller can tell whether the page was cut short.
    """

    transactions: list[NormalizedTransaction]
    endpoint: SwapEndpoint = SwapEndpoint.TOKEN
    page_limit: int = 0

    @property
    def full(self) -> bool:
        return self.page_limit > 0 and len(self.transactions) >= self.page_limit


@dataclass(frozen=True)
class PricePoint:
    """One sample of a provider's historical USD price series."""

    timestamp_ms: int
    usd_price: Decimal


@dataclass(frozen=True)
class VolumePoint:
    """One sample of a provider's rolling 24h USD volume series."""

    timestamp_ms: int
    usd_volume: Decimal


@dataclass(frozen=True)
class WindowStats:
    """Counts and volumes for one trailing window.

    Invariant: total_volume_usd == buy_volume_usd + sell_volume_usd.
    ``synthesized`` marks heuristic estimates so they are never shown as exact.
    """

    price_change_pct: Decimal = ZERO
    buy_count: int = 0
    sell_count: int = 0
    buyer_count: int = 0
    seller_count: int = 0
    buy_volume_usd: Decimal = ZERO
    sell_volume_usd: Decimal = ZERO
    total_volume_usd: Decimal = ZERO
    synthesized: bool = False

    @property
    def tx_count(self) -> int:
        return self.buy_count + self.sell_count


@dataclass(frozen=True)
class PairSnapshot:
    """Pair-level facts reported by the pair aggregator."""

    pair_address: str
    base_token: TokenRef
    quote_token: TokenRef
    liquidity_usd: Decimal
    price_usd: Decimal
    price_native: Decimal
    created_at: int | None = None  # Unix milliseconds
    volume_24h_usd: Decimal = ZERO
    price_changes: Mapping[WindowKey, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderResult(Generic[T]):
    """Uniform envelope returned by every adapter call."""

    success: bool
    provider_id: str
    value: T | None = None
    fetched_at: float = field(default_factory=time.time)
    kind: ProviderErrorKind | None = None
    error: str = ""

    @classmethod
    def ok(cls, provider_id: str, value: T) -> "ProviderResult[T]":
        return cls(success=True, provider_id=provider_id, value=value)

    @classmethod
    def fail(
        cls, provider_id: str, kind: ProviderErrorKind, error: str = ""
    ) -> "ProviderResult[T]":
        return cls(success=False, provider_id=provider_id, kind=kind, error=error)


@dataclass(frozen=True)
class Resolution(Generic[T]):
    """A resolved fact and the source that satisfied it."""

    value: T
    provider_id: str


@dataclass(frozen=True)
class AggregationState:
    """Per-window statistics published to presentation state each tick."""

    windows: Mapping[WindowKey, WindowStats]
    last_updated: int  # Unix milliseconds

    def __post_init__(self) -> None:
        object.__setattr__(self, "windows", MappingProxyType(dict(self.windows)))


def empty_windows() -> dict[WindowKey, WindowStats]:
    """Return a fresh all-zero window map."""
    return {key: WindowStats() for key in WINDOW_KEYS}
