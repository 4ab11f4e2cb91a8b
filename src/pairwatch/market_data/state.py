"""Presentation state for the pair panel.

Holds the last successfully resolved values for one pair and turns them
into an immutable PanelView. State machine:

    UNINITIALIZED -> LOADING -> READY -> READY ...

READY is sticky: a failed tick only raises the ``stale`` flag and every
value stays as it was. Only ``reset()`` (a pair switch) returns to
UNINITIALIZED.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any

from pairwatch.market_data.resolver import TickUpdate
from pairwatch.models import WindowKey, WindowStats


class PanelStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"


class PriceFlash(str, Enum):
    """Direction of the last inter-tick price move, shown briefly."""

    UP = "up"
    DOWN = "down"


def _dec(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _stats_to_dict(stats: WindowStats) -> dict[str, Any]:
    return {
        "price_change_pct": str(stats.price_change_pct),
        "buys": stats.buy_count,
        "sells": stats.sell_count,
        "buyers": stats.buyer_count,
        "sellers": stats.seller_count,
        "buy_volume_usd": str(stats.buy_volume_usd),
        "sell_volume_usd": str(stats.sell_volume_usd),
        "total_volume_usd": str(stats.total_volume_usd),
        "synthesized": stats.synthesized,
    }


@dataclass(frozen=True)
class PanelView:
    """Read model handed to the view layer."""

    pair_id: str
    status: PanelStatus
    price: Decimal | None = None
    price_native: Decimal | None = None
    liquidity_usd: Decimal | None = None
    windows: Mapping[WindowKey, WindowStats] = field(default_factory=dict)
    last_updated_at: int | None = None
    stale: bool = False
    refreshing: bool = False
    price_flash: PriceFlash | None = None
    sources: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        """Hard error state: a failed attempt before any value was shown."""
        return self.status != PanelStatus.READY and self.stale

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready dict; Decimals are rendered as strings."""
        return {
            "pair_id": self.pair_id,
            "status": self.status.value,
            "price": _dec(self.price),
            "price_native": _dec(self.price_native),
            "liquidity_usd": _dec(self.liquidity_usd),
            "windows": {key.value: _stats_to_dict(s) for key, s in self.windows.items()},
            "last_updated_at": self.last_updated_at,
            "stale": self.stale,
            "refreshing": self.refreshing,
            "error": self.is_error,
            "price_flash": self.price_flash.value if self.price_flash else None,
            "sources": dict(self.sources),
        }


class PresentationState:
    """Last-known-good values for one pair plus price-flash detection."""

    def __init__(self, pair_id: str) -> None:
        self.pair_id = pair_id
        self.reset()

    def reset(self) -> None:
        """Forget everything and return to UNINITIALIZED."""
        self.status = PanelStatus.UNINITIALIZED
        self.price: Decimal | None = None
        self.price_native: Decimal | None = None
        self.liquidity_usd: Decimal | None = None
        self.windows: Mapping[WindowKey, WindowStats] = MappingProxyType({})
        self.last_updated_at: int | None = None
        self.sources: Mapping[str, str] = MappingProxyType({})
        self.stale = False
        self.refreshing = False
        self.price_flash: PriceFlash | None = None

    def begin_refresh(self) -> None:
        if self.status == PanelStatus.UNINITIALIZED:
            self.status = PanelStatus.LOADING
        self.refreshing = True

    def apply(self, update: TickUpdate) -> PriceFlash | None:
        """Replace values with a tick's results and return the price flash.

        Facts the tick could not resolve keep their previous values.
        """
        new_price = update.price.value if update.price else self.price
        flash: PriceFlash | None = None
        if self.price is not None and new_price is not None and new_price != self.price:
            flash = PriceFlash.UP if new_price > self.price else PriceFlash.DOWN
            self.price_flash = flash

        self.price = new_price
        if update.price_native is not None:
            self.price_native = update.price_native
        if update.liquidity_usd is not None:
            self.liquidity_usd = update.liquidity_usd
        self.windows = update.aggregation.windows
        self.last_updated_at = update.aggregation.last_updated
        self.sources = MappingProxyType(dict(update.sources))
        self.status = PanelStatus.READY
        self.stale = False
        self.refreshing = False
        return flash

    def mark_failed(self) -> None:
        """A tick produced nothing: keep every value, flag them stale."""
        self.stale = True
        self.refreshing = False

    def clear_flash(self) -> None:
        self.price_flash = None

    def view(self) -> PanelView:
        return PanelView(
            pair_id=self.pair_id,
            status=self.status,
            price=self.price,
            price_native=self.price_native,
            liquidity_usd=self.liquidity_usd,
            windows=self.windows,
            last_updated_at=self.last_updated_at,
            stale=self.stale,
            refreshing=self.refreshing,
            price_flash=self.price_flash,
            sources=self.sources,
        )
