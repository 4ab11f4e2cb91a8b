"""Trailing-window aggregation of a swap stream.

One pass over the deduplicated transactions: for each swap, ``age = now -
timestamp`` and every window whose duration covers that age accumulates
the swap. With four fixed windows the nested loop is O(n * 4), which beats
any sorted/bisected structure at this size.

Because the ledger pages newest-first with a fixed page size, a busy pair
can fill a page before reaching the start of the longer windows.
``windows_needing_widening`` detects that so the resolver can issue one
window-scoped call and merge it in before aggregating.

CRITICAL: All monetary values use Decimal.
"""

from collections.abc import Iterable, Sequence
from decimal import Decimal

from pairwatch.models import (
    WINDOW_KEYS,
    ZERO,
    AggregationState,
    NormalizedTransaction,
    TradeSide,
    WindowKey,
    WindowStats,
)


class _WindowAccumulator:
    """Mutable running totals for one window within a single pass."""

    __slots__ = ("buys", "sells", "buyers", "sellers", "buy_volume", "sell_volume")

    def __init__(self) -> None:
        self.buys = 0
        self.sells = 0
        self.buyers: set[str] = set()
        self.sellers: set[str] = set()
        self.buy_volume = ZERO
        self.sell_volume = ZERO

    def add(self, side: TradeSide, usd: Decimal, wallet: str) -> None:
        if side == TradeSide.BUY:
            self.buys += 1
            self.buyers.add(wallet)
            self.buy_volume += usd
        else:
            self.sells += 1
            self.sellers.add(wallet)
            self.sell_volume += usd

    def freeze(self) -> WindowStats:
        return WindowStats(
            buy_count=self.buys,
            sell_count=self.sells,
            buyer_count=len(self.buyers),
            seller_count=len(self.sellers),
            buy_volume_usd=self.buy_volume,
            sell_volume_usd=self.sell_volume,
            total_volume_usd=self.buy_volume + self.sell_volume,
        )


def dedupe_transactions(
    transactions: Iterable[NormalizedTransaction],
) -> list[NormalizedTransaction]:
    """Drop repeated tx hashes, keeping the first occurrence and input order."""
    seen: set[str] = set()
    unique: list[NormalizedTransaction] = []
    for tx in transactions:
        if tx.tx_hash in seen:
            continue
        seen.add(tx.tx_hash)
        unique.append(tx)
    return unique


def merge_transactions(
    primary: Sequence[NormalizedTransaction],
    *extra: Sequence[NormalizedTransaction],
) -> list[NormalizedTransaction]:
    """Concatenate transaction lists and dedupe by hash."""
    merged: list[NormalizedTransaction] = list(primary)
    for batch in extra:
        merged.extend(batch)
    return dedupe_transactions(merged)


def usd_value(tx: NormalizedTransaction, fallback_price: Decimal | None) -> Decimal:
    """A swap's USD value, deriving it from base amount x price when absent."""
    if tx.usd_value > 0:
        return tx.usd_value
    price = tx.base_usd_price if tx.base_usd_price > 0 else (fallback_price or ZERO)
    if tx.base_amount > 0 and price > 0:
        return tx.base_amount * price
    return ZERO


def aggregate_windows(
    transactions: Iterable[NormalizedTransaction],
    now_ms: int,
    fallback_price: Decimal | None = None,
) -> AggregationState:
    """Bucket swaps into the four trailing windows in a single pass.

    Args:
        transactions: Swaps in any order; duplicates by hash are ignored.
        now_ms: Reference time; swaps stamped in the future (clock skew)
            count as age 0.
        fallback_price: Current USD price for swaps missing a USD value.

    Returns:
        AggregationState with price_change_pct left at 0 for the resolver.
    """
    accumulators = {key: _WindowAccumulator() for key in WINDOW_KEYS}

    for index, tx in enumerate(dedupe_transactions(transactions)):
        age = max(0, now_ms - tx.timestamp_ms)
        usd = usd_value(tx, fallback_price)
        # swaps without a wallet are counted as distinct participants
        wallet = tx.wallet_address or f"#{index}"
        for key in WINDOW_KEYS:
            if key.duration_ms >= age:
                accumulators[key].add(tx.side, usd, wallet)

    return AggregationState(
        windows={key: acc.freeze() for key, acc in accumulators.items()},
        last_updated=now_ms,
    )


def windows_needing_widening(
    transactions: Sequence[NormalizedTransaction],
    now_ms: int,
    page_limit: int,
) -> list[WindowKey]:
    """Windows a full page of swaps may under-represent.

    A page that came back full and whose oldest swap is younger than a
    window's start means there are probably older swaps in that window the
    page cut off.
    """
    if page_limit <= 0 or len(transactions) < page_limit:
        return []
    oldest_age = now_ms - min(tx.timestamp_ms for tx in transactions)
    return [key for key in WINDOW_KEYS if oldest_age < key.duration_ms]
