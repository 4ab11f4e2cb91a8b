"""Per-window percentage price change from historical prices.

The chart provider's price series is the preferred source; a series built
from swap prices is the last resort. Both use the same lookup: the price
``duration`` before the reference time is the latest sample at or before
that instant, falling back to the oldest sample when history is shorter
than the window.

CRITICAL: All computations use Decimal.
"""

from collections.abc import Sequence
from decimal import Decimal

from pairwatch.models import (
    WINDOW_KEYS,
    ZERO,
    NormalizedTransaction,
    PricePoint,
    WindowKey,
)

#: Precision for reported percentages (6 decimal places).
_PCT_QUANTIZE = Decimal("0.000001")

_HUNDRED = Decimal("100")


def percent_change(current: Decimal, previous: Decimal) -> Decimal:
    """(current - previous) / previous * 100, or 0 when previous is 0."""
    if not previous:
        return ZERO
    return ((current - previous) / previous * _HUNDRED).quantize(_PCT_QUANTIZE)


def price_at_or_before(points: Sequence[PricePoint], target_ms: int) -> Decimal:
    """Latest price with timestamp <= target_ms, else the oldest price.

    ``points`` must be non-empty and ascending.
    """
    for point in reversed(points):
        if point.timestamp_ms <= target_ms:
            return point.usd_price
    return points[0].usd_price


def changes_from_series(
    points: Sequence[PricePoint], reference_ms: int | None = None
) -> dict[WindowKey, Decimal] | None:
    """Percentage change for every window from an ascending price series.

    Args:
        points: Price samples, oldest first.
        reference_ms: "Now" for the lookups; defaults to the newest sample.

    Returns:
        Window -> percent change, or None for an empty series.
    """
    if not points:
        return None
    latest = points[-1]
    ref = latest.timestamp_ms if reference_ms is None else reference_ms
    return {
        key: percent_change(latest.usd_price, price_at_or_before(points, ref - key.duration_ms))
        for key in WINDOW_KEYS
    }


def series_from_transactions(
    transactions: Sequence[NormalizedTransaction],
) -> list[PricePoint]:
    """Ascending price series from swaps that carry a base-token USD price."""
    points = [
        PricePoint(timestamp_ms=tx.timestamp_ms, usd_price=tx.base_usd_price)
        for tx in transactions
        if tx.base_usd_price > 0
    ]
    points.sort(key=lambda p: p.timestamp_ms)
    return points


def changes_from_transactions(
    transactions: Sequence[NormalizedTransaction], now_ms: int
) -> dict[WindowKey, Decimal] | None:
    """Transaction-derived window changes, or None if no swap has a price."""
    return changes_from_series(series_from_transactions(transactions), reference_ms=now_ms)
