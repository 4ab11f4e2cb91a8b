"""Heuristic window statistics for pairs whose providers returned nothing.

Upstream providers never distinguish "confirmed zero trades" from "no data
returned", so a window with zero transactions and zero volume is always
treated as missing data and filled with an estimate. Estimates are flagged
``synthesized=True`` and never presented as exact.

When the ledger has no swaps, the chart provider's rolling 24h volume
series comes first: each window's volume is how much that rolling total
rose over the window, turned into counts with the same trade-size model.

Baseline 24h volume, in priority order:
    1. Pair aggregator's reported 24h volume
    2. Token metadata 24h volume (chart provider's volume series)
    3. 60% of pool liquidity
    4. price x 5000 (price 1 when unknown, so never zero)

CRITICAL: All computations use Decimal.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal

from pairwatch.config import HeuristicSettings
from pairwatch.logging import get_logger
from pairwatch.models import (
    WINDOW_KEYS,
    ZERO,
    AggregationState,
    VolumePoint,
    WindowKey,
    WindowStats,
)

logger = get_logger(__name__)

_ONE = Decimal("1")
_EVEN_SPLIT = Decimal("0.5")


@dataclass(frozen=True)
class BaselineInputs:
    """Adjacent signals the baseline volume can be derived from."""

    aggregator_volume_24h: Decimal | None = None
    metadata_volume_24h: Decimal | None = None
    liquidity_usd: Decimal | None = None
    price_usd: Decimal | None = None


def _positive(value: Decimal | None) -> bool:
    return value is not None and value > 0


def volume_deltas(points: Sequence[VolumePoint]) -> dict[WindowKey, Decimal]:
    """Rise of a rolling volume series over each window, never negative.

    The reference time is the newest sample; the value a window ago is the
    latest sample at or before that instant, else the oldest sample.
    ``points`` must be ascending.
    """
    if not points:
        return {}
    latest = points[-1]
    deltas: dict[WindowKey, Decimal] = {}
    for key in WINDOW_KEYS:
        target = latest.timestamp_ms - key.duration_ms
        then = points[0].usd_volume
        for point in reversed(points):
            if point.timestamp_ms <= target:
                then = point.usd_volume
                break
        deltas[key] = max(ZERO, latest.usd_volume - then)
    return deltas


class HeuristicSynthesizer:
    """Fills empty or half-empty windows from baseline volume and price.

    Args:
        settings: Synthesizer constants (shares, trade-size clamp, ratios).
    """

    def __init__(self, settings: HeuristicSettings | None = None) -> None:
        self._settings = settings or HeuristicSettings()
        self._shares: dict[WindowKey, Decimal] = {
            WindowKey.M5: self._settings.share_5m,
            WindowKey.H1: self._settings.share_1h,
            WindowKey.H4: self._settings.share_4h,
            WindowKey.H24: self._settings.share_24h,
        }

    def baseline_24h_volume(self, inputs: BaselineInputs) -> Decimal:
        """First usable 24h volume estimate from the baseline chain."""
        s = self._settings
        if _positive(inputs.aggregator_volume_24h):
            return inputs.aggregator_volume_24h  # type: ignore[return-value]
        if _positive(inputs.metadata_volume_24h):
            return inputs.metadata_volume_24h  # type: ignore[return-value]
        if _positive(inputs.liquidity_usd):
            return inputs.liquidity_usd * s.liquidity_volume_ratio  # type: ignore[operator]
        price = inputs.price_usd if _positive(inputs.price_usd) else _ONE
        return price * s.price_volume_multiplier  # type: ignore[operator]

    def average_trade_size(self, price_usd: Decimal | None) -> Decimal:
        """clamp(price x 150, 25, 1500); the default size when price is unknown."""
        s = self._settings
        if not _positive(price_usd):
            return s.default_trade_size_usd
        size = price_usd * s.trade_size_price_multiplier  # type: ignore[operator]
        return max(s.min_trade_size_usd, min(s.max_trade_size_usd, size))

    def buy_ratio(self, change_pct: Decimal | None) -> Decimal:
        """Buy share biased by price direction; even split when unknown."""
        if change_pct is None:
            return _EVEN_SPLIT
        if change_pct >= 0:
            return self._settings.bullish_buy_ratio
        return self._settings.bearish_buy_ratio

    def window_share(self, key: WindowKey) -> Decimal:
        return self._shares[key]

    def synthesize_window(
        self,
        volume_usd: Decimal,
        avg_trade_usd: Decimal,
        change_pct: Decimal | None,
    ) -> WindowStats:
        """Estimate a whole window from its USD volume.

        tx count = max(1, round(volume / avg trade)); buyers/sellers equal
        the buy/sell counts.
        """
        txns = max(1, int((volume_usd / avg_trade_usd).to_integral_value(ROUND_HALF_UP)))
        ratio = self.buy_ratio(change_pct)
        buys = int((txns * ratio).to_integral_value(ROUND_HALF_UP))
        sells = txns - buys
        buy_volume = volume_usd * ratio
        sell_volume = volume_usd - buy_volume
        return WindowStats(
            price_change_pct=change_pct if change_pct is not None else ZERO,
            buy_count=buys,
            sell_count=sells,
            buyer_count=buys,
            seller_count=sells,
            buy_volume_usd=buy_volume,
            sell_volume_usd=sell_volume,
            total_volume_usd=volume_usd,
            synthesized=True,
        )

    def from_volume_series(
        self,
        points: Sequence[VolumePoint],
        price_usd: Decimal | None,
        changes: Mapping[WindowKey, Decimal] | None = None,
    ) -> dict[WindowKey, WindowStats]:
        """Windows estimated from a rolling volume series.

        Windows whose volume did not rise are left out for the baseline
        chain to fill.
        """
        changes = changes or {}
        avg_trade = self.average_trade_size(price_usd)
        return {
            key: self.synthesize_window(volume, avg_trade, changes.get(key))
            for key, volume in volume_deltas(points).items()
            if volume > 0
        }

    def fill_window(
        self,
        key: WindowKey,
        stats: WindowStats,
        baseline_24h: Decimal,
        avg_trade_usd: Decimal,
        change_pct: Decimal | None,
    ) -> WindowStats:
        """Fill whichever half of a window is missing; complete windows pass through."""
        has_tx = stats.tx_count > 0
        has_volume = stats.total_volume_usd > 0

        if has_tx and has_volume:
            return stats

        if not has_tx and not has_volume:
            estimate = self.synthesize_window(
                baseline_24h * self.window_share(key), avg_trade_usd, change_pct
            )
            return replace(estimate, price_change_pct=stats.price_change_pct)

        if not has_tx:
            # volume known, counts derived from it
            estimate = self.synthesize_window(stats.total_volume_usd, avg_trade_usd, change_pct)
            return replace(
                stats,
                buy_count=estimate.buy_count,
                sell_count=estimate.sell_count,
                buyer_count=estimate.buyer_count,
                seller_count=estimate.seller_count,
                synthesized=True,
            )

        # counts known, volume derived from them
        volume = max(
            self._settings.min_volume_from_count_usd,
            stats.tx_count * avg_trade_usd,
        )
        estimate = self.synthesize_window(volume, avg_trade_usd, change_pct)
        return replace(
            stats,
            buy_volume_usd=estimate.buy_volume_usd,
            sell_volume_usd=estimate.sell_volume_usd,
            total_volume_usd=estimate.total_volume_usd,
            synthesized=True,
        )

    def apply(
        self,
        state: AggregationState,
        inputs: BaselineInputs,
        changes: Mapping[WindowKey, Decimal] | None = None,
    ) -> AggregationState:
        """Return a new state with every incomplete window filled.

        Args:
            state: Aggregated (empirical) windows.
            inputs: Baseline signals for the current tick.
            changes: Resolved per-window price changes, biasing buy/sell split.
        """
        changes = changes or {}
        baseline = self.baseline_24h_volume(inputs)
        avg_trade = self.average_trade_size(inputs.price_usd)

        windows: dict[WindowKey, WindowStats] = {}
        filled: list[str] = []
        for key in WINDOW_KEYS:
            current = state.windows.get(key, WindowStats())
            result = self.fill_window(key, current, baseline, avg_trade, changes.get(key))
            if result is not current:
                filled.append(key.value)
            windows[key] = result

        if filled:
            logger.debug(
                "windows_synthesized",
                windows=filled,
                baseline_24h=str(baseline),
                avg_trade_usd=str(avg_trade),
            )
        return AggregationState(windows=windows, last_updated=state.last_updated)
