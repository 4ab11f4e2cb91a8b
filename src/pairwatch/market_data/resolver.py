"""Per-tick resolution: provider fan-out, cascades and window statistics.

Each tick starts every provider call concurrently, bounded by a timeout,
and joins them before any cascade runs. Cascades then read the gathered
results synchronously in fixed priority order:

    price:         chart provider -> ledger token price -> pair aggregator
                   -> last known price
    price change:  chart price series -> aggregator coarse change
                   -> transaction-derived change (per window)
    window stats:  ledger transactions -> chart volume series
                   -> heuristic synthesis

A tick where every provider call failed yields no update at all, so the
presentation layer keeps its previous values instead of showing zeros.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, TypeVar

from pairwatch.exceptions import ProviderErrorKind
from pairwatch.logging import get_logger
from pairwatch.market_data.aggregation import (
    aggregate_windows,
    merge_transactions,
    windows_needing_widening,
)
from pairwatch.market_data.cascade import RateLimitBackoff, Step, first_success, from_result
from pairwatch.market_data.heuristics import BaselineInputs, HeuristicSynthesizer
from pairwatch.market_data.price_change import changes_from_series, changes_from_transactions
from pairwatch.models import (
    WINDOW_KEYS,
    AggregationState,
    NormalizedTransaction,
    PairRef,
    PairSnapshot,
    PricePoint,
    ProviderResult,
    Resolution,
    SwapPage,
    VolumePoint,
    WindowKey,
    WindowStats,
)
from pairwatch.providers.base import ChartSource, PairSource, SwapSource

logger = get_logger(__name__)

T = TypeVar("T")

LAST_KNOWN = "last_known"
TRANSACTIONS = "transactions"
VOLUME_SERIES = "volume_series"
HEURISTIC = "heuristic"


@dataclass(frozen=True)
class ChartBundle:
    """Chart-provider results for one tick, all failed when id resolution fails."""

    price: ProviderResult[Decimal]
    series: ProviderResult[list[PricePoint]]
    volume: ProviderResult[list[VolumePoint]]

    def results(self) -> tuple[ProviderResult[Any], ...]:
        return (self.price, self.series, self.volume)


@dataclass(frozen=True)
class TickUpdate:
    """Everything one successful tick resolved for the active pair.

    ``sources`` maps each resolved fact ("price", "change_5m", ...,
    "stats_5m", ...) to the provider or fallback that satisfied it.
    """

    aggregation: AggregationState
    price: Resolution[Decimal] | None = None
    price_native: Decimal | None = None
    liquidity_usd: Decimal | None = None
    snapshot: PairSnapshot | None = None
    sources: Mapping[str, str] = field(default_factory=dict)


def _positive(value: Decimal | None) -> Decimal | None:
    if value is None or value <= 0:
        return None
    return value


class PairResolver:
    """Resolves one tick for a pair from the three provider roles.

    Args:
        swaps: Trade-ledger adapter.
        chart: Price/chart adapter.
        pairs: Pair-aggregator adapter.
        synthesizer: Fills windows that came back empty.
        backoff: Shared rate-limit backoff tracker.
        timeout_seconds: Upper bound for every provider call.
    """

    def __init__(
        self,
        swaps: SwapSource,
        chart: ChartSource,
        pairs: PairSource,
        synthesizer: HeuristicSynthesizer | None = None,
        backoff: RateLimitBackoff | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._swaps = swaps
        self._chart = chart
        self._pairs = pairs
        self._synthesizer = synthesizer or HeuristicSynthesizer()
        self._backoff = backoff or RateLimitBackoff()
        self._timeout = timeout_seconds

    async def close(self) -> None:
        """Close every provider adapter."""
        await asyncio.gather(self._swaps.close(), self._chart.close(), self._pairs.close())

    # ──────────────────────────────────────────────────────────────────
    # Fan-out
    # ──────────────────────────────────────────────────────────────────

    async def _bounded(
        self,
        provider_id: str,
        fetch: Callable[[], Awaitable[ProviderResult[T]]],
    ) -> ProviderResult[T]:
        """Run one provider call under the timeout and rate-limit backoff."""

        async def attempt() -> ProviderResult[T]:
            try:
                return await asyncio.wait_for(fetch(), timeout=self._timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "provider_call_timeout", provider=provider_id, timeout=self._timeout
                )
                return ProviderResult.fail(provider_id, ProviderErrorKind.NETWORK, "timeout")

        return await self._backoff.call(provider_id, attempt)

    async def _fetch_chart(self, pair: PairRef) -> ChartBundle:
        chart_id = self._chart.provider_id
        resolved = await self._bounded(chart_id, lambda: self._chart.resolve_id(pair))
        if not resolved.success or not resolved.value:
            failed: ProviderResult[Any] = ProviderResult.fail(
                chart_id, resolved.kind or ProviderErrorKind.NOT_FOUND, resolved.error
            )
            return ChartBundle(price=failed, series=failed, volume=failed)

        coin_id = resolved.value
        price, series, volume = await asyncio.gather(
            self._bounded(chart_id, lambda: self._chart.fetch_price(coin_id)),
            self._bounded(chart_id, lambda: self._chart.fetch_price_series(coin_id)),
            self._bounded(chart_id, lambda: self._chart.fetch_volume_series(coin_id)),
        )
        return ChartBundle(price=price, series=series, volume=volume)

    async def _widen(
        self,
        pair: PairRef,
        page: SwapPage,
        now_ms: int,
    ) -> list[NormalizedTransaction]:
        """Merge in one window-scoped ledger call when the first page was cut short.

        Windows are nested, so the widest under-covered window's call covers
        the narrower ones too. The call goes through the listing that served
        the first page.
        """
        transactions = list(page.transactions)
        if not page.full:
            return transactions
        windows = windows_needing_widening(transactions, now_ms, page.page_limit)
        if not windows:
            return transactions
        widest = windows[-1]
        logger.info(
            "transactions_widening",
            window=widest.value,
            endpoint=page.endpoint.value,
            fetched=len(transactions),
        )
        extra = await self._bounded(
            self._swaps.provider_id,
            lambda: self._swaps.fetch_transactions(
                pair, window=widest, endpoint=page.endpoint, now_ms=now_ms
            ),
        )
        if not extra.success or not extra.value:
            return transactions
        return merge_transactions(transactions, extra.value.transactions)

    # ──────────────────────────────────────────────────────────────────
    # Resolution
    # ──────────────────────────────────────────────────────────────────

    async def resolve(
        self,
        pair: PairRef,
        last_price: Decimal | None = None,
        now_ms: int | None = None,
    ) -> TickUpdate | None:
        """Fetch from every provider and reconcile one tick.

        Args:
            pair: Pair to resolve.
            last_price: Last known price, the final price fallback.
            now_ms: Reference time for windowing; defaults to wall clock.

        Returns:
            TickUpdate, or None when every provider call failed.
        """
        tx_result, token_price, snapshot_result, chart = await asyncio.gather(
            self._bounded(self._swaps.provider_id, lambda: self._swaps.fetch_transactions(pair)),
            self._bounded(self._swaps.provider_id, lambda: self._swaps.fetch_token_price(pair)),
            self._bounded(self._pairs.provider_id, lambda: self._pairs.fetch_pair_snapshot(pair)),
            self._fetch_chart(pair),
        )

        results = (tx_result, token_price, snapshot_result, *chart.results())
        if not any(r.success for r in results):
            logger.warning(
                "tick_no_update",
                pair_id=pair.pair_id,
                failures={r.provider_id: r.kind.value for r in results if r.kind},
            )
            return None

        now = int(time.time() * 1000) if now_ms is None else now_ms
        transactions: list[NormalizedTransaction] = []
        if tx_result.success and tx_result.value and tx_result.value.transactions:
            transactions = await self._widen(pair, tx_result.value, now)

        return self.reconcile(
            transactions=transactions,
            transactions_ok=tx_result.success,
            token_price=token_price,
            snapshot_result=snapshot_result,
            chart=chart,
            last_price=last_price,
            now_ms=now,
        )

    def reconcile(
        self,
        transactions: Sequence[NormalizedTransaction],
        transactions_ok: bool,
        token_price: ProviderResult[Decimal],
        snapshot_result: ProviderResult[PairSnapshot],
        chart: ChartBundle,
        last_price: Decimal | None,
        now_ms: int,
    ) -> TickUpdate:
        """Run every cascade over already-gathered results. Never suspends."""
        snapshot = snapshot_result.value if snapshot_result.success else None
        sources: dict[str, str] = {}

        price = first_success(
            [
                Step(self._chart.provider_id, from_result(chart.price, _positive)),
                Step(self._swaps.provider_id, from_result(token_price, _positive)),
                Step(
                    self._pairs.provider_id,
                    from_result(snapshot_result, lambda s: _positive(s.price_usd)),
                ),
                Step(LAST_KNOWN, lambda: _positive(last_price)),
            ]
        )
        if price is not None:
            sources["price"] = price.provider_id

        state = aggregate_windows(
            transactions, now_ms, fallback_price=price.value if price else None
        )

        changes = self._resolve_changes(chart.series, snapshot, transactions, now_ms, sources)
        state = AggregationState(
            windows={
                key: replace(stats, price_change_pct=changes[key])
                if key in changes
                else stats
                for key, stats in state.windows.items()
            },
            last_updated=state.last_updated,
        )

        volume_windows: dict[WindowKey, WindowStats] = {}
        if not transactions and chart.volume.success and chart.volume.value:
            volume_windows = self._synthesizer.from_volume_series(
                chart.volume.value, price.value if price else None, changes
            )
            if volume_windows:
                state = AggregationState(
                    windows={**state.windows, **volume_windows},
                    last_updated=state.last_updated,
                )

        metadata_volume = None
        if chart.volume.success and chart.volume.value:
            metadata_volume = chart.volume.value[-1].usd_volume
        inputs = BaselineInputs(
            aggregator_volume_24h=snapshot.volume_24h_usd if snapshot else None,
            metadata_volume_24h=metadata_volume,
            liquidity_usd=snapshot.liquidity_usd if snapshot else None,
            price_usd=price.value if price else None,
        )
        state = self._synthesizer.apply(state, inputs, changes)

        for key in WINDOW_KEYS:
            stats: WindowStats = state.windows[key]
            if key in volume_windows:
                sources[f"stats_{key.value}"] = VOLUME_SERIES
            elif stats.synthesized:
                sources[f"stats_{key.value}"] = HEURISTIC
            elif transactions_ok:
                sources[f"stats_{key.value}"] = self._swaps.provider_id

        return TickUpdate(
            aggregation=state,
            price=price,
            price_native=_positive(snapshot.price_native) if snapshot else None,
            liquidity_usd=snapshot.liquidity_usd if snapshot else None,
            snapshot=snapshot,
            sources=sources,
        )

    def _resolve_changes(
        self,
        series: ProviderResult[list[PricePoint]],
        snapshot: PairSnapshot | None,
        transactions: Sequence[NormalizedTransaction],
        now_ms: int,
        sources: dict[str, str],
    ) -> dict[WindowKey, Decimal]:
        """Per-window price change; windows no source can answer are omitted."""
        chart_changes: Mapping[WindowKey, Decimal] = {}
        if series.success and series.value:
            chart_changes = changes_from_series(series.value) or {}
        pair_changes: Mapping[WindowKey, Decimal] = snapshot.price_changes if snapshot else {}
        tx_changes = changes_from_transactions(transactions, now_ms) or {}

        resolved: dict[WindowKey, Decimal] = {}
        for key in WINDOW_KEYS:
            change = first_success(
                [
                    Step(self._chart.provider_id, lambda k=key: chart_changes.get(k)),
                    Step(self._pairs.provider_id, lambda k=key: pair_changes.get(k)),
                    Step(TRANSACTIONS, lambda k=key: tx_changes.get(k)),
                ]
            )
            if change is not None:
                resolved[key] = change.value
                sources[f"change_{key.value}"] = change.provider_id
        return resolved
