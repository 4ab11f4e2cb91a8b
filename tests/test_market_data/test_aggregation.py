"""Tests for the trailing-window aggregator."""

from decimal import Decimal

import pytest

from pairwatch.models import WINDOW_KEYS, TradeSide, WindowKey
from pairwatch.market_data.aggregation import (
    aggregate_windows,
    dedupe_transactions,
    merge_transactions,
    usd_value,
    windows_needing_widening,
)

from helpers import MINUTE_MS, NOW_MS, make_tx


@pytest.fixture
def mixed_transactions():
    return [
        make_tx("a", 1 * MINUTE_MS, TradeSide.BUY, "100", wallet="0x1"),
        make_tx("b", 3 * MINUTE_MS, TradeSide.SELL, "40", wallet="0x2"),
        make_tx("c", 30 * MINUTE_MS, TradeSide.BUY, "60", wallet="0x1"),
        make_tx("d", 3 * 60 * MINUTE_MS, TradeSide.SELL, "25.5", wallet="0x3"),
        make_tx("e", 20 * 60 * MINUTE_MS, TradeSide.BUY, "10", wallet="0x4"),
        make_tx("f", 30 * 60 * MINUTE_MS, TradeSide.BUY, "999", wallet="0x5"),  # outside 24h
    ]


class TestAggregateWindows:
    def test_scenario_two_swaps(self):
        txs = [
            make_tx("buy", 60 * 1000, TradeSide.BUY, "100"),
            make_tx("sell", 50 * MINUTE_MS, TradeSide.SELL, "50"),
        ]

        state = aggregate_windows(txs, NOW_MS)

        m5 = state.windows[WindowKey.M5]
        assert (m5.buy_count, m5.sell_count) == (1, 0)
        assert m5.buy_volume_usd == Decimal("100")
        assert m5.sell_volume_usd == Decimal("0")
        assert m5.total_volume_usd == Decimal("100")

        h1 = state.windows[WindowKey.H1]
        assert (h1.buy_count, h1.sell_count) == (1, 1)
        assert h1.buy_volume_usd == Decimal("100")
        assert h1.sell_volume_usd == Decimal("50")
        assert h1.total_volume_usd == Decimal("150")

    def test_total_equals_buy_plus_sell(self, mixed_transactions):
        state = aggregate_windows(mixed_transactions, NOW_MS)

        for stats in state.windows.values():
            assert stats.total_volume_usd == stats.buy_volume_usd + stats.sell_volume_usd

    def test_shorter_windows_never_exceed_longer(self, mixed_transactions):
        state = aggregate_windows(mixed_transactions, NOW_MS)

        counts = [state.windows[key].tx_count for key in WINDOW_KEYS]
        assert counts == sorted(counts)
        assert counts == [2, 3, 4, 5]

    def test_idempotent_with_pinned_now(self, mixed_transactions):
        first = aggregate_windows(mixed_transactions, NOW_MS)
        second = aggregate_windows(list(mixed_transactions), NOW_MS)

        assert dict(first.windows) == dict(second.windows)

    def test_duplicate_hashes_counted_once(self):
        tx = make_tx("dup", MINUTE_MS)
        state = aggregate_windows([tx, tx, tx], NOW_MS)

        assert state.windows[WindowKey.M5].buy_count == 1
        assert state.windows[WindowKey.M5].buy_volume_usd == Decimal("100")

    def test_future_timestamps_count_as_now(self):
        state = aggregate_windows([make_tx("skew", -5000)], NOW_MS)

        assert state.windows[WindowKey.M5].buy_count == 1

    def test_distinct_wallets(self, mixed_transactions):
        state = aggregate_windows(mixed_transactions, NOW_MS)

        h1 = state.windows[WindowKey.H1]
        assert h1.buy_count == 2
        assert h1.buyer_count == 1  # both buys from 0x1

    def test_records_without_wallet_are_distinct(self):
        txs = [make_tx("x", MINUTE_MS), make_tx("y", 2 * MINUTE_MS)]

        state = aggregate_windows(txs, NOW_MS)

        assert state.windows[WindowKey.M5].buyer_count == 2

    def test_missing_usd_uses_fallback_price(self):
        tx = make_tx("nousd", MINUTE_MS, usd="0", base_amount="500")

        state = aggregate_windows([tx], NOW_MS, fallback_price=Decimal("0.5"))

        assert state.windows[WindowKey.M5].buy_volume_usd == Decimal("250.0")
        assert state.windows[WindowKey.M5].buy_count == 1

    def test_empty_input_gives_zero_windows(self):
        state = aggregate_windows([], NOW_MS)

        assert set(state.windows) == set(WINDOW_KEYS)
        assert all(s.tx_count == 0 for s in state.windows.values())
        assert state.last_updated == NOW_MS

    def test_windows_mapping_is_read_only(self):
        state = aggregate_windows([], NOW_MS)

        with pytest.raises(TypeError):
            state.windows[WindowKey.M5] = None  # type: ignore[index]


class TestUsdValue:
    def test_own_price_before_fallback(self):
        tx = make_tx("p", 0, usd="0", base_amount="10", base_price="2")
        assert usd_value(tx, Decimal("100")) == Decimal("20")

    def test_unknown_stays_zero(self):
        tx = make_tx("p", 0, usd="0", base_amount="10")
        assert usd_value(tx, None) == Decimal("0")


class TestDedupeAndMerge:
    def test_dedupe_keeps_first(self):
        first = make_tx("h", MINUTE_MS, usd="1")
        again = make_tx("h", MINUTE_MS, usd="2")
        assert dedupe_transactions([first, again]) == [first]

    def test_merge_combines_and_dedupes(self):
        a, b, c = make_tx("a", 1), make_tx("b", 2), make_tx("c", 3)
        merged = merge_transactions([a, b], [b, c])
        assert [tx.tx_hash for tx in merged] == ["a", "b", "c"]


class TestWindowsNeedingWidening:
    def test_short_page_needs_nothing(self):
        txs = [make_tx(str(i), i * 1000) for i in range(5)]
        assert windows_needing_widening(txs, NOW_MS, page_limit=10) == []

    def test_full_page_reaching_back_two_hours(self):
        txs = [make_tx(str(i), i * 12 * MINUTE_MS) for i in range(11)]  # oldest 120 min

        needing = windows_needing_widening(txs, NOW_MS, page_limit=11)

        assert needing == [WindowKey.H4, WindowKey.H24]

    def test_full_page_covering_a_day(self):
        txs = [make_tx(str(i), i * 3 * 60 * MINUTE_MS) for i in range(10)]  # oldest 27h

        assert windows_needing_widening(txs, NOW_MS, page_limit=10) == []
