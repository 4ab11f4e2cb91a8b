"""Tests for presentation state and the panel read model."""

from dataclasses import replace
from decimal import Decimal

import pytest

from pairwatch.market_data.aggregation import aggregate_windows
from pairwatch.market_data.resolver import TickUpdate
from pairwatch.market_data.state import PanelStatus, PresentationState, PriceFlash
from pairwatch.models import Resolution, WindowKey

from helpers import NOW_MS, make_tx


def _update(price: str | None = "1.00", liquidity: str | None = "5000") -> TickUpdate:
    return TickUpdate(
        aggregation=aggregate_windows([make_tx("a", 1000)], NOW_MS),
        price=Resolution(Decimal(price), "chart") if price is not None else None,
        price_native=Decimal("0.0005"),
        liquidity_usd=Decimal(liquidity) if liquidity is not None else None,
        sources={"price": "chart"},
    )


@pytest.fixture
def state() -> PresentationState:
    return PresentationState("0x1:0xpair")


class TestLifecycle:
    def test_starts_uninitialized(self, state):
        view = state.view()
        assert view.status == PanelStatus.UNINITIALIZED
        assert view.price is None
        assert dict(view.windows) == {}

    def test_loading_then_ready(self, state):
        state.begin_refresh()
        assert state.view().status == PanelStatus.LOADING
        assert state.view().refreshing

        state.apply(_update())

        view = state.view()
        assert view.status == PanelStatus.READY
        assert view.price == Decimal("1.00")
        assert not view.refreshing
        assert view.windows[WindowKey.M5].buy_count == 1

    def test_failed_tick_keeps_everything_but_stale(self, state):
        state.begin_refresh()
        state.apply(_update())
        before = state.view()

        state.begin_refresh()
        state.mark_failed()
        after = state.view()

        assert after.stale
        assert replace(after, stale=False) == before

    def test_failure_before_first_success_is_error(self, state):
        state.begin_refresh()
        state.mark_failed()

        view = state.view()
        assert view.status == PanelStatus.LOADING
        assert view.is_error
        assert view.to_dict()["error"] is True

    def test_ready_never_regresses(self, state):
        state.begin_refresh()
        state.apply(_update())
        state.begin_refresh()

        assert state.view().status == PanelStatus.READY

    def test_reset_returns_to_uninitialized(self, state):
        state.apply(_update())
        state.reset()

        assert state.view().status == PanelStatus.UNINITIALIZED
        assert state.price is None

    def test_success_clears_stale(self, state):
        state.apply(_update())
        state.mark_failed()
        state.apply(_update())

        assert not state.view().stale


class TestPriceFlash:
    def test_first_price_has_no_flash(self, state):
        assert state.apply(_update("1.00")) is None
        assert state.view().price_flash is None

    def test_up_and_down(self, state):
        state.apply(_update("1.00"))

        assert state.apply(_update("1.10")) == PriceFlash.UP
        assert state.view().price_flash == PriceFlash.UP
        assert state.apply(_update("1.05")) == PriceFlash.DOWN

    def test_unchanged_price_keeps_flash_until_cleared(self, state):
        state.apply(_update("1.00"))
        state.apply(_update("1.10"))

        assert state.apply(_update("1.10")) is None
        state.clear_flash()
        assert state.view().price_flash is None

    def test_unresolved_facts_keep_previous_values(self, state):
        state.apply(_update("1.00", "5000"))
        state.apply(_update(None, None))

        view = state.view()
        assert view.price == Decimal("1.00")
        assert view.liquidity_usd == Decimal("5000")


class TestPanelViewToDict:
    def test_decimals_are_strings(self, state):
        state.apply(_update("1.00"))

        data = state.view().to_dict()

        assert data["status"] == "ready"
        assert data["price"] == "1.00"
        assert data["windows"]["5m"]["buys"] == 1
        assert data["windows"]["5m"]["total_volume_usd"] == "100"
        assert data["windows"]["24h"]["synthesized"] is False
        assert data["sources"] == {"price": "chart"}
        assert data["price_flash"] is None
