"""Market data pipeline -- clock, cascades, aggregation, synthesis and state."""

from pairwatch.market_data.aggregation import aggregate_windows, dedupe_transactions
from pairwatch.market_data.cascade import RateLimitBackoff, Step, first_success
from pairwatch.market_data.clock import PollingClock
from pairwatch.market_data.heuristics import BaselineInputs, HeuristicSynthesizer
from pairwatch.market_data.resolver import PairResolver, TickUpdate
from pairwatch.market_data.state import PanelStatus, PanelView, PresentationState, PriceFlash

__all__ = [
    "BaselineInputs",
    "HeuristicSynthesizer",
    "PairResolver",
    "PanelStatus",
    "PanelView",
    "PollingClock",
    "PresentationState",
    "PriceFlash",
    "RateLimitBackoff",
    "Step",
    "TickUpdate",
    "aggregate_windows",
    "dedupe_transactions",
    "first_success",
]
