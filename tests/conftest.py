"""Shared test fixtures for the pairwatch engine."""

import pytest

from pairwatch.cache import IdentifierCache, ResponseCache
from pairwatch.config import (
    AppSettings,
    ChartProviderSettings,
    PollingSettings,
    SwapProviderSettings,
)
from pairwatch.models import PairRef, TokenRef

from helpers import BASE_ADDRESS, PAIR_ADDRESS, QUOTE_ADDRESS


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (dummy API keys)."""
    return AppSettings(
        log_level="DEBUG",
        swaps=SwapProviderSettings(api_key="test-ledger-key"),  # type: ignore[arg-type]
        chart=ChartProviderSettings(),
        polling=PollingSettings(request_timeout_seconds=1.0),
    )


@pytest.fixture
def pair() -> PairRef:
    return PairRef(
        pair_address=PAIR_ADDRESS,
        chain="0x1",
        base_token=TokenRef(address=BASE_ADDRESS, symbol="PEPE", name="Pepe"),
        quote_token=TokenRef(address=QUOTE_ADDRESS, symbol="WETH", name="Wrapped Ether"),
    )


@pytest.fixture
def response_cache() -> ResponseCache:
    return ResponseCache(ttl_seconds=15)


@pytest.fixture
def id_cache() -> IdentifierCache:
    return IdentifierCache()
