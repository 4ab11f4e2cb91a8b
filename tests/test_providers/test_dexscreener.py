"""Tests for the pair-aggregator adapter."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from pairwatch.config import PairProviderSettings
from pairwatch.exceptions import NotFoundError, ProviderErrorKind
from pairwatch.models import WindowKey
from pairwatch.providers.dexscreener import (
    DexScreenerClient,
    parse_price_changes,
    select_pair,
)

from helpers import BASE_ADDRESS, PAIR_ADDRESS

OTHER_POOL = {
    "pairAddress": "0xother",
    "priceUsd": "0.0019",
    "priceNative": "0.00000095",
    "liquidity": {"usd": 10000},
    "volume": {"h24": 900000},
    "priceChange": {"m5": 0.1, "h1": 1, "h6": 3, "h24": 10},
}

OUR_POOL = {
    "pairAddress": PAIR_ADDRESS.lower(),
    "baseToken": {"address": BASE_ADDRESS, "symbol": "PEPE", "name": "Pepe"},
    "quoteToken": {"address": "0xweth", "symbol": "WETH"},
    "priceUsd": "0.002",
    "priceNative": "0.000001",
    "liquidity": {"usd": 250000.5},
    "volume": {"h24": 120000},
    "priceChange": {"m5": -0.5, "h1": 2.5, "h6": 6, "h24": 12},
    "pairCreatedAt": 1690000000000,
}


class TestSelectPair:
    def test_matching_address_case_insensitive(self):
        assert select_pair([OTHER_POOL, OUR_POOL], PAIR_ADDRESS.upper()) is OUR_POOL

    def test_highest_volume_when_unlisted(self):
        assert select_pair([OUR_POOL, OTHER_POOL], "0xnotlisted") is OTHER_POOL

    def test_empty_raises_not_found(self):
        with pytest.raises(NotFoundError):
            select_pair([], PAIR_ADDRESS)


class TestParsePriceChanges:
    def test_h4_derived_from_h6(self):
        changes = parse_price_changes({"m5": 1, "h1": 2, "h6": 6, "h24": 24})
        assert changes[WindowKey.H4] == Decimal("4")
        assert changes[WindowKey.M5] == Decimal("1")

    def test_reported_h4_is_kept(self):
        changes = parse_price_changes({"h4": 3, "h6": 6})
        assert changes[WindowKey.H4] == Decimal("3")

    def test_missing_windows_omitted(self):
        changes = parse_price_changes({"h24": 5})
        assert set(changes) == {WindowKey.H24}

    def test_non_dict(self):
        assert parse_price_changes(None) == {}


@pytest.fixture
def mock_http() -> AsyncMock:
    http = AsyncMock()
    http.get_json = AsyncMock(return_value={"pairs": [OTHER_POOL, OUR_POOL]})
    return http


@pytest.fixture
def client(mock_http, response_cache) -> DexScreenerClient:
    return DexScreenerClient(PairProviderSettings(), response_cache, http=mock_http)


class TestDexScreenerClient:
    @pytest.mark.asyncio
    async def test_snapshot_from_matching_pool(self, client, mock_http, pair):
        result = await client.fetch_pair_snapshot(pair)

        assert result.success
        snap = result.value
        assert snap.liquidity_usd == Decimal("250000.5")
        assert snap.price_usd == Decimal("0.002")
        assert snap.price_native == Decimal("0.000001")
        assert snap.volume_24h_usd == Decimal("120000")
        assert snap.created_at == 1690000000000
        assert snap.price_changes[WindowKey.H1] == Decimal("2.5")
        assert snap.quote_token.symbol == "WETH"
        assert mock_http.get_json.call_args.args[0] == f"tokens/{BASE_ADDRESS.lower()}"

    @pytest.mark.asyncio
    async def test_null_pairs_is_not_found(self, client, mock_http, pair):
        mock_http.get_json.return_value = {"schemaVersion": "1.0.0", "pairs": None}

        result = await client.fetch_pair_snapshot(pair)

        assert result.kind == ProviderErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_pairs_wrong_type_is_schema(self, client, mock_http, pair):
        mock_http.get_json.return_value = {"pairs": "nope"}

        result = await client.fetch_pair_snapshot(pair)

        assert result.kind == ProviderErrorKind.SCHEMA
