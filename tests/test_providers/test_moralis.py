"""Tests for the trade-ledger adapter.

All tests use a mocked JsonHttpClient to avoid real API calls.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from pairwatch.config import SwapProviderSettings
from pairwatch.exceptions import (
    AuthError,
    NetworkError,
    ProviderErrorKind,
    RateLimitError,
    SchemaError,
)
from pairwatch.models import SwapEndpoint, TradeSide, WindowKey
from pairwatch.providers.moralis import (
    FlatSwap,
    MoralisSwapClient,
    NestedSwap,
    normalize_swap,
    parse_swap,
    parse_swaps,
    parse_timestamp_ms,
)
from helpers import BASE_ADDRESS, MINUTE_MS, NOW_MS, QUOTE_ADDRESS


# ---------------------------------------------------------------------------
# Sample records (both shapes the ledger returns)
# ---------------------------------------------------------------------------

FLAT_RECORD = {
    "transactionHash": "0xflat",
    "transactionType": "buy",
    "blockTimestamp": "2023-11-14T22:13:20.000Z",
    "walletAddress": "0xWALLET",
    "baseTokenAmount": "1000",
    "quoteTokenAmount": "-0.5",
    "baseTokenPriceUsd": "0.002",
    "quoteTokenPriceUsd": "2000",
    "totalValueUsd": "2.0",
}

NESTED_RECORD = {
    "transactionHash": "0xnested",
    "transactionType": "sell",
    "blockTimestamp": 1700000000,
    "walletAddress": "0xother",
    "bought": {
        "address": QUOTE_ADDRESS.lower(),
        "amount": "0.25",
        "usdPrice": 2000,
        "usdAmount": 500,
    },
    "sold": {
        "address": BASE_ADDRESS,
        "amount": "-250000",
        "usdPrice": 0.002,
        "usdAmount": -499.5,
    },
}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseTimestamp:
    def test_iso_string_with_z(self):
        assert parse_timestamp_ms("2023-11-14T22:13:20.000Z") == 1_700_000_000_000

    def test_seconds_are_scaled(self):
        assert parse_timestamp_ms(1_700_000_000) == 1_700_000_000_000

    def test_milliseconds_pass_through(self):
        assert parse_timestamp_ms(1_700_000_000_123) == 1_700_000_000_123

    def test_missing_raises_schema_error(self):
        with pytest.raises(SchemaError):
            parse_timestamp_ms(None)

    def test_garbage_raises_schema_error(self):
        with pytest.raises(SchemaError):
            parse_timestamp_ms("yesterday")


class TestParseSwap:
    def test_flat_record_parses_as_flat(self):
        raw = parse_swap(FLAT_RECORD)
        assert isinstance(raw, FlatSwap)
        assert raw.side == TradeSide.BUY
        assert raw.quote_amount == Decimal("0.5")
        assert raw.wallet_address == "0xwallet"

    def test_nested_record_parses_as_nested(self):
        raw = parse_swap(NESTED_RECORD)
        assert isinstance(raw, NestedSwap)
        assert raw.side == TradeSide.SELL
        assert raw.sold is not None
        assert raw.sold.address == BASE_ADDRESS.lower()
        assert raw.sold.amount == Decimal("250000")

    def test_missing_hash_raises(self):
        record = {**FLAT_RECORD}
        del record["transactionHash"]
        with pytest.raises(SchemaError):
            parse_swap(record)

    def test_unknown_type_raises(self):
        with pytest.raises(SchemaError):
            parse_swap({**FLAT_RECORD, "transactionType": "addLiquidity"})


class TestNormalizeSwap:
    def test_flat_uses_total_value(self):
        tx = normalize_swap(parse_swap(FLAT_RECORD), BASE_ADDRESS, QUOTE_ADDRESS)
        assert tx.usd_value == Decimal("2.0")
        assert tx.base_amount == Decimal("1000")
        assert tx.base_usd_price == Decimal("0.002")

    def test_flat_derives_usd_from_base_amount(self):
        record = {**FLAT_RECORD, "totalValueUsd": None}
        tx = normalize_swap(parse_swap(record), BASE_ADDRESS, QUOTE_ADDRESS)
        assert tx.usd_value == Decimal("2.000")

    def test_nested_picks_legs_by_address(self):
        tx = normalize_swap(parse_swap(NESTED_RECORD), BASE_ADDRESS, QUOTE_ADDRESS)
        assert tx.base_amount == Decimal("250000")
        assert tx.base_usd_price == Decimal("0.002")
        assert tx.quote_amount == Decimal("0.25")
        assert tx.quote_usd_price == Decimal("2000")

    def test_nested_usd_is_largest_leg(self):
        tx = normalize_swap(parse_swap(NESTED_RECORD), BASE_ADDRESS, QUOTE_ADDRESS)
        assert tx.usd_value == Decimal("500")

    def test_nested_timestamp_seconds_converted(self):
        tx = normalize_swap(parse_swap(NESTED_RECORD), BASE_ADDRESS, QUOTE_ADDRESS)
        assert tx.timestamp_ms == 1_700_000_000_000


class TestParseSwaps:
    def test_skips_unrecognisable_records(self):
        txs = parse_swaps([FLAT_RECORD, {"junk": True}, NESTED_RECORD], BASE_ADDRESS, QUOTE_ADDRESS)
        assert [tx.tx_hash for tx in txs] == ["0xflat", "0xnested"]

    def test_all_bad_records_raise(self):
        with pytest.raises(SchemaError):
            parse_swaps([{"junk": True}], BASE_ADDRESS, QUOTE_ADDRESS)

    def test_empty_page_is_valid(self):
        assert parse_swaps([], BASE_ADDRESS, QUOTE_ADDRESS) == []


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_http() -> AsyncMock:
    http = AsyncMock()
    http.get_json = AsyncMock(return_value={"result": [FLAT_RECORD, NESTED_RECORD]})
    return http


@pytest.fixture
def client(mock_http, response_cache) -> MoralisSwapClient:
    settings = SwapProviderSettings(api_key="test-key")  # type: ignore[arg-type]
    return MoralisSwapClient(settings, response_cache, http=mock_http)


class TestMoralisSwapClient:
    @pytest.mark.asyncio
    async def test_fetch_transactions_token_endpoint(self, client, mock_http, pair):
        result = await client.fetch_transactions(pair)

        assert result.success
        assert result.provider_id == "moralis"
        assert len(result.value.transactions) == 2
        assert result.value.endpoint == SwapEndpoint.TOKEN
        assert result.value.page_limit == 200
        path, params = mock_http.get_json.call_args.args
        assert path == f"erc20/{BASE_ADDRESS.lower()}/swaps"
        assert params["chain"] == "eth"
        assert params["limit"] == 200

    @pytest.mark.asyncio
    async def test_falls_back_to_pair_endpoint(self, client, mock_http, pair):
        mock_http.get_json.side_effect = [
            NetworkError("HTTP 500", status=500),
            {"result": [FLAT_RECORD]},
        ]

        result = await client.fetch_transactions(pair)

        assert result.success
        assert [tx.tx_hash for tx in result.value.transactions] == ["0xflat"]
        assert mock_http.get_json.call_args.args[0] == f"pairs/{pair.pair_address.lower()}/swaps"

    @pytest.mark.asyncio
    async def test_pair_fallback_reports_its_page_size(self, client, mock_http, pair):
        mock_http.get_json.side_effect = [
            NetworkError("HTTP 500", status=500),
            {"result": [FLAT_RECORD]},
        ]

        result = await client.fetch_transactions(pair)

        assert result.value.endpoint == SwapEndpoint.PAIR
        assert result.value.page_limit == 100
        assert mock_http.get_json.call_args.args[1]["limit"] == 100

    @pytest.mark.asyncio
    async def test_window_call_uses_requested_endpoint(self, client, mock_http, pair):
        result = await client.fetch_transactions(
            pair, window=WindowKey.H1, endpoint=SwapEndpoint.PAIR, now_ms=NOW_MS + 10 * MINUTE_MS
        )

        assert result.success
        assert result.value.endpoint == SwapEndpoint.PAIR
        assert len(result.value.transactions) == 2
        assert mock_http.get_json.call_args.args[0] == f"pairs/{pair.pair_address.lower()}/swaps"

    @pytest.mark.asyncio
    async def test_window_cutoff_follows_pinned_now(self, client, pair):
        result = await client.fetch_transactions(
            pair, window=WindowKey.M5, now_ms=NOW_MS + 10 * MINUTE_MS
        )

        # both sample swaps are ten minutes older than the pinned now
        assert result.success
        assert result.value.transactions == []

    @pytest.mark.asyncio
    async def test_rate_limit_does_not_fall_back(self, client, mock_http, pair):
        mock_http.get_json.side_effect = RateLimitError("HTTP 429", status=429)

        result = await client.fetch_transactions(pair)

        assert not result.success
        assert result.kind == ProviderErrorKind.RATE_LIMIT
        assert mock_http.get_json.call_count == 1

    @pytest.mark.asyncio
    async def test_missing_key_is_auth_failure(self, mock_http, response_cache, pair):
        client = MoralisSwapClient(SwapProviderSettings(), response_cache, http=mock_http)

        result = await client.fetch_transactions(pair)

        assert not result.success
        assert result.kind == ProviderErrorKind.AUTH
        mock_http.get_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_bad_shape_is_schema_failure(self, client, mock_http, pair):
        mock_http.get_json.return_value = {"unexpected": []}

        result = await client.fetch_transactions(pair)

        # token endpoint shape error falls through to pair endpoint, same shape
        assert not result.success
        assert result.kind == ProviderErrorKind.SCHEMA

    @pytest.mark.asyncio
    async def test_responses_are_cached(self, client, mock_http, pair):
        await client.fetch_transactions(pair)
        await client.fetch_transactions(pair)

        assert mock_http.get_json.call_count == 1

    @pytest.mark.asyncio
    async def test_token_price(self, client, mock_http, pair):
        mock_http.get_json.return_value = {"usdPrice": 0.0021}

        result = await client.fetch_token_price(pair)

        assert result.success
        assert result.value == Decimal("0.0021")
        assert mock_http.get_json.call_args.args[0] == f"erc20/{BASE_ADDRESS.lower()}/price"

    @pytest.mark.asyncio
    async def test_token_price_zero_is_failure(self, client, mock_http, pair):
        mock_http.get_json.return_value = {"usdPrice": 0}

        result = await client.fetch_token_price(pair)

        assert not result.success
        assert result.kind == ProviderErrorKind.SCHEMA

    @pytest.mark.asyncio
    async def test_auth_error_propagates_as_kind(self, client, mock_http, pair):
        mock_http.get_json.side_effect = AuthError("HTTP 401", status=401)

        result = await client.fetch_token_price(pair)

        assert result.kind == ProviderErrorKind.AUTH
