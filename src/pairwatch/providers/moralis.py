"""Trade-ledger adapter: swap history and token price.

The ledger returns swaps in two shapes depending on endpoint and API
version: an older flat record (baseTokenAmount, baseTokenPriceUsd, ...) and
a newer one with nested ``bought``/``sold`` legs keyed by token address.
Both are parsed once into the RawSwap union and normalised here; nothing
outside this module knows either shape.

Request flow for the primary call: token-centric swaps first, pair-centric
swaps if that endpoint fails for any reason other than auth or rate
limiting (those would fail the second call too).
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pairwatch.cache import ResponseCache, cache_key
from pairwatch.config import SwapProviderSettings
from pairwatch.exceptions import AuthError, ProviderError, RateLimitError, SchemaError
from pairwatch.logging import get_logger
from pairwatch.models import (
    ZERO,
    NormalizedTransaction,
    PairRef,
    ProviderResult,
    SwapEndpoint,
    SwapPage,
    TradeSide,
    WindowKey,
)
from pairwatch.providers.base import SwapSource, guarded, parse_decimal
from pairwatch.providers.chains import ledger_chain
from pairwatch.providers.http import JsonHttpClient

logger = get_logger(__name__)

PROVIDER_ID = "moralis"
_NAMESPACE = "ledger"

#: Page cap for window-scoped calls (~1000 records at 200 per page).
_WINDOW_MAX_PAGES = 5

#: Numeric timestamps above this are already milliseconds.
_MS_THRESHOLD = 10**12


@dataclass(frozen=True)
class SwapLeg:
    """One side of a nested swap record."""

    address: str
    amount: Decimal
    usd_price: Decimal
    usd_amount: Decimal


@dataclass(frozen=True)
class FlatSwap:
    """Older swap shape: base/quote amounts and prices as top-level fields."""

    tx_hash: str
    timestamp_ms: int
    side: TradeSide
    wallet_address: str
    total_value_usd: Decimal
    base_amount: Decimal
    quote_amount: Decimal
    base_usd_price: Decimal
    quote_usd_price: Decimal


@dataclass(frozen=True)
class NestedSwap:
    """Newer swap shape: bought/sold legs identified by token address."""

    tx_hash: str
    timestamp_ms: int
    side: TradeSide
    wallet_address: str
    total_value_usd: Decimal
    bought: SwapLeg | None
    sold: SwapLeg | None


RawSwap = FlatSwap | NestedSwap


def parse_timestamp_ms(raw: Any) -> int:
    """Parse an ISO-8601 string or unix seconds/milliseconds into unix ms."""
    if isinstance(raw, bool) or raw is None or raw == "":
        raise SchemaError(f"Missing or invalid swap timestamp: {raw!r}")
    if isinstance(raw, (int, float)) or (isinstance(raw, str) and raw.isdigit()):
        value = int(float(raw))
        return value if value >= _MS_THRESHOLD else value * 1000
    if isinstance(raw, str):
        try:
            dt = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError as e:
            raise SchemaError(f"Unparseable swap timestamp: {raw!r}") from e
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    raise SchemaError(f"Unsupported swap timestamp type: {type(raw).__name__}")


def _parse_leg(raw: Any) -> SwapLeg | None:
    if not isinstance(raw, dict):
        return None
    return SwapLeg(
        address=str(raw.get("address") or "").lower(),
        amount=abs(parse_decimal(raw.get("amount"))),
        usd_price=parse_decimal(raw.get("usdPrice")),
        usd_amount=abs(parse_decimal(raw.get("usdAmount"))),
    )


def parse_swap(record: Any) -> RawSwap:
    """Classify a raw ledger record as FlatSwap or NestedSwap.

    Raises:
        SchemaError: if the record lacks a hash, timestamp or buy/sell type.
    """
    if not isinstance(record, dict):
        raise SchemaError(f"Swap record is not an object: {type(record).__name__}")

    tx_hash = record.get("transactionHash") or record.get("transaction_hash")
    if not tx_hash:
        raise SchemaError("Swap record without transactionHash")

    side_raw = str(record.get("transactionType") or record.get("transaction_type") or "")
    try:
        side = TradeSide(side_raw.lower())
    except ValueError as e:
        raise SchemaError(f"Unknown swap type {side_raw!r}") from e

    timestamp_ms = parse_timestamp_ms(
        record.get("blockTimestamp", record.get("block_timestamp"))
    )
    wallet = str(record.get("walletAddress") or record.get("wallet_address") or "").lower()
    total = abs(parse_decimal(record.get("totalValueUsd")))

    bought = _parse_leg(record.get("bought"))
    sold = _parse_leg(record.get("sold"))
    if bought is not None or sold is not None:
        return NestedSwap(
            tx_hash=str(tx_hash),
            timestamp_ms=timestamp_ms,
            side=side,
            wallet_address=wallet,
            total_value_usd=total,
            bought=bought,
            sold=sold,
        )

    return FlatSwap(
        tx_hash=str(tx_hash),
        timestamp_ms=timestamp_ms,
        side=side,
        wallet_address=wallet,
        total_value_usd=total,
        base_amount=abs(parse_decimal(record.get("baseTokenAmount"))),
        quote_amount=abs(parse_decimal(record.get("quoteTokenAmount"))),
        base_usd_price=parse_decimal(record.get("baseTokenPriceUsd")),
        quote_usd_price=parse_decimal(record.get("quoteTokenPriceUsd")),
    )


def _normalize_flat(raw: FlatSwap) -> NormalizedTransaction:
    usd = raw.total_value_usd
    if not usd and raw.base_amount and raw.base_usd_price > 0:
        usd = raw.base_amount * raw.base_usd_price
    return NormalizedTransaction(
        tx_hash=raw.tx_hash,
        timestamp_ms=raw.timestamp_ms,
        side=raw.side,
        base_amount=raw.base_amount,
        quote_amount=raw.quote_amount,
        base_usd_price=raw.base_usd_price,
        quote_usd_price=raw.quote_usd_price,
        usd_value=usd,
        wallet_address=raw.wallet_address,
    )


def _normalize_nested(
    raw: NestedSwap, base_address: str, quote_address: str
) -> NormalizedTransaction:
    legs = [leg for leg in (raw.bought, raw.sold) if leg is not None]
    base_leg = next((leg for leg in legs if leg.address == base_address), None)
    quote_leg = next((leg for leg in legs if leg.address == quote_address), None)

    base_amount = base_leg.amount if base_leg else ZERO
    base_price = base_leg.usd_price if base_leg else ZERO

    usd = raw.total_value_usd
    if not usd:
        usd = max((leg.usd_amount for leg in legs), default=ZERO)
    if not usd and base_amount and base_price > 0:
        usd = base_amount * base_price

    return NormalizedTransaction(
        tx_hash=raw.tx_hash,
        timestamp_ms=raw.timestamp_ms,
        side=raw.side,
        base_amount=base_amount,
        quote_amount=quote_leg.amount if quote_leg else ZERO,
        base_usd_price=base_price,
        quote_usd_price=quote_leg.usd_price if quote_leg else ZERO,
        usd_value=usd,
        wallet_address=raw.wallet_address,
    )


def normalize_swap(
    raw: RawSwap, base_address: str, quote_address: str
) -> NormalizedTransaction:
    """Resolve either swap shape into a NormalizedTransaction."""
    if isinstance(raw, NestedSwap):
        return _normalize_nested(raw, base_address.lower(), quote_address.lower())
    return _normalize_flat(raw)


def parse_swaps(
    records: list[Any], base_address: str, quote_address: str
) -> list[NormalizedTransaction]:
    """Parse and normalise a page of records, skipping unrecognisable ones.

    Raises:
        SchemaError: if the page is non-empty but no record could be parsed.
    """
    transactions: list[NormalizedTransaction] = []
    skipped = 0
    for record in records:
        try:
            raw = parse_swap(record)
        except SchemaError:
            skipped += 1
            continue
        transactions.append(normalize_swap(raw, base_address, quote_address))

    if skipped:
        logger.debug("swap_records_skipped", skipped=skipped, parsed=len(transactions))
    if records and not transactions:
        raise SchemaError(f"None of {len(records)} swap records were recognisable")
    return transactions


def _result_list(data: Any) -> list[Any]:
    if not isinstance(data, dict) or not isinstance(data.get("result"), list):
        raise SchemaError("Swap response without a 'result' list")
    return data["result"]


class MoralisSwapClient(SwapSource):
    """Trade-ledger adapter with response caching.

    Args:
        settings: Ledger base URL, API key and page sizes.
        cache: Shared short-TTL response cache.
        timeout_seconds: Per-request timeout for the default HTTP client.
        http: Optional pre-built HTTP client (tests inject a mock).
    """

    provider_id = PROVIDER_ID

    def __init__(
        self,
        settings: SwapProviderSettings,
        cache: ResponseCache,
        timeout_seconds: float = 10.0,
        http: JsonHttpClient | None = None,
    ) -> None:
        self._settings = settings
        self._cache = cache
        api_key = settings.api_key.get_secret_value()
        self._http = http or JsonHttpClient(
            settings.base_url,
            headers={"X-API-Key": api_key} if api_key else None,
            timeout_seconds=timeout_seconds,
        )

    async def close(self) -> None:
        await self._http.close()

    async def fetch_transactions(
        self,
        pair: PairRef,
        window: WindowKey | None = None,
        endpoint: SwapEndpoint | None = None,
        now_ms: int | None = None,
    ) -> ProviderResult[SwapPage]:
        return await guarded(
            self.provider_id, self._transactions(pair, window, endpoint, now_ms)
        )

    async def fetch_token_price(self, pair: PairRef) -> ProviderResult[Decimal]:
        return await guarded(self.provider_id, self._token_price(pair))

    def page_limit(self, endpoint: SwapEndpoint) -> int:
        """Records requested per page from ``endpoint``."""
        if endpoint == SwapEndpoint.PAIR:
            return self._settings.pair_page_limit
        return self._settings.page_limit

    # ──────────────────────────────────────────────
    # Internal fetch orchestration
    # ──────────────────────────────────────────────

    def _require_key(self) -> None:
        if not self._settings.api_key.get_secret_value():
            raise AuthError("Trade-ledger API key not configured")

    async def _transactions(
        self,
        pair: PairRef,
        window: WindowKey | None,
        endpoint: SwapEndpoint | None,
        now_ms: int | None,
    ) -> SwapPage:
        self._require_key()
        if window is not None:
            return await self._window_transactions(
                pair, window, endpoint or SwapEndpoint.TOKEN, now_ms
            )
        if endpoint is not None:
            records, _ = await self._swaps_page(pair, endpoint, cursor=None)
            return self._page(pair, records, endpoint)

        try:
            records, _ = await self._swaps_page(pair, SwapEndpoint.TOKEN, cursor=None)
            endpoint = SwapEndpoint.TOKEN
        except (AuthError, RateLimitError):
            raise
        except ProviderError as e:
            logger.info(
                "token_swaps_failed_trying_pair_swaps",
                pair=pair.pair_id,
                kind=e.kind.value,
            )
            records, _ = await self._swaps_page(pair, SwapEndpoint.PAIR, cursor=None)
            endpoint = SwapEndpoint.PAIR

        return self._page(pair, records, endpoint)

    def _page(self, pair: PairRef, records: list[Any], endpoint: SwapEndpoint) -> SwapPage:
        transactions = parse_swaps(records, pair.base_token.address, pair.quote_token.address)
        return SwapPage(
            transactions=transactions,
            endpoint=endpoint,
            page_limit=self.page_limit(endpoint),
        )

    async def _window_transactions(
        self,
        pair: PairRef,
        window: WindowKey,
        endpoint: SwapEndpoint,
        now_ms: int | None,
    ) -> SwapPage:
        """Page back through ``endpoint`` until the window is fully covered."""
        now = int(time.time() * 1000) if now_ms is None else now_ms
        cutoff_ms = now - window.duration_ms
        base = pair.base_token.address
        quote = pair.quote_token.address

        collected: list[NormalizedTransaction] = []
        cursor: str | None = None
        for _ in range(_WINDOW_MAX_PAGES):
            records, cursor = await self._swaps_page(pair, endpoint, cursor=cursor)
            page = parse_swaps(records, base, quote)
            collected.extend(page)
            if not cursor or not page or min(tx.timestamp_ms for tx in page) < cutoff_ms:
                break

        in_window = [tx for tx in collected if tx.timestamp_ms >= cutoff_ms]
        logger.debug(
            "window_swaps_fetched",
            pair=pair.pair_id,
            window=window.value,
            endpoint=endpoint.value,
            fetched=len(collected),
            in_window=len(in_window),
        )
        return SwapPage(transactions=in_window, endpoint=endpoint)

    async def _swaps_page(
        self, pair: PairRef, endpoint: SwapEndpoint, cursor: str | None
    ) -> tuple[list[Any], str | None]:
        chain = ledger_chain(pair.chain)
        limit = self.page_limit(endpoint)
        if endpoint == SwapEndpoint.PAIR:
            address = pair.pair_address.lower()
            path = f"pairs/{address}/swaps"
        else:
            address = pair.base_token.address.lower()
            path = f"erc20/{address}/swaps"
        key = cache_key(
            _NAMESPACE, f"{endpoint.value}-swaps", chain, address, limit, cursor or ""
        )
        data = await self._cache.get_or_fetch(
            key,
            lambda: self._http.get_json(
                path,
                {
                    "chain": chain,
                    "order": "DESC",
                    "limit": limit,
                    "cursor": cursor,
                },
            ),
        )
        records = _result_list(data)
        return records, data.get("cursor") or None

    async def _token_price(self, pair: PairRef) -> Decimal:
        self._require_key()
        chain = ledger_chain(pair.chain)
        address = pair.base_token.address.lower()
        key = cache_key(_NAMESPACE, "token-price", chain, address)
        data = await self._cache.get_or_fetch(
            key,
            lambda: self._http.get_json(f"erc20/{address}/price", {"chain": chain}),
        )
        if not isinstance(data, dict):
            raise SchemaError("Token price response is not an object")
        price = parse_decimal(data.get("usdPrice", data.get("usd_price")))
        if price <= 0:
            raise SchemaError(f"Token price missing or non-positive for {address}")
        return price
