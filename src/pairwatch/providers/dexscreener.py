"""Pair-aggregator adapter: liquidity, embedded price and coarse changes.

The aggregator lists every pool for a token. We keep the pool matching the
observed pair address, or the one with the highest 24h volume when the
pair is not listed. It reports price changes for m5/h1/h6/h24; the 4h
window is approximated as two thirds of h6 when h4 is absent.
"""

from decimal import Decimal
from typing import Any

from pairwatch.cache import ResponseCache, cache_key
from pairwatch.config import PairProviderSettings
from pairwatch.exceptions import NotFoundError, SchemaError
from pairwatch.logging import get_logger
from pairwatch.models import PairRef, PairSnapshot, ProviderResult, TokenRef, WindowKey
from pairwatch.providers.base import PairSource, guarded, parse_decimal
from pairwatch.providers.http import JsonHttpClient

logger = get_logger(__name__)

PROVIDER_ID = "dexscreener"
_NAMESPACE = "pairs"

_CHANGE_FIELDS: dict[WindowKey, str] = {
    WindowKey.M5: "m5",
    WindowKey.H1: "h1",
    WindowKey.H4: "h4",
    WindowKey.H24: "h24",
}

_H6_TO_H4 = Decimal("4") / Decimal("6")


def select_pair(pairs: list[Any], pair_address: str) -> dict[str, Any]:
    """Return the listed pool for pair_address, else the highest-volume pool."""
    pools = [p for p in pairs if isinstance(p, dict)]
    if not pools:
        raise NotFoundError("Aggregator lists no pools for token")
    wanted = pair_address.lower()
    for pool in pools:
        if str(pool.get("pairAddress") or "").lower() == wanted:
            return pool
    return max(pools, key=lambda p: parse_decimal((p.get("volume") or {}).get("h24")))


def parse_price_changes(raw: Any) -> dict[WindowKey, Decimal]:
    """Map the aggregator's priceChange object onto our windows.

    Windows the aggregator does not report are left out rather than zeroed.
    """
    if not isinstance(raw, dict):
        return {}
    changes: dict[WindowKey, Decimal] = {}
    for key, field_name in _CHANGE_FIELDS.items():
        if raw.get(field_name) is not None:
            changes[key] = parse_decimal(raw[field_name])
    if WindowKey.H4 not in changes and raw.get("h6") is not None:
        changes[WindowKey.H4] = parse_decimal(raw["h6"]) * _H6_TO_H4
    return changes


def _token(raw: Any, fallback: TokenRef) -> TokenRef:
    if not isinstance(raw, dict) or not raw.get("address"):
        return fallback
    return TokenRef(
        address=str(raw["address"]),
        symbol=str(raw.get("symbol") or fallback.symbol),
        name=str(raw.get("name") or fallback.name),
    )


def parse_snapshot(pool: dict[str, Any], pair: PairRef) -> PairSnapshot:
    """Build a PairSnapshot from one aggregator pool object."""
    created = pool.get("pairCreatedAt")
    return PairSnapshot(
        pair_address=str(pool.get("pairAddress") or pair.pair_address),
        base_token=_token(pool.get("baseToken"), pair.base_token),
        quote_token=_token(pool.get("quoteToken"), pair.quote_token),
        liquidity_usd=parse_decimal((pool.get("liquidity") or {}).get("usd")),
        price_usd=parse_decimal(pool.get("priceUsd")),
        price_native=parse_decimal(pool.get("priceNative")),
        created_at=int(created) if isinstance(created, (int, float)) else None,
        volume_24h_usd=parse_decimal((pool.get("volume") or {}).get("h24")),
        price_changes=parse_price_changes(pool.get("priceChange")),
    )


class DexScreenerClient(PairSource):
    """Pair-aggregator adapter with response caching.

    Args:
        settings: Aggregator base URL.
        cache: Shared short-TTL response cache.
        timeout_seconds: Per-request timeout for the default HTTP client.
        http: Optional pre-built HTTP client (tests inject a mock).
    """

    provider_id = PROVIDER_ID

    def __init__(
        self,
        settings: PairProviderSettings,
        cache: ResponseCache,
        timeout_seconds: float = 10.0,
        http: JsonHttpClient | None = None,
    ) -> None:
        self._cache = cache
        self._http = http or JsonHttpClient(settings.base_url, timeout_seconds=timeout_seconds)

    async def close(self) -> None:
        await self._http.close()

    async def fetch_pair_snapshot(self, pair: PairRef) -> ProviderResult[PairSnapshot]:
        return await guarded(self.provider_id, self._snapshot(pair))

    async def _snapshot(self, pair: PairRef) -> PairSnapshot:
        address = pair.base_token.address.lower()
        key = cache_key(_NAMESPACE, "tokens", address)
        data = await self._cache.get_or_fetch(
            key, lambda: self._http.get_json(f"tokens/{address}")
        )
        if not isinstance(data, dict):
            raise SchemaError("Aggregator response is not an object")
        pairs = data.get("pairs")
        if pairs is None:
            raise NotFoundError(f"Aggregator has no pairs for {address}")
        if not isinstance(pairs, list):
            raise SchemaError("Aggregator 'pairs' is not a list")

        pool = select_pair(pairs, pair.pair_address)
        snapshot = parse_snapshot(pool, pair)
        logger.debug(
            "pair_snapshot_fetched",
            pair=pair.pair_id,
            matched=snapshot.pair_address.lower() == pair.pair_address.lower(),
            liquidity_usd=str(snapshot.liquidity_usd),
        )
        return snapshot
