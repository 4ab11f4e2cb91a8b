"""Price/chart adapter: catalog id resolution, spot price and market chart.

The chart provider identifies assets by its own catalog id, so every pair
first goes through ``resolve_id``: contract lookup on the chain's platform,
then a symbol/name search. Resolved ids are held in the injected
IdentifierCache for the rest of the session; failed lookups are retried on
later ticks.

Price and volume series come from the same market_chart response, fetched
once per TTL window through the shared ResponseCache.
"""

from decimal import Decimal
from typing import Any

from pairwatch.cache import IdentifierCache, ResponseCache, cache_key
from pairwatch.config import ChartProviderSettings
from pairwatch.exceptions import NotFoundError, ProviderError, RateLimitError, SchemaError
from pairwatch.logging import get_logger
from pairwatch.models import PairRef, PricePoint, ProviderResult, VolumePoint
from pairwatch.providers.base import ChartSource, guarded, parse_decimal
from pairwatch.providers.chains import chart_platform
from pairwatch.providers.http import JsonHttpClient

logger = get_logger(__name__)

PROVIDER_ID = "coingecko"
_NAMESPACE = "chart"


def _parse_series(raw: Any, field_name: str) -> list[tuple[int, Decimal]]:
    """Parse a ``[[ts_ms, value], ...]`` array, sorted ascending by time."""
    if not isinstance(raw, list):
        raise SchemaError(f"market_chart '{field_name}' is not a list")
    points: list[tuple[int, Decimal]] = []
    for entry in raw:
        if not isinstance(entry, (list, tuple)) or len(entry) < 2:
            continue
        try:
            ts = int(entry[0])
        except (TypeError, ValueError):
            continue
        value = parse_decimal(entry[1], default=Decimal("-1"))
        if value < 0:
            continue
        points.append((ts, value))
    points.sort(key=lambda p: p[0])
    return points


def match_search_result(coins: list[Any], symbol: str, name: str) -> str | None:
    """Pick a catalog id from search results: exact symbol, then exact name."""
    symbol = symbol.lower()
    name = name.lower()
    candidates = [c for c in coins if isinstance(c, dict) and c.get("id")]
    if symbol:
        for coin in candidates:
            if str(coin.get("symbol") or "").lower() == symbol:
                return str(coin["id"])
    if name:
        for coin in candidates:
            if str(coin.get("name") or "").lower() == name:
                return str(coin["id"])
    return None


class CoinGeckoClient(ChartSource):
    """Price/chart adapter with id resolution and response caching.

    Args:
        settings: Base URL, optional demo API key, quote currency, chart span.
        cache: Shared short-TTL response cache.
        id_cache: Session-lifetime address -> catalog id cache.
        timeout_seconds: Per-request timeout for the default HTTP client.
        http: Optional pre-built HTTP client (tests inject a mock).
    """

    provider_id = PROVIDER_ID

    def __init__(
        self,
        settings: ChartProviderSettings,
        cache: ResponseCache,
        id_cache: IdentifierCache,
        timeout_seconds: float = 10.0,
        http: JsonHttpClient | None = None,
    ) -> None:
        self._settings = settings
        self._cache = cache
        self._id_cache = id_cache
        api_key = settings.api_key.get_secret_value()
        self._http = http or JsonHttpClient(
            settings.base_url,
            headers={"x-cg-demo-api-key": api_key} if api_key else None,
            timeout_seconds=timeout_seconds,
        )

    async def close(self) -> None:
        await self._http.close()

    async def resolve_id(self, pair: PairRef) -> ProviderResult[str]:
        return await guarded(self.provider_id, self._resolve_id(pair))

    async def fetch_price(self, coin_id: str) -> ProviderResult[Decimal]:
        return await guarded(self.provider_id, self._price(coin_id))

    async def fetch_price_series(self, coin_id: str) -> ProviderResult[list[PricePoint]]:
        return await guarded(self.provider_id, self._price_series(coin_id))

    async def fetch_volume_series(self, coin_id: str) -> ProviderResult[list[VolumePoint]]:
        return await guarded(self.provider_id, self._volume_series(coin_id))

    # ──────────────────────────────────────────────
    # Id resolution
    # ──────────────────────────────────────────────

    async def _resolve_id(self, pair: PairRef) -> str:
        token = pair.base_token
        cached = self._id_cache.get(self.provider_id, pair.chain, token.address)
        if cached is not None:
            return cached

        coin_id = await self._lookup_by_contract(pair)
        if coin_id is None:
            coin_id = await self._lookup_by_search(pair)
        if coin_id is None:
            raise NotFoundError(
                f"No catalog id for {token.symbol or token.address} on {pair.chain}"
            )

        self._id_cache.set(self.provider_id, pair.chain, token.address, coin_id)
        logger.info(
            "chart_id_resolved",
            chain=pair.chain,
            address=token.address,
            coin_id=coin_id,
        )
        return coin_id

    async def _lookup_by_contract(self, pair: PairRef) -> str | None:
        platform = chart_platform(pair.chain)
        address = pair.base_token.address.lower()
        if platform is None or not address:
            return None
        key = cache_key(_NAMESPACE, "contract", platform, address)
        try:
            data = await self._cache.get_or_fetch(
                key,
                lambda: self._http.get_json(
                    f"coins/{platform}/contract/{address}",
                    {
                        "localization": "false",
                        "tickers": "false",
                        "market_data": "false",
                        "community_data": "false",
                        "developer_data": "false",
                    },
                ),
            )
        except RateLimitError:
            raise
        except ProviderError as e:
            logger.debug("chart_contract_lookup_failed", address=address, kind=e.kind.value)
            return None
        if isinstance(data, dict) and data.get("id"):
            return str(data["id"])
        return None

    async def _lookup_by_search(self, pair: PairRef) -> str | None:
        token = pair.base_token
        query = token.symbol or token.name
        if not query:
            return None
        key = cache_key(_NAMESPACE, "search", query.lower())
        data = await self._cache.get_or_fetch(
            key, lambda: self._http.get_json("search", {"query": query})
        )
        if not isinstance(data, dict) or not isinstance(data.get("coins"), list):
            raise SchemaError("Search response without a 'coins' list")
        return match_search_result(data["coins"], token.symbol, token.name)

    # ──────────────────────────────────────────────
    # Price and chart
    # ──────────────────────────────────────────────

    async def _price(self, coin_id: str) -> Decimal:
        vs = self._settings.vs_currency
        key = cache_key(_NAMESPACE, "simple-price", coin_id, vs)
        data = await self._cache.get_or_fetch(
            key,
            lambda: self._http.get_json(
                "simple/price", {"ids": coin_id, "vs_currencies": vs}
            ),
        )
        entry = data.get(coin_id) if isinstance(data, dict) else None
        if not isinstance(entry, dict) or vs not in entry:
            raise SchemaError(f"No {vs} price for {coin_id}")
        price = parse_decimal(entry[vs])
        if price <= 0:
            raise SchemaError(f"Non-positive price for {coin_id}")
        return price

    async def _market_chart(self, coin_id: str) -> dict[str, Any]:
        vs = self._settings.vs_currency
        days = self._settings.chart_days
        interval = self._settings.chart_interval or None
        key = cache_key(_NAMESPACE, "market-chart", coin_id, vs, days, interval or "")
        data = await self._cache.get_or_fetch(
            key,
            lambda: self._http.get_json(
                f"coins/{coin_id}/market_chart",
                {"vs_currency": vs, "days": days, "interval": interval},
            ),
        )
        if not isinstance(data, dict):
            raise SchemaError("market_chart response is not an object")
        return data

    async def _price_series(self, coin_id: str) -> list[PricePoint]:
        data = await self._market_chart(coin_id)
        return [
            PricePoint(timestamp_ms=ts, usd_price=value)
            for ts, value in _parse_series(data.get("prices"), "prices")
        ]

    async def _volume_series(self, coin_id: str) -> list[VolumePoint]:
        data = await self._market_chart(coin_id)
        return [
            VolumePoint(timestamp_ms=ts, usd_volume=value)
            for ts, value in _parse_series(data.get("total_volumes"), "total_volumes")
        ]
