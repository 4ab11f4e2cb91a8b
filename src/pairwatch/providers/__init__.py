"""Provider adapters -- trade ledger, price/chart and pair aggregator."""

from pairwatch.providers.base import ChartSource, PairSource, SwapSource, guarded
from pairwatch.providers.coingecko import CoinGeckoClient
from pairwatch.providers.dexscreener import DexScreenerClient
from pairwatch.providers.http import JsonHttpClient
from pairwatch.providers.moralis import MoralisSwapClient

__all__ = [
    "ChartSource",
    "CoinGeckoClient",
    "DexScreenerClient",
    "JsonHttpClient",
    "MoralisSwapClient",
    "PairSource",
    "SwapSource",
    "guarded",
]
