"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SwapProviderSettings(BaseSettings):
    """Trade-ledger provider (swap history and token price)."""

    model_config = SettingsConfigDict(env_prefix="SWAPS_")

    base_url: str = "https://deep-index.moralis.io/api/v2.2"
    api_key: SecretStr = SecretStr("")
    page_limit: int = 200  # provider max per page
    pair_page_limit: int = 100


class ChartProviderSettings(BaseSettings):
    """Price/chart provider (spot price, market chart, id resolution)."""

    model_config = SettingsConfigDict(env_prefix="CHART_")

    base_url: str = "https://api.coingecko.com/api/v3"
    api_key: SecretStr = SecretStr("")
    vs_currency: str = "usd"
    chart_days: int = 2  # 2 days so a full 24h baseline always exists
    chart_interval: str = ""  # empty lets the provider pick granularity


class PairProviderSettings(BaseSettings):
    """Pair-aggregator provider (liquidity, embedded price, coarse changes)."""

    model_config = SettingsConfigDict(env_prefix="PAIRS_")

    base_url: str = "https://api.dexscreener.com/latest/dex"


class PollingSettings(BaseSettings):
    """Shared polling clock, timeouts and caching."""

    model_config = SettingsConfigDict(env_prefix="POLLING_")

    interval_seconds: float = 20.0
    request_timeout_seconds: float = 10.0
    cache_ttl_seconds: float = 15.0
    rate_limit_backoff_seconds: float = 60.0
    price_flash_seconds: float = 0.5


class HeuristicSettings(BaseSettings):
    """Constants for synthesized window statistics.

    Used only when a window has neither transactions nor volume.
    """

    model_config = SettingsConfigDict(env_prefix="HEURISTIC_")

    liquidity_volume_ratio: Decimal = Decimal("0.6")
    price_volume_multiplier: Decimal = Decimal("5000")
    trade_size_price_multiplier: Decimal = Decimal("150")
    min_trade_size_usd: Decimal = Decimal("25")
    max_trade_size_usd: Decimal = Decimal("1500")
    default_trade_size_usd: Decimal = Decimal("300")  # when price is unknown
    min_volume_from_count_usd: Decimal = Decimal("100")
    bullish_buy_ratio: Decimal = Decimal("0.56")
    bearish_buy_ratio: Decimal = Decimal("0.44")
    share_5m: Decimal = Decimal("0.05")
    share_1h: Decimal = Decimal("0.15")
    share_4h: Decimal = Decimal("0.40")
    share_24h: Decimal = Decimal("1.0")


class PanelSettings(BaseSettings):
    """Pair observed at startup. Empty pair_address starts with no active pair."""

    model_config = SettingsConfigDict(env_prefix="PANEL_")

    chain: str = "0x1"
    pair_address: str = ""
    base_address: str = ""
    base_symbol: str = ""
    base_name: str = ""
    quote_address: str = ""
    quote_symbol: str = ""


class ServerSettings(BaseSettings):
    """HTTP/WebSocket read surface."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: str = "console"  # "json" for machine-readable output
    swaps: SwapProviderSettings = SwapProviderSettings()
    chart: ChartProviderSettings = ChartProviderSettings()
    pairs: PairProviderSettings = PairProviderSettings()
    polling: PollingSettings = PollingSettings()
    heuristic: HeuristicSettings = HeuristicSettings()
    panel: PanelSettings = PanelSettings()
    server: ServerSettings = ServerSettings()
