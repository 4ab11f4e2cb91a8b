"""Entry point for the pairwatch market data engine.

Wires all components together, optionally embeds the FastAPI read surface,
and starts the shared polling clock. When the server is enabled (default),
the engine and the API share a single asyncio event loop via uvicorn's
programmatic API and FastAPI's lifespan context manager.

Component wiring order (in _build_components):
1. AppSettings (configuration)
2. Logging setup
3. ResponseCache + IdentifierCache (shared by all adapters)
4. Provider adapters (trade ledger, price/chart, pair aggregator)
5. RateLimitBackoff + HeuristicSynthesizer
6. PairResolver (per-tick fan-out and cascades)
7. PollingClock (20s wall-clock aligned tick)
8. MarketDataEngine (read interface)
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from pairwatch.cache import IdentifierCache, ResponseCache
from pairwatch.config import AppSettings, PanelSettings
from pairwatch.engine import MarketDataEngine
from pairwatch.logging import get_logger, setup_logging
from pairwatch.market_data.cascade import RateLimitBackoff
from pairwatch.market_data.clock import PollingClock
from pairwatch.market_data.heuristics import HeuristicSynthesizer
from pairwatch.market_data.resolver import PairResolver
from pairwatch.models import PairRef, TokenRef
from pairwatch.providers import CoinGeckoClient, DexScreenerClient, MoralisSwapClient


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all engine components from settings.

    Args:
        settings: Application-wide settings.

    Returns:
        Dict mapping component names to instances.
    """
    logger = get_logger("pairwatch.main")
    polling = settings.polling

    # 3. Shared caches
    cache = ResponseCache(ttl_seconds=polling.cache_ttl_seconds)
    id_cache = IdentifierCache()

    # 4. Provider adapters
    if not settings.swaps.api_key.get_secret_value():
        logger.warning(
            "no_ledger_api_key_configured",
            note="Transaction and ledger price calls will fail; "
            "stats fall back to heuristic estimates.",
        )
    swaps = MoralisSwapClient(settings.swaps, cache, polling.request_timeout_seconds)
    chart = CoinGeckoClient(settings.chart, cache, id_cache, polling.request_timeout_seconds)
    pairs = DexScreenerClient(settings.pairs, cache, polling.request_timeout_seconds)

    # 5-6. Resolver
    resolver = PairResolver(
        swaps=swaps,
        chart=chart,
        pairs=pairs,
        synthesizer=HeuristicSynthesizer(settings.heuristic),
        backoff=RateLimitBackoff(polling.rate_limit_backoff_seconds),
        timeout_seconds=polling.request_timeout_seconds,
    )

    # 7-8. Clock and engine
    clock = PollingClock(interval_seconds=polling.interval_seconds)
    engine = MarketDataEngine(resolver, clock, flash_seconds=polling.price_flash_seconds)

    return {
        "cache": cache,
        "id_cache": id_cache,
        "resolver": resolver,
        "clock": clock,
        "engine": engine,
    }


def initial_pair(panel: PanelSettings) -> PairRef | None:
    """The startup pair from settings, or None when none is configured."""
    if not panel.pair_address or not panel.base_address:
        return None
    return PairRef(
        pair_address=panel.pair_address,
        chain=panel.chain,
        base_token=TokenRef(
            address=panel.base_address,
            symbol=panel.base_symbol,
            name=panel.base_name,
        ),
        quote_token=TokenRef(address=panel.quote_address, symbol=panel.quote_symbol),
    )


async def _start(components: dict[str, Any], settings: AppSettings) -> None:
    engine: MarketDataEngine = components["engine"]
    await engine.start()
    await components["clock"].start()
    pair = initial_pair(settings.panel)
    if pair is not None:
        await engine.set_active_pair(pair)


async def _shutdown(components: dict[str, Any]) -> None:
    await components["clock"].stop()
    await components["engine"].stop()
    await components["resolver"].close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage engine lifecycle within the FastAPI application.

    On startup: stores the engine on app.state, forwards every view change
    to the WebSocket hub, starts the clock and the startup pair.

    On shutdown: stops the clock and engine, closes provider sessions.
    """
    logger = get_logger("pairwatch.main")
    settings = app.state.settings
    components = app.state.components
    engine: MarketDataEngine = components["engine"]

    app.state.engine = engine
    unsubscribe_hub = engine.subscribe_active(app.state.hub.broadcast)

    await _start(components, settings)
    logger.info("lifespan_started", interval=settings.polling.interval_seconds)

    yield

    unsubscribe_hub()
    await _shutdown(components)
    logger.info("pairwatch_stopped")


async def run() -> None:
    """Run the market data engine.

    When the server is enabled (SERVER_ENABLED=true, the default) the engine
    runs inside uvicorn alongside the API. Otherwise it runs headless until
    SIGINT/SIGTERM.
    """
    # 1. Load settings
    settings = AppSettings()

    # 2. Setup logging
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("pairwatch.main")

    # 3-8. Build all components
    components = _build_components(settings)

    if settings.server.enabled:
        from pairwatch.api.app import create_app

        app = create_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info(
            "starting_with_server",
            host=settings.server.host,
            port=settings.server.port,
        )

        config = uvicorn.Config(
            app,
            host=settings.server.host,
            port=settings.server.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        logger.info("starting_headless", interval=settings.polling.interval_seconds)
        try:
            await _start(components, settings)
            await stop_event.wait()
        finally:
            await _shutdown(components)
            logger.info("pairwatch_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
