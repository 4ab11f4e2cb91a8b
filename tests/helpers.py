"""Builders and constants shared across test modules."""

from decimal import Decimal

from pairwatch.models import NormalizedTransaction, TradeSide

NOW_MS = 1_700_000_000_000

BASE_ADDRESS = "0xBase000000000000000000000000000000000001"
QUOTE_ADDRESS = "0xQuote00000000000000000000000000000000002"
PAIR_ADDRESS = "0xPair000000000000000000000000000000000003"

MINUTE_MS = 60 * 1000


def make_tx(
    tx_hash: str,
    age_ms: int,
    side: TradeSide = TradeSide.BUY,
    usd: str = "100",
    wallet: str = "",
    base_amount: str = "0",
    base_price: str = "0",
    now_ms: int = NOW_MS,
) -> NormalizedTransaction:
    """Build a swap ``age_ms`` before ``now_ms``."""
    return NormalizedTransaction(
        tx_hash=tx_hash,
        timestamp_ms=now_ms - age_ms,
        side=side,
        base_amount=Decimal(base_amount),
        quote_amount=Decimal("0"),
        base_usd_price=Decimal(base_price),
        quote_usd_price=Decimal("0"),
        usd_value=Decimal(usd),
        wallet_address=wallet,
    )
