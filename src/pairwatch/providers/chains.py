"""Static chain identifier mappings for the upstream providers.

Callers identify chains by EVM chain id (hex "0x1" or decimal "1"); each
provider has its own naming.
"""

# Static mapping from chain id to trade-ledger chain names
CHAIN_TO_LEDGER: dict[str, str] = {
    "0x1": "eth",
    "0x38": "bsc",
    "0x89": "polygon",
    "0xa86a": "avalanche",
    "0xa4b1": "arbitrum",
    "0xa": "optimism",
    "0x2105": "base",
}

# Static mapping from chain id to price/chart provider platform slugs
CHAIN_TO_CHART_PLATFORM: dict[str, str] = {
    "0x1": "ethereum",
    "0x38": "binance-smart-chain",
    "0x89": "polygon-pos",
    "0xa4b1": "arbitrum-one",
    "0xa": "optimistic-ethereum",
    "0xa86a": "avalanche",
    "0x2105": "base",
    "0xfa": "fantom",
}

_DEFAULT_LEDGER_CHAIN = "eth"


def normalize_chain_id(chain: str) -> str:
    """Return the hex form of a chain id ("56" -> "0x38"); names pass through."""
    value = chain.strip().lower()
    if value.isdigit():
        return hex(int(value))
    return value


def ledger_chain(chain: str) -> str:
    """Trade-ledger chain name, defaulting to Ethereum mainnet."""
    return CHAIN_TO_LEDGER.get(normalize_chain_id(chain), _DEFAULT_LEDGER_CHAIN)


def chart_platform(chain: str) -> str | None:
    """Price/chart provider platform slug, or None if the chain is unsupported."""
    return CHAIN_TO_CHART_PLATFORM.get(normalize_chain_id(chain))
