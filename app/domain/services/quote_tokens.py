from __future__ import annotations

from decimal import Decimal


COINGECKO_IDS = {
    "ETH": "ethereum",
    "WETH": "ethereum",
    "STETH": "staked-ether",
    "WSTETH": "wrapped-steth",
    "BNB": "binancecoin",
    "WBNB": "binancecoin",
    "MATIC": "matic-network",
    "WMATIC": "matic-network",
    "POL": "matic-network",
    "AVAX": "avalanche-2",
    "WAVAX": "avalanche-2",
    "SOL": "solana",
    "WSOL": "solana",
    "ARB": "arbitrum",
    "OP": "optimism",
    "BTC": "bitcoin",
    "WBTC": "wrapped-bitcoin",
    "BTCB": "bitcoin-bep2",
    "CBBTC": "coinbase-wrapped-btc",
}

STABLECOINS = frozenset(
    {"USDT", "USDC", "USDBC", "DAI", "BUSD", "FRAX", "TUSD", "USDP", "GUSD", "LUSD", "UST", "MIM"}
)

FALLBACK_PRICES = {
    "ETH": Decimal("3500"),
    "WETH": Decimal("3500"),
    "BNB": Decimal("600"),
    "WBNB": Decimal("600"),
    "MATIC": Decimal("0.8"),
    "WMATIC": Decimal("0.8"),
    "SOL": Decimal("200"),
    "WSOL": Decimal("200"),
    "BTC": Decimal("100000"),
    "WBTC": Decimal("100000"),
    "AVAX": Decimal("35"),
    "WAVAX": Decimal("35"),
}


def normalize_symbol(symbol: str) -> str:
    return (symbol or "").strip().upper()


def is_stablecoin(symbol: str) -> bool:
    return normalize_symbol(symbol) in STABLECOINS


def coingecko_id(symbol: str) -> str | None:
    return COINGECKO_IDS.get(normalize_symbol(symbol))


def fallback_price(symbol: str) -> Decimal:
    return FALLBACK_PRICES.get(normalize_symbol(symbol), Decimal("0"))
