from __future__ import annotations

import re

from app.domain.entities.pool import TokenInfo
from app.domain.exceptions import InvalidPoolAddressError


_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_WIDE_POOL_ID_RE = re.compile(r"^0x[a-fA-F0-9]{64}$")

KNOWN_QUOTE_SYMBOLS = frozenset(
    {"WETH", "ETH", "USDC", "USDT", "DAI", "WBNB", "BNB", "USDBC", "WBTC", "CBBTC"}
)


def is_evm_address(value: str) -> bool:
    return bool(_ADDRESS_RE.match(value or ""))


def is_wide_pool_id(value: str) -> bool:
    return bool(_WIDE_POOL_ID_RE.match(value or ""))


def normalize_pool_address(value: str) -> str:
    """Lowercases a pool address or wide pool id, rejecting anything malformed."""
    candidate = (value or "").strip()
    if not (is_evm_address(candidate) or is_wide_pool_id(candidate)):
        raise InvalidPoolAddressError(f"Invalid pool address: {value!r}")
    return candidate.lower()


def normalize_token_address(value: str, *, field_name: str) -> str:
    candidate = (value or "").strip()
    if not is_evm_address(candidate):
        raise InvalidPoolAddressError(f"Invalid {field_name}: {value!r}")
    return candidate.lower()


def is_token0_base(token0: TokenInfo, token1: TokenInfo, *, price_hint: float | None = None) -> bool:
    token0_quote = token0.symbol.upper() in KNOWN_QUOTE_SYMBOLS
    token1_quote = token1.symbol.upper() in KNOWN_QUOTE_SYMBOLS
    if token1_quote and not token0_quote:
        return True
    if token0_quote and not token1_quote:
        return False
    if price_hint is None:
        return True
    return price_hint < 1


def orient_tokens(
    token0: TokenInfo,
    token1: TokenInfo,
    *,
    price_hint: float | None = None,
) -> tuple[TokenInfo, TokenInfo]:
    if is_token0_base(token0, token1, price_hint=price_hint):
        return token0, token1
    return token1, token0


def tick_spacing_for_fee(lp_fee: int) -> int:
    if lp_fee <= 100:
        return 1
    if lp_fee <= 500:
        return 10
    if lp_fee <= 3000:
        return 60
    if lp_fee <= 10000:
        return 200
    return 60
