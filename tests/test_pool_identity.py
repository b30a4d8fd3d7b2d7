from __future__ import annotations

import pytest

from app.domain.entities.pool import TokenInfo
from app.domain.exceptions import ClientInputError, InvalidPoolAddressError, UnsupportedChainError
from app.domain.services.chains import get_chain_config
from app.domain.services.pool_identity import (
    is_token0_base,
    is_wide_pool_id,
    normalize_pool_address,
    orient_tokens,
    tick_spacing_for_fee,
)


ADDRESS = "0x" + "Ab" * 20
WIDE_ID = "0x" + "cd" * 32


def test_normalize_pool_address_lowercases_both_forms():
    assert normalize_pool_address(ADDRESS) == ADDRESS.lower()
    assert normalize_pool_address(f"  {WIDE_ID}  ") == WIDE_ID
    assert is_wide_pool_id(WIDE_ID)
    assert not is_wide_pool_id(ADDRESS)


@pytest.mark.parametrize("value", ["", "0x1234", "ab" * 20, "0x" + "zz" * 20, "0x" + "a" * 50])
def test_malformed_addresses_are_client_errors(value):
    with pytest.raises(InvalidPoolAddressError):
        normalize_pool_address(value)
    assert issubclass(InvalidPoolAddressError, ClientInputError)


def test_known_quote_symbol_decides_orientation():
    weth = TokenInfo(address="0x1", symbol="WETH")
    pepe = TokenInfo(address="0x2", symbol="PEPE")

    assert is_token0_base(pepe, weth)
    assert not is_token0_base(weth, pepe)
    assert orient_tokens(weth, pepe) == (pepe, weth)


def test_price_hint_breaks_ties():
    usdc = TokenInfo(address="0x1", symbol="USDC")
    usdt = TokenInfo(address="0x2", symbol="USDT")

    assert is_token0_base(usdc, usdt)
    assert is_token0_base(usdc, usdt, price_hint=0.5)
    assert not is_token0_base(usdc, usdt, price_hint=2.0)


@pytest.mark.parametrize(("fee", "spacing"), [(100, 1), (500, 10), (3000, 60), (10000, 200), (25000, 60)])
def test_tick_spacing_for_fee(fee, spacing):
    assert tick_spacing_for_fee(fee) == spacing


def test_chain_registry():
    assert get_chain_config(" Base ").log_block_range == 2000
    assert get_chain_config("polygon").geckoterminal_network == "polygon_pos"
    assert get_chain_config("ethereum").geckoterminal_network == "eth"
    with pytest.raises(UnsupportedChainError):
        get_chain_config("solana")
