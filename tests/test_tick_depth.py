from __future__ import annotations

import pytest

from app.domain.services.tick_depth import build_tick_depth, derive_quote_price_usd
from app.domain.services.univ3_math import Q96, amount0_in_range, amount1_in_range


LIQUIDITY = 10**21


def test_single_range_splits_into_one_bid_and_one_ask():
    curve = build_tick_depth(
        current_tick=0,
        active_liquidity=LIQUIDITY,
        tick_nets={-600: LIQUIDITY, 600: -LIQUIDITY},
        price_usd=2.0,
        quote_price_usd=2.0,
        token0_decimals=18,
        token1_decimals=18,
        token0_is_base=True,
        levels=10,
    )

    assert len(curve.asks) == 1
    assert len(curve.bids) == 1
    assert curve.asks[0].price > 2.0 > curve.bids[0].price
    assert curve.asks[0].liquidity == pytest.approx(amount0_in_range(LIQUIDITY, 0, 600, 18) * 2.0)
    assert curve.bids[0].liquidity == pytest.approx(amount1_in_range(LIQUIDITY, -600, 0, 18) * 2.0)


def test_walk_stops_when_liquidity_runs_out():
    curve = build_tick_depth(
        current_tick=0,
        active_liquidity=LIQUIDITY,
        tick_nets={-60: LIQUIDITY, 60: -LIQUIDITY, 120: LIQUIDITY, 180: -LIQUIDITY},
        price_usd=1.0,
        quote_price_usd=1.0,
        token0_decimals=18,
        token1_decimals=18,
        token0_is_base=True,
        levels=10,
    )

    # nothing is active between 60 and 120, so that range adds no level
    assert len(curve.asks) == 2
    assert [level.price for level in curve.asks] == sorted(level.price for level in curve.asks)


def test_token1_base_swaps_sides():
    curve = build_tick_depth(
        current_tick=0,
        active_liquidity=LIQUIDITY,
        tick_nets={-600: LIQUIDITY, 600: -LIQUIDITY},
        price_usd=2.0,
        quote_price_usd=2.0,
        token0_decimals=18,
        token1_decimals=18,
        token0_is_base=False,
        levels=10,
    )

    assert curve.asks[0].liquidity == pytest.approx(amount1_in_range(LIQUIDITY, -600, 0, 18) * 2.0)
    assert curve.asks[0].price > 2.0
    assert curve.bids[0].price < 2.0


def test_levels_are_capped_per_side():
    nets = {}
    for tick in range(60, 60 * 20, 60):
        nets[tick] = -1
        nets[-tick] = 1
    curve = build_tick_depth(
        current_tick=0,
        active_liquidity=LIQUIDITY,
        tick_nets=nets,
        price_usd=1.0,
        quote_price_usd=1.0,
        token0_decimals=18,
        token1_decimals=18,
        token0_is_base=True,
        levels=5,
    )

    assert len(curve.asks) == 5
    assert len(curve.bids) == 5


def test_dust_levels_are_dropped():
    curve = build_tick_depth(
        current_tick=0,
        active_liquidity=1000,
        tick_nets={-60: 1000, 60: -1000},
        price_usd=1.0,
        quote_price_usd=1.0,
        token0_decimals=18,
        token1_decimals=18,
        token0_is_base=True,
        levels=5,
    )

    assert not curve.has_levels()


def test_derive_quote_price_from_sqrt_price():
    sqrt_price_x96 = int(Q96)  # ratio 1 with equal decimals

    assert derive_quote_price_usd(
        price_usd=3.0,
        sqrt_price_x96=sqrt_price_x96,
        token0_decimals=18,
        token1_decimals=18,
        token0_is_base=True,
    ) == pytest.approx(3.0)
