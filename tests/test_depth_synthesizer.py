from __future__ import annotations

import math

import pytest

from app.domain.services.depth_synthesizer import decay_weights, split_reserve_shares, synthesize_depth


@pytest.mark.parametrize(
    ("reserve_base", "reserve_quote_usd", "price"),
    [
        (1_000_000, 2_000_000, 2.0),
        (0, 500, 3.5),
        (10, 0, 1200.0),
        (0, 0, 1.0),
        (123.45, 6789.01, 0.0042),
    ],
)
def test_split_reserve_shares_sum_to_one(reserve_base, reserve_quote_usd, price):
    bid_share, ask_share = split_reserve_shares(
        reserve_base=reserve_base,
        reserve_quote_usd=reserve_quote_usd,
        price_usd=price,
    )

    assert 0 <= bid_share <= 1
    assert 0 <= ask_share <= 1
    assert bid_share + ask_share == pytest.approx(1.0)


@pytest.mark.parametrize(("levels", "decay"), [(1, 15.0), (10, 1.0), (50, 15.0), (200, 0.5)])
def test_decay_weights_sum_to_one(levels, decay):
    weights = decay_weights(levels, decay)

    assert len(weights) == levels
    assert sum(weights) == pytest.approx(1.0)
    assert weights == sorted(weights, reverse=True)


def test_synthesized_totals_match_shares():
    curve = synthesize_depth(
        total_liquidity_usd=1_000_000,
        reserve_base=100,
        reserve_quote_usd=300_000,
        price_usd=1_000,
        levels=25,
        step_bps=50,
        decay=10,
    )
    bid_share, ask_share = split_reserve_shares(reserve_base=100, reserve_quote_usd=300_000, price_usd=1_000)

    assert sum(level.liquidity for level in curve.bids) == pytest.approx(1_000_000 * bid_share)
    assert sum(level.liquidity for level in curve.asks) == pytest.approx(1_000_000 * ask_share)


def test_level_prices_are_strictly_monotonic():
    curve = synthesize_depth(
        total_liquidity_usd=50_000,
        reserve_base=10,
        reserve_quote_usd=20_000,
        price_usd=2_000,
        levels=50,
    )
    bid_prices = [level.price for level in curve.bids]
    ask_prices = [level.price for level in curve.asks]

    assert all(a < b for a, b in zip(ask_prices, ask_prices[1:]))
    assert all(a > b for a, b in zip(bid_prices, bid_prices[1:]))
    assert max(bid_prices) < curve.current_price <= min(ask_prices)


def test_equal_reserves_scenario():
    curve = synthesize_depth(
        total_liquidity_usd=4_000_000,
        reserve_base=1_000_000,
        reserve_quote_usd=2_000_000,
        price_usd=2.0,
        levels=50,
        step_bps=100,
        decay=15,
    )
    weight_1 = 1 / sum(math.exp(-(i - 1) / 15) for i in range(1, 51))

    assert len(curve.bids) == 50
    assert len(curve.asks) == 50
    assert curve.asks[0].liquidity == pytest.approx(2_000_000 * weight_1)
    assert curve.bids[0].liquidity == pytest.approx(2_000_000 * weight_1)
    assert curve.asks[0].price == pytest.approx(2.0 * 1.01)


def test_zero_levels_returns_empty_curve():
    curve = synthesize_depth(total_liquidity_usd=100, reserve_base=1, reserve_quote_usd=1, price_usd=1, levels=0)

    assert curve.bids == []
    assert curve.asks == []
    assert not curve.has_levels()


def test_non_positive_price_is_rejected():
    with pytest.raises(ValueError):
        synthesize_depth(total_liquidity_usd=100, reserve_base=1, reserve_quote_usd=1, price_usd=0)
