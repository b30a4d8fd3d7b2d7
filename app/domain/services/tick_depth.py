from __future__ import annotations

from collections.abc import Mapping

from app.domain.entities.depth import DepthCurve, DepthLevel
from app.domain.services.univ3_math import (
    amount0_in_range,
    amount1_in_range,
    price_ratio_at_tick,
    sqrt_price_x96_to_price,
)


MIN_LEVEL_USD = 0.01
MAX_LEVEL_USD = 1e12


def derive_quote_price_usd(
    *,
    price_usd: float,
    sqrt_price_x96: int,
    token0_decimals: int,
    token1_decimals: int,
    token0_is_base: bool,
) -> float:
    ratio = float(sqrt_price_x96_to_price(sqrt_price_x96, token0_decimals, token1_decimals))
    if token0_is_base:
        return price_usd / ratio if ratio > 0 else 0.0
    return price_usd * ratio


def build_tick_depth(
    *,
    current_tick: int,
    active_liquidity: int,
    tick_nets: Mapping[int, int],
    price_usd: float,
    quote_price_usd: float,
    token0_decimals: int,
    token1_decimals: int,
    token0_is_base: bool,
    levels: int,
) -> DepthCurve:
    """Walks initialized ticks outwards from the active tick.

    Ranges above the active tick hold token0, ranges below hold token1; whichever side
    holds the base token is the ask side.
    """
    if levels <= 0 or price_usd <= 0:
        return DepthCurve(current_price=price_usd)

    ordered = sorted(tick_nets)
    token0_usd = price_usd if token0_is_base else quote_price_usd
    token1_usd = quote_price_usd if token0_is_base else price_usd

    def price_at(tick: int) -> float:
        return price_ratio_at_tick(
            base_price=price_usd,
            tick=tick,
            current_tick=current_tick,
            token0_is_base=token0_is_base,
        )

    upward: list[DepthLevel] = []
    liquidity = active_liquidity
    previous = current_tick
    for tick in (t for t in ordered if t > current_tick):
        if len(upward) >= levels:
            break
        if liquidity > 0:
            value = amount0_in_range(liquidity, previous, tick, token0_decimals) * token0_usd
            if MIN_LEVEL_USD < value < MAX_LEVEL_USD:
                upward.append(DepthLevel(price=price_at(tick), liquidity=value))
        liquidity += tick_nets[tick]
        previous = tick

    downward: list[DepthLevel] = []
    liquidity = active_liquidity
    previous = current_tick
    for tick in (t for t in reversed(ordered) if t <= current_tick):
        if len(downward) >= levels:
            break
        if liquidity > 0:
            value = amount1_in_range(liquidity, tick, previous, token1_decimals) * token1_usd
            if MIN_LEVEL_USD < value < MAX_LEVEL_USD:
                downward.append(DepthLevel(price=price_at(tick), liquidity=value))
        liquidity -= tick_nets[tick]
        previous = tick

    asks, bids = (upward, downward) if token0_is_base else (downward, upward)
    return DepthCurve(
        current_price=price_usd,
        bids=sorted(bids, key=lambda level: level.price, reverse=True),
        asks=sorted(asks, key=lambda level: level.price),
    )
