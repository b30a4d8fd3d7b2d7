from __future__ import annotations

import math
from decimal import Decimal


LOG_BASE = math.log(1.0001)
Q96 = Decimal(2) ** 96
MIN_TICK = -887272
MAX_TICK = 887272


def clamp_tick(tick: int) -> int:
    return max(MIN_TICK, min(MAX_TICK, tick))


def tick_to_sqrt_price(tick: int | float) -> float:
    return math.exp(float(tick) * LOG_BASE / 2.0)


def sqrt_price_x96_to_price(
    sqrt_price_x96: int,
    token0_decimals: int,
    token1_decimals: int,
) -> Decimal:
    """token1 per token0, decimal adjusted."""
    if sqrt_price_x96 <= 0:
        raise ValueError("Invalid sqrt_price_x96.")
    sqrt_price = Decimal(sqrt_price_x96) / Q96
    decimal_adjust = Decimal(10) ** Decimal(token0_decimals - token1_decimals)
    return sqrt_price * sqrt_price * decimal_adjust


def price_ratio_at_tick(*, base_price: float, tick: int, current_tick: int, token0_is_base: bool) -> float:
    """Base-token price at `tick`, anchored on the base price at `current_tick`."""
    delta = clamp_tick(tick) - current_tick
    if not token0_is_base:
        delta = -delta
    try:
        price = base_price * math.exp(delta * LOG_BASE)
    except OverflowError:
        return 1e18
    if not math.isfinite(price) or price > 1e18:
        return 1e18
    if price < 1e-18:
        return 1e-18
    return price


def amount0_in_range(liquidity: int, tick_lower: int, tick_upper: int, decimals: int) -> float:
    if liquidity <= 0 or tick_lower >= tick_upper:
        return 0.0
    sqrt_lower = tick_to_sqrt_price(clamp_tick(tick_lower))
    sqrt_upper = tick_to_sqrt_price(clamp_tick(tick_upper))
    if sqrt_lower <= 0 or sqrt_upper <= 0:
        return 0.0
    amount = float(liquidity) * (1.0 / sqrt_lower - 1.0 / sqrt_upper) / 10**decimals
    return amount if math.isfinite(amount) and amount > 0 else 0.0


def amount1_in_range(liquidity: int, tick_lower: int, tick_upper: int, decimals: int) -> float:
    if liquidity <= 0 or tick_lower >= tick_upper:
        return 0.0
    sqrt_lower = tick_to_sqrt_price(clamp_tick(tick_lower))
    sqrt_upper = tick_to_sqrt_price(clamp_tick(tick_upper))
    amount = float(liquidity) * (sqrt_upper - sqrt_lower) / 10**decimals
    return amount if math.isfinite(amount) and amount > 0 else 0.0
