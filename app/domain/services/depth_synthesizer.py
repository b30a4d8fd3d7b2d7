from __future__ import annotations

import math

from app.domain.entities.depth import DepthCurve, DepthLevel


DEFAULT_LEVELS = 50
DEFAULT_STEP_BPS = 100
DEFAULT_DECAY = 15.0


def split_reserve_shares(
    *,
    reserve_base: float,
    reserve_quote_usd: float,
    price_usd: float,
) -> tuple[float, float]:
    """Returns (bid_share, ask_share) weighted by the USD value held on each side.

    Quote reserves back the bid side and base reserves back the ask side.
    """
    value_base = max(0.0, reserve_base) * max(0.0, price_usd)
    value_quote = max(0.0, reserve_quote_usd)
    total = value_base + value_quote
    if total <= 0:
        return 0.5, 0.5
    bid_share = value_quote / total
    return bid_share, 1.0 - bid_share


def decay_weights(levels: int, decay: float = DEFAULT_DECAY) -> list[float]:
    if levels <= 0:
        return []
    if decay <= 0:
        raise ValueError("decay must be positive.")
    raw = [math.exp(-(index - 1) / decay) for index in range(1, levels + 1)]
    total = sum(raw)
    return [value / total for value in raw]


def level_prices(*, price: float, levels: int, step_bps: float) -> tuple[list[float], list[float]]:
    """Bid prices (descending) and ask prices (ascending) around `price`."""
    step = 1 + step_bps / 10000
    bids = [price * step ** (-index) for index in range(1, levels + 1)]
    asks = [price * step**index for index in range(1, levels + 1)]
    return bids, asks


def synthesize_depth(
    *,
    total_liquidity_usd: float,
    reserve_base: float,
    reserve_quote_usd: float,
    price_usd: float,
    levels: int = DEFAULT_LEVELS,
    step_bps: float = DEFAULT_STEP_BPS,
    decay: float = DEFAULT_DECAY,
) -> DepthCurve:
    if levels <= 0:
        return DepthCurve(current_price=price_usd)
    if price_usd <= 0:
        raise ValueError("price_usd must be positive.")
    if step_bps <= 0:
        raise ValueError("step_bps must be positive.")

    bid_share, ask_share = split_reserve_shares(
        reserve_base=reserve_base,
        reserve_quote_usd=reserve_quote_usd,
        price_usd=price_usd,
    )
    weights = decay_weights(levels, decay)
    bid_prices, ask_prices = level_prices(price=price_usd, levels=levels, step_bps=step_bps)
    total = max(0.0, total_liquidity_usd)

    bids = [
        DepthLevel(price=bid_price, liquidity=total * bid_share * weight)
        for bid_price, weight in zip(bid_prices, weights)
    ]
    asks = [
        DepthLevel(price=ask_price, liquidity=total * ask_share * weight)
        for ask_price, weight in zip(ask_prices, weights)
    ]
    return DepthCurve(current_price=price_usd, bids=bids, asks=asks)
