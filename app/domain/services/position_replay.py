from __future__ import annotations

from collections.abc import Iterable

from app.domain.entities.depth import DepthCurve
from app.domain.entities.lp_position import (
    LP_BURN,
    LP_MINT,
    LpEvent,
    LpPosition,
    PositionStats,
    ReplayBatch,
)
from app.domain.exceptions import ParseError
from app.domain.services.tick_depth import build_tick_depth


def classify_event(event: LpEvent) -> LpPosition:
    """Turns a signed liquidity delta into (magnitude, mint|burn)."""
    try:
        delta = int(str(event.liquidity_delta).strip())
    except (TypeError, ValueError) as exc:
        raise ParseError(f"Invalid liquidity delta {event.liquidity_delta!r} tx={event.tx_hash}") from exc
    if event.tick_lower >= event.tick_upper:
        raise ParseError(
            f"Invalid tick range {event.tick_lower}..{event.tick_upper} tx={event.tx_hash}"
        )
    return LpPosition(
        owner=event.owner.lower(),
        tick_lower=event.tick_lower,
        tick_upper=event.tick_upper,
        liquidity=abs(delta),
        type=LP_MINT if delta > 0 else LP_BURN,
        tx_hash=event.tx_hash.lower(),
        block_number=event.block_number,
        timestamp=event.timestamp,
        amount0=event.amount0,
        amount1=event.amount1,
    )


def replay_events(events: Iterable[LpEvent]) -> ReplayBatch:
    """Parses and dedupes a batch; unparseable rows are counted, never fatal."""
    seen: set[tuple[str, int, int, str]] = set()
    positions: list[LpPosition] = []
    errors = 0
    for event in events:
        try:
            position = classify_event(event)
        except ParseError:
            errors += 1
            continue
        if position.key in seen:
            continue
        seen.add(position.key)
        positions.append(position)
    return ReplayBatch(positions=positions, errors=errors)


def compute_position_stats(positions: Iterable[LpPosition]) -> PositionStats:
    total = 0
    mints = 0
    burns = 0
    owners: set[str] = set()
    for position in positions:
        total += 1
        if position.type == LP_MINT:
            mints += 1
        else:
            burns += 1
        owners.add(position.owner.lower())
    return PositionStats(total=total, mints=mints, burns=burns, unique_lps=len(owners))


def overlaps_range(position: LpPosition, *, tick_lower: int | None, tick_upper: int | None) -> bool:
    if tick_lower is not None and position.tick_upper <= tick_lower:
        return False
    if tick_upper is not None and position.tick_lower >= tick_upper:
        return False
    return True


def _signed(position: LpPosition) -> int:
    return position.liquidity if position.type == LP_MINT else -position.liquidity


def aggregate_tick_nets(positions: Iterable[LpPosition]) -> dict[int, int]:
    nets: dict[int, int] = {}
    for position in positions:
        signed = _signed(position)
        nets[position.tick_lower] = nets.get(position.tick_lower, 0) + signed
        nets[position.tick_upper] = nets.get(position.tick_upper, 0) - signed
    return {tick: net for tick, net in nets.items() if net != 0}


def active_liquidity_at(positions: Iterable[LpPosition], current_tick: int) -> int:
    active = sum(
        _signed(position)
        for position in positions
        if position.tick_lower <= current_tick < position.tick_upper
    )
    return max(0, active)


def replay_depth(
    positions: list[LpPosition],
    *,
    current_tick: int,
    price_usd: float,
    quote_price_usd: float,
    token0_decimals: int,
    token1_decimals: int,
    token0_is_base: bool,
    levels: int,
) -> DepthCurve:
    return build_tick_depth(
        current_tick=current_tick,
        active_liquidity=active_liquidity_at(positions, current_tick),
        tick_nets=aggregate_tick_nets(positions),
        price_usd=price_usd,
        quote_price_usd=quote_price_usd,
        token0_decimals=token0_decimals,
        token1_decimals=token1_decimals,
        token0_is_base=token0_is_base,
        levels=levels,
    )
