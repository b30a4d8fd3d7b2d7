from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ResolveDepthInput:
    chain: str
    pool_address: str
    price_hint: float | None = None
    levels: int | None = None
    force_refresh: bool = False
    token0: str | None = None
    token1: str | None = None
