from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GetCachedTradesInput:
    chain: str
    pool_address: str
    limit: int = 50
