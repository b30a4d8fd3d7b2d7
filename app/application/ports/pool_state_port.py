from __future__ import annotations

from typing import Protocol

from app.domain.entities.pool_state import PoolState, TokenBalances


class PoolStateReaderPort(Protocol):
    async def read_pool_state(
        self,
        *,
        chain: str,
        pool_address: str,
        token0: str | None = None,
        token1: str | None = None,
    ) -> PoolState | None:
        ...

    async def read_token_balances(self, *, chain: str, pool_address: str) -> TokenBalances | None:
        ...


class BlockSourcePort(Protocol):
    async def get_block_number(self, *, chain: str) -> int:
        ...
