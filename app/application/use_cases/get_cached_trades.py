from __future__ import annotations

from app.application.dto.trades import GetCachedTradesInput
from app.application.sync.orchestrator import SyncOrchestrator
from app.domain.entities.sync import SYNC_TYPE_TRADES
from app.domain.entities.trade import Trade
from app.domain.exceptions import ClientInputError
from app.domain.services.chains import get_chain_config
from app.domain.services.pool_identity import normalize_pool_address


MAX_TRADES_LIMIT = 500


class GetCachedTradesUseCase:
    def __init__(self, *, orchestrator: SyncOrchestrator):
        self._orchestrator = orchestrator

    async def execute(self, command: GetCachedTradesInput) -> list[Trade]:
        chain = get_chain_config(command.chain).key
        pool_address = normalize_pool_address(command.pool_address)
        if command.limit <= 0 or command.limit > MAX_TRADES_LIMIT:
            raise ClientInputError(f"limit must be between 1 and {MAX_TRADES_LIMIT}.")

        await self._orchestrator.sync(chain=chain, pool_address=pool_address, sync_type=SYNC_TYPE_TRADES)
        trades = await self._orchestrator.read(chain=chain, pool_address=pool_address, sync_type=SYNC_TYPE_TRADES)
        return trades[: command.limit]
