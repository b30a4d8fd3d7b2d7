from __future__ import annotations

import asyncio
from decimal import Decimal
import logging

from app.application.dto.sync import FetchBatch
from app.domain.entities.lp_position import LpEvent
from app.domain.entities.pool import Pool
from app.domain.entities.trade import TRADE_BUY, TRADE_SELL, Trade
from app.domain.exceptions import ProviderError, TransportError
from app.domain.services.chains import CHAINS, get_chain_config
from app.domain.services.pool_identity import is_wide_pool_id
from app.domain.services.quote_tokens import is_stablecoin
from app.infrastructure.clients.evm_abi import (
    V3_BURN_TOPIC,
    V3_MINT_TOPIC,
    V4_MODIFY_LIQUIDITY_TOPIC,
    V4_SWAP_TOPIC,
    decode_topic,
    decode_values,
)
from app.infrastructure.clients.evm_rpc_client import EvmRpcClient


logger = logging.getLogger(__name__)

TIMESTAMP_BLOCK_CAP = 50
TIMESTAMP_BATCH_SIZE = 10


def block_chunks(from_block: int, to_block: int, size: int) -> list[tuple[int, int]]:
    chunks = []
    start = from_block
    while start <= to_block:
        end = min(start + size - 1, to_block)
        chunks.append((start, end))
        start = end + 1
    return chunks


def decode_v3_liquidity_log(log: dict, *, timestamp: int) -> LpEvent | None:
    topics = log.get("topics") or []
    if len(topics) < 4:
        return None
    signature = topics[0].lower()
    owner = decode_topic("address", topics[1])
    tick_lower = decode_topic("int24", topics[2])
    tick_upper = decode_topic("int24", topics[3])
    if signature == V3_MINT_TOPIC:
        _sender, amount, amount0, amount1 = decode_values(["address", "uint128", "uint256", "uint256"], log["data"])
        delta = amount
    elif signature == V3_BURN_TOPIC:
        amount, amount0, amount1 = decode_values(["uint128", "uint256", "uint256"], log["data"])
        delta = -amount
    else:
        return None
    if delta == 0:
        return None
    return LpEvent(
        owner=owner,
        tick_lower=tick_lower,
        tick_upper=tick_upper,
        liquidity_delta=str(delta),
        tx_hash=log["transactionHash"],
        block_number=int(log["blockNumber"]),
        timestamp=timestamp,
        amount0=str(amount0),
        amount1=str(amount1),
    )


def decode_v4_modify_liquidity_log(log: dict, *, timestamp: int) -> LpEvent | None:
    topics = log.get("topics") or []
    if len(topics) < 3 or topics[0].lower() != V4_MODIFY_LIQUIDITY_TOPIC:
        return None
    sender = decode_topic("address", topics[2])
    tick_lower, tick_upper, delta, _salt = decode_values(["int24", "int24", "int256", "bytes32"], log["data"])
    if delta == 0:
        return None
    return LpEvent(
        owner=sender,
        tick_lower=tick_lower,
        tick_upper=tick_upper,
        liquidity_delta=str(delta),
        tx_hash=log["transactionHash"],
        block_number=int(log["blockNumber"]),
        timestamp=timestamp,
    )


class EvmLogReader:
    """LP events and V4 swaps straight from eth_getLogs, walked in chain-sized block chunks."""

    def __init__(self, *, rpc: EvmRpcClient):
        self._rpc = rpc

    def supports(self, *, chain: str) -> bool:
        return chain in CHAINS

    async def fetch_lp_events(
        self,
        *,
        chain: str,
        pool_address: str,
        from_block: int,
        to_block: int,
    ) -> FetchBatch:
        if is_wide_pool_id(pool_address):
            manager = get_chain_config(chain).v4_pool_manager
            if not manager:
                return FetchBatch(error=f"uniswap v4 is not available on {chain}")
            address = manager
            topics = [V4_MODIFY_LIQUIDITY_TOPIC, pool_address]
            decoder = decode_v4_modify_liquidity_log
        else:
            address = pool_address
            topics = [[V3_MINT_TOPIC, V3_BURN_TOPIC]]
            decoder = decode_v3_liquidity_log
        return await self._walk(
            chain=chain,
            address=address,
            topics=topics,
            from_block=from_block,
            to_block=to_block,
            decode=decoder,
        )

    async def fetch_trades(
        self,
        *,
        chain: str,
        pool_address: str,
        from_block: int,
        to_block: int,
        pool: Pool | None = None,
    ) -> FetchBatch:
        manager = get_chain_config(chain).v4_pool_manager
        if not manager or not is_wide_pool_id(pool_address):
            return FetchBatch()
        batch = await self._walk(
            chain=chain,
            address=manager,
            topics=[V4_SWAP_TOPIC, pool_address],
            from_block=from_block,
            to_block=to_block,
            decode=lambda log, timestamp: (log, timestamp),
        )
        return FetchBatch(items=self._to_trades(batch.items, pool=pool), error=batch.error)

    async def _walk(self, *, chain: str, address: str, topics: list, from_block: int, to_block: int, decode) -> FetchBatch:
        config = get_chain_config(chain)
        logs: list[dict] = []
        error: str | None = None
        for start, end in block_chunks(from_block, to_block, config.log_block_range):
            try:
                logs.extend(
                    await self._rpc.get_logs(
                        chain=chain,
                        address=address,
                        topics=topics,
                        from_block=start,
                        to_block=end,
                    )
                )
            except (TransportError, ProviderError) as exc:
                logger.warning(
                    "evm_log_reader: chunk_failed chain=%s address=%s from_block=%s to_block=%s fetched=%s error=%s",
                    chain,
                    address,
                    start,
                    end,
                    len(logs),
                    exc,
                )
                error = str(exc)
                break

        try:
            timestamps = await self._block_timestamps(chain=chain, blocks={int(log["blockNumber"]) for log in logs})
        except (TransportError, ProviderError) as exc:
            logger.warning("evm_log_reader: timestamps_failed chain=%s logs=%s error=%s", chain, len(logs), exc)
            return FetchBatch(error=str(exc))

        items: list = []
        skipped = 0
        for log in logs:
            try:
                item = decode(log, timestamp=timestamps[int(log["blockNumber"])])
            except (ProviderError, KeyError, ValueError) as exc:
                skipped += 1
                logger.warning(
                    "evm_log_reader: undecodable_log chain=%s tx=%s error=%s",
                    chain,
                    log.get("transactionHash"),
                    exc,
                )
                continue
            if item is not None:
                items.append(item)
        logger.info(
            "evm_log_reader: fetched chain=%s address=%s from_block=%s to_block=%s items=%s skipped=%s",
            chain,
            address,
            from_block,
            to_block,
            len(items),
            skipped,
        )
        return FetchBatch(items=items, error=error)

    async def _block_timestamps(self, *, chain: str, blocks: set[int]) -> dict[int, int]:
        """Timestamps of the newest TIMESTAMP_BLOCK_CAP blocks; older blocks reuse the oldest one fetched."""
        ordered = sorted(blocks, reverse=True)
        fetched = ordered[:TIMESTAMP_BLOCK_CAP]
        timestamps: dict[int, int] = {}
        for start in range(0, len(fetched), TIMESTAMP_BATCH_SIZE):
            batch = fetched[start : start + TIMESTAMP_BATCH_SIZE]
            values = await asyncio.gather(
                *(self._rpc.get_block_timestamp(chain=chain, block_number=block) for block in batch)
            )
            timestamps.update(zip(batch, values))
        if len(ordered) > len(fetched):
            fallback = timestamps[fetched[-1]]
            logger.info(
                "evm_log_reader: timestamps_capped chain=%s blocks=%s fetched=%s",
                chain,
                len(ordered),
                len(fetched),
            )
            for block in ordered[len(fetched) :]:
                timestamps[block] = fallback
        return timestamps

    def _to_trades(self, raw: list[tuple[dict, int]], *, pool: Pool | None) -> list[Trade]:
        token0_is_base = True
        base_decimals = quote_decimals = 18
        quote_symbol = ""
        if pool is not None:
            token0_is_base = pool.base_token.address.lower() < pool.quote_token.address.lower()
            base_decimals = pool.base_token.decimals
            quote_decimals = pool.quote_token.decimals
            quote_symbol = pool.quote_token.symbol

        parsed = []
        for log, timestamp in raw:
            try:
                amount0, amount1, _sqrt_price, _liquidity, _tick, _fee = decode_values(
                    ["int128", "int128", "uint160", "uint128", "int24", "uint24"],
                    log["data"],
                )
            except ProviderError as exc:
                logger.warning("evm_log_reader: undecodable_swap tx=%s error=%s", log.get("transactionHash"), exc)
                continue
            base_raw, quote_raw = (amount0, amount1) if token0_is_base else (amount1, amount0)
            base_amount = Decimal(abs(base_raw)) / Decimal(10) ** base_decimals
            quote_amount = Decimal(abs(quote_raw)) / Decimal(10) ** quote_decimals
            if base_amount == 0:
                continue
            parsed.append(
                (
                    log,
                    timestamp,
                    TRADE_BUY if quote_raw > 0 else TRADE_SELL,
                    base_amount,
                    quote_amount / base_amount,
                )
            )
        if not parsed:
            return []

        quote_usd = Decimal("0")
        if is_stablecoin(quote_symbol):
            quote_usd = Decimal("1")
        elif pool is not None and pool.price_usd:
            latest_price = max(parsed, key=lambda row: row[0]["blockNumber"])[4]
            if latest_price > 0:
                quote_usd = pool.price_usd / latest_price

        trades = []
        for log, timestamp, kind, base_amount, price_in_quote in parsed:
            price = price_in_quote * quote_usd if quote_usd > 0 else price_in_quote
            trades.append(
                Trade(
                    tx_hash=log["transactionHash"].lower(),
                    kind=kind,
                    price=price,
                    amount=base_amount,
                    volume_usd=base_amount * price if quote_usd > 0 else Decimal("0"),
                    block_number=int(log["blockNumber"]),
                    timestamp=timestamp,
                )
            )
        return sorted(trades, key=lambda trade: trade.block_number, reverse=True)
