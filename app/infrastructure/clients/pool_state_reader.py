from __future__ import annotations

import logging

from app.domain.entities.pool import TokenInfo
from app.domain.entities.pool_state import (
    POOL_KIND_V2,
    POOL_KIND_V3,
    POOL_KIND_V4,
    PoolState,
    TickNet,
    TokenBalances,
)
from app.domain.services.chains import get_chain_config
from app.domain.services.pool_identity import is_wide_pool_id, tick_spacing_for_fee
from app.infrastructure.clients.evm_abi import ContractCall, hex_to_bytes
from app.infrastructure.clients.evm_rpc_client import EvmRpcClient


logger = logging.getLogger(__name__)

NATIVE_TOKEN = "0x0000000000000000000000000000000000000000"
UNKNOWN_SYMBOL = "Unknown"
TICK_BATCH_SIZE = 200


def bitmap_word_range(*, tick: int, tick_spacing: int, words: int) -> list[int]:
    word = (tick // tick_spacing) >> 8
    return list(range(word - words, word + words + 1))


def initialized_ticks(*, word: int, bitmap: int, tick_spacing: int) -> list[int]:
    ticks = []
    for bit in range(256):
        if bitmap >> bit & 1:
            ticks.append(((word << 8) + bit) * tick_spacing)
    return ticks


class PoolStateReader:
    """Reads V2 reserves and V3/V4 price, active liquidity and nearby initialized ticks."""

    def __init__(self, *, rpc: EvmRpcClient, bitmap_words: int = 4):
        self._rpc = rpc
        self._bitmap_words = bitmap_words

    async def read_pool_state(
        self,
        *,
        chain: str,
        pool_address: str,
        token0: str | None = None,
        token1: str | None = None,
    ) -> PoolState | None:
        if is_wide_pool_id(pool_address):
            if not token0 or not token1:
                return None
            return await self._read_v4(chain=chain, pool_id=pool_address, token0=token0, token1=token1)
        return await self._read_pair(chain=chain, pool_address=pool_address)

    async def read_token_balances(self, *, chain: str, pool_address: str) -> TokenBalances | None:
        if is_wide_pool_id(pool_address):
            return None
        results = await self._rpc.multicall(
            chain=chain,
            calls=[
                ContractCall(pool_address, "token0"),
                ContractCall(pool_address, "token1"),
            ],
        )
        if results[0] is None or results[1] is None:
            return None
        address0, address1 = results[0][0].lower(), results[1][0].lower()
        info0, info1 = await self._read_tokens(chain=chain, addresses=[address0, address1])
        balances = await self._rpc.multicall(
            chain=chain,
            calls=[
                ContractCall(address0, "balanceOf", (pool_address,)),
                ContractCall(address1, "balanceOf", (pool_address,)),
            ],
        )
        raw0 = balances[0][0] if balances[0] else 0
        raw1 = balances[1][0] if balances[1] else 0
        return TokenBalances(
            token0=info0,
            token1=info1,
            amount0=raw0 / 10**info0.decimals,
            amount1=raw1 / 10**info1.decimals,
        )

    async def _read_pair(self, *, chain: str, pool_address: str) -> PoolState | None:
        results = await self._rpc.multicall(
            chain=chain,
            calls=[
                ContractCall(pool_address, "slot0"),
                ContractCall(pool_address, "liquidity"),
                ContractCall(pool_address, "tickSpacing"),
                ContractCall(pool_address, "getReserves"),
                ContractCall(pool_address, "token0"),
                ContractCall(pool_address, "token1"),
            ],
        )
        slot0, liquidity, spacing, reserves, address0, address1 = results
        if address0 is None or address1 is None:
            logger.info("pool_state_reader: not_a_pool chain=%s pool=%s", chain, pool_address)
            return None
        token0, token1 = await self._read_tokens(
            chain=chain,
            addresses=[address0[0].lower(), address1[0].lower()],
        )

        if slot0 is not None and spacing is not None:
            sqrt_price_x96, tick = slot0
            active = liquidity[0] if liquidity else 0
            ticks = await self._read_v3_ticks(
                chain=chain,
                pool_address=pool_address,
                tick=tick,
                tick_spacing=spacing[0],
            )
            logger.info(
                "pool_state_reader: v3 chain=%s pool=%s tick=%s initialized_ticks=%s",
                chain,
                pool_address,
                tick,
                len(ticks),
            )
            return PoolState(
                chain=chain,
                pool_address=pool_address,
                kind=POOL_KIND_V3,
                token0=token0,
                token1=token1,
                sqrt_price_x96=sqrt_price_x96,
                tick=tick,
                liquidity=active,
                tick_spacing=spacing[0],
                ticks=tuple(ticks),
            )

        if reserves is not None:
            return PoolState(
                chain=chain,
                pool_address=pool_address,
                kind=POOL_KIND_V2,
                token0=token0,
                token1=token1,
                reserve0=reserves[0],
                reserve1=reserves[1],
            )
        return None

    async def _read_v3_ticks(self, *, chain: str, pool_address: str, tick: int, tick_spacing: int) -> list[TickNet]:
        if tick_spacing <= 0 or self._bitmap_words < 0:
            return []
        words = bitmap_word_range(tick=tick, tick_spacing=tick_spacing, words=self._bitmap_words)
        bitmaps = await self._rpc.multicall(
            chain=chain,
            calls=[ContractCall(pool_address, "tickBitmap", (word,)) for word in words],
        )
        candidates: list[int] = []
        for word, bitmap in zip(words, bitmaps):
            if bitmap:
                candidates.extend(initialized_ticks(word=word, bitmap=bitmap[0], tick_spacing=tick_spacing))
        return await self._read_tick_nets(
            chain=chain,
            candidates=candidates,
            build_call=lambda t: ContractCall(pool_address, "ticks", (t,)),
        )

    async def _read_v4(self, *, chain: str, pool_id: str, token0: str, token1: str) -> PoolState | None:
        config = get_chain_config(chain)
        state_view = config.v4_state_view
        if not state_view:
            logger.info("pool_state_reader: v4_unsupported chain=%s", chain)
            return None
        pool_key = hex_to_bytes(pool_id)
        slot0, liquidity = await self._rpc.multicall(
            chain=chain,
            calls=[
                ContractCall(state_view, "getSlot0", (pool_key,)),
                ContractCall(state_view, "getLiquidity", (pool_key,)),
            ],
        )
        if slot0 is None or not slot0[0]:
            logger.info("pool_state_reader: v4_not_initialized chain=%s pool=%s", chain, pool_id)
            return None
        sqrt_price_x96, tick, _protocol_fee, lp_fee = slot0
        tick_spacing = tick_spacing_for_fee(lp_fee)
        info0, info1 = await self._read_tokens(chain=chain, addresses=sorted([token0.lower(), token1.lower()]))

        words = bitmap_word_range(tick=tick, tick_spacing=tick_spacing, words=self._bitmap_words)
        bitmaps = await self._rpc.multicall(
            chain=chain,
            calls=[ContractCall(state_view, "getTickBitmap", (pool_key, word)) for word in words],
        )
        candidates: list[int] = []
        for word, bitmap in zip(words, bitmaps):
            if bitmap:
                candidates.extend(initialized_ticks(word=word, bitmap=bitmap[0], tick_spacing=tick_spacing))
        ticks = await self._read_tick_nets(
            chain=chain,
            candidates=candidates,
            build_call=lambda t: ContractCall(state_view, "getTickLiquidity", (pool_key, t)),
        )
        logger.info(
            "pool_state_reader: v4 chain=%s pool=%s tick=%s lp_fee=%s initialized_ticks=%s",
            chain,
            pool_id,
            tick,
            lp_fee,
            len(ticks),
        )
        return PoolState(
            chain=chain,
            pool_address=pool_id,
            kind=POOL_KIND_V4,
            token0=info0,
            token1=info1,
            sqrt_price_x96=sqrt_price_x96,
            tick=tick,
            liquidity=liquidity[0] if liquidity else 0,
            tick_spacing=tick_spacing,
            ticks=tuple(ticks),
        )

    async def _read_tick_nets(self, *, chain: str, candidates: list[int], build_call) -> list[TickNet]:
        ticks: list[TickNet] = []
        for start in range(0, len(candidates), TICK_BATCH_SIZE):
            batch = candidates[start : start + TICK_BATCH_SIZE]
            results = await self._rpc.multicall(chain=chain, calls=[build_call(t) for t in batch])
            for tick, result in zip(batch, results):
                if result is None:
                    continue
                liquidity_gross, liquidity_net = result
                if liquidity_gross == 0 and liquidity_net == 0:
                    continue
                ticks.append(TickNet(tick=tick, liquidity_net=liquidity_net))
        return ticks

    async def _read_tokens(self, *, chain: str, addresses: list[str]) -> list[TokenInfo]:
        calls: list[ContractCall] = []
        for address in addresses:
            calls.append(ContractCall(address, "decimals"))
            calls.append(ContractCall(address, "symbol"))
        results = await self._rpc.multicall(chain=chain, calls=calls)
        tokens: list[TokenInfo] = []
        for index, address in enumerate(addresses):
            if address == NATIVE_TOKEN:
                tokens.append(TokenInfo(address=address, symbol="ETH", decimals=18))
                continue
            decimals = results[index * 2]
            symbol = results[index * 2 + 1]
            tokens.append(
                TokenInfo(
                    address=address,
                    symbol=symbol[0] if symbol and symbol[0] else UNKNOWN_SYMBOL,
                    decimals=decimals[0] if decimals else 18,
                )
            )
        return tokens
