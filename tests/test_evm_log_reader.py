from __future__ import annotations

import asyncio
from decimal import Decimal

from eth_abi import encode
from eth_utils import encode_hex

from app.domain.entities.pool import Pool, TokenInfo
from app.domain.entities.trade import TRADE_BUY, TRADE_SELL
from app.domain.exceptions import TransportError
from app.domain.services.chains import get_chain_config
from app.infrastructure.clients.evm_abi import (
    V3_BURN_TOPIC,
    V3_MINT_TOPIC,
    V4_MODIFY_LIQUIDITY_TOPIC,
    V4_SWAP_TOPIC,
)
from app.infrastructure.clients.evm_log_reader import (
    EvmLogReader,
    block_chunks,
    decode_v3_liquidity_log,
    decode_v4_modify_liquidity_log,
)


OWNER = "0x" + "11" * 20
V3_POOL = "0x" + "22" * 20
V4_POOL_ID = "0x" + "33" * 32


def _topic(abi_type: str, value) -> str:
    return encode_hex(encode([abi_type], [value]))


def _mint_log(*, block: int, tx: str, amount: int = 5000) -> dict:
    return {
        "topics": [V3_MINT_TOPIC, _topic("address", OWNER), _topic("int24", -120), _topic("int24", 120)],
        "data": encode_hex(encode(["address", "uint128", "uint256", "uint256"], [OWNER, amount, 7, 9])),
        "transactionHash": tx,
        "blockNumber": block,
    }


def _burn_log(*, block: int, tx: str) -> dict:
    return {
        "topics": [V3_BURN_TOPIC, _topic("address", OWNER), _topic("int24", -120), _topic("int24", 120)],
        "data": encode_hex(encode(["uint128", "uint256", "uint256"], [3000, 1, 2])),
        "transactionHash": tx,
        "blockNumber": block,
    }


def _swap_log(*, block: int, amount0: int, amount1: int) -> dict:
    return {
        "topics": [V4_SWAP_TOPIC, V4_POOL_ID, _topic("address", OWNER)],
        "data": encode_hex(
            encode(
                ["int128", "int128", "uint160", "uint128", "int24", "uint24"],
                [amount0, amount1, 2**96, 10**18, 0, 3000],
            )
        ),
        "transactionHash": f"0x{block:064x}",
        "blockNumber": block,
    }


class FakeRpc:
    def __init__(self, logs_by_chunk=None, *, fail_from: int | None = None):
        self.logs_by_chunk = logs_by_chunk or {}
        self.fail_from = fail_from
        self.chunks: list[tuple[int, int]] = []
        self.timestamp_calls: list[int] = []
        self.active_lookups = 0
        self.max_active_lookups = 0

    async def get_logs(self, *, chain, address, topics, from_block, to_block):
        self.chunks.append((from_block, to_block))
        if self.fail_from is not None and from_block >= self.fail_from:
            raise TransportError("rpc: all endpoints failed")
        return self.logs_by_chunk.get(from_block, [])

    async def get_block_timestamp(self, *, chain, block_number):
        self.timestamp_calls.append(block_number)
        self.active_lookups += 1
        self.max_active_lookups = max(self.max_active_lookups, self.active_lookups)
        await asyncio.sleep(0)
        self.active_lookups -= 1
        return 1_700_000_000 + block_number


def test_block_chunks_cover_range_without_overlap():
    assert block_chunks(100, 2599, 1000) == [(100, 1099), (1100, 2099), (2100, 2599)]
    assert block_chunks(5, 5, 1000) == [(5, 5)]
    assert block_chunks(10, 9, 1000) == []


def test_decode_v3_mint_and_burn():
    mint = decode_v3_liquidity_log(_mint_log(block=16, tx="0xaa"), timestamp=1)
    burn = decode_v3_liquidity_log(_burn_log(block=17, tx="0xbb"), timestamp=2)

    assert mint.owner.lower() == OWNER
    assert (mint.tick_lower, mint.tick_upper) == (-120, 120)
    assert mint.liquidity_delta == "5000"
    assert mint.block_number == 16
    assert (mint.amount0, mint.amount1) == ("7", "9")
    assert burn.liquidity_delta == "-3000"


def test_decode_v4_modify_liquidity():
    log = {
        "topics": [V4_MODIFY_LIQUIDITY_TOPIC, V4_POOL_ID, _topic("address", OWNER)],
        "data": encode_hex(encode(["int24", "int24", "int256", "bytes32"], [-600, 600, -42, b"\x00" * 32])),
        "transactionHash": "0xcc",
        "blockNumber": 32,
    }

    event = decode_v4_modify_liquidity_log(log, timestamp=5)

    assert event.liquidity_delta == "-42"
    assert (event.tick_lower, event.tick_upper) == (-600, 600)
    assert event.block_number == 32


async def test_lp_events_walk_chunks_and_cache_block_timestamps():
    chunk = get_chain_config("ethereum").log_block_range
    rpc = FakeRpc({0: [_mint_log(block=10, tx="0x01"), _burn_log(block=10, tx="0x02")]})

    batch = await EvmLogReader(rpc=rpc).fetch_lp_events(
        chain="ethereum",
        pool_address=V3_POOL,
        from_block=0,
        to_block=chunk * 2 - 1,
    )

    assert rpc.chunks == [(0, chunk - 1), (chunk, chunk * 2 - 1)]
    assert rpc.timestamp_calls == [10]
    assert [event.liquidity_delta for event in batch.items] == ["5000", "-3000"]
    assert batch.items[0].timestamp == 1_700_000_010
    assert batch.error is None


async def test_chunk_failure_returns_partial_batch():
    chunk = get_chain_config("ethereum").log_block_range
    rpc = FakeRpc({0: [_mint_log(block=10, tx="0x01")]}, fail_from=chunk)

    batch = await EvmLogReader(rpc=rpc).fetch_lp_events(
        chain="ethereum",
        pool_address=V3_POOL,
        from_block=0,
        to_block=chunk * 3,
    )

    assert len(batch.items) == 1
    assert "endpoints failed" in batch.error
    assert len(rpc.chunks) == 2


async def test_v4_lp_events_without_pool_manager_is_an_error():
    batch = await EvmLogReader(rpc=FakeRpc()).fetch_lp_events(
        chain="optimism",
        pool_address=V4_POOL_ID,
        from_block=0,
        to_block=10,
    )

    assert batch.items == []
    assert "not available" in batch.error


async def test_v4_swaps_become_trades_priced_in_stablecoin():
    pool = Pool(
        id=1,
        chain="base",
        pool_address=V4_POOL_ID,
        dex="uniswap_v4",
        base_token=TokenInfo(address="0x" + "01" * 20, symbol="PEPE", decimals=18),
        quote_token=TokenInfo(address="0x" + "02" * 20, symbol="USDC", decimals=6),
    )
    rpc = FakeRpc(
        {
            0: [
                # quote flows into the pool: a buy of 10 base for 20 USDC
                _swap_log(block=5, amount0=-10 * 10**18, amount1=20 * 10**6),
                _swap_log(block=6, amount0=4 * 10**18, amount1=-6 * 10**6),
            ]
        }
    )

    batch = await EvmLogReader(rpc=rpc).fetch_trades(
        chain="base",
        pool_address=V4_POOL_ID,
        from_block=0,
        to_block=100,
        pool=pool,
    )

    newest, oldest = batch.items
    assert (oldest.kind, oldest.amount, oldest.price) == (TRADE_BUY, Decimal(10), Decimal(2))
    assert oldest.volume_usd == Decimal(20)
    assert (newest.kind, newest.amount, newest.price) == (TRADE_SELL, Decimal(4), Decimal("1.5"))


async def test_v3_pool_has_no_log_trades():
    rpc = FakeRpc()

    batch = await EvmLogReader(rpc=rpc).fetch_trades(chain="base", pool_address=V3_POOL, from_block=0, to_block=10)

    assert batch.items == []
    assert rpc.chunks == []


async def test_block_timestamps_are_capped_and_fetched_in_parallel_batches():
    logs = [_mint_log(block=block, tx=f"0x{block:02x}") for block in range(1, 61)]
    rpc = FakeRpc({0: logs})

    batch = await EvmLogReader(rpc=rpc).fetch_lp_events(
        chain="ethereum",
        pool_address=V3_POOL,
        from_block=0,
        to_block=100,
    )

    assert sorted(rpc.timestamp_calls) == list(range(11, 61))
    assert 1 < rpc.max_active_lookups <= 10
    by_block = {event.block_number: event.timestamp for event in batch.items}
    assert len(by_block) == 60
    assert by_block[60] == 1_700_000_060
    assert by_block[11] == 1_700_000_011
    assert by_block[3] == 1_700_000_011
