from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
import logging
from typing import Any

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ProviderConnectionError, Web3Exception

from app.domain.exceptions import GatewayTimeoutError, ProviderError, RpcCallError, TransportError
from app.domain.services.chains import MULTICALL3_ADDRESS
from app.infrastructure.clients.evm_abi import ContractCall, checksum, decode_aggregate3, encode_aggregate3


logger = logging.getLogger(__name__)

Web3Factory = Callable[[str, float], AsyncWeb3]


@dataclass(frozen=True)
class EvmRpcClientSettings:
    rpc_urls: dict
    timeout_seconds: float
    log_timeout_seconds: float
    max_attempts: int
    backoff_seconds: float


def build_async_web3(url: str, timeout_seconds: float) -> AsyncWeb3:
    provider = AsyncHTTPProvider(
        url,
        request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout_seconds)},
        exception_retry_configuration=None,
    )
    # Plain dict results and no chain id lookup before each eth_call.
    return AsyncWeb3(provider, middleware=[])


def _plain_log(log: Any) -> dict:
    return {
        "address": str(log["address"]).lower(),
        "topics": [Web3.to_hex(topic) for topic in log["topics"]],
        "data": Web3.to_hex(log["data"]),
        "blockNumber": int(log["blockNumber"]),
        "transactionHash": Web3.to_hex(log["transactionHash"]),
        "logIndex": int(log.get("logIndex") or 0),
    }


class EvmRpcClient:
    """web3.py over HTTP; rotates to the next configured URL on transport failure."""

    def __init__(self, settings: EvmRpcClientSettings, *, web3_factory: Web3Factory = build_async_web3):
        self._settings = settings
        self._web3_factory = web3_factory
        self._clients: dict[tuple[str, float], AsyncWeb3] = {}
        self._offsets: dict[str, int] = {}

    def urls_for(self, chain: str) -> list[str]:
        return list(self._settings.rpc_urls.get(chain) or [])

    async def get_block_number(self, *, chain: str) -> int:
        return int(await self._request(chain, "eth_blockNumber", lambda w3: w3.eth.block_number))

    async def eth_call(self, *, chain: str, to: str, data: str) -> bytes:
        transaction = {"to": checksum(to), "data": data}
        return bytes(await self._request(chain, "eth_call", lambda w3: w3.eth.call(transaction)))

    async def multicall(self, *, chain: str, calls: Sequence[ContractCall]) -> list[tuple | None]:
        if not calls:
            return []
        raw = await self.eth_call(chain=chain, to=MULTICALL3_ADDRESS, data=encode_aggregate3(calls))
        return decode_aggregate3(calls, raw)

    async def get_logs(
        self,
        *,
        chain: str,
        address: str,
        topics: list,
        from_block: int,
        to_block: int,
    ) -> list[dict]:
        params = {
            "address": checksum(address),
            "topics": topics,
            "fromBlock": from_block,
            "toBlock": to_block,
        }
        logs = await self._request(chain, "eth_getLogs", lambda w3: w3.eth.get_logs(params), logs=True)
        return [_plain_log(log) for log in logs or []]

    async def get_block_timestamp(self, *, chain: str, block_number: int) -> int:
        block = await self._request(chain, "eth_getBlockByNumber", lambda w3: w3.eth.get_block(block_number))
        if not block or "timestamp" not in block:
            raise ProviderError(f"Block {block_number} not found on {chain}")
        return int(block["timestamp"])

    async def close(self) -> None:
        for w3 in self._clients.values():
            disconnect = getattr(w3.provider, "disconnect", None)
            if disconnect is not None:
                await disconnect()
        self._clients.clear()

    def _web3(self, url: str, timeout_seconds: float) -> AsyncWeb3:
        key = (url, timeout_seconds)
        if key not in self._clients:
            self._clients[key] = self._web3_factory(url, timeout_seconds)
        return self._clients[key]

    async def _request(
        self,
        chain: str,
        method: str,
        send: Callable[[AsyncWeb3], Awaitable[Any]],
        *,
        logs: bool = False,
    ) -> Any:
        urls = self.urls_for(chain)
        if not urls:
            raise ProviderError(f"No RPC URLs configured for chain {chain}")
        timeout_seconds = self._settings.log_timeout_seconds if logs else self._settings.timeout_seconds
        attempts = max(1, self._settings.max_attempts, len(urls))
        last_exc: TransportError | None = None

        for attempt in range(1, attempts + 1):
            offset = self._offsets.get(chain, 0)
            url = urls[offset % len(urls)]
            try:
                return await asyncio.wait_for(send(self._web3(url, timeout_seconds)), timeout_seconds)
            except asyncio.TimeoutError as exc:
                last_exc = GatewayTimeoutError(f"evm_rpc: {method} timeout after {timeout_seconds}s url={url}")
                last_exc.__cause__ = exc
            except (aiohttp.ClientError, ProviderConnectionError, OSError) as exc:
                last_exc = TransportError(f"evm_rpc: {method} failed url={url}: {exc}")
                last_exc.__cause__ = exc
            except Web3Exception as exc:
                raise RpcCallError(f"{method} failed on {chain}: {exc}") from exc

            self._offsets[chain] = offset + 1
            if attempt == attempts:
                break
            logger.warning(
                "evm_rpc_client: rotate chain=%s method=%s attempt=%s/%s url=%s error=%s",
                chain,
                method,
                attempt,
                attempts,
                url,
                last_exc,
            )
            if attempt % len(urls) == 0:
                await asyncio.sleep(self._settings.backoff_seconds)

        raise last_exc
