from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from eth_abi.abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import encode_hex, event_signature_to_log_topic, is_address, to_bytes
from web3 import Web3

from app.domain.exceptions import ProviderError


V3_MINT_EVENT = "Mint(address,address,int24,int24,uint128,uint256,uint256)"
V3_BURN_EVENT = "Burn(address,int24,int24,uint128,uint256,uint256)"
V4_MODIFY_LIQUIDITY_EVENT = "ModifyLiquidity(bytes32,address,int24,int24,int256,bytes32)"
V4_SWAP_EVENT = "Swap(bytes32,address,int128,int128,uint160,uint128,int24,uint24)"

V3_MINT_TOPIC = encode_hex(event_signature_to_log_topic(V3_MINT_EVENT))
V3_BURN_TOPIC = encode_hex(event_signature_to_log_topic(V3_BURN_EVENT))
V4_MODIFY_LIQUIDITY_TOPIC = encode_hex(event_signature_to_log_topic(V4_MODIFY_LIQUIDITY_EVENT))
V4_SWAP_TOPIC = encode_hex(event_signature_to_log_topic(V4_SWAP_EVENT))


def _view(name: str, inputs: Sequence[str] = (), outputs: Sequence[str] = ()) -> dict:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": [{"name": f"arg{index}", "type": abi_type} for index, abi_type in enumerate(inputs)],
        "outputs": [{"name": f"out{index}", "type": abi_type} for index, abi_type in enumerate(outputs)],
    }


# Outputs list only the leading fields the readers use; trailing return data is ignored.
READER_ABI = [
    _view("token0", outputs=["address"]),
    _view("token1", outputs=["address"]),
    _view("getReserves", outputs=["uint112", "uint112"]),
    _view("slot0", outputs=["uint160", "int24"]),
    _view("liquidity", outputs=["uint128"]),
    _view("tickSpacing", outputs=["int24"]),
    _view("tickBitmap", ["int16"], ["uint256"]),
    _view("ticks", ["int24"], ["uint128", "int128"]),
    _view("getSlot0", ["bytes32"], ["uint160", "int24", "uint24", "uint24"]),
    _view("getLiquidity", ["bytes32"], ["uint128"]),
    _view("getTickBitmap", ["bytes32", "int16"], ["uint256"]),
    _view("getTickLiquidity", ["bytes32", "int24"], ["uint128", "int128"]),
    _view("decimals", outputs=["uint8"]),
    _view("symbol", outputs=["string"]),
    _view("balanceOf", ["address"], ["uint256"]),
]

MULTICALL3_ABI = [
    {
        "type": "function",
        "name": "aggregate3",
        "stateMutability": "payable",
        "inputs": [
            {
                "name": "calls",
                "type": "tuple[]",
                "components": [
                    {"name": "target", "type": "address"},
                    {"name": "allowFailure", "type": "bool"},
                    {"name": "callData", "type": "bytes"},
                ],
            }
        ],
        "outputs": [
            {
                "name": "returnData",
                "type": "tuple[]",
                "components": [
                    {"name": "success", "type": "bool"},
                    {"name": "returnData", "type": "bytes"},
                ],
            }
        ],
    }
]

_OUTPUT_TYPES = {entry["name"]: tuple(item["type"] for item in entry["outputs"]) for entry in READER_ABI}

_codec = Web3()
_reader = _codec.eth.contract(abi=READER_ABI)
_multicall = _codec.eth.contract(abi=MULTICALL3_ABI)


def hex_to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, bytes):
        return bytes(value)
    if value in ("", "0x"):
        return b""
    return to_bytes(hexstr=value)


def checksum(address: str) -> str:
    return Web3.to_checksum_address(address)


def decode_values(types: Sequence[str], data: str | bytes) -> tuple:
    raw = hex_to_bytes(data)
    try:
        return abi_decode(list(types), raw)
    except (DecodingError, ValueError) as exc:
        raise ProviderError(f"Cannot decode {list(types)} from {len(raw)} bytes") from exc


def decode_topic(abi_type: str, topic: str) -> Any:
    (value,) = decode_values([abi_type], topic)
    return value


@dataclass(frozen=True)
class ContractCall:
    """One read-only call by function name from READER_ABI."""

    target: str
    function: str
    args: tuple = ()
    allow_failure: bool = True

    @property
    def result_types(self) -> tuple[str, ...]:
        return _OUTPUT_TYPES[self.function]


def _abi_arg(value: Any) -> Any:
    if isinstance(value, str) and is_address(value):
        return checksum(value)
    return value


def encode_contract_call(call: ContractCall) -> bytes:
    data = _reader.encode_abi(call.function, args=[_abi_arg(arg) for arg in call.args])
    return hex_to_bytes(data)


def decode_contract_result(call: ContractCall, payload: bytes) -> tuple | None:
    try:
        return decode_values(call.result_types, payload)
    except ProviderError:
        return None


def encode_aggregate3(calls: Sequence[ContractCall]) -> str:
    packed = [(checksum(call.target), call.allow_failure, encode_contract_call(call)) for call in calls]
    return _multicall.encode_abi("aggregate3", args=[packed])


def decode_aggregate3(calls: Sequence[ContractCall], data: str | bytes) -> list[tuple | None]:
    """One decoded tuple per call, or None where the call reverted or returned nothing."""
    (results,) = decode_values(["(bool,bytes)[]"], data)
    if len(results) != len(calls):
        raise ProviderError(f"Multicall returned {len(results)} results for {len(calls)} calls")
    decoded: list[tuple | None] = []
    for call, (success, payload) in zip(calls, results):
        if not success or not payload:
            decoded.append(None)
            continue
        decoded.append(decode_contract_result(call, payload))
    return decoded
