from __future__ import annotations

from dataclasses import dataclass

from app.domain.exceptions import UnsupportedChainError


MULTICALL3_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"


@dataclass(frozen=True)
class ChainConfig:
    key: str
    log_block_range: int
    geckoterminal_network: str
    v4_pool_manager: str | None = None
    v4_state_view: str | None = None


CHAINS: dict[str, ChainConfig] = {
    "ethereum": ChainConfig(
        key="ethereum",
        log_block_range=1000,
        geckoterminal_network="eth",
        v4_pool_manager="0x000000000004444c5dc75cB358380D2e3dE08A90",
        v4_state_view="0x7fFE42C4a5DEeA5b0feC41C94C136Cf115597227",
    ),
    "base": ChainConfig(
        key="base",
        log_block_range=2000,
        geckoterminal_network="base",
        v4_pool_manager="0x498581fF718922c3f8e6A244956aF099B2652b2b",
        v4_state_view="0xA3c0c9b65baD0b08107Aa264b0f3dB444b867A71",
    ),
    "arbitrum": ChainConfig(
        key="arbitrum",
        log_block_range=5000,
        geckoterminal_network="arbitrum",
        v4_pool_manager="0x360E68faCcca8cA495c1B759Fd9EEe466db9FB32",
        v4_state_view="0x76fd297e2D437cd7f76d50F01AfE6160f86e9990",
    ),
    "polygon": ChainConfig(
        key="polygon",
        log_block_range=2000,
        geckoterminal_network="polygon_pos",
        v4_pool_manager="0x67366782805870060151383F4BbFF9daB53e5cD6",
        v4_state_view="0x002D8C2Cf8a27D3044A9d5bD7e9d7146f8012c56",
    ),
    "bsc": ChainConfig(
        key="bsc",
        log_block_range=2000,
        geckoterminal_network="bsc",
        v4_pool_manager="0x28e2Ea090877bF75740558f6BFB36A5ffeE9e9dF",
        v4_state_view="0xd13Dd3D6E93f276FAf608fC159f2f5f3eAD4B19C",
    ),
    "optimism": ChainConfig(key="optimism", log_block_range=2000, geckoterminal_network="optimism"),
    "avalanche": ChainConfig(key="avalanche", log_block_range=2000, geckoterminal_network="avax"),
}


def normalize_chain(chain: str) -> str:
    return chain.strip().lower()


def get_chain_config(chain: str) -> ChainConfig:
    config = CHAINS.get(normalize_chain(chain))
    if config is None:
        raise UnsupportedChainError(f"Unsupported chain: {chain}")
    return config
