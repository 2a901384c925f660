"""Kittenswap (HyperEVM Algebra Integral fork) deployment constants."""

from __future__ import annotations

from dataclasses import dataclass, fields

from eth_utils import to_checksum_address

from kittenswap_rebalance.core.constants.chains import CHAIN_ID_HYPEREVM

KITTENSWAP_CHAIN_ID = CHAIN_ID_HYPEREVM

HYPEREVM_RPC_URL = "https://rpc.hyperliquid.xyz/evm"

# Transport defaults (seconds)
DEFAULT_RPC_TIMEOUT_S = 12.0
DEFAULT_RPC_MAX_RETRIES = 3
DEFAULT_RPC_BASE_DELAY_S = 0.35
DEFAULT_RPC_MAX_DELAY_S = 2.5

# Policy defaults and clamps
DEFAULT_EDGE_BPS = 1500
DEFAULT_SLIPPAGE_BPS = 50
DEFAULT_DEADLINE_SECONDS = 900
MIN_DEADLINE_SECONDS = 1
MAX_DEADLINE_SECONDS = 86_400

# Enumerating wallet NFTs is bounded to keep reads predictable.
MAX_OWNED_TOKEN_IDS = 500


@dataclass(frozen=True)
class KittenswapContracts:
    factory: str
    quoter_v2: str
    router: str
    position_manager: str
    farming_center: str
    eternal_farming: str

    @classmethod
    def from_mapping(cls, raw: dict[str, str]) -> KittenswapContracts:
        """Build a deployment from a (possibly partial) override mapping."""
        base = KITTENSWAP_CONTRACTS
        values = {
            f.name: to_checksum_address(raw.get(f.name) or getattr(base, f.name))
            for f in fields(cls)
        }
        return cls(**values)

    def as_dict(self) -> dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


KITTENSWAP_CONTRACTS = KittenswapContracts(
    factory=to_checksum_address("0x5f95e92c338e6453111fc55ee66d4aafcce661a7"),
    quoter_v2=to_checksum_address("0xc58874216afe47779aded27b8aad77e8bd6ebebb"),
    router=to_checksum_address("0x4e73e421480a7e0c24fb3c11019254ede194f736"),
    position_manager=to_checksum_address("0x9ea4459c8defbf561495d95414b9cf1e2242a3e2"),
    farming_center=to_checksum_address("0x211bd8917d433b7cc1f4497aba906554ab6ee479"),
    eternal_farming=to_checksum_address("0xf3b57fe4d5d0927c3a5e549cb6af1866687e2d62"),
)
