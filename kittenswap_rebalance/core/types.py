"""Snapshot types shared by the codec, analytics and the Kittenswap adapter.

All snapshots are frozen: they are built from freshly read chain state at the
start of a planning operation and discarded at its end.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

from eth_utils import to_checksum_address

from kittenswap_rebalance.core.constants import MAX_UINT256, ZERO_ADDRESS
from kittenswap_rebalance.core.errors import (
    DegenerateRange,
    InvalidAddress,
    InvalidRange,
    MalformedDecimal,
)
from kittenswap_rebalance.core.utils.units import TokenUnits

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_TOKEN_ID_RE = re.compile(r"^\d+$")


class Address(str):
    """EIP-55 checksummed 20-byte address.

    Build instances with :meth:`Address.parse`; anything that reaches the ABI
    codec as an ``Address`` has already been validated.
    """

    __slots__ = ()

    @classmethod
    def parse(cls, raw: object, *, field: str = "address") -> Address:
        if isinstance(raw, Address):
            return raw
        if isinstance(raw, bytes | bytearray):
            if len(raw) != 20:
                raise InvalidAddress(
                    f"Invalid {field}: expected 20 bytes, got {len(raw)}",
                    operation=f"parse_address({field})",
                    raw_input=raw,
                )
            return cls(to_checksum_address(bytes(raw)))
        text = str(raw).strip() if raw is not None else ""
        # Hyperliquid UIs display EVM addresses as "HL:0x..."
        if text[:3].upper() == "HL:":
            text = text[3:].strip()
        if not _ADDRESS_RE.match(text):
            raise InvalidAddress(
                f"Invalid {field}: {raw!r}",
                operation=f"parse_address({field})",
                raw_input=raw,
            )
        return cls(to_checksum_address(text))

    @property
    def is_zero(self) -> bool:
        return self.lower() == ZERO_ADDRESS


def parse_token_id(raw: object) -> int:
    text = str(raw).strip()
    if not _TOKEN_ID_RE.match(text) or int(text) > MAX_UINT256:
        raise MalformedDecimal(
            f"Invalid token id: {raw!r}", operation="parse_token_id", raw_input=raw
        )
    return int(text)


@dataclass(frozen=True)
class Position:
    token_id: int
    nonce: int
    operator: Address
    token0: Address
    token1: Address
    deployer: Address
    tick_lower: int
    tick_upper: int
    liquidity: int
    fee_growth_inside0_last_x128: int
    fee_growth_inside1_last_x128: int
    tokens_owed0: int
    tokens_owed1: int

    def __post_init__(self) -> None:
        if self.tick_upper <= self.tick_lower:
            raise InvalidRange(
                f"Position {self.token_id} has tick_upper <= tick_lower",
                operation="positions",
                raw_input=(self.tick_lower, self.tick_upper),
            )

    @property
    def width_ticks(self) -> int:
        return self.tick_upper - self.tick_lower


@dataclass(frozen=True)
class PoolState:
    address: Address
    sqrt_price_x96: int
    tick: int
    tick_spacing: int
    last_fee: int = 0
    plugin_config: int = 0
    community_fee: int = 0
    unlocked: bool = True

    def __post_init__(self) -> None:
        if self.tick_spacing <= 0:
            raise DegenerateRange(
                f"Pool {self.address} reported non-positive tick spacing",
                operation="tickSpacing",
                raw_input=self.tick_spacing,
            )


@dataclass(frozen=True)
class TokenInfo:
    address: Address
    symbol: str
    name: str
    decimals: int
    balance: TokenUnits | None = None


@dataclass(frozen=True)
class Quote:
    """Point estimate of a single-hop exact-input swap at the quoted block."""

    token_in: Address
    token_out: Address
    amount_in: int
    amount_out: int
    sqrt_price_x96_after: int
    initialized_ticks_crossed: int
    gas_estimate: int
    fee_tier: int


@dataclass(frozen=True)
class IncentiveKey:
    reward_token: Address
    bonus_reward_token: Address
    pool: Address
    nonce: int

    def as_tuple(self) -> tuple[str, str, str, int]:
        return (self.reward_token, self.bonus_reward_token, self.pool, self.nonce)


@dataclass(frozen=True)
class RangeSuggestion:
    tick_lower: int
    tick_upper: int
    tick_spacing: int
    width_ticks: int


RebalanceReason = Literal["out_of_range", "near_edge", "healthy"]


@dataclass(frozen=True)
class RebalanceEvaluation:
    current_tick: int
    tick_lower: int
    tick_upper: int
    edge_bps: int
    width_ticks: int
    edge_buffer_ticks: int
    lower_headroom_ticks: int
    upper_headroom_ticks: int
    out_of_range: bool
    near_edge: bool
    should_rebalance: bool
    reason: RebalanceReason

    @property
    def min_headroom_pct(self) -> Decimal:
        nearest = min(self.lower_headroom_ticks, self.upper_headroom_ticks)
        return Decimal(nearest) * 100 / Decimal(self.width_ticks)


@dataclass(frozen=True)
class BalanceHint:
    """Swap suggestion that brings wallet holdings to an even value split."""

    side: Literal["sell_token0", "sell_token1"]
    amount_in: Decimal
    value0_in_token1: Decimal
    value1: Decimal
    total_value_in_token1: Decimal


@dataclass(frozen=True)
class PositionContext:
    token_id: int
    owner: Address
    position: Position
    pool_state: PoolState
    token0: TokenInfo
    token1: TokenInfo
    price_token1_per_token0: Decimal

    @property
    def price_token0_per_token1(self) -> Decimal | None:
        if self.price_token1_per_token0 == 0:
            return None
        return 1 / self.price_token1_per_token0


@dataclass(frozen=True)
class SimulatedAmounts:
    amount0: TokenUnits
    amount1: TokenUnits
    value_in_quote: Decimal


@dataclass(frozen=True)
class PositionValuation:
    """Simulated claim/withdraw estimates; ``None`` legs were unavailable."""

    token_id: int
    owner: Address
    quote_token: Address
    price_token1_per_token0: Decimal
    rewards: SimulatedAmounts | None
    principal: SimulatedAmounts | None
    rewards_error: str | None = None
    principal_error: str | None = None

    @property
    def total_value_in_quote(self) -> Decimal | None:
        if self.rewards is None or self.principal is None:
            return None
        return self.rewards.value_in_quote + self.principal.value_in_quote
