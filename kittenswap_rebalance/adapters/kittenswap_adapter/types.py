"""Request and plan types for KittenswapAdapter (dataclasses)."""

from __future__ import annotations

from dataclasses import dataclass

from kittenswap_rebalance.core.adapters.models import CallPlan, RebalancePolicy
from kittenswap_rebalance.core.types import (
    Address,
    BalanceHint,
    IncentiveKey,
    PositionContext,
    Quote,
    RangeSuggestion,
    RebalanceEvaluation,
    TokenInfo,
)
from kittenswap_rebalance.core.utils.abi_codec import MintParams
from kittenswap_rebalance.core.utils.units import TokenUnits


@dataclass(frozen=True)
class SwapRequest:
    token_in: Address
    token_out: Address
    deployer: Address
    amount_in: str
    owner: Address
    recipient: Address | None = None
    limit_sqrt_price: int = 0
    native_in: bool = False
    approve_max: bool = False


@dataclass(frozen=True)
class RebalanceRequest:
    token_id: int
    owner: Address
    recipient: Address | None = None
    amount0: str | None = None
    amount1: str | None = None
    allow_burn: bool = False
    width_bump_ticks: int = 0


@dataclass(frozen=True)
class PositionStatus:
    context: PositionContext
    evaluation: RebalanceEvaluation
    suggestion: RangeSuggestion


@dataclass(frozen=True)
class ApprovePlan:
    token: TokenInfo
    spender: Address
    amount: TokenUnits
    current_allowance: TokenUnits
    plan: CallPlan


@dataclass(frozen=True)
class SwapPlan:
    token_in: TokenInfo
    token_out: TokenInfo
    quote: Quote
    amount_out_minimum: TokenUnits
    recipient: Address
    deadline: int
    policy: RebalancePolicy
    pool: Address | None
    native_in: bool
    allowance: TokenUnits | None
    approval_required: bool
    plan: CallPlan


@dataclass(frozen=True)
class RebalancePlan:
    context: PositionContext
    evaluation: RebalanceEvaluation
    suggestion: RangeSuggestion
    recipient: Address
    deadline: int
    policy: RebalancePolicy
    burn_included: bool
    mint: MintParams | None
    balance_hint: BalanceHint | None
    plan: CallPlan


@dataclass(frozen=True)
class FarmingStatus:
    token_id: int
    owner: Address
    pool: Address
    farming_center: Address
    approved_for: Address | None
    farmed_in: Address | None
    incentive_key: IncentiveKey | None
    deposit_incentive_id: str
    reward_balance: int | None
    bonus_reward_balance: int | None

    @property
    def is_approved(self) -> bool:
        return self.approved_for is not None and self.approved_for == self.farming_center

    @property
    def is_farmed(self) -> bool:
        return self.farmed_in is not None
