from kittenswap_rebalance.adapters.kittenswap_adapter.adapter import KittenswapAdapter
from kittenswap_rebalance.adapters.kittenswap_adapter.types import (
    ApprovePlan,
    FarmingStatus,
    PositionStatus,
    RebalancePlan,
    RebalanceRequest,
    SwapPlan,
    SwapRequest,
)

__all__ = [
    "ApprovePlan",
    "FarmingStatus",
    "KittenswapAdapter",
    "PositionStatus",
    "RebalancePlan",
    "RebalanceRequest",
    "SwapPlan",
    "SwapRequest",
]
