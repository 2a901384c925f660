from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kittenswap_rebalance.core.constants.kittenswap import (
    DEFAULT_DEADLINE_SECONDS,
    DEFAULT_EDGE_BPS,
    DEFAULT_SLIPPAGE_BPS,
    MAX_DEADLINE_SECONDS,
    MIN_DEADLINE_SECONDS,
)


class RebalancePolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    edge_bps: int = Field(DEFAULT_EDGE_BPS, ge=0, le=10_000)
    slippage_bps: int = Field(DEFAULT_SLIPPAGE_BPS, ge=0, le=10_000)
    deadline_seconds: int = Field(
        DEFAULT_DEADLINE_SECONDS, ge=MIN_DEADLINE_SECONDS, le=MAX_DEADLINE_SECONDS
    )

    def override(
        self,
        *,
        edge_bps: int | None = None,
        slippage_bps: int | None = None,
        deadline_seconds: int | None = None,
    ) -> "RebalancePolicy":
        """Per-request values win over this policy; ``None`` keeps the policy value."""
        requested = {
            "edge_bps": edge_bps,
            "slippage_bps": slippage_bps,
            "deadline_seconds": deadline_seconds,
        }
        return RebalancePolicy(
            **{
                **self.model_dump(),
                **{k: v for k, v in requested.items() if v is not None},
            }
        )


DEFAULT_POLICY = RebalancePolicy()


class CallStep(BaseModel):
    step: str
    to: str
    value: int = 0
    data: str
    gas_estimate: int | None = None
    gas_error: str | None = None

    def as_transaction(self, sender: str, chain_id: int) -> dict[str, Any]:
        return {
            "chainId": chain_id,
            "from": sender,
            "to": self.to,
            "data": self.data,
            "value": self.value,
        }


class CallPlan(BaseModel):
    """Ordered calls; each step may depend on the effects of the previous ones."""

    chain_id: int
    sender: str
    steps: list[CallStep]
    gas_price_wei: int | None = None
    transfer_failure_hint: bool = False

    @property
    def total_gas(self) -> int:
        return sum(s.gas_estimate for s in self.steps if s.gas_estimate is not None)

    @property
    def estimated_fee_wei(self) -> int | None:
        if self.gas_price_wei is None:
            return None
        return self.total_gas * self.gas_price_wei

    @property
    def step_names(self) -> list[str]:
        return [s.step for s in self.steps]

    def transactions(self) -> list[dict[str, Any]]:
        return [s.as_transaction(self.sender, self.chain_id) for s in self.steps]
