"""Simulated claim/withdraw valuation of a position.

Both legs are ``eth_call`` simulations sent from the position owner, so the
position manager's ownership checks behave as for a real transaction. A leg
that fails is reported as unavailable; it is never treated as a zero balance.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

from loguru import logger

from kittenswap_rebalance.core.errors import (
    ExternalCallFailure,
    SimulationRevert,
    TruncatedReturnData,
)
from kittenswap_rebalance.core.types import (
    Address,
    Position,
    PositionValuation,
    SimulatedAmounts,
)
from kittenswap_rebalance.core.utils.abi_codec import (
    CollectParams,
    DecreaseLiquidityParams,
    build_collect_calldata,
    build_decrease_liquidity_calldata,
    decode_two_amounts,
)
from kittenswap_rebalance.core.utils.rpc import ChainReader
from kittenswap_rebalance.core.utils.tick_math import invert_price
from kittenswap_rebalance.core.utils.units import TokenUnits

_LEG_ERRORS = (SimulationRevert, ExternalCallFailure, TruncatedReturnData)


def quote_value(
    amount0: TokenUnits,
    amount1: TokenUnits,
    price_token1_per_token0: Decimal,
    *,
    quote_index: int = 1,
) -> Decimal:
    """Value of both amounts in token1 (``quote_index=1``) or token0 terms."""
    if quote_index == 1:
        return amount0.to_decimal() * price_token1_per_token0 + amount1.to_decimal()
    inverse = invert_price(price_token1_per_token0)
    if inverse is None:
        raise ValueError("cannot value in token0 terms at a zero price")
    return amount0.to_decimal() + amount1.to_decimal() * inverse


async def simulate_collect(
    reader: ChainReader,
    *,
    position_manager: str,
    position: Position,
    owner: Address,
    decimals0: int,
    decimals1: int,
) -> tuple[TokenUnits, TokenUnits]:
    data = build_collect_calldata(CollectParams(token_id=position.token_id, recipient=owner))
    out = await reader.call(position_manager, data, from_address=owner)
    return decode_two_amounts("collect", out, decimals0, decimals1)


async def simulate_decrease_liquidity(
    reader: ChainReader,
    *,
    position_manager: str,
    position: Position,
    owner: Address,
    deadline: int,
    decimals0: int,
    decimals1: int,
) -> tuple[TokenUnits, TokenUnits]:
    # The position manager rejects a zero-liquidity decrease; the principal is zero.
    if position.liquidity == 0:
        return TokenUnits(0, decimals0), TokenUnits(0, decimals1)
    data = build_decrease_liquidity_calldata(
        DecreaseLiquidityParams(
            token_id=position.token_id,
            liquidity=position.liquidity,
            amount0_min=0,
            amount1_min=0,
            deadline=deadline,
        )
    )
    out = await reader.call(position_manager, data, from_address=owner)
    return decode_two_amounts("decreaseLiquidity", out, decimals0, decimals1)


async def value_position(
    reader: ChainReader,
    *,
    position_manager: str,
    position: Position,
    owner: Address,
    price_token1_per_token0: Decimal,
    deadline: int,
    decimals0: int,
    decimals1: int,
    quote_index: int = 1,
) -> PositionValuation:
    """Value unclaimed fees and withdrawable principal in quote-token terms."""

    async def leg(coro) -> tuple[SimulatedAmounts | None, str | None]:
        try:
            amount0, amount1 = await coro
        except _LEG_ERRORS as exc:
            logger.warning(f"Valuation leg unavailable for {position.token_id}: {exc}")
            return None, getattr(exc, "reason", None) or str(exc)
        value = quote_value(
            amount0, amount1, price_token1_per_token0, quote_index=quote_index
        )
        return SimulatedAmounts(amount0=amount0, amount1=amount1, value_in_quote=value), None

    (rewards, rewards_error), (principal, principal_error) = await asyncio.gather(
        leg(
            simulate_collect(
                reader,
                position_manager=position_manager,
                position=position,
                owner=owner,
                decimals0=decimals0,
                decimals1=decimals1,
            )
        ),
        leg(
            simulate_decrease_liquidity(
                reader,
                position_manager=position_manager,
                position=position,
                owner=owner,
                deadline=deadline,
                decimals0=decimals0,
                decimals1=decimals1,
            )
        ),
    )

    return PositionValuation(
        token_id=position.token_id,
        owner=owner,
        quote_token=position.token1 if quote_index == 1 else position.token0,
        price_token1_per_token0=price_token1_per_token0,
        rewards=rewards,
        principal=principal,
        rewards_error=rewards_error,
        principal_error=principal_error,
    )
