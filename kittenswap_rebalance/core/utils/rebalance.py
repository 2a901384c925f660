from __future__ import annotations

from decimal import Decimal

from kittenswap_rebalance.core.constants import BPS_DENOMINATOR
from kittenswap_rebalance.core.errors import InvalidRange
from kittenswap_rebalance.core.types import BalanceHint, RebalanceEvaluation


def evaluate(
    current_tick: int, tick_lower: int, tick_upper: int, edge_bps: int
) -> RebalanceEvaluation:
    """Classify a position window as out of range, near an edge, or healthy.

    The upper bound is exclusive, like the pool's own active-tick check. The
    edge buffer scales with the window width: ``floor(width * edge_bps / 10000)``.
    """
    if tick_upper <= tick_lower:
        raise InvalidRange(
            f"tick_upper ({tick_upper}) must be greater than tick_lower ({tick_lower})",
            operation="evaluate",
            raw_input=(tick_lower, tick_upper),
        )
    if not 0 <= edge_bps <= BPS_DENOMINATOR:
        raise ValueError(f"edge_bps must be within 0..{BPS_DENOMINATOR}, got {edge_bps}")

    width = tick_upper - tick_lower
    lower_headroom = current_tick - tick_lower
    upper_headroom = tick_upper - current_tick
    edge_buffer = width * edge_bps // BPS_DENOMINATOR

    out_of_range = current_tick < tick_lower or current_tick >= tick_upper
    near_edge = not out_of_range and (
        lower_headroom <= edge_buffer or upper_headroom <= edge_buffer
    )

    if out_of_range:
        reason = "out_of_range"
    elif near_edge:
        reason = "near_edge"
    else:
        reason = "healthy"

    return RebalanceEvaluation(
        current_tick=current_tick,
        tick_lower=tick_lower,
        tick_upper=tick_upper,
        edge_bps=edge_bps,
        width_ticks=width,
        edge_buffer_ticks=edge_buffer,
        lower_headroom_ticks=lower_headroom,
        upper_headroom_ticks=upper_headroom,
        out_of_range=out_of_range,
        near_edge=near_edge,
        should_rebalance=out_of_range or near_edge,
        reason=reason,
    )


def balance_hint(
    amount0: Decimal, amount1: Decimal, price_token1_per_token0: Decimal
) -> BalanceHint | None:
    """Suggest the swap that leaves wallet holdings split 50/50 by value.

    Values are in token1 terms. ``amount_in`` is denominated in the token being
    sold. Returns ``None`` when there is nothing to value.
    """
    if price_token1_per_token0 <= 0:
        return None
    value0 = amount0 * price_token1_per_token0
    total = value0 + amount1
    if total <= 0:
        return None
    half = total / 2

    if value0 > half:
        return BalanceHint(
            side="sell_token0",
            amount_in=(value0 - half) / price_token1_per_token0,
            value0_in_token1=value0,
            value1=amount1,
            total_value_in_token1=total,
        )
    return BalanceHint(
        side="sell_token1",
        amount_in=half - value0,
        value0_in_token1=value0,
        value1=amount1,
        total_value_in_token1=total,
    )
