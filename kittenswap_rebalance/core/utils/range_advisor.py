from __future__ import annotations

from kittenswap_rebalance.core.errors import DegenerateRange, InvalidRange
from kittenswap_rebalance.core.types import RangeSuggestion
from kittenswap_rebalance.core.utils.tick_math import (
    tick_spacing_aligned,
    usable_tick_bounds,
)


def suggest_range(
    current_tick: int,
    old_lower: int,
    old_upper: int,
    spacing: int,
    width_bump_ticks: int = 0,
) -> RangeSuggestion:
    """Re-center a range of the same width (plus ``width_bump_ticks``) on ``current_tick``.

    Both bounds land on multiples of ``spacing``. The width is rounded up to a
    whole number of spacings (at least one), and the window is shifted by one
    spacing when alignment pushed ``current_tick`` outside ``[lower, upper)``.
    """
    if spacing <= 0:
        raise DegenerateRange(
            f"tick spacing must be positive, got {spacing}",
            operation="suggest_range",
            raw_input=spacing,
        )
    if old_upper <= old_lower:
        raise InvalidRange(
            f"old range [{old_lower}, {old_upper}] is empty",
            operation="suggest_range",
            raw_input=(old_lower, old_upper),
        )
    width = old_upper - old_lower + width_bump_ticks
    if width <= 0:
        raise DegenerateRange(
            f"width bump {width_bump_ticks} collapses the range to {width} ticks",
            operation="suggest_range",
            raw_input=width_bump_ticks,
        )

    steps = max(1, -(-width // spacing))
    span = steps * spacing

    lower = tick_spacing_aligned(current_tick - span // 2, spacing)
    while current_tick < lower:
        lower -= spacing
    while current_tick >= lower + span:
        lower += spacing

    min_usable, max_usable = usable_tick_bounds(spacing)
    if max_usable - min_usable < spacing:
        raise DegenerateRange(
            f"tick spacing {spacing} leaves no usable range in [{min_usable}, {max_usable}]",
            operation="suggest_range",
            raw_input=spacing,
        )
    if span >= max_usable - min_usable:
        lower, span = min_usable, max_usable - min_usable
    elif lower < min_usable:
        lower = min_usable
    elif lower + span > max_usable:
        lower = max_usable - span

    return RangeSuggestion(
        tick_lower=lower,
        tick_upper=lower + span,
        tick_spacing=spacing,
        width_ticks=span,
    )
