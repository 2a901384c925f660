"""Tick <-> price conversions for concentrated-liquidity pools.

Prices are token1-per-token0 in human units. All arithmetic runs on
``Decimal`` with a local context wide enough for the full signed 24-bit tick
domain, so ``1.0001 ** tick`` neither overflows nor underflows.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal, localcontext

from kittenswap_rebalance.core.errors import DegenerateRange, InvalidRange

TICK_BASE = Decimal("1.0001")
Q96 = Decimal(2) ** 96

# Algebra pools clamp usable ticks to the Uniswap v3 range.
MIN_TICK = -887272
MAX_TICK = 887272

INT24_MIN = -(2**23)
INT24_MAX = 2**23 - 1

PRICE_PRECISION = 60


def _price_context(ctx) -> None:
    ctx.prec = PRICE_PRECISION
    ctx.Emax = 999_999
    ctx.Emin = -999_999


def _check_int24(tick: int, *, operation: str) -> int:
    if isinstance(tick, bool) or not isinstance(tick, int):
        raise InvalidRange(
            f"tick must be an integer, got {tick!r}",
            operation=operation,
            raw_input=tick,
        )
    if not INT24_MIN <= tick <= INT24_MAX:
        raise InvalidRange(
            f"tick {tick} is outside the signed 24-bit domain",
            operation=operation,
            raw_input=tick,
        )
    return tick


def _check_spacing(spacing: int, *, operation: str) -> int:
    if spacing <= 0:
        raise DegenerateRange(
            f"tick spacing must be positive, got {spacing}",
            operation=operation,
            raw_input=spacing,
        )
    return spacing


def price_from_tick(tick: int, decimals0: int = 18, decimals1: int = 18) -> Decimal:
    """``1.0001 ** tick`` scaled by ``10 ** (decimals0 - decimals1)``."""
    _check_int24(tick, operation="price_from_tick")
    with localcontext() as ctx:
        _price_context(ctx)
        return +(TICK_BASE**tick * Decimal(10) ** (decimals0 - decimals1))


def tick_from_price(price: Decimal | str, decimals0: int = 18, decimals1: int = 18) -> int:
    """Largest tick whose price does not exceed ``price``."""
    with localcontext() as ctx:
        _price_context(ctx)
        value = Decimal(price)
        if value <= 0:
            raise InvalidRange(
                "price must be positive", operation="tick_from_price", raw_input=price
            )
        raw = value / Decimal(10) ** (decimals0 - decimals1)
        tick = int((raw.ln() / TICK_BASE.ln()).to_integral_value(rounding=ROUND_FLOOR))
    tick = max(INT24_MIN, min(INT24_MAX, tick))
    # ln() rounding can land one tick off at exact powers.
    while tick < INT24_MAX and price_from_tick(tick + 1, decimals0, decimals1) <= value:
        tick += 1
    while tick > INT24_MIN and price_from_tick(tick, decimals0, decimals1) > value:
        tick -= 1
    return tick


def price_from_sqrt_price_x96(
    sqrt_price_x96: int, decimals0: int = 18, decimals1: int = 18
) -> Decimal:
    if sqrt_price_x96 <= 0:
        return Decimal(0)
    with localcontext() as ctx:
        _price_context(ctx)
        ratio = (Decimal(sqrt_price_x96) / Q96) ** 2
        return +(ratio * Decimal(10) ** (decimals0 - decimals1))


def invert_price(price: Decimal) -> Decimal | None:
    if price == 0:
        return None
    with localcontext() as ctx:
        _price_context(ctx)
        return 1 / price


def align_tick_down(tick: int, spacing: int) -> int:
    _check_spacing(spacing, operation="align_tick_down")
    return (tick // spacing) * spacing


def align_tick_up(tick: int, spacing: int) -> int:
    _check_spacing(spacing, operation="align_tick_up")
    return -((-tick) // spacing) * spacing


def tick_spacing_aligned(tick: int, spacing: int) -> int:
    """Nearest multiple of ``spacing``; exact halves round toward -infinity."""
    _check_spacing(spacing, operation="tick_spacing_aligned")
    quotient, remainder = divmod(tick, spacing)
    if 2 * remainder > spacing:
        quotient += 1
    return quotient * spacing


def usable_tick_bounds(spacing: int) -> tuple[int, int]:
    """Lowest and highest spacing-aligned ticks inside ``[MIN_TICK, MAX_TICK]``."""
    return align_tick_up(MIN_TICK, spacing), align_tick_down(MAX_TICK, spacing)


def is_aligned(tick: int, spacing: int) -> bool:
    return spacing > 0 and tick % spacing == 0
