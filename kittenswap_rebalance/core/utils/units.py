from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal

from kittenswap_rebalance.core.constants import BPS_DENOMINATOR
from kittenswap_rebalance.core.errors import MalformedDecimal, NonPositiveAmount

MAX_DECIMALS = 255

_DECIMAL_LITERAL = re.compile(r"^(\d+)(?:\.(\d+))?$")


def _check_decimals(decimals: int, *, operation: str) -> int:
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise MalformedDecimal(
            f"decimals must be an integer, got {decimals!r}",
            operation=operation,
            raw_input=decimals,
        )
    if not 0 <= decimals <= MAX_DECIMALS:
        raise MalformedDecimal(
            f"decimals must be within 0..{MAX_DECIMALS}, got {decimals}",
            operation=operation,
            raw_input=decimals,
        )
    return decimals


@dataclass(frozen=True)
class TokenUnits:
    """Integer amount in a token's smallest denomination."""

    amount: int
    decimals: int

    def __post_init__(self) -> None:
        _check_decimals(self.decimals, operation="TokenUnits")
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise MalformedDecimal(
                f"amount must be an integer, got {self.amount!r}",
                operation="TokenUnits",
                raw_input=self.amount,
            )
        if self.amount < 0:
            raise MalformedDecimal(
                "amount must be non-negative",
                operation="TokenUnits",
                raw_input=self.amount,
            )

    def to_decimal(self) -> Decimal:
        return Decimal(self.to_decimal_string())

    def to_decimal_string(self, precision: int | None = None) -> str:
        return to_decimal_string(self.amount, self.decimals, precision)

    def __str__(self) -> str:
        return self.to_decimal_string()


def to_units(
    decimal_string: str,
    decimals: int,
    *,
    require_positive: bool = False,
    field: str = "amount",
) -> TokenUnits:
    """Parse a plain decimal literal (no sign, no exponent) into integer units.

    Fractional digits beyond ``decimals`` are accepted only when they are all
    zero; dropping a non-zero digit is an error rather than silent truncation.
    """
    operation = f"to_units({field})"
    _check_decimals(decimals, operation=operation)
    text = str(decimal_string).strip()
    match = _DECIMAL_LITERAL.match(text)
    if match is None:
        raise MalformedDecimal(
            f"Invalid decimal {field}: {decimal_string!r}",
            operation=operation,
            raw_input=decimal_string,
        )
    whole, frac = match.group(1), match.group(2) or ""
    if len(frac) > decimals:
        if frac[decimals:].strip("0"):
            raise MalformedDecimal(
                f"Too many decimal places for {decimals}-decimals token: {text}",
                operation=operation,
                raw_input=decimal_string,
            )
        frac = frac[:decimals]

    amount = int(whole) * 10**decimals + int(frac.ljust(decimals, "0") or "0")
    if require_positive and amount == 0:
        raise NonPositiveAmount(
            f"{field} must be > 0", operation=operation, raw_input=decimal_string
        )
    return TokenUnits(amount=amount, decimals=decimals)


def to_decimal_string(units: int, decimals: int, precision: int | None = None) -> str:
    """Render integer units as a decimal string, truncating to ``precision``."""
    _check_decimals(decimals, operation="to_decimal_string")
    if units < 0:
        raise MalformedDecimal(
            "units must be non-negative",
            operation="to_decimal_string",
            raw_input=units,
        )
    whole, frac = divmod(int(units), 10**decimals)
    if decimals == 0 or (precision is not None and precision <= 0):
        return str(whole)
    digits = str(frac).rjust(decimals, "0")
    if precision is not None:
        digits = digits[:precision]
    digits = digits.rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


def apply_bps_floor(amount: int, bps: int) -> int:
    """``amount`` reduced by ``bps`` basis points, rounded down."""
    if not 0 <= bps <= BPS_DENOMINATOR:
        raise ValueError(f"bps must be within 0..{BPS_DENOMINATOR}, got {bps}")
    return amount * (BPS_DENOMINATOR - bps) // BPS_DENOMINATOR
