"""Typed errors raised by the planning core.

Every error records the logical operation that failed and the raw input that
caused it, so a caller can decide what to do next without digging in logs.
"""

from __future__ import annotations

from typing import Any


class KittenswapError(Exception):
    """Base class for all planning errors."""

    def __init__(
        self, message: str, *, operation: str = "", raw_input: Any = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.raw_input = raw_input

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "operation": self.operation,
            "raw_input": None if self.raw_input is None else str(self.raw_input),
        }


class MalformedDecimal(KittenswapError, ValueError):
    """Decimal literal is not parseable or would lose non-zero precision."""


class NonPositiveAmount(KittenswapError, ValueError):
    """Amount parsed to zero where a strictly positive value is required."""


class EncodingOverflow(KittenswapError, ValueError):
    """Integer does not fit the target ABI width."""


class InvalidAddress(KittenswapError, ValueError):
    """Value is not a 0x-prefixed 20-byte hex address."""


class InvalidRange(KittenswapError, ValueError):
    """Tick window with ``tick_upper <= tick_lower`` or out-of-domain bounds."""


class DegenerateRange(KittenswapError, ValueError):
    """Range cannot be built because spacing or width collapses to zero."""


class TruncatedReturnData(KittenswapError, RuntimeError):
    """Return data is shorter than the static head of the decoded tuple."""


class SimulationRevert(KittenswapError, RuntimeError):
    """A simulated call (eth_call / eth_estimateGas) reverted."""

    def __init__(
        self,
        message: str,
        *,
        reason: str | None = None,
        operation: str = "",
        raw_input: Any = None,
    ) -> None:
        super().__init__(message, operation=operation, raw_input=raw_input)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["reason"] = self.reason
        return out


class ExternalCallFailure(KittenswapError, RuntimeError):
    """Transport failure (timeout, rate limit, HTTP error) after retries."""


class ChainIdMismatch(KittenswapError, RuntimeError):
    def __init__(self, *, expected: int, actual: int, operation: str = "") -> None:
        super().__init__(
            f"RPC chain id {actual} does not match expected chain id {expected}",
            operation=operation,
            raw_input=actual,
        )
        self.expected = expected
        self.actual = actual

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["expected"] = self.expected
        out["actual"] = self.actual
        return out
