from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from kittenswap_rebalance.core.constants.kittenswap import (
    DEFAULT_RPC_BASE_DELAY_S,
    DEFAULT_RPC_MAX_DELAY_S,
    DEFAULT_RPC_MAX_RETRIES,
    DEFAULT_RPC_TIMEOUT_S,
)


T = TypeVar("T")


def exponential_backoff_s(
    attempt: int,
    *,
    base_delay_s: float = DEFAULT_RPC_BASE_DELAY_S,
    max_delay_s: float | None = None,
    jitter_ratio: float = 0.0,
) -> float:
    """``base * 2**attempt`` plus up to ``jitter_ratio`` of itself, capped at ``max_delay_s``."""
    delay_s = base_delay_s * (2**attempt)
    if jitter_ratio > 0:
        delay_s += random.uniform(0, delay_s * jitter_ratio)
    if max_delay_s is not None:
        delay_s = min(delay_s, max_delay_s)
    return delay_s


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = DEFAULT_RPC_MAX_RETRIES
    base_delay_s: float = DEFAULT_RPC_BASE_DELAY_S
    max_delay_s: float = DEFAULT_RPC_MAX_DELAY_S
    jitter_ratio: float = 0.2
    timeout_s: float = DEFAULT_RPC_TIMEOUT_S

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> RetryPolicy:
        return cls(
            max_attempts=max(1, int(settings.get("max_retries", DEFAULT_RPC_MAX_RETRIES))),
            base_delay_s=float(settings.get("base_delay_s", DEFAULT_RPC_BASE_DELAY_S)),
            max_delay_s=float(settings.get("max_delay_s", DEFAULT_RPC_MAX_DELAY_S)),
            timeout_s=float(settings.get("timeout_s", DEFAULT_RPC_TIMEOUT_S)),
        )

    def delay_s(self, attempt: int) -> float:
        return exponential_backoff_s(
            attempt,
            base_delay_s=self.base_delay_s,
            max_delay_s=self.max_delay_s,
            jitter_ratio=self.jitter_ratio,
        )


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy | None = None,
    should_retry: Callable[[Exception], bool] | None = None,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> T:
    """Run ``fn`` up to ``policy.max_attempts`` times; the last error is re-raised."""
    policy = policy or RetryPolicy()
    if policy.max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(policy.max_attempts):
        try:
            return await fn()
        except Exception as exc:  # noqa: BLE001
            if attempt >= policy.max_attempts - 1:
                raise
            if should_retry is not None and not should_retry(exc):
                raise
            delay_s = policy.delay_s(attempt)
            if on_retry is not None:
                on_retry(attempt, exc, delay_s)
            await asyncio.sleep(delay_s)

    raise RuntimeError("retry_async exhausted retries")
