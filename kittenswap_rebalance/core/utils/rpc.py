"""Read-only chain access used by the planner.

The planner only ever talks to a :class:`ChainReader`. The web3-backed reader
owns timeouts and retry-with-backoff; once an error leaves it, it is final.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, Protocol, TypeVar

from loguru import logger
from web3 import AsyncWeb3

from kittenswap_rebalance.core.errors import (
    ChainIdMismatch,
    ExternalCallFailure,
    SimulationRevert,
)
from kittenswap_rebalance.core.utils.abi_codec import extract_revert_reason, to_hex_data
from kittenswap_rebalance.core.utils.retry import RetryPolicy, retry_async
from kittenswap_rebalance.core.utils.web3 import (
    is_revert_error,
    is_transient_rpc_error,
    web3_from_chain_id,
)


T = TypeVar("T")


class ChainReader(Protocol):
    async def call(
        self,
        to: str,
        data: bytes,
        *,
        from_address: str | None = None,
        block: str | int = "latest",
    ) -> bytes: ...

    async def estimate_gas(
        self, to: str, data: bytes, *, from_address: str, value: int = 0
    ) -> int: ...

    async def chain_id(self) -> int: ...

    async def block_number(self) -> int: ...

    async def latest_block_timestamp(self) -> int: ...

    async def gas_price(self) -> int: ...


def _revert_diagnostic(exc: Exception) -> str:
    parts = [str(exc)]
    data = getattr(exc, "data", None)
    if data:
        parts.append(data if isinstance(data, str) else repr(data))
    return " ".join(parts)


class Web3ChainReader:
    def __init__(self, web3: AsyncWeb3, *, retry_policy: RetryPolicy | None = None):
        self.web3 = web3
        self.retry_policy = retry_policy or RetryPolicy()
        self.logger = logger.bind(reader=self.__class__.__name__)

    async def _request(
        self,
        operation: str,
        fn: Callable[[], Awaitable[T]],
        *,
        raw_input: Any = None,
    ) -> T:
        policy = self.retry_policy

        async def attempt() -> T:
            return await asyncio.wait_for(fn(), timeout=policy.timeout_s)

        def on_retry(attempt_no: int, exc: Exception, delay_s: float) -> None:
            self.logger.warning(
                f"RPC {operation} failed (attempt {attempt_no + 1}/{policy.max_attempts}), "
                f"retrying in {delay_s:.2f}s: {exc}"
            )

        try:
            return await retry_async(
                attempt,
                policy=policy,
                should_retry=is_transient_rpc_error,
                on_retry=on_retry,
            )
        except Exception as exc:  # noqa: BLE001
            if is_revert_error(exc):
                reason = extract_revert_reason(_revert_diagnostic(exc))
                raise SimulationRevert(
                    f"{operation} reverted: {reason}",
                    reason=reason,
                    operation=operation,
                    raw_input=raw_input,
                ) from exc
            self.logger.error(f"RPC {operation} failed: {exc!r}")
            raise ExternalCallFailure(
                f"{operation} failed: {exc!r}", operation=operation, raw_input=raw_input
            ) from exc

    async def call(
        self,
        to: str,
        data: bytes,
        *,
        from_address: str | None = None,
        block: str | int = "latest",
    ) -> bytes:
        tx: dict[str, Any] = {"to": to, "data": to_hex_data(data)}
        if from_address:
            tx["from"] = from_address

        async def _call() -> bytes:
            return bytes(await self.web3.eth.call(tx, block_identifier=block))

        return await self._request("eth_call", _call, raw_input=tx)

    async def estimate_gas(
        self, to: str, data: bytes, *, from_address: str, value: int = 0
    ) -> int:
        tx = {"from": from_address, "to": to, "data": to_hex_data(data), "value": value}

        async def _estimate() -> int:
            return int(await self.web3.eth.estimate_gas(tx))

        return await self._request("eth_estimateGas", _estimate, raw_input=tx)

    async def chain_id(self) -> int:
        async def _chain_id() -> int:
            return int(await self.web3.eth.chain_id)

        return await self._request("eth_chainId", _chain_id)

    async def block_number(self) -> int:
        async def _block_number() -> int:
            return int(await self.web3.eth.block_number)

        return await self._request("eth_blockNumber", _block_number)

    async def latest_block_timestamp(self) -> int:
        async def _timestamp() -> int:
            block = await self.web3.eth.get_block("latest")
            return int(block["timestamp"])

        return await self._request("eth_getBlockByNumber", _timestamp)

    async def gas_price(self) -> int:
        async def _gas_price() -> int:
            return int(await self.web3.eth.gas_price)

        return await self._request("eth_gasPrice", _gas_price)


async def ensure_chain_id(reader: ChainReader, expected: int) -> int:
    actual = await reader.chain_id()
    if actual != expected:
        raise ChainIdMismatch(expected=expected, actual=actual, operation="eth_chainId")
    return actual


@asynccontextmanager
async def reader_from_chain_id(chain_id: int, *, retry_policy: RetryPolicy | None = None):
    async with web3_from_chain_id(chain_id) as web3:
        yield Web3ChainReader(web3, retry_policy=retry_policy)
