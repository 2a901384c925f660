from contextlib import asynccontextmanager
from typing import Any

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError

from kittenswap_rebalance.core.config import get_rpc_urls
from kittenswap_rebalance.core.constants.chains import CHAIN_ID_HYPEREVM
from kittenswap_rebalance.core.constants.kittenswap import HYPEREVM_RPC_URL

# Transient-failure policy:
# - Retry provider rate limiting, gateway errors and timeouts
# - Never retry client errors or on-chain execution errors
_RETRYABLE_HTTP_STATUS = {408, 425, 429, 500, 502, 503, 504}
_RATE_LIMIT_RPC_ERROR_CODES = {429, -32005, -33200, -33300, -33400}
_TRANSIENT_MESSAGE_MARKERS = (
    "too many requests",
    "rate limit",
    "request rate exceeded",
    "limit exceeded",
    "compute units per second",
    "concurrent requests",
    "timeout",
    "timed out",
    "fetch failed",
    "econnreset",
    "connection reset",
    "service unavailable",
    "bad gateway",
)
_REVERT_MARKERS = ("execution reverted", "revert")

_DEFAULT_RPC_URLS: dict[int, str] = {CHAIN_ID_HYPEREVM: HYPEREVM_RPC_URL}


def _extract_http_status(exc: Exception) -> int | None:
    status = getattr(exc, "status", None)
    if isinstance(status, int):
        return status
    status_code = getattr(exc, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    response = getattr(exc, "response", None)
    if response is not None:
        code = getattr(response, "status_code", None)
        if isinstance(code, int):
            return code
    return None


def _extract_rpc_error(exc: Exception) -> dict[str, Any] | None:
    rpc_response = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, dict) and isinstance(rpc_response.get("error"), dict):
        return rpc_response["error"]
    if exc.args and isinstance(exc.args[0], dict):
        return exc.args[0]
    return None


def _rpc_error_text(error: dict[str, Any]) -> str:
    msg = str(error.get("message") or "").lower()
    details = str(error.get("details") or "").lower()
    return f"{msg} {details}".strip()


def _is_rate_limited_rpc_error(error: dict[str, Any]) -> bool:
    code = error.get("code")
    if isinstance(code, int) and code in _RATE_LIMIT_RPC_ERROR_CODES:
        return True
    text = _rpc_error_text(error)
    return any(marker in text for marker in _TRANSIENT_MESSAGE_MARKERS)


def is_revert_error(exc: Exception) -> bool:
    if isinstance(exc, ContractLogicError):
        return True
    error = _extract_rpc_error(exc)
    text = _rpc_error_text(error) if error else str(exc).lower()
    return any(marker in text for marker in _REVERT_MARKERS)


def is_transient_rpc_error(exc: Exception) -> bool:
    if is_revert_error(exc):
        return False
    if isinstance(exc, TimeoutError | ConnectionError):
        return True
    if _extract_http_status(exc) in _RETRYABLE_HTTP_STATUS:
        return True
    error = _extract_rpc_error(exc)
    if error is not None and _is_rate_limited_rpc_error(error):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _TRANSIENT_MESSAGE_MARKERS)


def _get_rpcs_for_chain_id(chain_id: int) -> list:
    mapping = get_rpc_urls()
    rpcs = mapping.get(str(chain_id))
    if rpcs is None:
        rpcs = mapping.get(chain_id)  # allow int keys
    if rpcs is None:
        rpcs = _DEFAULT_RPC_URLS.get(chain_id)
    if rpcs is None:
        raise ValueError(f"No RPCs configured for chain ID {chain_id}")
    if isinstance(rpcs, str):
        return [rpcs]
    return rpcs


def get_web3(rpc: str) -> AsyncWeb3:
    return AsyncWeb3(AsyncHTTPProvider(rpc))


@asynccontextmanager
async def web3_from_chain_id(chain_id: int):
    web3 = get_web3(_get_rpcs_for_chain_id(chain_id)[0])
    try:
        yield web3
    finally:
        await web3.provider.disconnect()
