"""Calldata catalogue and codec for the Kittenswap (Algebra Integral) contracts.

Every call the planner can produce is listed in :data:`CATALOGUE` with its
canonical signature; selectors are derived from the signature, never typed in
by hand. None of the catalogued calls use dynamic-length inputs, so struct
arguments are encoded inline and calldata length is fixed per function.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from functools import cached_property
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak

from kittenswap_rebalance.core.constants import MAX_UINT128
from kittenswap_rebalance.core.errors import (
    EncodingOverflow,
    InvalidAddress,
    TruncatedReturnData,
)
from kittenswap_rebalance.core.types import Address, IncentiveKey, Position
from kittenswap_rebalance.core.utils.units import TokenUnits

WORD_SIZE = 32
SELECTOR_SIZE = 4

_INT_TYPE_RE = re.compile(r"^(u?)int(\d*)$")


def _split_tuple(abi_type: str) -> list[str]:
    """Component types of ``(a,b,(c,d))`` at the top nesting level."""
    inner = abi_type[1:-1]
    parts: list[str] = []
    depth = 0
    start = 0
    for i, ch in enumerate(inner):
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        elif ch == "," and depth == 0:
            parts.append(inner[start:i])
            start = i + 1
    if inner:
        parts.append(inner[start:])
    return parts


def _is_tuple(abi_type: str) -> bool:
    return abi_type.startswith("(") and abi_type.endswith(")")


def _head_words(abi_type: str) -> int:
    if _is_tuple(abi_type):
        return sum(_head_words(t) for t in _split_tuple(abi_type))
    return 1


@dataclass(frozen=True)
class AbiFunction:
    name: str
    inputs: tuple[str, ...]
    outputs: tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @cached_property
    def selector(self) -> bytes:
        return keccak(text=self.signature)[:SELECTOR_SIZE]

    @property
    def selector_hex(self) -> str:
        return "0x" + self.selector.hex()

    @property
    def calldata_length(self) -> int:
        return SELECTOR_SIZE + WORD_SIZE * sum(_head_words(t) for t in self.inputs)

    @property
    def output_head_length(self) -> int:
        return WORD_SIZE * sum(_head_words(t) for t in self.outputs)


_IK = "(address,address,address,uint256)"

_FUNCTIONS = (
    # ERC-20
    AbiFunction("approve", ("address", "uint256"), ("bool",)),
    AbiFunction("allowance", ("address", "address"), ("uint256",)),
    AbiFunction("balanceOf", ("address",), ("uint256",)),
    AbiFunction("decimals", (), ("uint8",)),
    AbiFunction("symbol", (), ("string",)),
    AbiFunction("name", (), ("string",)),
    # SwapRouter / QuoterV2
    AbiFunction(
        "exactInputSingle",
        ("(address,address,address,address,uint256,uint256,uint256,uint160)",),
        ("uint256",),
    ),
    AbiFunction(
        "quoteExactInputSingle",
        ("(address,address,address,uint256,uint160)",),
        ("uint256", "uint256", "uint160", "uint32", "uint256", "uint16"),
    ),
    AbiFunction("WNativeToken", (), ("address",)),
    # NonfungiblePositionManager
    AbiFunction(
        "collect", ("(uint256,address,uint128,uint128)",), ("uint256", "uint256")
    ),
    AbiFunction(
        "decreaseLiquidity",
        ("(uint256,uint128,uint256,uint256,uint256)",),
        ("uint256", "uint256"),
    ),
    AbiFunction("burn", ("uint256",)),
    AbiFunction(
        "mint",
        (
            "(address,address,address,int24,int24,uint256,uint256,uint256,uint256,address,uint256)",
        ),
        ("uint256", "uint128", "uint256", "uint256"),
    ),
    AbiFunction("ownerOf", ("uint256",), ("address",)),
    AbiFunction("tokenOfOwnerByIndex", ("address", "uint256"), ("uint256",)),
    AbiFunction(
        "positions",
        ("uint256",),
        (
            "uint96",
            "address",
            "address",
            "address",
            "address",
            "int24",
            "int24",
            "uint128",
            "uint256",
            "uint256",
            "uint128",
            "uint128",
        ),
    ),
    AbiFunction("approveForFarming", ("uint256", "bool", "address")),
    AbiFunction("farmingCenter", (), ("address",)),
    AbiFunction("farmingApprovals", ("uint256",), ("address",)),
    AbiFunction("tokenFarmedIn", ("uint256",), ("address",)),
    # Factory / pool
    AbiFunction("poolByPair", ("address", "address"), ("address",)),
    AbiFunction(
        "globalState", (), ("uint160", "int24", "uint16", "uint8", "uint16", "bool")
    ),
    AbiFunction("tickSpacing", (), ("int24",)),
    # FarmingCenter / EternalFarming
    AbiFunction("enterFarming", (_IK, "uint256")),
    AbiFunction("exitFarming", (_IK, "uint256")),
    AbiFunction("collectRewards", (_IK, "uint256"), ("uint256", "uint256")),
    AbiFunction("claimReward", ("address", "address", "uint256"), ("uint256",)),
    AbiFunction("incentiveKeys", ("address",), ("address", "address", "address", "uint256")),
    AbiFunction("deposits", ("uint256",), ("bytes32",)),
    AbiFunction("rewards", ("address", "address"), ("uint256",)),
)

CATALOGUE: dict[str, AbiFunction] = {fn.name: fn for fn in _FUNCTIONS}

WRITE_OPERATIONS = (
    "approve",
    "exactInputSingle",
    "collect",
    "decreaseLiquidity",
    "burn",
    "mint",
    "approveForFarming",
    "enterFarming",
    "exitFarming",
    "collectRewards",
    "claimReward",
)


def get_function(name: str) -> AbiFunction:
    try:
        return CATALOGUE[name]
    except KeyError as exc:
        raise KeyError(f"Unknown catalogue function: {name}") from exc


def _check_value(abi_type: str, value: Any, *, operation: str, path: str) -> Any:
    """Validate ``value`` against ``abi_type`` and return the encodable form."""
    if _is_tuple(abi_type):
        components = _split_tuple(abi_type)
        if not isinstance(value, Sequence) or isinstance(value, str | bytes):
            raise TypeError(f"{operation}: {path} expects a tuple, got {value!r}")
        if len(value) != len(components):
            raise TypeError(
                f"{operation}: {path} expects {len(components)} fields, got {len(value)}"
            )
        return tuple(
            _check_value(t, v, operation=operation, path=f"{path}[{i}]")
            for i, (t, v) in enumerate(zip(components, value, strict=True))
        )

    if abi_type == "address":
        try:
            return str(Address.parse(value, field=path))
        except InvalidAddress as exc:
            raise InvalidAddress(
                f"{operation}: {path} is not an address: {value!r}",
                operation=operation,
                raw_input=value,
            ) from exc

    if abi_type == "bool":
        if not isinstance(value, bool):
            raise TypeError(f"{operation}: {path} expects bool, got {value!r}")
        return value

    if abi_type == "bytes32":
        if not isinstance(value, bytes) or len(value) != 32:
            raise TypeError(f"{operation}: {path} expects 32 bytes, got {value!r}")
        return value

    match = _INT_TYPE_RE.match(abi_type)
    if match is None:
        raise TypeError(f"{operation}: unsupported ABI type {abi_type}")
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{operation}: {path} expects an integer, got {value!r}")
    bits = int(match.group(2) or 256)
    if match.group(1):
        lo, hi = 0, 2**bits - 1
    else:
        lo, hi = -(2 ** (bits - 1)), 2 ** (bits - 1) - 1
    if not lo <= value <= hi:
        raise EncodingOverflow(
            f"{operation}: {path}={value} does not fit {abi_type}",
            operation=operation,
            raw_input=value,
        )
    return value


def encode_call(name: str, *args: Any) -> bytes:
    """Selector + ABI-encoded arguments for a catalogued function."""
    fn = get_function(name)
    if len(args) != len(fn.inputs):
        raise TypeError(f"{name} expects {len(fn.inputs)} arguments, got {len(args)}")
    checked = [
        _check_value(t, v, operation=name, path=f"arg{i}")
        for i, (t, v) in enumerate(zip(fn.inputs, args, strict=True))
    ]
    data = fn.selector + abi_encode(list(fn.inputs), checked)
    if len(data) != fn.calldata_length:
        raise RuntimeError(
            f"{name} calldata is {len(data)} bytes, expected {fn.calldata_length}"
        )
    return data


def to_hex_data(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def _to_bytes(data: bytes | str) -> bytes:
    if isinstance(data, str):
        text = data[2:] if data[:2].lower() == "0x" else data
        return bytes.fromhex(text)
    return bytes(data)


# --- write payloads -------------------------------------------------------


@dataclass(frozen=True)
class ExactInputSingleParams:
    token_in: Address
    token_out: Address
    deployer: Address
    recipient: Address
    deadline: int
    amount_in: int
    amount_out_minimum: int
    limit_sqrt_price: int = 0

    def as_tuple(self) -> tuple:
        return (
            self.token_in,
            self.token_out,
            self.deployer,
            self.recipient,
            self.deadline,
            self.amount_in,
            self.amount_out_minimum,
            self.limit_sqrt_price,
        )


@dataclass(frozen=True)
class MintParams:
    token0: Address
    token1: Address
    deployer: Address
    tick_lower: int
    tick_upper: int
    amount0_desired: int
    amount1_desired: int
    amount0_min: int
    amount1_min: int
    recipient: Address
    deadline: int

    def as_tuple(self) -> tuple:
        return (
            self.token0,
            self.token1,
            self.deployer,
            self.tick_lower,
            self.tick_upper,
            self.amount0_desired,
            self.amount1_desired,
            self.amount0_min,
            self.amount1_min,
            self.recipient,
            self.deadline,
        )


@dataclass(frozen=True)
class CollectParams:
    token_id: int
    recipient: Address
    amount0_max: int = MAX_UINT128
    amount1_max: int = MAX_UINT128

    def as_tuple(self) -> tuple:
        return (self.token_id, self.recipient, self.amount0_max, self.amount1_max)


@dataclass(frozen=True)
class DecreaseLiquidityParams:
    token_id: int
    liquidity: int
    amount0_min: int
    amount1_min: int
    deadline: int

    def as_tuple(self) -> tuple:
        return (
            self.token_id,
            self.liquidity,
            self.amount0_min,
            self.amount1_min,
            self.deadline,
        )


def build_approve_calldata(spender: Address | str, amount: int) -> bytes:
    return encode_call("approve", spender, amount)


def build_exact_input_single_calldata(params: ExactInputSingleParams) -> bytes:
    return encode_call("exactInputSingle", params.as_tuple())


def build_collect_calldata(params: CollectParams) -> bytes:
    return encode_call("collect", params.as_tuple())


def build_decrease_liquidity_calldata(params: DecreaseLiquidityParams) -> bytes:
    return encode_call("decreaseLiquidity", params.as_tuple())


def build_burn_calldata(token_id: int) -> bytes:
    return encode_call("burn", token_id)


def build_mint_calldata(params: MintParams) -> bytes:
    return encode_call("mint", params.as_tuple())


def build_approve_for_farming_calldata(
    token_id: int, farming_address: Address | str, *, approve: bool = True
) -> bytes:
    return encode_call("approveForFarming", token_id, approve, farming_address)


def build_enter_farming_calldata(key: IncentiveKey, token_id: int) -> bytes:
    return encode_call("enterFarming", key.as_tuple(), token_id)


def build_exit_farming_calldata(key: IncentiveKey, token_id: int) -> bytes:
    return encode_call("exitFarming", key.as_tuple(), token_id)


def build_collect_rewards_calldata(key: IncentiveKey, token_id: int) -> bytes:
    return encode_call("collectRewards", key.as_tuple(), token_id)


def build_claim_reward_calldata(
    reward_token: Address | str, to: Address | str, amount_requested: int
) -> bytes:
    return encode_call("claimReward", reward_token, to, amount_requested)


# --- return data ----------------------------------------------------------


def decode_output(name: str, data: bytes | str) -> tuple[Any, ...]:
    fn = get_function(name)
    raw = _to_bytes(data)
    if len(raw) < fn.output_head_length:
        raise TruncatedReturnData(
            f"{name} returned {len(raw)} bytes, expected at least {fn.output_head_length}",
            operation=name,
            raw_input=to_hex_data(raw),
        )
    try:
        return tuple(abi_decode(list(fn.outputs), raw))
    except DecodingError as exc:
        raise TruncatedReturnData(
            f"{name} returned malformed data: {exc}",
            operation=name,
            raw_input=to_hex_data(raw),
        ) from exc


def decode_address(name: str, data: bytes | str) -> Address:
    return Address.parse(decode_output(name, data)[0])


def decode_uint(name: str, data: bytes | str) -> int:
    return int(decode_output(name, data)[0])


def decode_position(token_id: int, data: bytes | str) -> Position:
    w = decode_output("positions", data)
    return Position(
        token_id=token_id,
        nonce=w[0],
        operator=Address.parse(w[1]),
        token0=Address.parse(w[2]),
        token1=Address.parse(w[3]),
        deployer=Address.parse(w[4]),
        tick_lower=w[5],
        tick_upper=w[6],
        liquidity=w[7],
        fee_growth_inside0_last_x128=w[8],
        fee_growth_inside1_last_x128=w[9],
        tokens_owed0=w[10],
        tokens_owed1=w[11],
    )


def decode_global_state(data: bytes | str) -> dict[str, Any]:
    w = decode_output("globalState", data)
    return {
        "sqrt_price_x96": w[0],
        "tick": w[1],
        "last_fee": w[2],
        "plugin_config": w[3],
        "community_fee": w[4],
        "unlocked": w[5],
    }


def decode_quote(data: bytes | str) -> dict[str, int]:
    w = decode_output("quoteExactInputSingle", data)
    return {
        "amount_out": w[0],
        "amount_in": w[1],
        "sqrt_price_x96_after": w[2],
        "initialized_ticks_crossed": w[3],
        "gas_estimate": w[4],
        "fee": w[5],
    }


def decode_two_amounts(
    name: str, data: bytes | str, decimals0: int, decimals1: int
) -> tuple[TokenUnits, TokenUnits]:
    """Decode the ``(amount0, amount1)`` pair returned by collect-style calls."""
    w = decode_output(name, data)
    return TokenUnits(w[0], decimals0), TokenUnits(w[1], decimals1)


def decode_incentive_key(data: bytes | str) -> IncentiveKey:
    w = decode_output("incentiveKeys", data)
    return IncentiveKey(
        reward_token=Address.parse(w[0]),
        bonus_reward_token=Address.parse(w[1]),
        pool=Address.parse(w[2]),
        nonce=w[3],
    )


def decode_erc20_text(name: str, data: bytes | str) -> str:
    """Decode ``symbol()``/``name()``; some legacy tokens return ``bytes32``."""
    raw = _to_bytes(data)
    if len(raw) == WORD_SIZE:
        return raw.rstrip(b"\x00").decode("utf-8", errors="replace")
    return str(decode_output(name, raw)[0])


# --- revert reasons -------------------------------------------------------

ERROR_STRING_SELECTOR = "08c379a0"
PANIC_SELECTOR = "4e487b71"
NO_REASON = "reverted, no reason available"

# Short require() messages used by the Algebra/Uniswap periphery TransferHelper.
KNOWN_SHORT_MARKERS: dict[str, str] = {
    "STF": "safeTransferFrom failed (insufficient balance or allowance)",
    "STE": "native token transfer failed",
    "ST": "safeTransfer failed",
    "SA": "safeApprove failed",
    "TF": "transfer failed",
}

KNOWN_TEXT_MARKERS: tuple[tuple[str, str], ...] = (
    ("transfer amount exceeds allowance", "ERC20: transfer amount exceeds allowance"),
    ("insufficient allowance", "ERC20: insufficient allowance"),
    ("transfer amount exceeds balance", "ERC20: transfer amount exceeds balance"),
    ("insufficient balance", "ERC20: insufficient balance"),
    ("safeerc20", "SafeERC20 operation failed"),
    ("transferfrom failed", "transferFrom failed"),
)

PANIC_CODES: dict[int, str] = {
    0x01: "assertion failed",
    0x11: "arithmetic overflow or underflow",
    0x12: "division by zero",
    0x32: "array index out of bounds",
}

_ERROR_STRING_RE = re.compile(rf"(?:0x)?{ERROR_STRING_SELECTOR}([0-9a-fA-F]*)")
_PANIC_RE = re.compile(rf"(?:0x)?{PANIC_SELECTOR}([0-9a-fA-F]{{64}})")
_REVERTED_WITH_RE = re.compile(
    r"execution reverted:\s*([^\"'\n\]\)]+)", re.IGNORECASE
)
_MARKER_RE = re.compile(
    r"\b(" + "|".join(sorted(KNOWN_SHORT_MARKERS, key=len, reverse=True)) + r")\b"
)
_TRANSFER_FAILURE_RE = re.compile(
    r"STF|safeTransferFrom|transferFrom|exceeds allowance|insufficient allowance",
    re.IGNORECASE,
)


def _describe(reason: str) -> str:
    desc = KNOWN_SHORT_MARKERS.get(reason)
    return f"{reason}: {desc}" if desc else reason


def _decode_error_string(payload_hex: str) -> str | None:
    if len(payload_hex) % 2:
        payload_hex = payload_hex[:-1]
    try:
        (message,) = abi_decode(["string"], bytes.fromhex(payload_hex))
    except (DecodingError, ValueError):
        return None
    return message or None


def extract_revert_reason(diagnostic: object) -> str:
    """Best-effort human-readable reason from a failed-call diagnostic.

    Tries an ``Error(string)`` payload (or ``Panic(uint256)``), then an
    ``execution reverted: ...`` message, then known ERC-20 failure markers.
    """
    if isinstance(diagnostic, bytes | bytearray):
        text = "0x" + bytes(diagnostic).hex()
    else:
        text = str(diagnostic or "")

    match = _ERROR_STRING_RE.search(text)
    if match:
        message = _decode_error_string(match.group(1))
        if message:
            return _describe(message.strip())

    match = _PANIC_RE.search(text)
    if match:
        code = int(match.group(1), 16)
        return f"panic 0x{code:02x}: {PANIC_CODES.get(code, 'unknown panic code')}"

    match = _REVERTED_WITH_RE.search(text)
    if match:
        message = match.group(1).strip().rstrip(",.;")
        if message and not message.lower().startswith("0x"):
            return _describe(message)

    match = _MARKER_RE.search(text)
    if match:
        return _describe(match.group(1))

    lowered = text.lower()
    for needle, label in KNOWN_TEXT_MARKERS:
        if needle in lowered:
            return label

    return NO_REASON


def is_transfer_failure(reason: str | None) -> bool:
    """True when a revert looks like a token transfer/allowance failure."""
    return bool(reason) and _TRANSFER_FAILURE_RE.search(reason) is not None
