from __future__ import annotations

from decimal import Decimal

import pytest
from eth_abi import encode as abi_encode

from kittenswap_rebalance.adapters.kittenswap_adapter import (
    KittenswapAdapter,
    RebalanceRequest,
    SwapRequest,
)
from kittenswap_rebalance.core.constants import MAX_UINT128, MAX_UINT256, ZERO_ADDRESS
from kittenswap_rebalance.core.constants.kittenswap import KITTENSWAP_CONTRACTS
from kittenswap_rebalance.core.errors import (
    ChainIdMismatch,
    InvalidAddress,
    MalformedDecimal,
    SimulationRevert,
)
from kittenswap_rebalance.core.types import Address
from kittenswap_rebalance.core.utils.abi_codec import CATALOGUE
from kittenswap_rebalance.core.utils.units import apply_bps_floor

OWNER = Address.parse("0x1111111111111111111111111111111111111111")
OTHER = Address.parse("0x3333333333333333333333333333333333333333")
WHYPE = Address.parse("0x5555555555555555555555555555555555555555")
USDC = Address.parse("0xb88339cb7199b77e23db6e890353e22632ba630f")
KITTEN = Address.parse("0x618275f8efe54c2afa87bfb9f210a52f0ff89364")
POOL = Address.parse("0x12df9913e9e08453440e3c4b1ae73819160b513e")
ZERO = Address.parse(ZERO_ADDRESS)

NPM = Address.parse(KITTENSWAP_CONTRACTS.position_manager)
FACTORY = Address.parse(KITTENSWAP_CONTRACTS.factory)
ROUTER = Address.parse(KITTENSWAP_CONTRACTS.router)
QUOTER = Address.parse(KITTENSWAP_CONTRACTS.quoter_v2)
FARMING_CENTER = Address.parse(KITTENSWAP_CONTRACTS.farming_center)
ETERNAL_FARMING = Address.parse(KITTENSWAP_CONTRACTS.eternal_farming)

TOKEN_ID = 123
BLOCK_TS = 1_700_000_000
LIQUIDITY = 10**12


def _enc(types: list[str], values: list) -> bytes:
    return abi_encode(types, values)


def _word(data: bytes, index: int) -> int:
    start = 4 + 32 * index
    return int.from_bytes(data[start : start + 32], "big")


class _FakeReader:
    """ChainReader serving the WHYPE/USDC fixture position keyed by (to, selector)."""

    def __init__(
        self,
        *,
        chain_id: int = 999,
        allowance: int = 0,
        pool: Address = POOL,
        approved_for: Address = FARMING_CENTER,
        farmed_in: Address = ZERO,
        bonus_reward: Address = ZERO,
    ):
        self._chain_id = chain_id
        self.failing_gas: dict[str, str] = {}
        self.gas_calls: list[tuple[str, bytes, str, int]] = []
        routes = {
            (NPM, "positions"): _enc(
                [
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
                ],
                [0, ZERO, WHYPE, USDC, ZERO, -242570, -242070, LIQUIDITY, 0, 0, 0, 0],
            ),
            (NPM, "ownerOf"): _enc(["address"], [OWNER]),
            (NPM, "balanceOf"): _enc(["uint256"], [2]),
            (NPM, "tokenOfOwnerByIndex"): lambda data: _enc(
                ["uint256"], [TOKEN_ID + _word(data, 1)]
            ),
            (NPM, "farmingCenter"): _enc(["address"], [FARMING_CENTER]),
            (NPM, "farmingApprovals"): _enc(["address"], [approved_for]),
            (NPM, "tokenFarmedIn"): _enc(["address"], [farmed_in]),
            (FACTORY, "poolByPair"): _enc(["address"], [pool]),
            (POOL, "globalState"): _enc(
                ["uint160", "int24", "uint16", "uint8", "uint16", "bool"],
                [2**96, -242319, 500, 0, 0, True],
            ),
            (POOL, "tickSpacing"): _enc(["int24"], [10]),
            (WHYPE, "symbol"): _enc(["string"], ["WHYPE"]),
            (WHYPE, "name"): _enc(["string"], ["Wrapped HYPE"]),
            (WHYPE, "decimals"): _enc(["uint8"], [18]),
            (WHYPE, "balanceOf"): _enc(["uint256"], [2 * 10**18]),
            (WHYPE, "allowance"): _enc(["uint256"], [allowance]),
            (USDC, "symbol"): _enc(["string"], ["USDC"]),
            (USDC, "name"): _enc(["string"], ["USD Coin"]),
            (USDC, "decimals"): _enc(["uint8"], [6]),
            (USDC, "balanceOf"): _enc(["uint256"], [10 * 10**6]),
            (USDC, "allowance"): _enc(["uint256"], [allowance]),
            (ROUTER, "WNativeToken"): _enc(["address"], [WHYPE]),
            (QUOTER, "quoteExactInputSingle"): _enc(
                ["uint256", "uint256", "uint160", "uint32", "uint256", "uint16"],
                [30 * 10**6, 10**18, 2**96, 1, 90_000, 500],
            ),
            (ETERNAL_FARMING, "incentiveKeys"): _enc(
                ["address", "address", "address", "uint256"],
                [KITTEN, bonus_reward, POOL, 1],
            ),
            (ETERNAL_FARMING, "rewards"): _enc(["uint256"], [5 * 10**18]),
            (FARMING_CENTER, "deposits"): _enc(["bytes32"], [b"\x00" * 32]),
            (NPM, "collect"): _enc(["uint256", "uint256"], [10**16, 2 * 10**6]),
            (NPM, "decreaseLiquidity"): _enc(["uint256", "uint256"], [10**18, 25 * 10**6]),
        }
        self.routes = {(to, CATALOGUE[name].selector): v for (to, name), v in routes.items()}

    async def call(self, to, data, *, from_address=None, block="latest"):
        handler = self.routes[(Address.parse(to), bytes(data[:4]))]
        return handler(data) if callable(handler) else handler

    async def estimate_gas(self, to, data, *, from_address, value=0):
        self.gas_calls.append((to, data, from_address, value))
        for name, reason in self.failing_gas.items():
            if data[:4] == CATALOGUE[name].selector:
                raise SimulationRevert(f"{name} reverted: {reason}", reason=reason)
        return 150_000

    async def chain_id(self):
        return self._chain_id

    async def block_number(self):
        return 1_000

    async def latest_block_timestamp(self):
        return BLOCK_TS

    async def gas_price(self):
        return 10**9


def _adapter(reader: _FakeReader | None = None) -> KittenswapAdapter:
    return KittenswapAdapter(reader=reader or _FakeReader())


@pytest.mark.asyncio
async def test_load_position_context():
    ctx = await _adapter().load_position_context(TOKEN_ID, owner=OWNER)
    assert ctx.owner == OWNER
    assert ctx.pool_state.address == POOL
    assert ctx.pool_state.tick == -242319
    assert ctx.pool_state.tick_spacing == 10
    assert ctx.token0.symbol == "WHYPE"
    assert ctx.token1.decimals == 6
    assert str(ctx.token1.balance) == "10"
    assert Decimal(25) < ctx.price_token1_per_token0 < Decimal(35)


@pytest.mark.asyncio
async def test_missing_pool_is_an_error():
    with pytest.raises(InvalidAddress) as exc_info:
        await _adapter(_FakeReader(pool=ZERO)).load_position_context(TOKEN_ID)
    assert exc_info.value.operation == "poolByPair"


@pytest.mark.asyncio
async def test_position_status_healthy_by_default():
    status = await _adapter().position_status(TOKEN_ID)
    assert status.evaluation.reason == "healthy"
    assert status.evaluation.edge_buffer_ticks == 75
    assert (status.suggestion.tick_lower, status.suggestion.tick_upper) == (-242570, -242070)


@pytest.mark.asyncio
async def test_position_status_edge_override():
    status = await _adapter().position_status(TOKEN_ID, edge_bps=5000)
    assert status.evaluation.near_edge
    assert status.evaluation.should_rebalance


@pytest.mark.asyncio
async def test_list_owned_token_ids():
    assert await _adapter().list_owned_token_ids(OWNER) == [123, 124]


@pytest.mark.asyncio
async def test_plan_rebalance_exit_only():
    reader = _FakeReader()
    result = await _adapter(reader).plan_rebalance(
        RebalanceRequest(token_id=TOKEN_ID, owner=OWNER)
    )
    plan = result.plan
    assert plan.step_names == ["collect_before", "decrease_liquidity", "collect_after"]
    assert not result.burn_included
    assert result.mint is None
    assert result.deadline == BLOCK_TS + 900
    assert all(step.to == NPM for step in plan.steps)
    decrease = bytes.fromhex(plan.steps[1].data[2:])
    assert decrease[:4] == CATALOGUE["decreaseLiquidity"].selector
    assert _word(decrease, 1) == LIQUIDITY
    assert _word(decrease, 4) == BLOCK_TS + 900
    assert plan.total_gas == 3 * 150_000
    assert plan.estimated_fee_wei == 3 * 150_000 * 10**9
    assert [c[2] for c in reader.gas_calls] == [OWNER] * 3
    assert result.balance_hint is not None
    assert result.balance_hint.side == "sell_token0"


@pytest.mark.asyncio
async def test_plan_rebalance_burn_and_mint():
    result = await _adapter().plan_rebalance(
        RebalanceRequest(
            token_id=TOKEN_ID,
            owner=OWNER,
            amount0="1",
            amount1="30",
            allow_burn=True,
        ),
        estimate_gas=False,
    )
    assert result.plan.step_names == [
        "collect_before",
        "decrease_liquidity",
        "collect_after",
        "burn_old_nft",
        "mint_new_position",
    ]
    mint = result.mint
    assert (mint.tick_lower, mint.tick_upper) == (-242570, -242070)
    assert mint.amount0_desired == 10**18
    assert mint.amount0_min == apply_bps_floor(10**18, 50)
    assert mint.amount1_min == apply_bps_floor(30 * 10**6, 50)
    assert mint.recipient == OWNER
    assert result.plan.steps[-1].gas_estimate is None
    assert result.plan.gas_price_wei is None


@pytest.mark.asyncio
async def test_plan_rebalance_requires_both_amounts():
    with pytest.raises(MalformedDecimal):
        await _adapter().plan_rebalance(
            RebalanceRequest(token_id=TOKEN_ID, owner=OWNER, amount0="1")
        )


@pytest.mark.asyncio
async def test_plan_swap_with_approval_and_transfer_failure_hint():
    reader = _FakeReader(allowance=0)
    reader.failing_gas["exactInputSingle"] = "STF: safeTransferFrom failed"
    result = await _adapter(reader).plan_swap(
        SwapRequest(token_in=WHYPE, token_out=USDC, deployer=ZERO, amount_in="1", owner=OWNER)
    )
    assert result.approval_required
    assert result.plan.step_names == ["approve_token_in", "swap_exact_input_single"]
    assert result.amount_out_minimum.amount == 29_850_000
    assert result.pool == POOL

    approve, swap = result.plan.steps
    assert approve.to == WHYPE
    assert _word(bytes.fromhex(approve.data[2:]), 1) == 10**18
    assert swap.to == ROUTER
    assert swap.gas_estimate is None
    assert swap.gas_error.startswith("STF")
    assert result.plan.transfer_failure_hint
    assert result.plan.total_gas == 150_000


@pytest.mark.asyncio
async def test_plan_swap_skips_approval_when_allowance_suffices():
    result = await _adapter(_FakeReader(allowance=MAX_UINT256)).plan_swap(
        SwapRequest(token_in=WHYPE, token_out=USDC, deployer=ZERO, amount_in="1", owner=OWNER),
        estimate_gas=False,
    )
    assert result.plan.step_names == ["swap_exact_input_single"]
    assert not result.plan.transfer_failure_hint


@pytest.mark.asyncio
async def test_plan_swap_native_in():
    result = await _adapter().plan_swap(
        SwapRequest(
            token_in=WHYPE,
            token_out=USDC,
            deployer=ZERO,
            amount_in="0.5",
            owner=OWNER,
            native_in=True,
        ),
        estimate_gas=False,
    )
    assert result.plan.step_names == ["swap_exact_input_single"]
    assert result.plan.steps[0].value == 5 * 10**17
    assert result.allowance is None

    with pytest.raises(InvalidAddress):
        await _adapter().plan_swap(
            SwapRequest(
                token_in=USDC,
                token_out=WHYPE,
                deployer=ZERO,
                amount_in="1",
                owner=OWNER,
                native_in=True,
            )
        )


@pytest.mark.asyncio
async def test_plan_swap_rejects_same_token_and_wrong_chain():
    with pytest.raises(InvalidAddress):
        await _adapter().plan_swap(
            SwapRequest(token_in=WHYPE, token_out=WHYPE, deployer=ZERO, amount_in="1", owner=OWNER)
        )
    with pytest.raises(ChainIdMismatch):
        await _adapter(_FakeReader(chain_id=1)).plan_swap(
            SwapRequest(token_in=WHYPE, token_out=USDC, deployer=ZERO, amount_in="1", owner=OWNER)
        )


@pytest.mark.asyncio
async def test_plan_approve_max():
    result = await _adapter().plan_approve(WHYPE, OWNER, approve_max=True, estimate_gas=False)
    assert result.spender == ROUTER
    assert result.amount.amount == MAX_UINT256
    assert result.current_allowance.amount == 0
    assert result.plan.step_names == ["approve"]


@pytest.mark.asyncio
async def test_farming_status():
    status = await _adapter().farming_status(TOKEN_ID)
    assert status.owner == OWNER
    assert status.pool == POOL
    assert status.farming_center == FARMING_CENTER
    assert status.is_approved
    assert not status.is_farmed
    assert status.incentive_key.reward_token == KITTEN
    assert status.incentive_key.nonce == 1
    assert status.reward_balance == 5 * 10**18
    assert status.bonus_reward_balance is None
    assert status.deposit_incentive_id == "0x" + "00" * 32


@pytest.mark.asyncio
async def test_plan_farm_enter_adds_approval_when_missing():
    approved = await _adapter().plan_farm_enter(TOKEN_ID, OWNER, estimate_gas=False)
    assert approved.step_names == ["enter_farming"]
    assert approved.steps[0].to == FARMING_CENTER

    unapproved = await _adapter(_FakeReader(approved_for=ZERO)).plan_farm_enter(
        TOKEN_ID, OWNER, estimate_gas=False
    )
    assert unapproved.step_names == ["approve_for_farming", "enter_farming"]
    assert unapproved.steps[0].to == NPM


@pytest.mark.asyncio
async def test_plan_farm_collect_claims_reward_and_bonus():
    plan = await _adapter(_FakeReader(farmed_in=FARMING_CENTER)).plan_farm_collect(
        TOKEN_ID, OWNER, estimate_gas=False
    )
    assert plan.step_names == ["collect_rewards", "claim_reward"]
    claim = bytes.fromhex(plan.steps[1].data[2:])
    assert _word(claim, 2) == MAX_UINT128

    with_bonus = await _adapter(
        _FakeReader(farmed_in=FARMING_CENTER, bonus_reward=WHYPE)
    ).plan_farm_collect(TOKEN_ID, OWNER, estimate_gas=False)
    assert with_bonus.step_names == ["collect_rewards", "claim_reward", "claim_bonus_reward"]


@pytest.mark.asyncio
async def test_plan_farm_exit_requires_farmed_position():
    with pytest.raises(ValueError):
        await _adapter().plan_farm_exit(TOKEN_ID, OWNER)
    plan = await _adapter(_FakeReader(farmed_in=FARMING_CENTER)).plan_farm_exit(
        TOKEN_ID, OWNER, estimate_gas=False
    )
    assert plan.step_names == ["exit_farming"]


@pytest.mark.asyncio
async def test_plan_farm_claim_defaults_to_everything():
    plan = await _adapter().plan_farm_claim(KITTEN, OTHER, estimate_gas=False)
    assert plan.sender == OTHER
    assert _word(bytes.fromhex(plan.steps[0].data[2:]), 2) == MAX_UINT128


@pytest.mark.asyncio
async def test_value_position():
    valuation = await _adapter().value_position(TOKEN_ID)
    assert valuation.owner == OWNER
    assert valuation.rewards.amount1.amount == 2 * 10**6
    assert valuation.principal.amount0.amount == 10**18
    assert valuation.total_value_in_quote == (
        valuation.rewards.value_in_quote + valuation.principal.value_in_quote
    )
