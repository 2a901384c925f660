from __future__ import annotations

import asyncio
from typing import Any

from kittenswap_rebalance.adapters.kittenswap_adapter.types import (
    ApprovePlan,
    FarmingStatus,
    PositionStatus,
    RebalancePlan,
    RebalanceRequest,
    SwapPlan,
    SwapRequest,
)
from kittenswap_rebalance.core.adapters.BaseAdapter import BaseAdapter
from kittenswap_rebalance.core.adapters.models import (
    DEFAULT_POLICY,
    CallPlan,
    CallStep,
    RebalancePolicy,
)
from kittenswap_rebalance.core.constants import MAX_UINT128, MAX_UINT256
from kittenswap_rebalance.core.constants.kittenswap import (
    KITTENSWAP_CHAIN_ID,
    KITTENSWAP_CONTRACTS,
    MAX_OWNED_TOKEN_IDS,
    KittenswapContracts,
)
from kittenswap_rebalance.core.errors import (
    InvalidAddress,
    MalformedDecimal,
    NonPositiveAmount,
    SimulationRevert,
)
from kittenswap_rebalance.core.types import (
    Address,
    IncentiveKey,
    PoolState,
    Position,
    PositionContext,
    PositionValuation,
    Quote,
    TokenInfo,
)
from kittenswap_rebalance.core.utils.abi_codec import (
    CollectParams,
    DecreaseLiquidityParams,
    ExactInputSingleParams,
    MintParams,
    build_approve_calldata,
    build_approve_for_farming_calldata,
    build_burn_calldata,
    build_claim_reward_calldata,
    build_collect_calldata,
    build_collect_rewards_calldata,
    build_decrease_liquidity_calldata,
    build_enter_farming_calldata,
    build_exact_input_single_calldata,
    build_exit_farming_calldata,
    build_mint_calldata,
    decode_address,
    decode_erc20_text,
    decode_global_state,
    decode_incentive_key,
    decode_output,
    decode_position,
    decode_quote,
    decode_uint,
    encode_call,
    is_transfer_failure,
    to_hex_data,
)
from kittenswap_rebalance.core.utils.range_advisor import suggest_range
from kittenswap_rebalance.core.utils.rebalance import balance_hint, evaluate
from kittenswap_rebalance.core.utils.rpc import ChainReader, ensure_chain_id
from kittenswap_rebalance.core.utils.tick_math import price_from_tick
from kittenswap_rebalance.core.utils.units import TokenUnits, apply_bps_floor, to_units
from kittenswap_rebalance.core.utils.valuation import value_position


def _optional_address(raw: str) -> Address | None:
    address = Address.parse(raw)
    return None if address.is_zero else address


class KittenswapAdapter(BaseAdapter):
    """Read-only planner for Kittenswap positions, swaps and farming.

    Every ``plan_*`` method returns full calldata for the caller to sign
    elsewhere; nothing here signs or broadcasts.
    """

    adapter_type = "KITTENSWAP"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        reader: ChainReader,
        contracts: KittenswapContracts = KITTENSWAP_CONTRACTS,
        chain_id: int = KITTENSWAP_CHAIN_ID,
        policy: RebalancePolicy = DEFAULT_POLICY,
    ) -> None:
        super().__init__("kittenswap_adapter", config, chain_id=chain_id)
        self.reader = reader
        self.contracts = contracts
        self.policy = policy
        self.position_manager = Address.parse(contracts.position_manager)
        self.router = Address.parse(contracts.router)
        self.farming_center = Address.parse(contracts.farming_center)

    async def _read(
        self, to: str, name: str, *args: Any, from_address: str | None = None
    ) -> bytes:
        return await self.reader.call(to, encode_call(name, *args), from_address=from_address)

    def _resolve_policy(
        self, policy: RebalancePolicy | None = None, **overrides: int | None
    ) -> RebalancePolicy:
        return (policy or self.policy).override(**overrides)

    # --- chain reads ------------------------------------------------------

    async def verify_chain(self) -> int:
        return await ensure_chain_id(self.reader, self.chain_id)

    async def deadline(self, seconds: int) -> int:
        return await self.reader.latest_block_timestamp() + seconds

    async def owner_of(self, token_id: int) -> Address:
        out = await self._read(self.position_manager, "ownerOf", token_id)
        return decode_address("ownerOf", out)

    async def read_position(self, token_id: int) -> Position:
        out = await self._read(self.position_manager, "positions", token_id)
        return decode_position(token_id, out)

    async def pool_by_pair(self, token_a: str, token_b: str) -> Address | None:
        out = await self._read(self.contracts.factory, "poolByPair", token_a, token_b)
        return _optional_address(decode_output("poolByPair", out)[0])

    async def read_pool_state(self, pool: Address) -> PoolState:
        state_raw, spacing_raw = await asyncio.gather(
            self._read(pool, "globalState"), self._read(pool, "tickSpacing")
        )
        return PoolState(
            address=pool,
            tick_spacing=decode_output("tickSpacing", spacing_raw)[0],
            **decode_global_state(state_raw),
        )

    async def read_token(self, token: Address, owner: Address | None = None) -> TokenInfo:
        reads = [
            self._read(token, "symbol"),
            self._read(token, "name"),
            self._read(token, "decimals"),
        ]
        if owner is not None:
            reads.append(self._read(token, "balanceOf", owner))
        results = await asyncio.gather(*reads)
        decimals = decode_uint("decimals", results[2])
        balance = (
            TokenUnits(decode_uint("balanceOf", results[3]), decimals)
            if owner is not None
            else None
        )
        return TokenInfo(
            address=token,
            symbol=decode_erc20_text("symbol", results[0]),
            name=decode_erc20_text("name", results[1]),
            decimals=decimals,
            balance=balance,
        )

    async def allowance(self, token: Address, owner: Address, spender: Address) -> int:
        out = await self._read(token, "allowance", owner, spender)
        return decode_uint("allowance", out)

    async def list_owned_token_ids(self, owner: Address) -> list[int]:
        out = await self._read(self.position_manager, "balanceOf", owner)
        count = decode_uint("balanceOf", out)
        if count > MAX_OWNED_TOKEN_IDS:
            raise ValueError(
                f"Wallet holds {count} position NFTs, above the enumeration limit of {MAX_OWNED_TOKEN_IDS}"
            )
        results = await asyncio.gather(
            *(
                self._read(self.position_manager, "tokenOfOwnerByIndex", owner, i)
                for i in range(count)
            )
        )
        return [decode_uint("tokenOfOwnerByIndex", r) for r in results]

    async def router_wnative_token(self) -> Address:
        out = await self._read(self.router, "WNativeToken")
        return decode_address("WNativeToken", out)

    async def load_position_context(
        self, token_id: int, owner: Address | None = None
    ) -> PositionContext:
        """Position, pool state and token metadata; balances are read for ``owner``."""
        position, nft_owner = await asyncio.gather(
            self.read_position(token_id), self.owner_of(token_id)
        )
        pool = await self.pool_by_pair(position.token0, position.token1)
        if pool is None:
            raise InvalidAddress(
                f"No Kittenswap pool for {position.token0}/{position.token1}",
                operation="poolByPair",
                raw_input=(position.token0, position.token1),
            )
        pool_state, token0, token1 = await asyncio.gather(
            self.read_pool_state(pool),
            self.read_token(position.token0, owner),
            self.read_token(position.token1, owner),
        )
        return PositionContext(
            token_id=token_id,
            owner=nft_owner,
            position=position,
            pool_state=pool_state,
            token0=token0,
            token1=token1,
            price_token1_per_token0=price_from_tick(
                pool_state.tick, token0.decimals, token1.decimals
            ),
        )

    async def position_status(
        self,
        token_id: int,
        *,
        policy: RebalancePolicy | None = None,
        edge_bps: int | None = None,
        width_bump_ticks: int = 0,
    ) -> PositionStatus:
        eff = self._resolve_policy(policy, edge_bps=edge_bps)
        ctx = await self.load_position_context(token_id)
        pos, tick = ctx.position, ctx.pool_state.tick
        return PositionStatus(
            context=ctx,
            evaluation=evaluate(tick, pos.tick_lower, pos.tick_upper, eff.edge_bps),
            suggestion=suggest_range(
                tick,
                pos.tick_lower,
                pos.tick_upper,
                ctx.pool_state.tick_spacing,
                width_bump_ticks,
            ),
        )

    async def quote_exact_input_single(
        self,
        token_in: Address,
        token_out: Address,
        deployer: Address,
        amount_in: int,
        limit_sqrt_price: int = 0,
    ) -> Quote:
        out = await self._read(
            self.contracts.quoter_v2,
            "quoteExactInputSingle",
            (token_in, token_out, deployer, amount_in, limit_sqrt_price),
        )
        q = decode_quote(out)
        return Quote(
            token_in=token_in,
            token_out=token_out,
            amount_in=q["amount_in"],
            amount_out=q["amount_out"],
            sqrt_price_x96_after=q["sqrt_price_x96_after"],
            initialized_ticks_crossed=q["initialized_ticks_crossed"],
            gas_estimate=q["gas_estimate"],
            fee_tier=q["fee"],
        )

    # --- plans ------------------------------------------------------------

    def _step(self, name: str, to: str, data: bytes, value: int = 0) -> CallStep:
        return CallStep(step=name, to=to, value=value, data=to_hex_data(data))

    async def annotate_gas(self, plan: CallPlan) -> CallPlan:
        """Attach per-step gas estimates and the current gas price.

        Steps are estimated one after another. A later step may revert in
        simulation because it depends on an earlier step landing first; that
        revert is recorded on the step instead of aborting the plan.
        """
        steps: list[CallStep] = []
        for step in plan.steps:
            try:
                gas = await self.reader.estimate_gas(
                    step.to,
                    bytes.fromhex(step.data[2:]),
                    from_address=plan.sender,
                    value=step.value,
                )
            except SimulationRevert as exc:
                self.logger.info(f"Gas estimate for {step.step} reverted: {exc.reason}")
                steps.append(step.model_copy(update={"gas_error": exc.reason or exc.message}))
                continue
            steps.append(step.model_copy(update={"gas_estimate": gas}))
        gas_price = await self.reader.gas_price()
        return plan.model_copy(
            update={
                "steps": steps,
                "gas_price_wei": gas_price,
                "transfer_failure_hint": any(is_transfer_failure(s.gas_error) for s in steps),
            }
        )

    async def _finish(self, plan: CallPlan, estimate_gas: bool) -> CallPlan:
        return await self.annotate_gas(plan) if estimate_gas else plan

    async def plan_approve(
        self,
        token: Address,
        owner: Address,
        amount: str | None = None,
        *,
        spender: Address | None = None,
        approve_max: bool = False,
        estimate_gas: bool = True,
    ) -> ApprovePlan:
        await self.verify_chain()
        spender = spender or self.router
        info, current = await asyncio.gather(
            self.read_token(token, owner), self.allowance(token, owner, spender)
        )
        if approve_max:
            units = TokenUnits(MAX_UINT256, info.decimals)
        elif amount is None:
            raise NonPositiveAmount(
                "approve amount is required unless approve_max is set",
                operation="plan_approve",
            )
        else:
            units = to_units(amount, info.decimals, require_positive=True)

        plan = CallPlan(
            chain_id=self.chain_id,
            sender=owner,
            steps=[self._step("approve", token, build_approve_calldata(spender, units.amount))],
        )
        return ApprovePlan(
            token=info,
            spender=spender,
            amount=units,
            current_allowance=TokenUnits(current, info.decimals),
            plan=await self._finish(plan, estimate_gas),
        )

    async def plan_swap(
        self,
        request: SwapRequest,
        *,
        policy: RebalancePolicy | None = None,
        slippage_bps: int | None = None,
        deadline_seconds: int | None = None,
        estimate_gas: bool = True,
    ) -> SwapPlan:
        if request.token_in == request.token_out:
            raise InvalidAddress(
                "token_in and token_out must differ",
                operation="plan_swap",
                raw_input=request.token_in,
            )
        await self.verify_chain()
        eff = self._resolve_policy(
            policy, slippage_bps=slippage_bps, deadline_seconds=deadline_seconds
        )
        owner = request.owner
        recipient = request.recipient or owner

        token_in, token_out = await asyncio.gather(
            self.read_token(request.token_in, owner),
            self.read_token(request.token_out, owner),
        )
        amount_in = to_units(
            request.amount_in, token_in.decimals, require_positive=True, field="amount_in"
        )

        if request.native_in:
            wnative = await self.router_wnative_token()
            if token_in.address != wnative:
                raise InvalidAddress(
                    f"native-in swaps require token_in == router WNativeToken ({wnative})",
                    operation="plan_swap",
                    raw_input=token_in.address,
                )

        quote = await self.quote_exact_input_single(
            token_in.address,
            token_out.address,
            request.deployer,
            amount_in.amount,
            request.limit_sqrt_price,
        )
        amount_out_min = apply_bps_floor(quote.amount_out, eff.slippage_bps)
        deadline, pool = await asyncio.gather(
            self.deadline(eff.deadline_seconds),
            self.pool_by_pair(token_in.address, token_out.address),
        )

        allowance: TokenUnits | None = None
        approval_required = False
        if not request.native_in:
            allowance = TokenUnits(
                await self.allowance(token_in.address, owner, self.router),
                token_in.decimals,
            )
            approval_required = allowance.amount < amount_in.amount

        steps: list[CallStep] = []
        if approval_required:
            approve_amount = MAX_UINT256 if request.approve_max else amount_in.amount
            steps.append(
                self._step(
                    "approve_token_in",
                    token_in.address,
                    build_approve_calldata(self.router, approve_amount),
                )
            )
        swap_data = build_exact_input_single_calldata(
            ExactInputSingleParams(
                token_in=token_in.address,
                token_out=token_out.address,
                deployer=request.deployer,
                recipient=recipient,
                deadline=deadline,
                amount_in=amount_in.amount,
                amount_out_minimum=amount_out_min,
                limit_sqrt_price=request.limit_sqrt_price,
            )
        )
        steps.append(
            self._step(
                "swap_exact_input_single",
                self.router,
                swap_data,
                value=amount_in.amount if request.native_in else 0,
            )
        )

        plan = CallPlan(chain_id=self.chain_id, sender=owner, steps=steps)
        return SwapPlan(
            token_in=token_in,
            token_out=token_out,
            quote=quote,
            amount_out_minimum=TokenUnits(amount_out_min, token_out.decimals),
            recipient=recipient,
            deadline=deadline,
            policy=eff,
            pool=pool,
            native_in=request.native_in,
            allowance=allowance,
            approval_required=approval_required,
            plan=await self._finish(plan, estimate_gas),
        )

    async def plan_rebalance(
        self,
        request: RebalanceRequest,
        *,
        policy: RebalancePolicy | None = None,
        edge_bps: int | None = None,
        slippage_bps: int | None = None,
        deadline_seconds: int | None = None,
        estimate_gas: bool = True,
    ) -> RebalancePlan:
        """Exit the current position and, optionally, mint a re-centered one.

        Steps: collect fees, remove all liquidity, collect the withdrawn
        tokens, burn the emptied NFT (only with ``allow_burn``), then mint at
        the suggested range when both deposit amounts are given.
        """
        if (request.amount0 is None) != (request.amount1 is None):
            raise MalformedDecimal(
                "amount0 and amount1 must be provided together",
                operation="plan_rebalance",
                raw_input=(request.amount0, request.amount1),
            )
        await self.verify_chain()
        eff = self._resolve_policy(
            policy,
            edge_bps=edge_bps,
            slippage_bps=slippage_bps,
            deadline_seconds=deadline_seconds,
        )
        owner = request.owner
        recipient = request.recipient or owner

        ctx = await self.load_position_context(request.token_id, owner=owner)
        if ctx.owner != owner:
            self.logger.warning(
                f"Position {request.token_id} is owned by {ctx.owner}, not {owner}; plan will revert if sent from {owner}"
            )
        pos, tick = ctx.position, ctx.pool_state.tick
        evaluation = evaluate(tick, pos.tick_lower, pos.tick_upper, eff.edge_bps)
        suggestion = suggest_range(
            tick,
            pos.tick_lower,
            pos.tick_upper,
            ctx.pool_state.tick_spacing,
            request.width_bump_ticks,
        )
        deadline = await self.deadline(eff.deadline_seconds)

        collect = build_collect_calldata(
            CollectParams(token_id=pos.token_id, recipient=recipient)
        )
        steps = [
            self._step("collect_before", self.position_manager, collect),
            self._step(
                "decrease_liquidity",
                self.position_manager,
                build_decrease_liquidity_calldata(
                    DecreaseLiquidityParams(
                        token_id=pos.token_id,
                        liquidity=pos.liquidity,
                        amount0_min=0,
                        amount1_min=0,
                        deadline=deadline,
                    )
                ),
            ),
            self._step("collect_after", self.position_manager, collect),
        ]
        if request.allow_burn:
            steps.append(
                self._step(
                    "burn_old_nft", self.position_manager, build_burn_calldata(pos.token_id)
                )
            )

        mint: MintParams | None = None
        if request.amount0 is not None and request.amount1 is not None:
            amount0 = to_units(
                request.amount0, ctx.token0.decimals, require_positive=True, field="amount0"
            )
            amount1 = to_units(
                request.amount1, ctx.token1.decimals, require_positive=True, field="amount1"
            )
            mint = MintParams(
                token0=pos.token0,
                token1=pos.token1,
                deployer=pos.deployer,
                tick_lower=suggestion.tick_lower,
                tick_upper=suggestion.tick_upper,
                amount0_desired=amount0.amount,
                amount1_desired=amount1.amount,
                amount0_min=apply_bps_floor(amount0.amount, eff.slippage_bps),
                amount1_min=apply_bps_floor(amount1.amount, eff.slippage_bps),
                recipient=recipient,
                deadline=deadline,
            )
            steps.append(
                self._step(
                    "mint_new_position", self.position_manager, build_mint_calldata(mint)
                )
            )

        hint = None
        if ctx.token0.balance is not None and ctx.token1.balance is not None:
            hint = balance_hint(
                ctx.token0.balance.to_decimal(),
                ctx.token1.balance.to_decimal(),
                ctx.price_token1_per_token0,
            )

        plan = CallPlan(chain_id=self.chain_id, sender=owner, steps=steps)
        return RebalancePlan(
            context=ctx,
            evaluation=evaluation,
            suggestion=suggestion,
            recipient=recipient,
            deadline=deadline,
            policy=eff,
            burn_included=request.allow_burn,
            mint=mint,
            balance_hint=hint,
            plan=await self._finish(plan, estimate_gas),
        )

    # --- farming ----------------------------------------------------------

    async def _reward_balance(self, owner: Address, reward_token: Address) -> int:
        out = await self._read(
            self.contracts.eternal_farming, "rewards", owner, reward_token
        )
        return decode_uint("rewards", out)

    async def farming_status(
        self, token_id: int, owner: Address | None = None
    ) -> FarmingStatus:
        position, nft_owner, center_raw = await asyncio.gather(
            self.read_position(token_id),
            self.owner_of(token_id),
            self._read(self.position_manager, "farmingCenter"),
        )
        pool = await self.pool_by_pair(position.token0, position.token1)
        if pool is None:
            raise InvalidAddress(
                f"No Kittenswap pool for {position.token0}/{position.token1}",
                operation="poolByPair",
                raw_input=(position.token0, position.token1),
            )
        approved_raw, farmed_raw, key_raw, deposit_raw = await asyncio.gather(
            self._read(self.position_manager, "farmingApprovals", token_id),
            self._read(self.position_manager, "tokenFarmedIn", token_id),
            self._read(self.contracts.eternal_farming, "incentiveKeys", pool),
            self._read(self.farming_center, "deposits", token_id),
        )
        key: IncentiveKey | None = decode_incentive_key(key_raw)
        if key.pool.is_zero or key.reward_token.is_zero:
            key = None

        owner = owner or nft_owner
        reward_balance = bonus_balance = None
        if key is not None:
            reads = [self._reward_balance(owner, key.reward_token)]
            if not key.bonus_reward_token.is_zero:
                reads.append(self._reward_balance(owner, key.bonus_reward_token))
            balances = await asyncio.gather(*reads)
            reward_balance = balances[0]
            bonus_balance = balances[1] if len(balances) > 1 else None

        return FarmingStatus(
            token_id=token_id,
            owner=owner,
            pool=pool,
            farming_center=decode_address("farmingCenter", center_raw),
            approved_for=_optional_address(decode_output("farmingApprovals", approved_raw)[0]),
            farmed_in=_optional_address(decode_output("tokenFarmedIn", farmed_raw)[0]),
            incentive_key=key,
            deposit_incentive_id="0x" + decode_output("deposits", deposit_raw)[0].hex(),
            reward_balance=reward_balance,
            bonus_reward_balance=bonus_balance,
        )

    def _require_key(self, status: FarmingStatus, key: IncentiveKey | None) -> IncentiveKey:
        key = key or status.incentive_key
        if key is None:
            raise ValueError(f"No active farming incentive for pool {status.pool}")
        return key

    async def plan_farm_approve(
        self, token_id: int, owner: Address, *, estimate_gas: bool = True
    ) -> CallPlan:
        await self.verify_chain()
        plan = CallPlan(
            chain_id=self.chain_id,
            sender=owner,
            steps=[
                self._step(
                    "approve_for_farming",
                    self.position_manager,
                    build_approve_for_farming_calldata(token_id, self.farming_center),
                )
            ],
        )
        return await self._finish(plan, estimate_gas)

    async def plan_farm_enter(
        self,
        token_id: int,
        owner: Address,
        *,
        key: IncentiveKey | None = None,
        estimate_gas: bool = True,
    ) -> CallPlan:
        await self.verify_chain()
        status = await self.farming_status(token_id, owner)
        if status.is_farmed:
            raise ValueError(f"Position {token_id} is already farmed in {status.farmed_in}")
        key = self._require_key(status, key)

        steps: list[CallStep] = []
        if not status.is_approved:
            steps.append(
                self._step(
                    "approve_for_farming",
                    self.position_manager,
                    build_approve_for_farming_calldata(token_id, self.farming_center),
                )
            )
        steps.append(
            self._step(
                "enter_farming",
                self.farming_center,
                build_enter_farming_calldata(key, token_id),
            )
        )
        plan = CallPlan(chain_id=self.chain_id, sender=owner, steps=steps)
        return await self._finish(plan, estimate_gas)

    async def plan_farm_collect(
        self,
        token_id: int,
        owner: Address,
        *,
        key: IncentiveKey | None = None,
        estimate_gas: bool = True,
    ) -> CallPlan:
        """Accrue farming rewards for ``token_id`` and claim them to ``owner``."""
        await self.verify_chain()
        status = await self.farming_status(token_id, owner)
        key = self._require_key(status, key)

        steps = [
            self._step(
                "collect_rewards",
                self.farming_center,
                build_collect_rewards_calldata(key, token_id),
            ),
            self._step(
                "claim_reward",
                self.farming_center,
                build_claim_reward_calldata(key.reward_token, owner, MAX_UINT128),
            ),
        ]
        if not key.bonus_reward_token.is_zero:
            steps.append(
                self._step(
                    "claim_bonus_reward",
                    self.farming_center,
                    build_claim_reward_calldata(key.bonus_reward_token, owner, MAX_UINT128),
                )
            )
        plan = CallPlan(chain_id=self.chain_id, sender=owner, steps=steps)
        return await self._finish(plan, estimate_gas)

    async def plan_farm_claim(
        self,
        reward_token: Address,
        owner: Address,
        amount: int | None = None,
        *,
        estimate_gas: bool = True,
    ) -> CallPlan:
        await self.verify_chain()
        plan = CallPlan(
            chain_id=self.chain_id,
            sender=owner,
            steps=[
                self._step(
                    "claim_reward",
                    self.farming_center,
                    build_claim_reward_calldata(
                        reward_token, owner, MAX_UINT128 if amount is None else amount
                    ),
                )
            ],
        )
        return await self._finish(plan, estimate_gas)

    async def plan_farm_exit(
        self,
        token_id: int,
        owner: Address,
        *,
        key: IncentiveKey | None = None,
        estimate_gas: bool = True,
    ) -> CallPlan:
        await self.verify_chain()
        status = await self.farming_status(token_id, owner)
        if not status.is_farmed:
            raise ValueError(f"Position {token_id} is not farmed")
        key = self._require_key(status, key)
        plan = CallPlan(
            chain_id=self.chain_id,
            sender=owner,
            steps=[
                self._step(
                    "exit_farming",
                    self.farming_center,
                    build_exit_farming_calldata(key, token_id),
                )
            ],
        )
        return await self._finish(plan, estimate_gas)

    # --- valuation --------------------------------------------------------

    async def value_position(
        self,
        token_id: int,
        owner: Address | None = None,
        *,
        policy: RebalancePolicy | None = None,
        quote_index: int = 1,
    ) -> PositionValuation:
        await self.verify_chain()
        eff = self._resolve_policy(policy)
        ctx = await self.load_position_context(token_id)
        deadline = await self.deadline(eff.deadline_seconds)
        return await value_position(
            self.reader,
            position_manager=self.position_manager,
            position=ctx.position,
            owner=owner or ctx.owner,
            price_token1_per_token0=ctx.price_token1_per_token0,
            deadline=deadline,
            decimals0=ctx.token0.decimals,
            decimals1=ctx.token1.decimals,
            quote_index=quote_index,
        )
