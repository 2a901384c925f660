"""Command line entrypoint for the Kittenswap planner.

Every command prints a single JSON document. Plans are never signed or
broadcast; the ``plan.steps[*].data`` hex is meant to be handed to a signer.

Usage:
  krlp health
  krlp status 123
  krlp plan 123 --owner main --amount0 1.5 --amount1 40
  krlp swap-plan 0x5555... 0xb883... 1.0 --owner main
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from dataclasses import fields, is_dataclass
from decimal import Decimal
from typing import Any

import click
from loguru import logger
from pydantic import BaseModel

from kittenswap_rebalance.adapters.kittenswap_adapter import (
    FarmingStatus,
    KittenswapAdapter,
    RebalanceRequest,
    SwapRequest,
)
from kittenswap_rebalance.core.adapters.models import CallPlan, RebalancePolicy
from kittenswap_rebalance.core.config import (
    get_accounts,
    get_contract_overrides,
    get_policy,
    get_rpc_settings,
    load_config,
    resolve_account,
)
from kittenswap_rebalance.core.constants import ZERO_ADDRESS
from kittenswap_rebalance.core.constants.chains import CHAIN_EXPLORER_URLS
from kittenswap_rebalance.core.constants.kittenswap import (
    KITTENSWAP_CHAIN_ID,
    KittenswapContracts,
)
from kittenswap_rebalance.core.errors import InvalidAddress, KittenswapError
from kittenswap_rebalance.core.types import (
    Address,
    PositionContext,
    PositionValuation,
    parse_token_id,
)
from kittenswap_rebalance.core.utils.rpc import RetryPolicy, reader_from_chain_id
from kittenswap_rebalance.core.utils.units import TokenUnits, to_units

# JSON numbers above this lose precision in most consumers.
_MAX_SAFE_INT = 2**53 - 1


def _jsonable(obj: Any) -> Any:
    if isinstance(obj, CallPlan):
        data = _jsonable(obj.model_dump())
        data["total_gas"] = obj.total_gas
        data["estimated_fee_wei"] = _jsonable(obj.estimated_fee_wei)
        data["transactions"] = _jsonable(obj.transactions())
        return data
    if isinstance(obj, BaseModel):
        return _jsonable(obj.model_dump())
    if isinstance(obj, TokenUnits):
        return {"raw": str(obj.amount), "decimals": obj.decimals, "formatted": str(obj)}
    if is_dataclass(obj) and not isinstance(obj, type):
        data = {f.name: _jsonable(getattr(obj, f.name)) for f in fields(obj)}
        if isinstance(obj, FarmingStatus):
            data["is_approved"] = obj.is_approved
            data["is_farmed"] = obj.is_farmed
        if isinstance(obj, PositionContext):
            data["price_token0_per_token1"] = _jsonable(obj.price_token0_per_token1)
        if isinstance(obj, PositionValuation):
            data["total_value_in_quote"] = _jsonable(obj.total_value_in_quote)
        return data
    if isinstance(obj, dict):
        return {str(k): _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, list | tuple):
        return [_jsonable(v) for v in obj]
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, int) and not isinstance(obj, bool) and abs(obj) > _MAX_SAFE_INT:
        return str(obj)
    return obj


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _fail(error: dict[str, Any]) -> None:
    _echo_json({"ok": False, "error": error})
    sys.exit(1)


def _contracts() -> KittenswapContracts:
    return KittenswapContracts.from_mapping(get_contract_overrides())


def _policy(
    name: str | None,
    *,
    edge_bps: int | None = None,
    slippage_bps: int | None = None,
    deadline_seconds: int | None = None,
) -> RebalancePolicy:
    _, values = get_policy(
        name,
        edge_bps=edge_bps,
        slippage_bps=slippage_bps,
        deadline_seconds=deadline_seconds,
    )
    return RebalancePolicy(**values)


def _account(ref: str | None, *, field: str = "owner", required: bool = True) -> Address | None:
    raw = resolve_account(ref)
    if raw is None:
        if required:
            raise InvalidAddress(
                f"No {field} given and no default_account configured",
                operation=f"resolve_account({field})",
            )
        return None
    return Address.parse(raw, field=field)


def _run(fn: Callable[[KittenswapAdapter], Awaitable[Any]]) -> None:
    """Open a reader on the configured HyperEVM RPC and print ``fn``'s result."""

    async def _main() -> Any:
        policy = RetryPolicy.from_settings(get_rpc_settings())
        async with reader_from_chain_id(KITTENSWAP_CHAIN_ID, retry_policy=policy) as reader:
            adapter = KittenswapAdapter(reader=reader, contracts=_contracts())
            try:
                return await fn(adapter)
            finally:
                await adapter.close()

    try:
        result = asyncio.run(_main())
    except KittenswapError as exc:
        logger.debug(f"Command failed: {exc!r}")
        _fail(exc.to_dict())
        return
    except (KeyError, ValueError) as exc:
        _fail({"kind": type(exc).__name__, "message": str(exc)})
        return
    _echo_json({"ok": True, "result": _jsonable(result)})


_policy_options = [
    click.option("--policy", "policy_name", default=None, help="Named policy from config."),
    click.option("--edge-bps", type=int, default=None),
    click.option("--slippage-bps", type=int, default=None),
    click.option("--deadline-seconds", type=int, default=None),
]


def policy_options(fn):
    for option in reversed(_policy_options):
        fn = option(fn)
    return fn


@click.group(name="krlp", help="Kittenswap LP planner for HyperEVM (read-only, JSON output).")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config.json (defaults to KITTENSWAP_CONFIG_PATH or the project root).",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
)
def cli(config_path: str | None, log_level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=str(log_level).upper())
    if config_path:
        load_config(config_path, require_exists=True)


@cli.command(name="health", help="Check RPC chain id and latest block.")
def health_cmd() -> None:
    async def _health(adapter: KittenswapAdapter) -> dict[str, Any]:
        chain_id = await adapter.verify_chain()
        block, timestamp = await asyncio.gather(
            adapter.reader.block_number(), adapter.reader.latest_block_timestamp()
        )
        return {"chain_id": chain_id, "block_number": block, "block_timestamp": timestamp}

    _run(_health)


@cli.command(name="contracts", help="Show the Kittenswap deployment in use.")
def contracts_cmd() -> None:
    result = {
        "chain_id": KITTENSWAP_CHAIN_ID,
        "explorer": CHAIN_EXPLORER_URLS.get(KITTENSWAP_CHAIN_ID),
        **_contracts().as_dict(),
    }
    _echo_json({"ok": True, "result": result})


@cli.command(name="accounts", help="Show configured account labels.")
def accounts_cmd() -> None:
    _echo_json({"ok": True, "result": get_accounts()})


@cli.command(name="policy", help="Show the resolved rebalance policy.")
@policy_options
def policy_cmd(
    policy_name: str | None,
    edge_bps: int | None,
    slippage_bps: int | None,
    deadline_seconds: int | None,
) -> None:
    try:
        name, values = get_policy(
            policy_name,
            edge_bps=edge_bps,
            slippage_bps=slippage_bps,
            deadline_seconds=deadline_seconds,
        )
    except KeyError as exc:
        _fail({"kind": "KeyError", "message": str(exc)})
        return
    _echo_json({"ok": True, "result": {"name": name, **values}})


@cli.command(name="positions", help="List position NFT ids held by an account.")
@click.option("--owner", default=None, help="Account label or address.")
def positions_cmd(owner: str | None) -> None:
    def _go(adapter: KittenswapAdapter):
        return adapter.list_owned_token_ids(_account(owner))

    _run(_go)


@cli.command(name="position", help="Raw position, pool and token data.")
@click.argument("token_id")
def position_cmd(token_id: str) -> None:
    _run(lambda adapter: adapter.load_position_context(parse_token_id(token_id)))


@cli.command(name="status", help="Range health and suggested range for a position.")
@click.argument("token_id")
@click.option("--width-bump-ticks", type=int, default=0, show_default=True)
@policy_options
def status_cmd(
    token_id: str,
    width_bump_ticks: int,
    policy_name: str | None,
    edge_bps: int | None,
    slippage_bps: int | None,
    deadline_seconds: int | None,
) -> None:
    def _go(adapter: KittenswapAdapter):
        return adapter.position_status(
            parse_token_id(token_id),
            policy=_policy(policy_name, edge_bps=edge_bps),
            width_bump_ticks=width_bump_ticks,
        )

    _run(_go)


@cli.command(name="quote", help="Quote a single-hop exact-input swap of a decimal amount.")
@click.argument("token_in")
@click.argument("token_out")
@click.argument("amount_in")
@click.option("--deployer", default=ZERO_ADDRESS, show_default=True)
def quote_cmd(token_in: str, token_out: str, amount_in: str, deployer: str) -> None:
    async def _go(adapter: KittenswapAdapter):
        token = Address.parse(token_in, field="token_in")
        info = await adapter.read_token(token)
        units = to_units(amount_in, info.decimals, require_positive=True, field="amount_in")
        return await adapter.quote_exact_input_single(
            token,
            Address.parse(token_out, field="token_out"),
            Address.parse(deployer, field="deployer"),
            units.amount,
        )

    _run(_go)


@cli.command(name="approve-plan", help="Plan an ERC-20 approval (router by default).")
@click.argument("token")
@click.argument("amount", required=False)
@click.option("--owner", default=None)
@click.option("--spender", default=None)
@click.option("--max", "approve_max", is_flag=True, default=False)
@click.option("--no-gas", is_flag=True, default=False)
def approve_plan_cmd(
    token: str,
    amount: str | None,
    owner: str | None,
    spender: str | None,
    approve_max: bool,
    no_gas: bool,
) -> None:
    def _go(adapter: KittenswapAdapter):
        return adapter.plan_approve(
            Address.parse(token, field="token"),
            _account(owner),
            amount,
            spender=Address.parse(spender, field="spender") if spender else None,
            approve_max=approve_max,
            estimate_gas=not no_gas,
        )

    _run(_go)


@cli.command(name="swap-plan", help="Plan a single-hop exactInputSingle swap.")
@click.argument("token_in")
@click.argument("token_out")
@click.argument("amount_in")
@click.option("--owner", default=None)
@click.option("--recipient", default=None)
@click.option("--deployer", default=ZERO_ADDRESS, show_default=True)
@click.option("--native-in", is_flag=True, default=False, help="Pay with native HYPE.")
@click.option("--approve-max", is_flag=True, default=False)
@click.option("--no-gas", is_flag=True, default=False)
@policy_options
def swap_plan_cmd(
    token_in: str,
    token_out: str,
    amount_in: str,
    owner: str | None,
    recipient: str | None,
    deployer: str,
    native_in: bool,
    approve_max: bool,
    no_gas: bool,
    policy_name: str | None,
    edge_bps: int | None,
    slippage_bps: int | None,
    deadline_seconds: int | None,
) -> None:
    def _go(adapter: KittenswapAdapter):
        request = SwapRequest(
            token_in=Address.parse(token_in, field="token_in"),
            token_out=Address.parse(token_out, field="token_out"),
            deployer=Address.parse(deployer, field="deployer"),
            amount_in=amount_in,
            owner=_account(owner),
            recipient=_account(recipient, field="recipient") if recipient else None,
            native_in=native_in,
            approve_max=approve_max,
        )
        return adapter.plan_swap(
            request,
            policy=_policy(
                policy_name, slippage_bps=slippage_bps, deadline_seconds=deadline_seconds
            ),
            estimate_gas=not no_gas,
        )

    _run(_go)


@cli.command(name="plan", help="Plan a rebalance: exit the position and optionally re-mint.")
@click.argument("token_id")
@click.option("--owner", default=None)
@click.option("--recipient", default=None)
@click.option("--amount0", default=None, help="token0 to deposit in the new position.")
@click.option("--amount1", default=None, help="token1 to deposit in the new position.")
@click.option("--allow-burn", is_flag=True, default=False, help="Burn the emptied NFT.")
@click.option("--width-bump-ticks", type=int, default=0, show_default=True)
@click.option("--no-gas", is_flag=True, default=False)
@policy_options
def plan_cmd(
    token_id: str,
    owner: str | None,
    recipient: str | None,
    amount0: str | None,
    amount1: str | None,
    allow_burn: bool,
    width_bump_ticks: int,
    no_gas: bool,
    policy_name: str | None,
    edge_bps: int | None,
    slippage_bps: int | None,
    deadline_seconds: int | None,
) -> None:
    def _go(adapter: KittenswapAdapter):
        request = RebalanceRequest(
            token_id=parse_token_id(token_id),
            owner=_account(owner),
            recipient=_account(recipient, field="recipient") if recipient else None,
            amount0=amount0,
            amount1=amount1,
            allow_burn=allow_burn,
            width_bump_ticks=width_bump_ticks,
        )
        return adapter.plan_rebalance(
            request,
            policy=_policy(
                policy_name,
                edge_bps=edge_bps,
                slippage_bps=slippage_bps,
                deadline_seconds=deadline_seconds,
            ),
            estimate_gas=not no_gas,
        )

    _run(_go)


@cli.command(name="value", help="Value claimable fees and withdrawable principal.")
@click.argument("token_id")
@click.option("--owner", default=None)
@click.option("--quote-token0", is_flag=True, default=False, help="Value in token0 terms.")
def value_cmd(token_id: str, owner: str | None, quote_token0: bool) -> None:
    def _go(adapter: KittenswapAdapter):
        return adapter.value_position(
            parse_token_id(token_id),
            _account(owner, required=False),
            quote_index=0 if quote_token0 else 1,
        )

    _run(_go)


@cli.command(name="farm-status", help="Farming approval, deposit and reward state.")
@click.argument("token_id")
@click.option("--owner", default=None)
def farm_status_cmd(token_id: str, owner: str | None) -> None:
    def _go(adapter: KittenswapAdapter):
        return adapter.farming_status(parse_token_id(token_id), _account(owner, required=False))

    _run(_go)


def _farm_command(name: str, help_text: str, method: str) -> None:
    @cli.command(name=name, help=help_text)
    @click.argument("token_id")
    @click.option("--owner", default=None)
    @click.option("--no-gas", is_flag=True, default=False)
    def _cmd(token_id: str, owner: str | None, no_gas: bool) -> None:
        def _go(adapter: KittenswapAdapter):
            return getattr(adapter, method)(
                parse_token_id(token_id), _account(owner), estimate_gas=not no_gas
            )

        _run(_go)


_farm_command("farm-approve-plan", "Plan approveForFarming for a position.", "plan_farm_approve")
_farm_command("farm-enter-plan", "Plan entering the pool's active incentive.", "plan_farm_enter")
_farm_command("farm-collect-plan", "Plan collecting and claiming farming rewards.", "plan_farm_collect")
_farm_command("farm-exit-plan", "Plan exiting farming for a position.", "plan_farm_exit")


@cli.command(name="farm-claim-plan", help="Plan claiming accrued rewards of one token.")
@click.argument("reward_token")
@click.option("--owner", default=None)
@click.option("--amount-raw", type=int, default=None, help="Base units; defaults to all.")
@click.option("--no-gas", is_flag=True, default=False)
def farm_claim_plan_cmd(
    reward_token: str, owner: str | None, amount_raw: int | None, no_gas: bool
) -> None:
    def _go(adapter: KittenswapAdapter):
        return adapter.plan_farm_claim(
            Address.parse(reward_token, field="reward_token"),
            _account(owner),
            amount_raw,
            estimate_gas=not no_gas,
        )

    _run(_go)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
