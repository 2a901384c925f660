from dataclasses import replace
from decimal import Decimal

import pytest
from eth_abi import encode as abi_encode

from kittenswap_rebalance.core.errors import SimulationRevert
from kittenswap_rebalance.core.types import Address, Position
from kittenswap_rebalance.core.utils.abi_codec import CATALOGUE
from kittenswap_rebalance.core.utils.units import TokenUnits
from kittenswap_rebalance.core.utils.valuation import quote_value, value_position

OWNER = Address.parse("0x1111111111111111111111111111111111111111")
NPM = Address.parse("0x9ea4459c8defbf561495d95414b9cf1e2242a3e2")
WHYPE = Address.parse("0x5555555555555555555555555555555555555555")
USDC = Address.parse("0xb88339cb7199b77e23db6e890353e22632ba630f")
ZERO = Address.parse("0x0000000000000000000000000000000000000000")

POSITION = Position(
    token_id=123,
    nonce=0,
    operator=ZERO,
    token0=WHYPE,
    token1=USDC,
    deployer=ZERO,
    tick_lower=-242570,
    tick_upper=-242070,
    liquidity=10**12,
    fee_growth_inside0_last_x128=0,
    fee_growth_inside1_last_x128=0,
    tokens_owed0=0,
    tokens_owed1=0,
)


class _FakeReader:
    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def call(self, to, data, *, from_address=None, block="latest"):
        self.calls.append((to, data[:4], from_address))
        response = self.responses[data[:4]]
        if isinstance(response, Exception):
            raise response
        return response


def _amounts(a0: int, a1: int) -> bytes:
    return abi_encode(["uint256", "uint256"], [a0, a1])


def test_quote_value_in_either_token():
    a0, a1 = TokenUnits(10**18, 18), TokenUnits(25 * 10**6, 6)
    assert quote_value(a0, a1, Decimal(30)) == Decimal(55)
    assert quote_value(a0, a1, Decimal(25), quote_index=0) == Decimal(2)
    with pytest.raises(ValueError):
        quote_value(a0, a1, Decimal(0), quote_index=0)


@pytest.mark.asyncio
async def test_value_position_both_legs():
    reader = _FakeReader(
        {
            CATALOGUE["collect"].selector: _amounts(10**17, 3 * 10**6),
            CATALOGUE["decreaseLiquidity"].selector: _amounts(10**18, 25 * 10**6),
        }
    )
    valuation = await value_position(
        reader,
        position_manager=NPM,
        position=POSITION,
        owner=OWNER,
        price_token1_per_token0=Decimal(30),
        deadline=1_700_000_900,
        decimals0=18,
        decimals1=6,
    )
    assert valuation.rewards.value_in_quote == Decimal(6)
    assert valuation.principal.value_in_quote == Decimal(55)
    assert valuation.total_value_in_quote == Decimal(61)
    assert valuation.quote_token == USDC
    assert {c[2] for c in reader.calls} == {OWNER}


@pytest.mark.asyncio
async def test_failed_leg_is_unavailable_not_zero():
    reader = _FakeReader(
        {
            CATALOGUE["collect"].selector: _amounts(0, 0),
            CATALOGUE["decreaseLiquidity"].selector: SimulationRevert(
                "decreaseLiquidity reverted", reason="Not approved"
            ),
        }
    )
    valuation = await value_position(
        reader,
        position_manager=NPM,
        position=POSITION,
        owner=OWNER,
        price_token1_per_token0=Decimal(30),
        deadline=1,
        decimals0=18,
        decimals1=6,
    )
    assert valuation.rewards is not None
    assert valuation.rewards.value_in_quote == Decimal(0)
    assert valuation.principal is None
    assert valuation.principal_error == "Not approved"
    assert valuation.total_value_in_quote is None


@pytest.mark.asyncio
async def test_zero_liquidity_principal_is_zero_without_simulation():
    reader = _FakeReader(
        {
            CATALOGUE["collect"].selector: _amounts(10**17, 0),
            CATALOGUE["decreaseLiquidity"].selector: SimulationRevert(
                "decreaseLiquidity reverted", reason="Zero liquidity"
            ),
        }
    )
    valuation = await value_position(
        reader,
        position_manager=NPM,
        position=replace(POSITION, liquidity=0),
        owner=OWNER,
        price_token1_per_token0=Decimal(30),
        deadline=1,
        decimals0=18,
        decimals1=6,
    )
    assert valuation.principal is not None
    assert valuation.principal.amount0 == TokenUnits(0, 18)
    assert valuation.principal.amount1 == TokenUnits(0, 6)
    assert valuation.principal.value_in_quote == Decimal(0)
    assert valuation.principal_error is None
    assert valuation.total_value_in_quote == Decimal(3)
    assert [c[1] for c in reader.calls] == [CATALOGUE["collect"].selector]
