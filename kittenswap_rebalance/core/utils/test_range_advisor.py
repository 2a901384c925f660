import pytest

from kittenswap_rebalance.core.errors import DegenerateRange, InvalidRange
from kittenswap_rebalance.core.utils.range_advisor import suggest_range
from kittenswap_rebalance.core.utils.tick_math import usable_tick_bounds


def test_recenters_fixture_position():
    suggestion = suggest_range(-242319, -242570, -242070, 10)
    assert suggestion.width_ticks == 500
    assert suggestion.tick_upper - suggestion.tick_lower == 500
    assert suggestion.tick_lower % 10 == 0
    assert suggestion.tick_lower <= -242319 < suggestion.tick_upper
    assert suggestion.tick_lower == -242570


@pytest.mark.parametrize("spacing", [1, 10, 60, 200])
@pytest.mark.parametrize("width", [1, 7, 100, 501])
@pytest.mark.parametrize("current_tick", [-242319, -15, -1, 0, 1, 15, 99_999])
def test_suggestion_invariants(spacing, width, current_tick):
    suggestion = suggest_range(current_tick, 0, width, spacing)
    assert suggestion.tick_lower % spacing == 0
    assert suggestion.tick_upper % spacing == 0
    assert suggestion.tick_upper - suggestion.tick_lower == suggestion.width_ticks
    assert suggestion.width_ticks >= max(width, spacing)
    assert suggestion.width_ticks - width < spacing
    assert suggestion.tick_lower <= current_tick < suggestion.tick_upper


def test_width_bump_widens_range():
    base = suggest_range(0, -100, 100, 10)
    bumped = suggest_range(0, -100, 100, 10, width_bump_ticks=40)
    assert bumped.width_ticks == base.width_ticks + 40


def test_rejects_degenerate_inputs():
    with pytest.raises(DegenerateRange):
        suggest_range(0, -100, 100, 0)
    with pytest.raises(InvalidRange):
        suggest_range(0, 100, 100, 10)
    with pytest.raises(DegenerateRange):
        suggest_range(0, -100, 100, 10, width_bump_ticks=-200)
    with pytest.raises(DegenerateRange):
        suggest_range(0, 0, 10, 1_000_000)


def test_clamps_to_usable_bounds():
    lo, hi = usable_tick_bounds(60)
    suggestion = suggest_range(hi - 1, hi - 600, hi, 60)
    assert suggestion.tick_upper <= hi
    assert suggestion.tick_lower >= lo

    huge = suggest_range(0, -2_000_000, 2_000_000, 60)
    assert (huge.tick_lower, huge.tick_upper) == (lo, hi)


@pytest.mark.parametrize("spacing", [100_000, 443_636, 887_272])
def test_coarse_spacing_keeps_a_non_empty_window(spacing):
    lo, hi = usable_tick_bounds(spacing)
    suggestion = suggest_range(0, -10, 10, spacing)
    assert lo <= suggestion.tick_lower < suggestion.tick_upper <= hi
    assert suggestion.tick_lower <= 0 < suggestion.tick_upper
