import pytest

from dlmm_liquidity.envelope import FALLBACK_ENVELOPE, RangeSelection, full_range, validate_bound
from dlmm_liquidity.errors import InvalidRangeError, ValidationError
from dlmm_liquidity.models import Envelope


def test_full_range_floors_and_ceils_moves(make_bin, make_snapshot):
    snap = make_snapshot([
        make_bin(1, 0.874),   # -12.6%
        make_bin(2, 1.0, active=True),
        make_bin(3, 1.031),   # +3.1%
    ])
    assert full_range(snap) == Envelope(full_low=-13, full_high=4)


def test_full_range_ignores_empty_bins(make_bin, make_snapshot):
    snap = make_snapshot([
        make_bin(1, 0.5, x=0.0),
        make_bin(2, 1.0, active=True),
        make_bin(3, 1.25),
    ])
    assert full_range(snap) == Envelope(full_low=0, full_high=25)


def test_full_range_contains_zero_when_all_liquidity_is_above(make_bin, make_snapshot):
    snap = make_snapshot([make_bin(5, 1.0, x=0.0, active=True), make_bin(6, 1.5)])
    env = full_range(snap)
    assert env.full_low == 0
    assert env.full_high == 50


def test_full_range_skips_unpriceable_bins(make_bin, make_snapshot):
    snap = make_snapshot([
        make_bin(1, 1.0, active=True),
        make_bin(2, float("nan")),
        make_bin(3, -4.0),
        make_bin(4, 1.25),
    ])
    assert full_range(snap) == Envelope(full_low=0, full_high=25)


def test_full_range_falls_back_without_active_price(make_bin, make_snapshot):
    assert full_range(make_snapshot([make_bin(1, 1.0), make_bin(2, 2.0)])) == FALLBACK_ENVELOPE
    assert full_range(make_snapshot([])) == FALLBACK_ENVELOPE
    assert FALLBACK_ENVELOPE == Envelope(-99, 1000)


@pytest.mark.parametrize("value", [float("nan"), float("inf"), "abc", None, True])
def test_validate_bound_rejects_garbage(value):
    with pytest.raises(InvalidRangeError):
        validate_bound(value)


def test_validate_bound_accepts_numbers_and_strings():
    assert validate_bound(-5) == -5.0
    assert validate_bound("12.5") == 12.5


def test_range_errors_are_validation_errors():
    assert issubclass(InvalidRangeError, ValidationError)
    assert issubclass(InvalidRangeError, ValueError)


def test_range_selection_full_flags():
    env = Envelope(-20, 40)
    sel = RangeSelection.full(env)
    assert (sel.low, sel.high) == (-20.0, 40.0)
    assert sel.is_full_range(env)

    narrowed = sel.with_low(-5)
    assert not narrowed.is_min_full(env)
    assert narrowed.is_max_full(env)
    assert not narrowed.is_full_range(env)

    # a bound past the envelope still counts as "All"
    wide = narrowed.with_low(-50).with_high(500)
    assert wide.is_full_range(env)
    assert narrowed.reset(env) == sel


def test_range_selection_keeps_previous_value_on_bad_input():
    sel = RangeSelection(low=-10.0, high=10.0)
    with pytest.raises(InvalidRangeError):
        sel.with_high(float("nan"))
    assert sel.high == 10.0
