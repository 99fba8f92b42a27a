import pytest

from admission.ratelimit.decision import DecisionReason
from admission.ratelimit.sliding_window import sliding_window_decide, weighted_rate, window_bounds


def test_window_bounds_align_to_window():
    bounds = window_bounds(1_700_000_065.9, 60)
    assert bounds.current_time == 1_700_000_065
    assert bounds.current_window_start == 1_700_000_040
    assert bounds.previous_window_start == 1_699_999_980
    assert bounds.elapsed == 25


def test_window_bounds_on_boundary_has_zero_elapsed():
    bounds = window_bounds(120, 60)
    assert bounds.current_window_start == 120
    assert bounds.elapsed == 0


def test_previous_window_decays_linearly():
    assert weighted_rate(10, 0, 0, 60) == pytest.approx(10.0)
    assert weighted_rate(10, 0, 30, 60) == pytest.approx(5.0)
    assert weighted_rate(10, 3, 45, 60) == pytest.approx(5.5)


def test_under_limit_allows():
    bounds = window_bounds(30, 60)
    decision = sliding_window_decide(bounds, 60, previous_count=0, current_count=9, limit=10)
    assert decision.allowed
    assert decision.reason is DecisionReason.UNDER_LIMIT
    assert decision.retry_after_s is None


def test_rate_equal_to_limit_denies():
    bounds = window_bounds(30, 60)
    decision = sliding_window_decide(bounds, 60, previous_count=0, current_count=10, limit=10)
    assert not decision.allowed
    assert decision.reason is DecisionReason.OVER_LIMIT
    assert decision.weighted_rate == pytest.approx(10.0)
    assert decision.retry_after_s == 30


def test_weighted_previous_window_can_deny():
    # 8 * (60 - 15) / 60 + 4 == 10
    bounds = window_bounds(75, 60)
    decision = sliding_window_decide(bounds, 60, previous_count=8, current_count=4, limit=10)
    assert not decision.allowed
    assert decision.retry_after_s == 45


def test_weighted_previous_window_below_limit_allows():
    # 8 * (60 - 16) / 60 + 4 == 9.87
    bounds = window_bounds(76, 60)
    decision = sliding_window_decide(bounds, 60, previous_count=8, current_count=4, limit=10)
    assert decision.allowed
