from __future__ import annotations

import sys

import pytest

from carwatch.detection.hysteresis import HysteresisCounter, RuleState


def test_observe_counts_consecutive_true_and_resets_on_false() -> None:
    c = HysteresisCounter()

    assert [c.observe(True) for _ in range(3)] == [1, 2, 3]
    assert c.observe(False) == 0
    assert c.count == 0
    assert c.observe(True) == 1


def test_observe_saturates_instead_of_overflowing() -> None:
    c = HysteresisCounter(count=sys.maxsize)
    assert c.observe(True) == sys.maxsize


def test_rule_state_starts_at_zero_and_resets() -> None:
    state = RuleState()
    assert set(state.counts().values()) == {0}
    assert len(state.counts()) == 7

    state.high_temp.observe(True)
    state.leakage.observe(True)
    assert state.counts()["high_temp"] == 1

    state.reset()
    assert set(state.counts().values()) == {0}


def test_rule_state_counter_lookup_rejects_unknown_names() -> None:
    state = RuleState()
    assert state.counter("low_coolant") is state.low_coolant

    with pytest.raises(KeyError):
        state.counter("error_codes")
