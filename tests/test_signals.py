import pytest

from rtpintercept.gcc.signals import DelayStats, State, Usage, clamp


@pytest.mark.parametrize(
    "expected, x, low, high",
    [
        (50, 50, 0, 100),
        (50, 50, 50, 100),
        (100, 100, 0, 100),
        (50, 3, 50, 100),
        (100, 150, 0, 100),
    ],
)
def test_clamp(expected, x, low, high):
    assert clamp(x, low, high) == expected


@pytest.mark.parametrize(
    "start, usage, expected",
    [
        (State.HOLD, Usage.OVER, State.DECREASE),
        (State.HOLD, Usage.NORMAL, State.INCREASE),
        (State.HOLD, Usage.UNDER, State.HOLD),
        (State.INCREASE, Usage.OVER, State.DECREASE),
        (State.INCREASE, Usage.NORMAL, State.INCREASE),
        (State.INCREASE, Usage.UNDER, State.HOLD),
        (State.DECREASE, Usage.OVER, State.DECREASE),
        (State.DECREASE, Usage.NORMAL, State.HOLD),
        (State.DECREASE, Usage.UNDER, State.HOLD),
    ],
)
def test_state_transition(start, usage, expected):
    assert start.transition(usage) is expected


@pytest.mark.parametrize(
    "value, name",
    [(0, "increase"), (1, "decrease"), (2, "hold")],
)
def test_state_names(value, name):
    assert str(State(value)) == name


@pytest.mark.parametrize(
    "value, name",
    [(0, "overuse"), (1, "underuse"), (2, "normal")],
)
def test_usage_names(value, name):
    assert str(Usage(value)) == name


def test_delay_stats_defaults_are_zero_values():
    ds = DelayStats()
    assert (ds.usage, ds.state, ds.target_bitrate) == (Usage.OVER, State.INCREASE, 0)