import pytest

from rtpintercept.gcc.rate_controller import ExponentialMovingAverage, RateController
from rtpintercept.gcc.signals import DelayStats, State, Usage

MS = 1_000_000


def _mock_clock():
    t = [0]

    def clock():
        t[0] += 100 * MS
        return t[0]

    return clock


def _controller(initial=100_000, received=100_000, min_bitrate=1_000):
    out = []
    rc = RateController(initial, min_bitrate, 50_000_000, out.append, clock=_mock_clock())
    rc.on_received_rate(received)
    rc.update_rtt(300 * MS)
    return rc, out


def test_empty_produces_nothing():
    rc, out = _controller()
    assert out == []
    assert rc.target == 100_000


def test_increases_multiplicatively_by_8000():
    rc, out = _controller()
    for usage in (Usage.NORMAL, Usage.NORMAL):
        rc.on_delay_stats(DelayStats(usage=usage))
    assert out[0] == DelayStats(
        usage=Usage.NORMAL,
        state=State.INCREASE,
        target_bitrate=108_000,
        estimate=0,
        threshold=0,
    )


def test_first_stats_only_initialize():
    rc, out = _controller()
    rc.on_delay_stats(DelayStats(usage=Usage.OVER))
    assert out == []
    assert rc.target == 100_000


def test_overuse_decreases_to_beta_of_received_rate():
    rc, out = _controller()
    rc.on_delay_stats(DelayStats(usage=Usage.NORMAL))
    rc.on_delay_stats(DelayStats(usage=Usage.OVER))
    assert len(out) == 1
    assert out[0].state == State.DECREASE
    assert out[0].usage == Usage.OVER
    assert out[0].target_bitrate == 85_000
    assert rc.latest_decrease_rate.average == 100_000


def test_underuse_holds_without_report():
    rc, out = _controller()
    rc.on_delay_stats(DelayStats(usage=Usage.NORMAL))
    rc.on_delay_stats(DelayStats(usage=Usage.UNDER))
    assert out == []
    assert rc.target == 100_000


def test_increase_limited_to_one_and_a_half_received_rate():
    rc, out = _controller(received=70_000)
    rc.on_delay_stats(DelayStats(usage=Usage.NORMAL))
    rc.on_delay_stats(DelayStats(usage=Usage.NORMAL))
    assert out[0].target_bitrate == 105_000


def test_decrease_clamped_to_min_bitrate():
    rc, out = _controller(received=0, min_bitrate=1_000)
    rc.on_delay_stats(DelayStats(usage=Usage.NORMAL))
    rc.on_delay_stats(DelayStats(usage=Usage.OVER))
    assert out[0].target_bitrate == 1_000


def test_ema_first_value_is_average():
    ema = ExponentialMovingAverage()
    ema.update(10.0)
    assert ema.average == 10.0
    assert ema.variance == 0.0


def test_ema_moves_towards_new_values():
    ema = ExponentialMovingAverage()
    ema.update(10.0)
    ema.update(20.0)
    assert ema.average == pytest.approx(19.5)
    assert ema.variance == pytest.approx(4.75)
    assert ema.std_deviation == pytest.approx(4.75 ** 0.5)