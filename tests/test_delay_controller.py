import itertools

import pytest

from rtpintercept.feedback import Acknowledgment
from rtpintercept.gcc.delay_controller import DelayController
from rtpintercept.gcc.signals import State

MS = 1_000_000


def steady_acks(count):
    return [
        Acknowledgment(
            sequence_number=i,
            size=1200,
            departure=1_000 * MS + i * 10 * MS,
            arrival=2_000 * MS + i * 10 * MS,
        )
        for i in range(count)
    ]


def fake_clock():
    return itertools.count(start=0, step=100 * MS).__next__


def run_controller(initial, low, high, acks):
    received = []
    controller = DelayController(initial, low, high, clock=fake_clock())
    controller.on_update(received.append)
    controller.update_rtt(50 * MS)
    controller.update_delay_estimate(acks)
    controller.close()
    return received


def test_steady_stream_increases():
    received = run_controller(100_000, 1_000, 50_000_000, steady_acks(10))
    assert len(received) == 7
    assert all(s.state == State.INCREASE for s in received)
    targets = [s.target_bitrate for s in received]
    assert targets == sorted(targets)
    assert targets[0] > 100_000
    assert all(t <= 50_000_000 for t in targets)


def test_targets_respect_minimum():
    received = run_controller(1_000, 50_000, 50_000_000, steady_acks(10))
    assert received
    assert all(s.target_bitrate >= 50_000 for s in received)


def test_targets_respect_maximum():
    received = run_controller(100_000, 1_000, 100_000, steady_acks(10))
    assert received
    assert all(s.target_bitrate == 100_000 for s in received)


def test_no_acks_no_updates():
    received = run_controller(100_000, 1_000, 50_000_000, [])
    assert received == []


def test_update_after_close_raises():
    controller = DelayController(100_000, 1_000, 50_000_000)
    controller.close()
    controller.close()
    with pytest.raises(RuntimeError):
        controller.update_delay_estimate(steady_acks(2))


def test_context_manager_closes():
    with DelayController(100_000, 1_000, 50_000_000) as controller:
        controller.update_delay_estimate(steady_acks(3))
    with pytest.raises(RuntimeError):
        controller.update_delay_estimate([])