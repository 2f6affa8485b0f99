import pytest

from rtpintercept.feedback import Acknowledgment
from rtpintercept.gcc.arrival_group import ArrivalGroup, ArrivalGroupAccumulator

MS = 1_000_000
SECOND = 1_000_000_000


def test_empty_arrival_group():
    assert ArrivalGroup() == ArrivalGroup(packets=[], arrival=0, departure=0)


def test_arrival_group_single_ack():
    ag = ArrivalGroup()
    ack = Acknowledgment()
    ag.add(ack)
    assert ag == ArrivalGroup(packets=[ack], arrival=0, departure=0)


def test_arrival_group_sets_times_to_last_ack():
    ag = ArrivalGroup()
    first = Acknowledgment()
    second = Acknowledgment(departure=SECOND, arrival=SECOND)
    ag.add(first)
    ag.add(second)
    assert ag == ArrivalGroup(packets=[first, second], arrival=SECOND, departure=SECOND)


def test_arrival_group_str_lists_times():
    ag = ArrivalGroup()
    ag.add(Acknowledgment(departure=3 * MS, arrival=20 * MS))
    text = str(ag)
    assert text.startswith("ARRIVALGROUP:\n\tARRIVAL:\t20\n\tDEPARTURE:\t3\n")


TRIGGER = Acknowledgment(departure=SECOND, arrival=SECOND)


def _ack(dep_ms, arr_ms):
    return Acknowledgment(departure=dep_ms * MS, arrival=arr_ms * MS)


@pytest.mark.parametrize(
    "log, expected",
    [
        ([], []),
        (
            [_ack(0, 1), TRIGGER],
            [ArrivalGroup([_ack(0, 1)], arrival=1 * MS, departure=0)],
        ),
        (
            [_ack(0, 15), _ack(3, 20), TRIGGER],
            [ArrivalGroup([_ack(0, 15), _ack(3, 20)], arrival=20 * MS, departure=3 * MS)],
        ),
        (
            [_ack(0, 15), _ack(3, 20), _ack(9, 30), TRIGGER],
            [
                ArrivalGroup([_ack(0, 15), _ack(3, 20)], arrival=20 * MS, departure=3 * MS),
                ArrivalGroup([_ack(9, 30)], arrival=30 * MS, departure=9 * MS),
            ],
        ),
        (
            [_ack(0, 15), _ack(6, 34), _ack(8, 30), TRIGGER],
            [
                ArrivalGroup([_ack(0, 15)], arrival=15 * MS, departure=0),
                ArrivalGroup([_ack(6, 34)], arrival=34 * MS, departure=6 * MS),
            ],
        ),
    ],
    ids=[
        "emptyCreatesNoGroups", "createsSingleElementGroup", "createsTwoElementGroup",
        "createsTwoArrivalGroups", "ignoresOutOfOrderPackets",
    ],
)
def test_arrival_group_accumulator(log, expected):
    received = []
    ArrivalGroupAccumulator().run([log], received.append)
    assert received == expected


def test_accumulator_keeps_state_across_batches():
    received = []
    batches = [[_ack(0, 15)], [_ack(3, 20)], [_ack(9, 30)], [TRIGGER]]
    ArrivalGroupAccumulator().run(batches, received.append)
    assert [len(g.packets) for g in received] == [2, 1]