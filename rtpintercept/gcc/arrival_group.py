"""Grouping of acknowledged packets into arrival groups."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from ..feedback import Acknowledgment

_MS = 1_000_000


@dataclass
class ArrivalGroup:
    """Packets sent in a burst; times are those of the last packet added."""

    packets: list[Acknowledgment] = field(default_factory=list)
    departure: int = 0
    arrival: int = 0

    def add(self, ack: Acknowledgment) -> None:
        self.packets.append(ack)
        self.arrival = ack.arrival
        self.departure = ack.departure

    def __str__(self) -> str:
        packets = "[" + " ".join(str(p) for p in self.packets) + "]"
        return (
            "ARRIVALGROUP:\n"
            f"\tARRIVAL:\t{int(self.arrival / 1e6)}\n"
            f"\tDEPARTURE:\t{int(self.departure / 1e6)}\n"
            f"\tPACKETS:\n{packets}\n"
        )


def _inter_arrival_time(group: ArrivalGroup, ack: Acknowledgment) -> int:
    return ack.arrival - group.arrival


def _inter_departure_time(group: ArrivalGroup, ack: Acknowledgment) -> int:
    if not group.packets:
        return 0
    return ack.departure - group.packets[-1].departure


def _inter_group_delay_variation(group: ArrivalGroup, ack: Acknowledgment) -> int:
    return (ack.arrival - group.arrival) - (ack.departure - group.departure)


class ArrivalGroupAccumulator:
    """Splits a stream of acknowledgments into arrival groups."""

    def __init__(
        self,
        inter_departure_threshold: int = 5 * _MS,
        inter_arrival_threshold: int = 5 * _MS,
        inter_group_delay_variation_threshold: int = 0,
    ) -> None:
        self.inter_departure_threshold = inter_departure_threshold
        self.inter_arrival_threshold = inter_arrival_threshold
        self.inter_group_delay_variation_threshold = inter_group_delay_variation_threshold

    def run(
        self,
        batches: Iterable[Iterable[Acknowledgment]],
        on_group: Callable[[ArrivalGroup], None],
    ) -> None:
        """Consume batches of acks, calling on_group for every completed group."""
        group: ArrivalGroup | None = None
        for acks in batches:
            for ack in acks:
                if group is None:
                    group = ArrivalGroup()
                    group.add(ack)
                    continue
                if ack.arrival < group.arrival:
                    continue  # out of order arrival
                if ack.departure <= group.departure:
                    continue
                if _inter_departure_time(group, ack) <= self.inter_departure_threshold:
                    group.add(ack)
                    continue
                if (
                    _inter_arrival_time(group, ack) <= self.inter_arrival_threshold
                    and _inter_group_delay_variation(group, ack)
                    < self.inter_group_delay_variation_threshold
                ):
                    group.add(ack)
                    continue
                on_group(group)
                group = ArrivalGroup()
                group.add(ack)