"""Turns arrival groups into delay measurements and filtered estimates."""

from __future__ import annotations

from collections.abc import Callable
from typing import Optional

from .arrival_group import ArrivalGroup
from .signals import DelayStats


def inter_group_delay_variation(a: ArrivalGroup, b: ArrivalGroup) -> int:
    """Difference between inter-arrival and inter-departure time of two groups."""
    return (b.arrival - a.arrival) - (b.departure - a.departure)


class SlopeEstimator:
    """Feeds inter-group delay variations through an estimator."""

    def __init__(
        self,
        estimator: Callable[[int], int],
        on_delay_stats: Callable[[DelayStats], None],
    ) -> None:
        self._estimator = estimator
        self._on_delay_stats = on_delay_stats
        self._group: Optional[ArrivalGroup] = None

    def on_arrival_group(self, group: ArrivalGroup) -> None:
        """Process the next completed arrival group."""
        if self._group is None:
            self._group = group
            return
        measurement = inter_group_delay_variation(self._group, group)
        delta = group.arrival - self._group.arrival
        self._group = group
        self._on_delay_stats(
            DelayStats(
                measurement=measurement,
                estimate=self._estimator(measurement),
                last_receive_delta=delta,
            )
        )