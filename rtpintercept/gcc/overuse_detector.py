"""Decides on overuse from filtered delay estimates and a threshold."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol

from .signals import DelayStats, State, Usage


class _Threshold(Protocol):
    def compare(self, estimate: int, delta: int) -> tuple[Usage, int, int]: ...


class OveruseDetector:
    """Signals overuse only after it persisted for overuse_time and the estimate grows."""

    def __init__(
        self,
        threshold: _Threshold,
        overuse_time: int,
        on_delay_stats: Callable[[DelayStats], None],
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self._threshold = threshold
        self.overuse_time = overuse_time
        self._on_delay_stats = on_delay_stats
        self._clock = clock
        self._last_estimate = 0
        self._last_update = clock()
        self._increasing_duration = 0
        self._increasing_counter = 0

    def on_delay_stats(self, stats: DelayStats) -> None:
        """Classify the estimate in stats and pass the result on."""
        now = self._clock()
        delta = now - self._last_update
        self._last_update = now

        threshold_use, estimate, current_threshold = self._threshold.compare(
            stats.estimate, stats.last_receive_delta
        )

        use = Usage.NORMAL
        if threshold_use == Usage.OVER:
            if self._increasing_duration == 0:
                self._increasing_duration = delta // 2
            else:
                self._increasing_duration += delta
            self._increasing_counter += 1
            if (
                self._increasing_duration > self.overuse_time
                and self._increasing_counter > 1
                and estimate > self._last_estimate
            ):
                use = Usage.OVER
        elif threshold_use == Usage.UNDER:
            self._increasing_counter = 0
            self._increasing_duration = 0
            use = Usage.UNDER
        else:
            self._increasing_duration = 0
            self._increasing_counter = 0
        self._last_estimate = estimate

        self._on_delay_stats(
            DelayStats(
                measurement=stats.measurement,
                estimate=estimate,
                threshold=current_threshold,
                last_receive_delta=stats.last_receive_delta,
                usage=use,
                state=State.INCREASE,
                target_bitrate=0,
            )
        )