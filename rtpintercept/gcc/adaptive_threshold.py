"""Overuse threshold that adapts to the observed delay estimates."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Optional

from .signals import Usage, clamp

_MAX_DELTAS = 60
_MS = 1_000_000
_US = 1_000


def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // b
    return q if a >= 0 else -q


class AdaptiveThreshold:
    """Threshold that rises quickly on large estimates and decays slowly otherwise.

    Durations are integer nanoseconds; clock returns nanoseconds.
    """

    def __init__(
        self,
        *,
        threshold: int = 12_500_000,
        overuse_coefficient_up: float = 0.01,
        overuse_coefficient_down: float = 0.00018,
        minimum: int = 6 * _MS,
        maximum: int = 600 * _MS,
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self.threshold = threshold
        self.overuse_coefficient_up = overuse_coefficient_up
        self.overuse_coefficient_down = overuse_coefficient_down
        self.minimum = minimum
        self.maximum = maximum
        self._clock = clock
        self._last_update: Optional[int] = None
        self._num_deltas = 0

    def compare(self, estimate: int, delta: int) -> tuple[Usage, int, int]:
        """Classify an estimate; returns (usage, scaled estimate, threshold used)."""
        self._num_deltas += 1
        if self._num_deltas < 2:
            return Usage.NORMAL, estimate, self.maximum
        scaled = min(self._num_deltas, _MAX_DELTAS) * estimate
        use = Usage.NORMAL
        if scaled > self.threshold:
            use = Usage.OVER
        elif scaled < -self.threshold:
            use = Usage.UNDER
        current = self.threshold
        self.update(scaled)
        return use, scaled, current

    def update(self, estimate: int) -> None:
        """Adapt the threshold towards the magnitude of estimate."""
        now = self._clock()
        if self._last_update is None:
            self._last_update = now
        abs_estimate = abs(_trunc_div(estimate, _US)) * _US
        if abs_estimate > self.threshold + 15 * _MS:
            self._last_update = now
            return
        k = self.overuse_coefficient_up
        if abs_estimate < self.threshold:
            k = self.overuse_coefficient_down
        time_delta_ms = min(_trunc_div(now - self._last_update, _MS), 100)
        d = abs_estimate - self.threshold
        add = k * float(_trunc_div(d, _MS)) * float(time_delta_ms)
        self.threshold += int(add * 1000) * _US
        self.threshold = clamp(self.threshold, self.minimum, self.maximum)
        self._last_update = now