"""Delay based rate controller turning usage signals into a target bitrate."""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable
from dataclasses import replace
from typing import Optional

from .signals import DelayStats, State, clamp

_DECREASE_EMA_ALPHA = 0.95
_BETA = 0.85
_MS = 1_000_000


def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // b
    return q if a >= 0 else -q


class ExponentialMovingAverage:
    """Moving average and deviation of the rates seen at decreases."""

    def __init__(self) -> None:
        self.average = 0.0
        self.variance = 0.0
        self.std_deviation = 0.0

    def update(self, value: float) -> None:
        if self.average == 0.0:
            self.average = value
            return
        x = value - self.average
        self.average += _DECREASE_EMA_ALPHA * x
        self.variance = (1 - _DECREASE_EMA_ALPHA) * (
            self.variance + _DECREASE_EMA_ALPHA * x * x
        )
        self.std_deviation = math.sqrt(self.variance)


class RateController:
    """AIMD-style controller driven by delay statistics.

    Durations are integer nanoseconds; clock returns nanoseconds.
    """

    def __init__(
        self,
        initial_target_bitrate: int,
        min_bitrate: int,
        max_bitrate: int,
        on_delay_stats: Callable[[DelayStats], None],
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self.initial_target_bitrate = initial_target_bitrate
        self.min_bitrate = min_bitrate
        self.max_bitrate = max_bitrate
        self._on_delay_stats = on_delay_stats
        self._clock = clock
        self._lock = threading.Lock()
        self._initialized = False
        self._delay_stats = DelayStats()
        self.target = initial_target_bitrate
        self._last_update: Optional[int] = None
        self._latest_rtt = 0
        self._latest_received_rate = 0
        self.latest_decrease_rate = ExponentialMovingAverage()

    def on_received_rate(self, rate: int) -> None:
        """Record the latest measured receive rate in bits per second."""
        with self._lock:
            self._latest_received_rate = rate

    def update_rtt(self, rtt: int) -> None:
        """Record the latest round trip time in nanoseconds."""
        with self._lock:
            self._latest_rtt = rtt

    def on_delay_stats(self, stats: DelayStats) -> None:
        """Update the target bitrate from the usage in stats and report it."""
        now = self._clock()
        with self._lock:
            if not self._initialized:
                self._delay_stats = replace(stats, state=State.INCREASE)
                self._initialized = True
                return
            state = stats.state.transition(stats.usage)
            self._delay_stats = replace(stats, state=state)
            if state == State.HOLD:
                return
            if state == State.INCREASE:
                self.target = clamp(self._increase(now), self.min_bitrate, self.max_bitrate)
            else:
                self.target = clamp(self._decrease(), self.min_bitrate, self.max_bitrate)
            result = replace(stats, state=state, target_bitrate=self.target)
        self._on_delay_stats(result)

    def _elapsed_ms(self, now: int) -> float:
        if self._last_update is None:
            return math.inf
        return float(_trunc_div(now - self._last_update, _MS))

    def _increase(self, now: int) -> int:
        ema = self.latest_decrease_rate
        received = float(self._latest_received_rate)
        if (
            ema.average > 0
            and received > ema.average - 3 * ema.std_deviation
            and received < ema.average + 3 * ema.std_deviation
        ):
            bits_per_frame = float(self.target) / 30.0
            packets_per_frame = math.ceil(bits_per_frame / (1200 * 8))
            expected_packet_size_bits = bits_per_frame / packets_per_frame
            response_ms = float(_trunc_div(100 * _MS + self._latest_rtt, _MS))
            alpha = 0.5 * min(self._elapsed_ms(now) / response_ms, 1.0)
            increase = int(max(1000.0, alpha * expected_packet_size_bits))
            self._last_update = now
            return int(min(float(self.target + increase), 1.5 * received))

        eta = math.pow(1.08, min(self._elapsed_ms(now) / 1000, 1.0))
        self._last_update = now
        rate = int(eta * float(self.target))
        limit = int(1.5 * received)
        if rate > limit and limit > self.target:
            return limit
        if rate < self.target:
            return self.target
        return rate

    def _decrease(self) -> int:
        target = int(_BETA * float(self._latest_received_rate))
        self.latest_decrease_rate.update(float(self._latest_received_rate))
        self._last_update = self._clock()
        return target