"""Loss based bandwidth estimation."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Optional

from ..feedback import Acknowledgment
from .signals import clamp

_MS = 1_000_000

_INCREASE_LOSS_THRESHOLD = 0.02
_INCREASE_TIME_THRESHOLD = 200 * _MS
_INCREASE_FACTOR = 1.05

_DECREASE_LOSS_THRESHOLD = 0.1
_DECREASE_TIME_THRESHOLD = 200 * _MS

_log = logging.getLogger("gcc_loss_controller")


@dataclass
class LossStats:
    """Internal statistics of the loss based controller."""

    target_bitrate: int = 0
    average_loss: float = 0.0


class LossBasedBandwidthEstimator:
    """Raises the bitrate when loss is low and lowers it when loss is high."""

    def __init__(
        self,
        initial_bitrate: int,
        *,
        min_bitrate: int = 100_000,
        max_bitrate: int = 100_000_000,
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self._lock = threading.Lock()
        self.min_bitrate = min_bitrate
        self.max_bitrate = max_bitrate
        self.bitrate = initial_bitrate
        self.average_loss = 0.0
        self._clock = clock
        self._last_loss_update: Optional[int] = None
        self._last_increase: Optional[int] = None
        self._last_decrease: Optional[int] = None

    def get_estimate(self, wanted_rate: int) -> LossStats:
        """Return the current estimate, capped at wanted_rate."""
        with self._lock:
            if self.bitrate <= 0:
                self.bitrate = clamp(wanted_rate, self.min_bitrate, self.max_bitrate)
            self.bitrate = min(wanted_rate, self.bitrate)
            return LossStats(target_bitrate=self.bitrate, average_loss=self.average_loss)

    def _since(self, when: Optional[int], now: int) -> float:
        return math.inf if when is None else float(now - when)

    def update_loss_estimate(self, results: Iterable[Acknowledgment]) -> None:
        """Update the loss average and bitrate from a batch of acknowledgments."""
        results = list(results)
        if not results:
            return
        lost = sum(1 for ack in results if ack.arrival == 0)

        with self._lock:
            now = self._clock()
            loss_ratio = lost / len(results)
            self.average_loss = self._average(
                self._since(self._last_loss_update, now), self.average_loss, loss_ratio
            )
            self._last_loss_update = now

            increase_loss = max(self.average_loss, loss_ratio)
            decrease_loss = min(self.average_loss, loss_ratio)

            if (
                increase_loss < _INCREASE_LOSS_THRESHOLD
                and self._since(self._last_increase, now) > _INCREASE_TIME_THRESHOLD
            ):
                _log.info(
                    "loss controller increasing; averageLoss: %s, decreaseLoss: %s, increaseLoss: %s",
                    self.average_loss, decrease_loss, increase_loss,
                )
                self._last_increase = now
                self.bitrate = clamp(
                    int(_INCREASE_FACTOR * float(self.bitrate)), self.min_bitrate, self.max_bitrate
                )
            elif (
                decrease_loss > _DECREASE_LOSS_THRESHOLD
                and self._since(self._last_decrease, now) > _DECREASE_TIME_THRESHOLD
            ):
                _log.info(
                    "loss controller decreasing; averageLoss: %s, decreaseLoss: %s, increaseLoss: %s",
                    self.average_loss, decrease_loss, increase_loss,
                )
                self._last_decrease = now
                self.bitrate = clamp(
                    int(float(self.bitrate) * (1 - 0.5 * decrease_loss)),
                    self.min_bitrate,
                    self.max_bitrate,
                )

    @staticmethod
    def _average(delta_ns: float, prev: float, sample: float) -> float:
        delta_ms = delta_ns if math.isinf(delta_ns) else float(int(delta_ns) // _MS)
        return sample + math.exp(-delta_ms / 200.0) * (prev - sample)