"""Delay based bandwidth estimation pipeline."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable, Iterable
from typing import Optional

from ..feedback import Acknowledgment
from .adaptive_threshold import AdaptiveThreshold
from .arrival_group import ArrivalGroupAccumulator
from .kalman import Kalman
from .overuse_detector import OveruseDetector
from .rate_calculator import RateCalculator
from .rate_controller import RateController
from .signals import DelayStats
from .slope_estimator import SlopeEstimator

_MS = 1_000_000
_OVERUSE_TIME = 10 * _MS
_RATE_WINDOW = 500 * _MS
_CLOSED = object()

_log = logging.getLogger("gcc_delay_controller")


class DelayController:
    """Runs acknowledgments through arrival grouping, filtering and rate control.

    Acknowledgments are processed on two background threads: one estimating the
    delay gradient and one measuring the receive rate.
    """

    def __init__(
        self,
        initial_bitrate: int,
        min_bitrate: int,
        max_bitrate: int,
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self._callback: Optional[Callable[[DelayStats], None]] = None
        self._closed = False
        self._close_lock = threading.Lock()

        self._rate_controller = RateController(
            initial_bitrate, min_bitrate, max_bitrate, self._on_rate_stats, clock=clock
        )
        detector = OveruseDetector(
            AdaptiveThreshold(), _OVERUSE_TIME, self._rate_controller.on_delay_stats
        )
        slope = SlopeEstimator(Kalman().update_estimate, detector.on_delay_stats)
        accumulator = ArrivalGroupAccumulator()
        rate_calculator = RateCalculator(_RATE_WINDOW)

        self._ack_queue: queue.SimpleQueue = queue.SimpleQueue()
        self._rate_queue: queue.SimpleQueue = queue.SimpleQueue()
        self._threads = [
            threading.Thread(
                target=accumulator.run,
                args=(iter(self._ack_queue.get, _CLOSED), slope.on_arrival_group),
                name="gcc-delay-estimate",
                daemon=True,
            ),
            threading.Thread(
                target=rate_calculator.run,
                args=(iter(self._rate_queue.get, _CLOSED), self._rate_controller.on_received_rate),
                name="gcc-receive-rate",
                daemon=True,
            ),
        ]
        for thread in self._threads:
            thread.start()

    def _on_rate_stats(self, stats: DelayStats) -> None:
        _log.info("delaystats: %s", stats)
        callback = self._callback
        if callback is not None:
            callback(stats)

    def on_update(self, callback: Optional[Callable[[DelayStats], None]]) -> None:
        """Set the function called with every new delay statistic."""
        self._callback = callback

    def update_delay_estimate(self, acks: Iterable[Acknowledgment]) -> None:
        """Queue a batch of acknowledgments for processing."""
        batch = list(acks)
        with self._close_lock:
            if self._closed:
                raise RuntimeError("delay controller closed")
            self._ack_queue.put(batch)
            self._rate_queue.put(batch)

    def update_rtt(self, rtt: int) -> None:
        """Record the latest round trip time in nanoseconds."""
        self._rate_controller.update_rtt(rtt)

    def close(self) -> None:
        """Stop accepting acknowledgments and wait until all queued ones are processed."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
            self._ack_queue.put(_CLOSED)
            self._rate_queue.put(_CLOSED)
        current = threading.current_thread()
        for thread in self._threads:
            if thread is not current:
                thread.join()

    def __enter__(self) -> DelayController:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()