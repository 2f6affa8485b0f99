"""Sender side bandwidth estimation combining loss and delay based control."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Optional

from ..attributes import Attributes
from ..feedback import TWCC_EXTENSION_ATTRIBUTES_KEY, Acknowledgment, FeedbackAdapter
from ..ntp import to_time
from ..packets import CCFeedbackReport, RTPHeader, TransportLayerCC
from .delay_controller import DelayController
from .loss_based import LossBasedBandwidthEstimator, LossStats
from .pacer import LeakyBucketPacer, Pacer
from .signals import DelayStats

TRANSPORT_CC_URI = "http://www.ietf.org/id/draft-holmer-rmcat-transport-wide-cc-extensions-01"
LATEST_BITRATE = 10_000
MIN_BITRATE = 5_000
MAX_BITRATE = 50_000_000


class SendSideBWEClosedError(RuntimeError):
    """Raised when feedback is written to a closed estimator."""

    def __init__(self) -> None:
        super().__init__("SendSideBwe closed")


@dataclass
class Stats:
    """Internal statistics of the bandwidth estimator."""

    loss: LossStats = field(default_factory=LossStats)
    delay: DelayStats = field(default_factory=DelayStats)


def _ms(ns: int) -> float:
    micros = abs(ns) // 1000
    return (micros if ns >= 0 else -micros) / 1000.0


class _StreamWriter:
    """Records sent packets for feedback mapping before handing them on."""

    def __init__(self, bwe: SendSideBWE, ext_id: int, writer) -> None:
        self._bwe = bwe
        self._ext_id = ext_id
        self._writer = writer

    def write(self, header: RTPHeader, payload: bytes, attributes) -> int:
        if self._ext_id:
            if attributes is None:
                attributes = Attributes()
            attributes[TWCC_EXTENSION_ATTRIBUTES_KEY] = self._ext_id
        self._bwe._feedback.on_sent(self._bwe._clock(), header, len(payload), attributes)
        return self._writer.write(header, payload, attributes)


class SendSideBWE:
    """Google Congestion Control estimator run on the sending side.

    clock returns wall-clock time as Unix nanoseconds.
    """

    def __init__(
        self,
        *,
        initial_bitrate: int = LATEST_BITRATE,
        min_bitrate: int = MIN_BITRATE,
        max_bitrate: int = MAX_BITRATE,
        pacer: Optional[Pacer] = None,
        clock: Callable[[], int] = time.time_ns,
    ) -> None:
        self._clock = clock
        self._feedback = FeedbackAdapter()
        self._lock = threading.Lock()
        self._close_lock = threading.Lock()
        self._closed = False
        self._latest_bitrate = initial_bitrate
        self.min_bitrate = min_bitrate
        self.max_bitrate = max_bitrate
        self._latest_stats = Stats()
        self._on_change: Optional[Callable[[int], Any]] = None
        self._pacer = pacer if pacer is not None else LeakyBucketPacer(initial_bitrate)
        self._loss = LossBasedBandwidthEstimator(initial_bitrate)
        self._delay = DelayController(initial_bitrate, min_bitrate, max_bitrate)
        self._delay.on_update(self._on_delay_update)

    def add_stream(self, info, writer) -> Pacer:
        """Register a stream; packets written to the returned pacer reach writer."""
        ext_id = 0
        for ext in getattr(info, "rtp_header_extensions", None) or ():
            if ext.uri == TRANSPORT_CC_URI:
                ext_id = ext.id & 0xFF
                break
        self._pacer.add_stream(info.ssrc, _StreamWriter(self, ext_id, writer))
        return self._pacer

    def write_rtcp(self, packets: Iterable, attributes=None) -> None:
        """Feed RTCP feedback packets into the estimator."""
        now = self._clock()
        with self._close_lock:
            if self._closed:
                raise SendSideBWEClosedError()
            for pkt in packets:
                if isinstance(pkt, TransportLayerCC):
                    acks = self._feedback.on_transport_cc_feedback(now, pkt)
                    feedback_sent_time = max((a.arrival for a in acks), default=0)
                elif isinstance(pkt, CCFeedbackReport):
                    acks = self._feedback.on_rfc8888_feedback(now, pkt)
                    feedback_sent_time = to_time(pkt.report_timestamp << 16)
                else:
                    continue
                min_rtt = self._min_rtt(now, feedback_sent_time, acks)
                if min_rtt is not None:
                    self._delay.update_rtt(min_rtt)
                self._loss.update_loss_estimate(acks)
                self._delay.update_delay_estimate(acks)

    @staticmethod
    def _min_rtt(now: int, feedback_sent_time: int, acks: list[Acknowledgment]) -> Optional[int]:
        rtts = [
            (now - ack.departure) - (feedback_sent_time - ack.arrival)
            for ack in acks
            if ack.arrival != 0
        ]
        return min(rtts, default=None)

    def target_bitrate(self) -> int:
        """Current target bitrate in bits per second."""
        with self._lock:
            return self._latest_bitrate

    def stats(self) -> dict[str, Any]:
        """Internal statistics of the estimator."""
        with self._lock:
            s = self._latest_stats
            return {
                "loss_target_bitrate": s.loss.target_bitrate,
                "average_loss": s.loss.average_loss,
                "delay_target_bitrate": s.delay.target_bitrate,
                "delay_measurement": _ms(s.delay.measurement),
                "delay_estimate": _ms(s.delay.estimate),
                "delay_threshold": _ms(s.delay.threshold),
                "usage": str(s.delay.usage),
                "state": str(s.delay.state),
            }

    def on_target_bitrate_change(self, callback: Optional[Callable[[int], Any]]) -> None:
        """Set the function called with the new bitrate whenever it changes."""
        self._on_change = callback

    def closed(self) -> bool:
        """Whether close has been called."""
        return self._closed

    def close(self) -> None:
        """Stop the estimator and its pacer."""
        with self._close_lock:
            if self._closed:
                return
            self._delay.close()
            self._closed = True
            self._pacer.close()

    def __enter__(self) -> SendSideBWE:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _on_delay_update(self, delay_stats: DelayStats) -> None:
        with self._lock:
            loss_stats = self._loss.get_estimate(delay_stats.target_bitrate)
            bitrate = min(delay_stats.target_bitrate, loss_stats.target_bitrate)
            changed = bitrate != self._latest_bitrate
            if changed:
                self._latest_bitrate = bitrate
                self._pacer.set_target_bitrate(bitrate)
            self._latest_stats = Stats(loss=loss_stats, delay=delay_stats)
            callback = self._on_change
        if changed and callback is not None:
            callback(bitrate)