"""Packet pacers that forward RTP packets to per-stream writers."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Optional

from ..packets import RTPHeader

_MS = 1_000_000

_log = logging.getLogger("pacer")


class UnknownStreamError(LookupError):
    """Raised when a packet is written for an SSRC that was never added."""

    def __init__(self, ssrc: int) -> None:
        super().__init__(f"unknown ssrc: {ssrc}")
        self.ssrc = ssrc


class Pacer(ABC):
    """Writes RTP packets to registered streams at a controlled rate."""

    @abstractmethod
    def add_stream(self, ssrc: int, writer) -> None: ...

    @abstractmethod
    def set_target_bitrate(self, rate: int) -> None: ...

    @abstractmethod
    def write(self, header: RTPHeader, payload: bytes, attributes) -> int: ...

    @abstractmethod
    def close(self) -> None: ...

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class NoOpPacer(Pacer):
    """Pacer that sends every packet immediately."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._writers: dict[int, Any] = {}

    def add_stream(self, ssrc: int, writer) -> None:
        with self._lock:
            self._writers[ssrc] = writer

    def set_target_bitrate(self, rate: int) -> None:
        """Ignored: this pacer never delays packets."""

    def write(self, header: RTPHeader, payload: bytes, attributes) -> int:
        with self._lock:
            writer = self._writers.get(header.ssrc)
            if writer is None:
                raise UnknownStreamError(header.ssrc)
            return writer.write(header, payload, attributes)

    def close(self) -> None:
        pass


@dataclass
class _Item:
    header: RTPHeader
    payload: bytes
    attributes: Any


class LeakyBucketPacer(Pacer):
    """Leaky bucket pacer sending queued packets from a background thread."""

    def __init__(self, initial_bitrate: int, pacing_interval: int = 5 * _MS) -> None:
        self.f = 1.5
        self._target_bitrate = initial_bitrate
        self._bitrate_lock = threading.Lock()
        self.pacing_interval = pacing_interval
        self._queue: deque[_Item] = deque()
        self._queue_lock = threading.Lock()
        self._writers: dict[int, Any] = {}
        self._writer_lock = threading.Lock()
        self._done = threading.Event()
        self._thread = threading.Thread(target=self.run, name="leaky-bucket-pacer", daemon=True)
        self._thread.start()

    @property
    def target_bitrate(self) -> int:
        with self._bitrate_lock:
            return self._target_bitrate

    def add_stream(self, ssrc: int, writer) -> None:
        with self._writer_lock:
            self._writers[ssrc] = writer

    def set_target_bitrate(self, rate: int) -> None:
        """Set the target rate; the pacer may exceed it by the factor f."""
        with self._bitrate_lock:
            self._target_bitrate = int(self.f * float(rate))

    def write(self, header: RTPHeader, payload: bytes, attributes) -> int:
        """Queue a packet for sending and return its size in bytes."""
        payload = bytes(payload)
        with self._queue_lock:
            self._queue.append(_Item(header.clone(), payload, attributes))
        return header.marshal_size() + len(payload)

    def _pop(self) -> Optional[_Item]:
        with self._queue_lock:
            return self._queue.popleft() if self._queue else None

    def run(self) -> None:
        """Send queued packets every pacing interval until closed."""
        last_sent = time.monotonic_ns()
        while not self._done.wait(self.pacing_interval / 1e9):
            now = time.monotonic_ns()
            budget = int(float((now - last_sent) // _MS) * float(self.target_bitrate) / 8000.0)
            while budget > 0:
                item = self._pop()
                if item is None:
                    break
                _log.debug(
                    "budget=%s, len(queue)=%s, targetBitrate=%s",
                    budget, len(self._queue), self.target_bitrate,
                )
                with self._writer_lock:
                    writer = self._writers.get(item.header.ssrc)
                if writer is None:
                    _log.warning("no writer found for ssrc: %s", item.header.ssrc)
                    continue
                try:
                    sent = writer.write(item.header, item.payload, item.attributes)
                except Exception as exc:
                    _log.error("failed to write packet: %s", exc)
                    sent = 0
                last_sent = now
                budget -= sent

    def close(self) -> None:
        self._done.set()
        if threading.current_thread() is not self._thread:
            self._thread.join()