"""Conversion of transport feedback (TWCC and RFC 8888) into acknowledgments.

Times are integer nanoseconds; a time of 0 means "unset" (for arrivals: the
packet was not received).
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Iterable, Optional

from .ntp import to_time
from .packets import (
    TYPE_TCC_PACKET_NOT_RECEIVED,
    CCFeedbackReport,
    PacketParseError,
    RecvDelta,
    RTPHeader,
    RunLengthChunk,
    StatusVectorChunk,
    TransportCCExtension,
    TransportLayerCC,
)

TWCC_EXTENSION_ATTRIBUTES_KEY = "twcc_extension_id"

_HISTORY_SIZE = 250
_NANOS_PER_MICRO = 1_000
_REFERENCE_TIME_UNIT = 64_000_000  # 64 ms in nanoseconds


class InvalidFeedbackError(ValueError):
    """Raised when a feedback packet is inconsistent."""

    def __init__(self, message: str = "invalid feedback") -> None:
        super().__init__(message)


class MissingTWCCExtensionError(ValueError):
    """Raised when a packet lacks the transport-wide sequence number extension."""

    def __init__(self, message: str = "missing transport layer cc header extension") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class Acknowledgment:
    """A sent packet and, once known, when it arrived."""

    sequence_number: int = 0  # RTP or transport-wide sequence number
    ssrc: int = 0
    size: int = 0
    departure: int = 0
    arrival: int = 0
    ecn: int = 0

    def __str__(self) -> str:
        return (
            "ACK:\n"
            f"\tTLCC:\t{self.sequence_number}\n"
            f"\tSIZE:\t{self.size}\n"
            f"\tDEPARTURE:\t{int(self.departure / 1e6)}\n"
            f"\tARRIVAL:\t{int(self.arrival / 1e6)}\n"
        )


class _FeedbackHistory:
    """Bounded LRU store of sent packets keyed by (ssrc, sequence number)."""

    def __init__(self, size: int) -> None:
        self._size = size
        self._items: OrderedDict[tuple[int, int], Acknowledgment] = OrderedDict()

    def get(self, ssrc: int, sequence_number: int) -> Optional[Acknowledgment]:
        return self._items.get((ssrc, sequence_number))

    def add(self, ack: Acknowledgment) -> None:
        key = (ack.ssrc, ack.sequence_number)
        if key in self._items:
            self._items.move_to_end(key)
            self._items[key] = ack
            return
        self._items[key] = ack
        if len(self._items) > self._size:
            self._items.popitem(last=False)


class FeedbackAdapter:
    """Maps incoming congestion control feedback onto previously sent packets."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._history = _FeedbackHistory(_HISTORY_SIZE)

    def on_sent(self, ts: int, header: RTPHeader, size: int, attributes) -> None:
        """Record that a packet with the given header and payload size was sent at ts."""
        ext_id = attributes.get(TWCC_EXTENSION_ATTRIBUTES_KEY) if attributes else None
        if isinstance(ext_id, int) and not isinstance(ext_id, bool):
            self._on_sent_twcc(ts, ext_id, header, size)
        else:
            self._on_sent_rfc8888(ts, header, size)

    def _on_sent_rfc8888(self, ts: int, header: RTPHeader, size: int) -> None:
        with self._lock:
            self._history.add(
                Acknowledgment(
                    sequence_number=header.sequence_number,
                    ssrc=header.ssrc,
                    size=size,
                    departure=ts,
                )
            )

    def _on_sent_twcc(self, ts: int, ext_id: int, header: RTPHeader, size: int) -> None:
        try:
            ext = TransportCCExtension.unmarshal(header.get_extension(ext_id))
        except PacketParseError as exc:
            raise MissingTWCCExtensionError() from exc
        with self._lock:
            self._history.add(
                Acknowledgment(
                    sequence_number=ext.transport_sequence,
                    ssrc=0,
                    size=header.marshal_size() + size,
                    departure=ts,
                )
            )

    def _unpack_symbols(
        self,
        start: int,
        ref_time: int,
        symbols: Iterable[int],
        deltas: list[RecvDelta],
    ) -> tuple[int, int, list[Acknowledgment]]:
        consumed = 0
        result: list[Acknowledgment] = []
        for offset, symbol in enumerate(symbols):
            ack = self._history.get(0, (start + offset) & 0xFFFF)
            if ack is None:
                result.append(Acknowledgment())
                continue
            if symbol != TYPE_TCC_PACKET_NOT_RECEIVED:
                if consumed >= len(deltas):
                    raise InvalidFeedbackError()
                ref_time += deltas[consumed].delta * _NANOS_PER_MICRO
                ack = replace(ack, arrival=ref_time)
                consumed += 1
            result.append(ack)
        return consumed, ref_time, result

    def _unpack_run_length_chunk(
        self, start: int, ref_time: int, chunk: RunLengthChunk, deltas: list[RecvDelta]
    ) -> tuple[int, int, list[Acknowledgment]]:
        symbols = [chunk.packet_status_symbol] * chunk.run_length
        return self._unpack_symbols(start, ref_time, symbols, deltas)

    def _unpack_status_vector_chunk(
        self, start: int, ref_time: int, chunk: StatusVectorChunk, deltas: list[RecvDelta]
    ) -> tuple[int, int, list[Acknowledgment]]:
        return self._unpack_symbols(start, ref_time, chunk.symbol_list, deltas)

    def on_transport_cc_feedback(
        self, ts: int, feedback: TransportLayerCC
    ) -> list[Acknowledgment]:
        """Convert a transport-wide CC feedback packet into acknowledgments."""
        with self._lock:
            result: list[Acknowledgment] = []
            index = feedback.base_sequence_number & 0xFFFF
            ref_time = feedback.reference_time * _REFERENCE_TIME_UNIT
            deltas = list(feedback.recv_deltas)
            for chunk in feedback.packet_chunks:
                if isinstance(chunk, RunLengthChunk):
                    unpack = self._unpack_run_length_chunk
                elif isinstance(chunk, StatusVectorChunk):
                    unpack = self._unpack_status_vector_chunk
                else:
                    raise InvalidFeedbackError()
                consumed, ref_time, acks = unpack(index, ref_time, chunk, deltas)
                result.extend(acks)
                deltas = deltas[consumed:]
                index = (index + len(acks)) & 0xFFFF
            return result

    def on_rfc8888_feedback(self, ts: int, feedback: CCFeedbackReport) -> list[Acknowledgment]:
        """Convert an RFC 8888 congestion control feedback report into acknowledgments."""
        with self._lock:
            result: list[Acknowledgment] = []
            reference_time = to_time(feedback.report_timestamp << 16)
            for block in feedback.report_blocks:
                for offset, metric in enumerate(block.metric_blocks):
                    seq = (block.begin_sequence + offset) & 0xFFFF
                    ack = self._history.get(block.media_ssrc, seq)
                    if ack is None:
                        continue
                    if metric.received:
                        delta = int((metric.arrival_time_offset / 1024.0) * 1e9)
                        ack = replace(ack, arrival=reference_time - delta, ecn=metric.ecn)
                    result.append(ack)
            return result