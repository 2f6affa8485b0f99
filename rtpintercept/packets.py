"""RTP header and RTCP packet types with their wire encodings."""

from __future__ import annotations

import copy
import struct
from dataclasses import dataclass, field

ONE_BYTE_PROFILE = 0xBEDE
TWO_BYTE_PROFILE = 0x1000

RTP_HEADER_LENGTH = 12
RTCP_HEADER_LENGTH = 4
RTCP_VERSION = 2

TYPE_SENDER_REPORT = 200
TYPE_TRANSPORT_SPECIFIC_FEEDBACK = 205
FORMAT_TWCC = 15
FORMAT_CCFB = 11

TYPE_TCC_PACKET_NOT_RECEIVED = 0
TYPE_TCC_PACKET_RECEIVED_SMALL_DELTA = 1
TYPE_TCC_PACKET_RECEIVED_LARGE_DELTA = 2
TYPE_TCC_PACKET_RECEIVED_WITHOUT_DELTA = 3

TYPE_TCC_RUN_LENGTH_CHUNK = 0
TYPE_TCC_STATUS_VECTOR_CHUNK = 1

TYPE_TCC_SYMBOL_SIZE_ONE_BIT = 0
TYPE_TCC_SYMBOL_SIZE_TWO_BIT = 1

TYPE_TCC_DELTA_SCALE_FACTOR = 250


class PacketParseError(ValueError):
    """Raised when bytes cannot be decoded as the expected packet."""


@dataclass
class Extension:
    id: int
    payload: bytes


@dataclass
class RTPHeader:
    version: int = 2
    padding: bool = False
    extension: bool = False
    marker: bool = False
    payload_type: int = 0
    sequence_number: int = 0
    timestamp: int = 0
    ssrc: int = 0
    csrc: list[int] = field(default_factory=list)
    extension_profile: int = 0
    extensions: list[Extension] = field(default_factory=list)

    def _extension_payload(self) -> bytes:
        if self.extension_profile == ONE_BYTE_PROFILE:
            body = b"".join(
                bytes([(e.id << 4) | (len(e.payload) - 1)]) + e.payload
                for e in self.extensions
            )
        elif self.extension_profile == TWO_BYTE_PROFILE:
            body = b"".join(
                bytes([e.id, len(e.payload)]) + e.payload for e in self.extensions
            )
        else:
            if len(self.extensions) != 1:
                raise PacketParseError("raw extension profile needs exactly one extension")
            body = self.extensions[0].payload
            if len(body) % 4:
                raise PacketParseError("raw extension payload must be a multiple of 4 bytes")
        return body + b"\x00" * (-len(body) % 4)

    def marshal_size(self) -> int:
        size = RTP_HEADER_LENGTH + 4 * len(self.csrc)
        if self.extension:
            size += 4 + len(self._extension_payload())
        return size

    def marshal(self) -> bytes:
        first = (
            (self.version & 0x3) << 6
            | int(self.padding) << 5
            | int(self.extension) << 4
            | (len(self.csrc) & 0xF)
        )
        second = int(self.marker) << 7 | (self.payload_type & 0x7F)
        out = bytearray(
            struct.pack(
                ">BBHII", first, second, self.sequence_number & 0xFFFF,
                self.timestamp & 0xFFFFFFFF, self.ssrc & 0xFFFFFFFF,
            )
        )
        for c in self.csrc:
            out += struct.pack(">I", c)
        if self.extension:
            ext = self._extension_payload()
            out += struct.pack(">HH", self.extension_profile, len(ext) // 4)
            out += ext
        return bytes(out)

    def get_extension(self, ext_id: int) -> bytes | None:
        if not self.extension:
            return None
        for ext in self.extensions:
            if ext.id == ext_id:
                return ext.payload
        return None

    def set_extension(self, ext_id: int, payload: bytes) -> None:
        payload = bytes(payload)
        if self.extension:
            if self.extension_profile == ONE_BYTE_PROFILE:
                if not 1 <= ext_id <= 14:
                    raise ValueError(f"header extension id must be between 1 and 14: {ext_id}")
                if not 1 <= len(payload) <= 16:
                    raise ValueError("one-byte extension payload must be 1 to 16 bytes")
            elif self.extension_profile == TWO_BYTE_PROFILE:
                if not 1 <= ext_id <= 255:
                    raise ValueError(f"header extension id must be between 1 and 255: {ext_id}")
                if len(payload) > 255:
                    raise ValueError("two-byte extension payload must be at most 255 bytes")
            elif ext_id != 0:
                raise ValueError("header extension id must be 0 for raw extensions")
            for ext in self.extensions:
                if ext.id == ext_id:
                    ext.payload = payload
                    return
            self.extensions.append(Extension(ext_id, payload))
            return
        if len(payload) <= 16:
            self.extension_profile = ONE_BYTE_PROFILE
        elif len(payload) < 256:
            self.extension_profile = TWO_BYTE_PROFILE
        else:
            raise ValueError("extension payload too large")
        self.extension = True
        self.extensions = [Extension(ext_id, payload)]

    def clone(self) -> RTPHeader:
        return copy.deepcopy(self)

    @classmethod
    def unmarshal(cls, data: bytes | None) -> RTPHeader:
        if data is None or len(data) < RTP_HEADER_LENGTH:
            raise PacketParseError("RTP header size insufficient")
        data = bytes(data)
        first, second, seq, ts, ssrc = struct.unpack_from(">BBHII", data)
        csrc_count = first & 0xF
        pos = RTP_HEADER_LENGTH + 4 * csrc_count
        if len(data) < pos:
            raise PacketParseError("RTP header size insufficient for CSRC list")
        header = cls(
            version=first >> 6,
            padding=bool(first >> 5 & 1),
            extension=bool(first >> 4 & 1),
            marker=bool(second >> 7),
            payload_type=second & 0x7F,
            sequence_number=seq,
            timestamp=ts,
            ssrc=ssrc,
            csrc=list(struct.unpack_from(f">{csrc_count}I", data, RTP_HEADER_LENGTH)),
        )
        if not header.extension:
            return header
        if len(data) < pos + 4:
            raise PacketParseError("RTP header size insufficient for extension")
        profile, words = struct.unpack_from(">HH", data, pos)
        pos += 4
        end = pos + 4 * words
        if len(data) < end:
            raise PacketParseError("RTP header size insufficient for extension payload")
        header.extension_profile = profile
        body = data[pos:end]
        if profile == ONE_BYTE_PROFILE:
            i = 0
            while i < len(body):
                b = body[i]
                if b == 0:
                    i += 1
                    continue
                ext_id, length = b >> 4, (b & 0xF) + 1
                if ext_id == 15:
                    break
                i += 1
                if i + length > len(body):
                    raise PacketParseError("extension payload truncated")
                header.extensions.append(Extension(ext_id, body[i:i + length]))
                i += length
        elif profile == TWO_BYTE_PROFILE:
            i = 0
            while i < len(body):
                if body[i] == 0:
                    i += 1
                    continue
                if i + 2 > len(body):
                    raise PacketParseError("extension header truncated")
                ext_id, length = body[i], body[i + 1]
                i += 2
                if i + length > len(body):
                    raise PacketParseError("extension payload truncated")
                header.extensions.append(Extension(ext_id, body[i:i + length]))
                i += length
        else:
            header.extensions.append(Extension(0, body))
        return header


@dataclass
class TransportCCExtension:
    transport_sequence: int = 0

    def marshal(self) -> bytes:
        return struct.pack(">H", self.transport_sequence & 0xFFFF)

    @classmethod
    def unmarshal(cls, data: bytes | None) -> TransportCCExtension:
        if data is None or len(data) < 2:
            raise PacketParseError("transport-cc extension too short")
        return cls(struct.unpack_from(">H", bytes(data))[0])


@dataclass
class RecvDelta:
    type: int = TYPE_TCC_PACKET_RECEIVED_SMALL_DELTA
    delta: int = 0  # microseconds


@dataclass
class RunLengthChunk:
    packet_status_symbol: int = 0
    run_length: int = 0


@dataclass
class StatusVectorChunk:
    symbol_size: int = TYPE_TCC_SYMBOL_SIZE_ONE_BIT
    symbol_list: list[int] = field(default_factory=list)


@dataclass
class TransportLayerCC:
    sender_ssrc: int = 0
    media_ssrc: int = 0
    base_sequence_number: int = 0
    packet_status_count: int = 0
    reference_time: int = 0
    fb_pkt_count: int = 0
    packet_chunks: list = field(default_factory=list)
    recv_deltas: list[RecvDelta] = field(default_factory=list)


@dataclass
class CCFeedbackMetricBlock:
    received: bool = False
    ecn: int = 0
    arrival_time_offset: int = 0


@dataclass
class CCFeedbackReportBlock:
    media_ssrc: int = 0
    begin_sequence: int = 0
    metric_blocks: list[CCFeedbackMetricBlock] = field(default_factory=list)


@dataclass
class CCFeedbackReport:
    sender_ssrc: int = 0
    report_blocks: list[CCFeedbackReportBlock] = field(default_factory=list)
    report_timestamp: int = 0


@dataclass
class SenderReport:
    ssrc: int = 0
    ntp_time: int = 0
    rtp_time: int = 0
    packet_count: int = 0
    octet_count: int = 0
    profile_extensions: bytes = b""

    def marshal(self) -> bytes:
        body = struct.pack(
            ">IQIII", self.ssrc, self.ntp_time, self.rtp_time,
            self.packet_count, self.octet_count,
        ) + self.profile_extensions
        return _finish(0, TYPE_SENDER_REPORT, body)

    @classmethod
    def unmarshal(cls, data: bytes) -> SenderReport:
        packets = unmarshal_rtcp(data)
        if len(packets) != 1 or not isinstance(packets[0], SenderReport):
            raise PacketParseError("not a single sender report")
        return packets[0]


@dataclass
class RawPacket:
    data: bytes = b""

    def marshal(self) -> bytes:
        return bytes(self.data)


def _finish(count: int, packet_type: int, body: bytes) -> bytes:
    """Prefix an RTCP header, padding the body to a 32-bit boundary."""
    pad = -(RTCP_HEADER_LENGTH + len(body)) % 4
    if pad:
        body += b"\x00" * (pad - 1) + bytes([pad])
    first = RTCP_VERSION << 6 | (0x20 if pad else 0) | (count & 0x1F)
    words = (RTCP_HEADER_LENGTH + len(body)) // 4 - 1
    return struct.pack(">BBH", first, packet_type, words) + body


def _encode_chunk(chunk) -> bytes:
    if isinstance(chunk, RunLengthChunk):
        value = (chunk.packet_status_symbol & 0x3) << 13 | (chunk.run_length & 0x1FFF)
    elif isinstance(chunk, StatusVectorChunk):
        if chunk.symbol_size == TYPE_TCC_SYMBOL_SIZE_TWO_BIT:
            value = 0xC000
            for i, s in enumerate(chunk.symbol_list[:7]):
                value |= (s & 0x3) << (12 - 2 * i)
        else:
            value = 0x8000
            for i, s in enumerate(chunk.symbol_list[:14]):
                value |= (s & 0x1) << (13 - i)
    else:
        raise PacketParseError(f"unknown packet status chunk: {chunk!r}")
    return struct.pack(">H", value)


def _marshal_twcc(pkt: TransportLayerCC) -> bytes:
    body = bytearray(
        struct.pack(
            ">IIHH", pkt.sender_ssrc, pkt.media_ssrc,
            pkt.base_sequence_number, pkt.packet_status_count,
        )
    )
    body += (pkt.reference_time & 0xFFFFFF).to_bytes(3, "big")
    body.append(pkt.fb_pkt_count & 0xFF)
    for chunk in pkt.packet_chunks:
        body += _encode_chunk(chunk)
    for d in pkt.recv_deltas:
        raw = d.delta // TYPE_TCC_DELTA_SCALE_FACTOR
        if d.type == TYPE_TCC_PACKET_RECEIVED_SMALL_DELTA:
            body.append(raw & 0xFF)
        elif d.type == TYPE_TCC_PACKET_RECEIVED_LARGE_DELTA:
            body += struct.pack(">h", raw)
    return _finish(FORMAT_TWCC, TYPE_TRANSPORT_SPECIFIC_FEEDBACK, bytes(body))


def _parse_twcc(body: bytes) -> TransportLayerCC:
    if len(body) < 16:
        raise PacketParseError("transport-cc packet too short")
    sender, media, base, count = struct.unpack_from(">IIHH", body)
    pkt = TransportLayerCC(
        sender_ssrc=sender, media_ssrc=media, base_sequence_number=base,
        packet_status_count=count,
        reference_time=int.from_bytes(body[12:15], "big"), fb_pkt_count=body[15],
    )
    pos, processed = 16, 0
    while processed < count:
        if pos + 2 > len(body):
            raise PacketParseError("transport-cc chunks truncated")
        (value,) = struct.unpack_from(">H", body, pos)
        pos += 2
        if value >> 15 == TYPE_TCC_RUN_LENGTH_CHUNK:
            chunk = RunLengthChunk((value >> 13) & 0x3, value & 0x1FFF)
            processed += chunk.run_length
        elif (value >> 14) & 1 == TYPE_TCC_SYMBOL_SIZE_TWO_BIT:
            chunk = StatusVectorChunk(
                TYPE_TCC_SYMBOL_SIZE_TWO_BIT,
                [(value >> (12 - 2 * i)) & 0x3 for i in range(7)],
            )
            processed += 7
        else:
            chunk = StatusVectorChunk(
                TYPE_TCC_SYMBOL_SIZE_ONE_BIT,
                [(value >> (13 - i)) & 0x1 for i in range(14)],
            )
            processed += 14
        pkt.packet_chunks.append(chunk)
    remaining = count
    for chunk in pkt.packet_chunks:
        if isinstance(chunk, RunLengthChunk):
            symbols = [chunk.packet_status_symbol] * min(chunk.run_length, remaining)
        else:
            symbols = chunk.symbol_list[:remaining]
        remaining -= len(symbols)
        for s in symbols:
            if s == TYPE_TCC_PACKET_RECEIVED_SMALL_DELTA:
                if pos + 1 > len(body):
                    raise PacketParseError("transport-cc deltas truncated")
                raw = body[pos]
                pos += 1
            elif s == TYPE_TCC_PACKET_RECEIVED_LARGE_DELTA:
                if pos + 2 > len(body):
                    raise PacketParseError("transport-cc deltas truncated")
                (raw,) = struct.unpack_from(">h", body, pos)
                pos += 2
            else:
                continue
            pkt.recv_deltas.append(RecvDelta(s, raw * TYPE_TCC_DELTA_SCALE_FACTOR))
    return pkt


def _marshal_ccfb(pkt: CCFeedbackReport) -> bytes:
    body = bytearray(struct.pack(">I", pkt.sender_ssrc))
    for block in pkt.report_blocks:
        body += struct.pack(
            ">IHH", block.media_ssrc, block.begin_sequence, len(block.metric_blocks)
        )
        for mb in block.metric_blocks:
            body += struct.pack(
                ">H",
                int(mb.received) << 15 | (mb.ecn & 0x3) << 13 | (mb.arrival_time_offset & 0x1FFF),
            )
        if len(block.metric_blocks) % 2:
            body += b"\x00\x00"
    body += struct.pack(">I", pkt.report_timestamp)
    return _finish(FORMAT_CCFB, TYPE_TRANSPORT_SPECIFIC_FEEDBACK, bytes(body))


def _parse_ccfb(body: bytes) -> CCFeedbackReport:
    if len(body) < 8:
        raise PacketParseError("congestion control feedback too short")
    pkt = CCFeedbackReport(
        sender_ssrc=struct.unpack_from(">I", body)[0],
        report_timestamp=struct.unpack_from(">I", body, len(body) - 4)[0],
    )
    pos, end = 4, len(body) - 4
    while pos < end:
        if pos + 8 > end:
            raise PacketParseError("report block truncated")
        media, begin, num = struct.unpack_from(">IHH", body, pos)
        pos += 8
        if pos + 2 * num > end:
            raise PacketParseError("metric blocks truncated")
        block = CCFeedbackReportBlock(media, begin)
        for (value,) in struct.iter_unpack(">H", body[pos:pos + 2 * num]):
            block.metric_blocks.append(
                CCFeedbackMetricBlock(bool(value >> 15), (value >> 13) & 0x3, value & 0x1FFF)
            )
        pos += 2 * num + (2 if num % 2 else 0)
        pkt.report_blocks.append(block)
    return pkt


def unmarshal_rtcp(data: bytes | None) -> list:
    """Decode a compound RTCP packet into a list of packets."""
    if not data:
        raise PacketParseError("RTCP packet too short")
    data = bytes(data)
    packets: list = []
    offset = 0
    while offset < len(data):
        if len(data) - offset < RTCP_HEADER_LENGTH:
            raise PacketParseError("RTCP header truncated")
        first, packet_type, words = struct.unpack_from(">BBH", data, offset)
        if first >> 6 != RTCP_VERSION:
            raise PacketParseError("wrong RTCP version")
        length = (words + 1) * 4
        if offset + length > len(data):
            raise PacketParseError("RTCP packet truncated")
        raw = data[offset:offset + length]
        body = raw[RTCP_HEADER_LENGTH:]
        if first & 0x20:
            pad = raw[-1]
            if pad == 0 or pad > len(body):
                raise PacketParseError("invalid RTCP padding")
            body = body[:-pad]
        count = first & 0x1F
        if packet_type == TYPE_SENDER_REPORT and count == 0:
            if len(body) < 24:
                raise PacketParseError("sender report too short")
            packets.append(SenderReport(*struct.unpack_from(">IQIII", body), body[24:]))
        elif packet_type == TYPE_TRANSPORT_SPECIFIC_FEEDBACK and count == FORMAT_TWCC:
            packets.append(_parse_twcc(body))
        elif packet_type == TYPE_TRANSPORT_SPECIFIC_FEEDBACK and count == FORMAT_CCFB:
            packets.append(_parse_ccfb(body))
        else:
            packets.append(RawPacket(raw))
        offset += length
    return packets


def marshal_rtcp(packets) -> bytes:
    """Encode a sequence of RTCP packets as one compound packet."""
    encoders = {TransportLayerCC: _marshal_twcc, CCFeedbackReport: _marshal_ccfb}
    out = bytearray()
    for pkt in packets:
        encoder = encoders.get(type(pkt))
        out += encoder(pkt) if encoder else pkt.marshal()
    return bytes(out)