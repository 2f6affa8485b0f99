import threading

import pytest

from rtpintercept.gcc.pacer import LeakyBucketPacer, NoOpPacer, UnknownStreamError
from rtpintercept.packets import RTPHeader


class RecordingWriter:
    def __init__(self):
        self.packets = []
        self.event = threading.Event()

    def write(self, header, payload, attributes):
        self.packets.append((header, bytes(payload), attributes))
        self.event.set()
        return header.marshal_size() + len(payload)


def test_noop_pacer_forwards_immediately():
    pacer = NoOpPacer()
    writer = RecordingWriter()
    pacer.add_stream(7, writer)
    header = RTPHeader(ssrc=7, sequence_number=3)
    n = pacer.write(header, b"\x00\x01\x02", {"k": "v"})
    assert n == header.marshal_size() + 3
    assert writer.packets == [(header, b"\x00\x01\x02", {"k": "v"})]


def test_noop_pacer_unknown_stream():
    pacer = NoOpPacer()
    with pytest.raises(UnknownStreamError) as info:
        pacer.write(RTPHeader(ssrc=42), b"", None)
    assert info.value.ssrc == 42
    assert "unknown ssrc" in str(info.value)


def test_leaky_bucket_write_returns_packet_size():
    with LeakyBucketPacer(1_000_000) as pacer:
        header = RTPHeader(ssrc=1)
        assert pacer.write(header, b"abc", None) == header.marshal_size() + 3


def test_leaky_bucket_delivers_packets():
    writer = RecordingWriter()
    with LeakyBucketPacer(1_000_000) as pacer:
        pacer.add_stream(1, writer)
        pacer.write(RTPHeader(ssrc=1, sequence_number=9), b"\x00\x01\x02", None)
        assert writer.event.wait(2)
    header, payload, _ = writer.packets[0]
    assert header.sequence_number == 9
    assert payload == b"\x00\x01\x02"


def test_leaky_bucket_copies_header():
    writer = RecordingWriter()
    with LeakyBucketPacer(1_000_000) as pacer:
        pacer.add_stream(1, writer)
        header = RTPHeader(ssrc=1, sequence_number=5)
        pacer.write(header, b"x", None)
        header.sequence_number = 6
        assert writer.event.wait(2)
    assert writer.packets[0][0].sequence_number == 5


def test_leaky_bucket_drops_unknown_streams():
    writer = RecordingWriter()
    with LeakyBucketPacer(1_000_000) as pacer:
        pacer.add_stream(1, writer)
        pacer.write(RTPHeader(ssrc=2), b"lost", None)
        pacer.write(RTPHeader(ssrc=1), b"kept", None)
        assert writer.event.wait(2)
    assert [p[1] for p in writer.packets] == [b"kept"]


def test_leaky_bucket_target_bitrate_has_headroom():
    with LeakyBucketPacer(1_000_000) as pacer:
        pacer.set_target_bitrate(1000)
        assert pacer.target_bitrate == 1500


def test_leaky_bucket_stops_sending_after_close():
    writer = RecordingWriter()
    pacer = LeakyBucketPacer(1_000_000)
    pacer.add_stream(1, writer)
    pacer.close()
    pacer.write(RTPHeader(ssrc=1), b"late", None)
    assert not writer.event.wait(0.05)
    assert writer.packets == []