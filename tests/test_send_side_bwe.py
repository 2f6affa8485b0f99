import itertools
from types import SimpleNamespace

import pytest

from rtpintercept.feedback import TWCC_EXTENSION_ATTRIBUTES_KEY, MissingTWCCExtensionError
from rtpintercept.gcc.pacer import NoOpPacer, UnknownStreamError
from rtpintercept.gcc.send_side_bwe import (
    LATEST_BITRATE,
    TRANSPORT_CC_URI,
    SendSideBWE,
    SendSideBWEClosedError,
)
from rtpintercept.packets import (
    TYPE_TCC_PACKET_RECEIVED_SMALL_DELTA,
    RecvDelta,
    RTPHeader,
    RunLengthChunk,
    SenderReport,
    TransportCCExtension,
    TransportLayerCC,
)

MS = 1_000_000


class Recorder:
    def __init__(self):
        self.sent = []

    def write(self, header, payload, attributes):
        self.sent.append((header, payload, attributes))
        return header.marshal_size() + len(payload)


def stream_info(ext_id=1):
    exts = [SimpleNamespace(uri=TRANSPORT_CC_URI, id=ext_id)] if ext_id else []
    return SimpleNamespace(ssrc=1, rtp_header_extensions=exts)


def twcc_header(seq):
    header = RTPHeader(ssrc=1, sequence_number=seq)
    header.set_extension(1, TransportCCExtension(seq).marshal())
    return header


def feedback(count, delta_us):
    return TransportLayerCC(
        base_sequence_number=0,
        packet_status_count=count,
        packet_chunks=[RunLengthChunk(TYPE_TCC_PACKET_RECEIVED_SMALL_DELTA, count)],
        recv_deltas=[RecvDelta(TYPE_TCC_PACKET_RECEIVED_SMALL_DELTA, delta_us) for _ in range(count)],
    )


def make_bwe():
    clock = itertools.count(start=1_000 * MS, step=10 * MS).__next__
    return SendSideBWE(pacer=NoOpPacer(), clock=clock)


def test_initial_target_bitrate():
    bwe = make_bwe()
    try:
        assert bwe.target_bitrate() == LATEST_BITRATE
        assert len(bwe.stats()) > 0
    finally:
        bwe.close()


def test_lossless_stream_increases_estimate():
    bwe = make_bwe()
    changes = []
    bwe.on_target_bitrate_change(changes.append)
    sink = Recorder()
    writer = bwe.add_stream(stream_info(), sink)
    payload = bytes(1460)
    for seq in range(100):
        writer.write(twcc_header(seq), payload, None)
    bwe.write_rtcp([feedback(100, 10_000)], None)
    bwe.close()

    assert len(sink.sent) == 100
    assert bwe.target_bitrate() > LATEST_BITRATE
    assert changes and changes[-1] == bwe.target_bitrate()
    assert bwe.stats()["state"] == "increase"


def test_twcc_extension_id_set_in_attributes():
    bwe = make_bwe()
    try:
        sink = Recorder()
        writer = bwe.add_stream(stream_info(), sink)
        writer.write(twcc_header(0), b"\x01\x02", None)
        assert sink.sent[0][2][TWCC_EXTENSION_ATTRIBUTES_KEY] == 1
        assert sink.sent[0][1] == b"\x01\x02"
    finally:
        bwe.close()


def test_stream_without_twcc_leaves_attributes():
    bwe = make_bwe()
    try:
        sink = Recorder()
        writer = bwe.add_stream(stream_info(ext_id=0), sink)
        writer.write(RTPHeader(ssrc=1, sequence_number=5), b"\x00", None)
        assert sink.sent[0][2] is None
    finally:
        bwe.close()


def test_missing_twcc_extension_raises():
    bwe = make_bwe()
    try:
        sink = Recorder()
        writer = bwe.add_stream(stream_info(), sink)
        with pytest.raises(MissingTWCCExtensionError):
            writer.write(RTPHeader(ssrc=1), b"\x00", None)
        assert sink.sent == []
    finally:
        bwe.close()


def test_unknown_stream_raises():
    bwe = make_bwe()
    try:
        writer = bwe.add_stream(stream_info(), Recorder())
        with pytest.raises(UnknownStreamError):
            writer.write(RTPHeader(ssrc=99), b"\x00", None)
    finally:
        bwe.close()


def test_unrelated_rtcp_is_ignored():
    bwe = make_bwe()
    bwe.write_rtcp([SenderReport(ssrc=3)], None)
    bwe.close()
    assert bwe.target_bitrate() == LATEST_BITRATE


def test_error_on_write_rtcp_at_closed_state():
    bwe = SendSideBWE()
    packets = [TransportLayerCC()]
    bwe.write_rtcp(packets, None)
    assert bwe.closed() is False
    bwe.close()
    with pytest.raises(SendSideBWEClosedError):
        bwe.write_rtcp(packets, None)
    assert bwe.closed() is True