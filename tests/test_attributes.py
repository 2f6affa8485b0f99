import pytest

from rtpintercept.attributes import Attributes
from rtpintercept.packets import PacketParseError, RTPHeader, SenderReport


def test_rtp_header_nil():
    with pytest.raises(PacketParseError):
        Attributes().get_rtp_header(None)


def test_rtp_header_present():
    attributes = Attributes()
    header = attributes.get_rtp_header(RTPHeader(version=0).marshal())
    assert attributes.get_rtp_header(None) is header


def test_rtp_header_not_present():
    hdr = RTPHeader(version=0, csrc=[])
    assert Attributes().get_rtp_header(hdr.marshal()) == hdr


def test_rtp_header_from_full_packet():
    hdr = RTPHeader(version=0)
    assert Attributes().get_rtp_header(hdr.marshal() + bytes(1000)) == hdr


def test_rtcp_nil():
    with pytest.raises(PacketParseError):
        Attributes().get_rtcp_packets(None)


def test_rtcp_present():
    attributes = Attributes()
    packets = attributes.get_rtcp_packets(SenderReport().marshal())
    assert attributes.get_rtcp_packets(None) is packets


def test_rtcp_not_present():
    sr = SenderReport()
    assert Attributes().get_rtcp_packets(sr.marshal()) == [sr]