"""Key/value store passed along with packets through interceptors."""

from __future__ import annotations

from .packets import RTPHeader, unmarshal_rtcp

_RTP_HEADER_KEY = object()
_RTCP_PACKETS_KEY = object()


class InvalidAttributeTypeError(TypeError):
    """Raised when a cached attribute holds a value of the wrong type."""

    def __init__(self) -> None:
        super().__init__("found value of invalid type in attributes map")


class Attributes(dict):
    """Generic attribute map that caches parsed packet headers."""

    def get_rtp_header(self, raw: bytes | None) -> RTPHeader:
        """Return the cached RTP header, parsing raw and caching it if absent."""
        if _RTP_HEADER_KEY in self:
            value = self[_RTP_HEADER_KEY]
            if isinstance(value, RTPHeader):
                return value
            raise InvalidAttributeTypeError()
        header = RTPHeader.unmarshal(raw)
        self[_RTP_HEADER_KEY] = header
        return header

    def get_rtcp_packets(self, raw: bytes | None) -> list:
        """Return the cached RTCP packets, parsing raw and caching them if absent."""
        if _RTCP_PACKETS_KEY in self:
            value = self[_RTCP_PACKETS_KEY]
            if isinstance(value, list):
                return value
            raise InvalidAttributeTypeError()
        packets = unmarshal_rtcp(raw)
        self[_RTCP_PACKETS_KEY] = packets
        return packets