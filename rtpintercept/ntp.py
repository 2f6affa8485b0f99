"""Conversion between Unix nanosecond timestamps and 64-bit NTP timestamps."""

from __future__ import annotations

_NTP_EPOCH_OFFSET = 2208988800  # seconds between 1900-01-01 and 1970-01-01
_MASK32 = 0xFFFFFFFF
_NANOS_PER_SECOND = 1_000_000_000


def to_ntp(t: int) -> int:
    """Convert a Unix timestamp in nanoseconds to a 64-bit NTP timestamp."""
    seconds = t / 1e9 + _NTP_EPOCH_OFFSET
    integer_part = int(seconds) & _MASK32
    fractional_part = int((seconds - float(integer_part)) * _MASK32) & _MASK32
    return integer_part << 32 | fractional_part


def to_time(t: int) -> int:
    """Convert a 64-bit NTP timestamp to a Unix timestamp in nanoseconds."""
    seconds = (t >> 32) & _MASK32
    fractional = float(t & _MASK32) / float(_MASK32)
    elapsed = seconds * _NANOS_PER_SECOND + int(fractional * 1e9)
    return elapsed - _NTP_EPOCH_OFFSET * _NANOS_PER_SECOND