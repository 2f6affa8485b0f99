"""Unwrapping of 16-bit RTP sequence numbers into a monotonic 64-bit space."""

from __future__ import annotations

_MAX_SEQUENCE_NUMBER_PLUS_ONE = 65536
_BREAKPOINT = 32768  # half of the 16-bit range


def is_newer(value: int, previous: int) -> bool:
    """Whether value follows previous in 16-bit wrapping order."""
    diff = (value - previous) & 0xFFFF
    if diff == _BREAKPOINT:
        return value > previous
    return value != previous and diff < _BREAKPOINT


class Unwrapper:
    """Turns a stream of wrapping 16-bit sequence numbers into unbounded ones."""

    def __init__(self) -> None:
        self._last_unwrapped: int | None = None

    def unwrap(self, value: int) -> int:
        """Return the unwrapped form of the next sequence number."""
        value &= 0xFFFF
        if self._last_unwrapped is None:
            self._last_unwrapped = value
            return value

        last_wrapped = self._last_unwrapped & 0xFFFF
        delta = (value - last_wrapped) & 0xFFFF
        if not is_newer(value, last_wrapped) and (
            delta > 0
            and self._last_unwrapped + delta - _MAX_SEQUENCE_NUMBER_PLUS_ONE >= 0
        ):
            delta -= _MAX_SEQUENCE_NUMBER_PLUS_ONE

        self._last_unwrapped += delta
        return self._last_unwrapped