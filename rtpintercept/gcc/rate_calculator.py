"""Receive rate computed over a sliding window of acknowledged packets."""

from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable

from ..feedback import Acknowledgment

_NANOS_PER_SECOND = 1_000_000_000


def _seconds(ns: int) -> float:
    whole = abs(ns) // _NANOS_PER_SECOND
    frac = abs(ns) % _NANOS_PER_SECOND
    value = float(whole) + float(frac) / 1e9
    return value if ns >= 0 else -value


class RateCalculator:
    """Computes the receive rate in bits per second over a time window (ns)."""

    def __init__(self, window: int) -> None:
        self.window = window

    def run(
        self,
        batches: Iterable[Iterable[Acknowledgment]],
        on_rate_update: Callable[[int], None],
    ) -> None:
        """Consume batches of acks, reporting a rate for every received packet."""
        history: deque[Acknowledgment] = deque()
        started = False
        total = 0
        for acks in batches:
            for ack in acks:
                if ack.arrival == 0:
                    continue  # not received
                history.append(ack)
                total += ack.size

                if not started:
                    started = True
                    on_rate_update(ack.size * 8)
                    continue

                deadline = ack.arrival - self.window
                while history and history[0].arrival < deadline:
                    total -= history.popleft().size
                if not history:
                    on_rate_update(0)
                    continue
                dt = _seconds(ack.arrival - history[0].arrival)
                if dt == 0:
                    continue
                on_rate_update(int(float(8 * total) / dt))