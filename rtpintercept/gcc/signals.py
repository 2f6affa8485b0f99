"""Usage and state signals of the delay based controller, and shared helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class Usage(IntEnum):
    """Link usage as seen by the overuse detector."""

    OVER = 0
    UNDER = 1
    NORMAL = 2

    def __str__(self) -> str:
        return _USAGE_NAMES[self]


_USAGE_NAMES = {Usage.OVER: "overuse", Usage.UNDER: "underuse", Usage.NORMAL: "normal"}


class State(IntEnum):
    """State of the rate controller's state machine."""

    INCREASE = 0
    DECREASE = 1
    HOLD = 2

    def transition(self, usage: Usage) -> State:
        """Return the state that follows this one given the observed usage."""
        return _TRANSITIONS.get((self, usage), State.INCREASE)

    def __str__(self) -> str:
        return _STATE_NAMES[self]


_STATE_NAMES = {State.INCREASE: "increase", State.DECREASE: "decrease", State.HOLD: "hold"}

_TRANSITIONS = {
    (State.HOLD, Usage.OVER): State.DECREASE,
    (State.HOLD, Usage.NORMAL): State.INCREASE,
    (State.HOLD, Usage.UNDER): State.HOLD,
    (State.INCREASE, Usage.OVER): State.DECREASE,
    (State.INCREASE, Usage.NORMAL): State.INCREASE,
    (State.INCREASE, Usage.UNDER): State.HOLD,
    (State.DECREASE, Usage.OVER): State.DECREASE,
    (State.DECREASE, Usage.NORMAL): State.HOLD,
    (State.DECREASE, Usage.UNDER): State.HOLD,
}


@dataclass
class DelayStats:
    """Internal statistics of the delay based congestion controller.

    All durations are integer nanoseconds.
    """

    measurement: int = 0
    estimate: int = 0
    threshold: int = 0
    last_receive_delta: int = 0
    usage: Usage = Usage.OVER
    state: State = State.INCREASE
    target_bitrate: int = 0


def clamp(value: int, low: int, high: int) -> int:
    """Limit value to the range [low, high]."""
    return max(low, min(high, value))