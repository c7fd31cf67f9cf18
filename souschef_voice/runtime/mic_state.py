"""Microphone state machine driving the voice affordances."""

from __future__ import annotations

from enum import Enum
from typing import Callable, Optional

from ..errors import IllegalTransitionError


class MicState(str, Enum):
    DISABLED = "disabled"
    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    SPEAKING = "speaking"
    ERROR = "error"


_ALLOWED: dict[MicState, frozenset[MicState]] = {
    MicState.DISABLED: frozenset({MicState.IDLE, MicState.ERROR}),
    MicState.IDLE: frozenset({MicState.LISTENING, MicState.PROCESSING, MicState.ERROR, MicState.DISABLED}),
    MicState.LISTENING: frozenset({MicState.PROCESSING, MicState.IDLE, MicState.ERROR, MicState.DISABLED}),
    MicState.PROCESSING: frozenset(
        {MicState.SPEAKING, MicState.LISTENING, MicState.IDLE, MicState.ERROR, MicState.DISABLED}
    ),
    MicState.SPEAKING: frozenset(
        {MicState.IDLE, MicState.LISTENING, MicState.PROCESSING, MicState.ERROR, MicState.DISABLED}
    ),
    MicState.ERROR: frozenset({MicState.IDLE, MicState.DISABLED}),
}

StateCallback = Callable[[MicState, MicState], None]


class MicStateMachine:
    """Holds exactly one :class:`MicState` and enforces the allowed edges."""

    def __init__(self, on_change: Optional[StateCallback] = None) -> None:
        self._state = MicState.DISABLED
        self._on_change = on_change

    @property
    def state(self) -> MicState:
        return self._state

    def can_transition(self, to_state: MicState) -> bool:
        return to_state == self._state or to_state in _ALLOWED[self._state]

    def transition(self, to_state: MicState) -> bool:
        """Move to ``to_state``; returns False when already there."""
        from_state = self._state
        if from_state == to_state:
            return False
        if to_state not in _ALLOWED[from_state]:
            raise IllegalTransitionError(from_state, to_state)
        self._state = to_state
        if self._on_change:
            self._on_change(from_state, to_state)
        return True
