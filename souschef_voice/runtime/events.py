"""Events entering the voice controller."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional, Union


@dataclass(slots=True, frozen=True)
class RecognitionEvent:
    """Interim or final transcript produced by the recognition capability."""

    transcript: str
    is_final: bool = False
    timestamp: float = field(default_factory=time.monotonic)


@dataclass(slots=True, frozen=True)
class RecognitionError:
    """Error code reported by the recognition capability."""

    code: str
    message: str = ""


@dataclass(slots=True, frozen=True)
class RecognitionEnded:
    """The recognition session terminated (usually after silence)."""


@dataclass(slots=True, frozen=True)
class SpeechFinished:
    """The speech queue with the given generation played to the end."""

    generation: int


@dataclass(slots=True, frozen=True)
class FollowUpExpired:
    """The follow-up window with the given generation ran out."""

    generation: int


@dataclass(slots=True, frozen=True)
class SpeakRequest:
    """Read a reply aloud."""

    text: str


VoiceEvent = Union[
    RecognitionEvent,
    RecognitionError,
    RecognitionEnded,
    SpeechFinished,
    FollowUpExpired,
    SpeakRequest,
]


@dataclass(slots=True, frozen=True)
class ToggleMic:
    """User toggle; ``enable`` of None flips the current setting."""

    enable: Optional[bool] = None


@dataclass(slots=True, frozen=True)
class TurnStarted:
    """A typed turn was sent while voice mode is on."""


@dataclass(slots=True, frozen=True)
class TurnFinished:
    """A turn completed; ``spoken`` is the text to read aloud, if any."""

    spoken: Optional[str] = None


ControlEvent = Union[ToggleMic, TurnStarted, TurnFinished]
