"""Protocol interfaces for the capabilities the voice controller drives."""

from __future__ import annotations

from typing import Callable, Optional, Protocol

from .runtime.events import VoiceEvent

SegmentDone = Callable[[Optional[str]], None]


class RecognitionCapability(Protocol):
    """Continuous, interim-enabled speech recognition.

    ``start`` raises :class:`~souschef_voice.errors.CapabilityUnavailableError`
    when recognition is not supported and
    :class:`~souschef_voice.errors.RecognitionStartError` when it cannot start.
    Results, errors and the end-of-session signal are delivered through
    ``emit`` on the event loop thread.
    """

    def start(self, emit: Callable[[VoiceEvent], None]) -> None: ...

    def stop(self) -> None: ...

    def abort(self) -> None: ...


class SynthesisCapability(Protocol):
    """Speaks one segment at a time.

    ``on_done`` is called exactly once per segment, with ``None`` on normal
    completion or an error description.
    """

    def speak(self, text: str, *, voice: Optional[str], rate: float, on_done: SegmentDone) -> None: ...

    def cancel(self) -> None: ...
