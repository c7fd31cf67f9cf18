"""Continuous hands-free listening session for the SousChef client."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Iterable, Optional

from ..audio.speech import SpeechOutputStreamer
from ..errors import (
    BENIGN_RECOGNITION_ERRORS,
    SousChefError,
    describe_recognition_error,
)
from ..interfaces import RecognitionCapability, SynthesisCapability
from ..utils.logger import get_logger
from .events import (
    ControlEvent,
    FollowUpExpired,
    RecognitionEnded,
    RecognitionError,
    RecognitionEvent,
    SpeakRequest,
    SpeechFinished,
    ToggleMic,
    TurnFinished,
    TurnStarted,
    VoiceEvent,
)
from .follow_up import FollowUpWindow
from .mic_state import MicState, MicStateMachine, StateCallback
from .wake_word import WakeWordDetector

logger = get_logger("voice")

CommandHandler = Callable[[str], Awaitable[Optional[str]]]
ErrorCallback = Callable[[str], None]


class VoiceController:
    """Owns whether the mic is logically on and every piece of voice state.

    Recognition results, speech completion, follow-up expiry and user
    actions all enter through :meth:`dispatch`. Events raised while another
    event is being handled are queued and handled afterwards, in arrival
    order, so there is exactly one writer at any time.
    """

    def __init__(
        self,
        recognizer: RecognitionCapability,
        synthesizer: SynthesisCapability,
        *,
        on_command: CommandHandler,
        wake_phrases: Iterable[str],
        follow_up_seconds: float = 6.0,
        voice: Optional[str] = None,
        rate: float = 1.0,
        on_state_change: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        can_enable: Optional[Callable[[], bool]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._recognizer = recognizer
        self._on_command = on_command
        self._on_state_change = on_state_change
        self._on_error = on_error
        self._can_enable = can_enable or (lambda: True)
        self._loop = loop

        self._machine = MicStateMachine(on_change=self._state_changed)
        self._detector = WakeWordDetector(wake_phrases)
        self._follow_up = FollowUpWindow(
            follow_up_seconds,
            lambda generation: self.dispatch(FollowUpExpired(generation)),
            loop=loop,
        )
        self._speech = SpeechOutputStreamer(
            synthesizer,
            voice=voice,
            rate=rate,
            on_finished=lambda generation: self.dispatch(SpeechFinished(generation)),
        )

        self._enabled = False
        self._recognition_live = False
        self._open_turns = 0
        self._turn_tasks: set[asyncio.Task[Any]] = set()

        self._inbox: deque[VoiceEvent | ControlEvent] = deque()
        self._dispatching = False
        self._handlers: dict[type, Callable[[Any], None]] = {
            RecognitionEvent: self._handle_result,
            RecognitionError: self._handle_recognition_error,
            RecognitionEnded: self._handle_recognition_ended,
            SpeechFinished: self._handle_speech_finished,
            FollowUpExpired: self._handle_follow_up_expired,
            SpeakRequest: self._handle_speak,
            ToggleMic: self._handle_toggle,
            TurnStarted: self._handle_turn_started,
            TurnFinished: self._handle_turn_finished,
        }

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> MicState:
        return self._machine.state

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def voice_mode(self) -> bool:
        """Spoken replies and hands-free timer acceptance are on.

        Follows the enabled flag rather than the mic state: after a
        recognition failure the mic sits in ``error`` with voice mode off.
        """
        return self._enabled

    @property
    def is_speaking(self) -> bool:
        return self._speech.is_speaking

    @property
    def follow_up_active(self) -> bool:
        return self._follow_up.is_active()

    @property
    def wake_phrases(self) -> tuple[str, ...]:
        return self._detector.phrases

    def toggle(self) -> None:
        self.dispatch(ToggleMic())

    def enable(self) -> None:
        self.dispatch(ToggleMic(enable=True))

    def disable(self) -> None:
        self.dispatch(ToggleMic(enable=False))

    def speak(self, text: str) -> None:
        self.dispatch(SpeakRequest(text))

    def begin_turn(self) -> None:
        """Mark a typed turn as in flight so the mic shows ``processing``."""
        self.dispatch(TurnStarted())

    def finish_turn(self, spoken: Optional[str]) -> None:
        """Close a turn, reading ``spoken`` aloud when voice mode is on."""
        self.dispatch(TurnFinished(spoken))

    def dispatch(self, event: VoiceEvent | ControlEvent) -> None:
        """Single entry point for every event touching voice state."""
        self._inbox.append(event)
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._inbox:
                current = self._inbox.popleft()
                handler = self._handlers.get(type(current))
                if handler is None:
                    raise TypeError(f"unsupported voice event: {current!r}")
                handler(current)
        finally:
            self._dispatching = False

    async def aclose(self) -> None:
        """Turn the mic off and wait for cancelled turns to unwind."""
        self.disable()
        tasks = list(self._turn_tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Recognition
    # ------------------------------------------------------------------ #
    def _handle_result(self, event: RecognitionEvent) -> None:
        if not self._enabled:
            return
        transcript = event.transcript.strip()
        if not transcript:
            return

        if not event.is_final:
            if self._speech.is_speaking and self._detector.detect(transcript) is not None:
                logger.info("wake phrase in interim result, interrupting speech")
                self._speech.cancel()
                self._machine.transition(MicState.LISTENING)
                self._follow_up.open()
            return

        logger.info("heard: %s", transcript)
        match = self._detector.detect(transcript)

        if self._follow_up.is_active():
            self._follow_up.cancel()
            # Only an utterance that is just a wake phrase restarts the window.
            if match is not None and match.is_bare and match.position == 0:
                self._follow_up.open()
                return
            self._start_command(transcript)
            return

        if match is None:
            return
        self._speech.cancel()
        if match.remainder:
            self._start_command(match.remainder)
        else:
            self._machine.transition(MicState.LISTENING)
            self._follow_up.open()

    def _handle_recognition_error(self, event: RecognitionError) -> None:
        if not self._enabled:
            return
        if event.code in BENIGN_RECOGNITION_ERRORS:
            logger.debug("recognition %s, continuing", event.code)
            return
        logger.warning("recognition error %s: %s", event.code, event.message)
        self._fail(describe_recognition_error(event.code))

    def _handle_recognition_ended(self, _: RecognitionEnded) -> None:
        self._recognition_live = False
        if not self._enabled or self._speech.is_speaking:
            return
        self._start_recognition()

    def _start_recognition(self) -> bool:
        try:
            self._recognizer.start(self.dispatch)
        except (SousChefError, OSError) as exc:
            logger.error("recognition failed to start: %s", exc)
            self._fail(str(exc) or "Speech recognition failed to start.")
            return False
        self._recognition_live = True
        return True

    # ------------------------------------------------------------------ #
    # Turns and speech
    # ------------------------------------------------------------------ #
    def _start_command(self, command: str) -> None:
        self._speech.cancel()
        self._machine.transition(MicState.PROCESSING)
        self._open_turns += 1
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(self._run_command(command))
        self._turn_tasks.add(task)
        task.add_done_callback(self._turn_tasks.discard)

    async def _run_command(self, command: str) -> None:
        spoken: Optional[str] = None
        try:
            spoken = await self._on_command(command)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("voice command failed")
        self.dispatch(TurnFinished(spoken))

    def _handle_turn_started(self, _: TurnStarted) -> None:
        if not self._enabled:
            return
        self._open_turns += 1
        if self._machine.state in (MicState.IDLE, MicState.LISTENING):
            self._follow_up.cancel()
            self._machine.transition(MicState.PROCESSING)

    def _handle_turn_finished(self, event: TurnFinished) -> None:
        if not self._enabled:
            return
        self._open_turns = max(0, self._open_turns - 1)
        spoken = (event.spoken or "").strip()
        if spoken:
            self._say(spoken)
        elif self._machine.state == MicState.PROCESSING and self._open_turns == 0:
            self._machine.transition(MicState.IDLE)

    def _handle_speak(self, event: SpeakRequest) -> None:
        if not self._enabled:
            return
        text = event.text.strip()
        if text:
            self._say(text)

    def _say(self, text: str) -> None:
        if self._machine.state in (MicState.IDLE, MicState.LISTENING):
            self._follow_up.cancel()
            self._machine.transition(MicState.PROCESSING)
        self._machine.transition(MicState.SPEAKING)
        self._speech.speak(text)

    def _handle_speech_finished(self, event: SpeechFinished) -> None:
        if event.generation != self._speech.generation:
            return
        if not self._enabled:
            self._machine.transition(MicState.DISABLED)
            return
        if self._machine.state == MicState.SPEAKING:
            self._machine.transition(MicState.PROCESSING if self._open_turns else MicState.IDLE)
        if not self._recognition_live:
            self._start_recognition()

    def _handle_follow_up_expired(self, event: FollowUpExpired) -> None:
        if event.generation != self._follow_up.generation:
            return
        if self._machine.state == MicState.LISTENING:
            logger.info("follow-up window expired")
            self._machine.transition(MicState.IDLE)

    # ------------------------------------------------------------------ #
    # Mic on/off
    # ------------------------------------------------------------------ #
    def _handle_toggle(self, event: ToggleMic) -> None:
        target = (not self._enabled) if event.enable is None else event.enable
        if not target:
            if self._machine.state != MicState.DISABLED:
                self._shutdown(MicState.DISABLED, graceful=True)
                logger.info("mic disabled")
            return
        if self._enabled:
            return
        if not self._can_enable():
            logger.info("mic enable refused")
            return
        self._enabled = True
        if self._start_recognition():
            self._machine.transition(MicState.IDLE)
            logger.info("mic enabled")

    def _fail(self, message: str) -> None:
        self._shutdown(MicState.ERROR)
        if self._on_error:
            self._on_error(message)

    def _shutdown(self, final_state: MicState, *, graceful: bool = False) -> None:
        """Cancel turns, speech, the window and recognition in one step.

        A user toggle stops recognition and lets the server flush; failures
        abort it outright. Either way later results are ignored.
        """
        self._enabled = False
        self._open_turns = 0
        for task in list(self._turn_tasks):
            task.cancel()
        self._speech.cancel()
        self._follow_up.cancel()
        if self._recognition_live:
            self._recognition_live = False
            try:
                if graceful:
                    self._recognizer.stop()
                else:
                    self._recognizer.abort()
            except (SousChefError, OSError):
                logger.exception("recognition shutdown failed")
        self._machine.transition(final_state)

    def _state_changed(self, from_state: MicState, to_state: MicState) -> None:
        logger.debug("mic %s -> %s", from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
