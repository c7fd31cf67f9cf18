from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from souschef_voice.runtime.controller import VoiceController
from souschef_voice.runtime.events import RecognitionEnded, RecognitionError, RecognitionEvent
from souschef_voice.runtime.mic_state import MicState

PHRASES = ["hey sous", "hey sue", "hey souz", "hey soos"]


class Commands:
    def __init__(self, reply: Optional[str] = "Okay.") -> None:
        self.reply = reply
        self.received: list[str] = []
        self.gate: Optional[asyncio.Event] = None

    async def __call__(self, text: str) -> Optional[str]:
        self.received.append(text)
        if self.gate is not None:
            await self.gate.wait()
        return self.reply


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def make_controller(recognizer, synthesizer, commands, **kwargs) -> VoiceController:
    errors: list[str] = kwargs.pop("errors", [])
    return VoiceController(
        recognizer,
        synthesizer,
        on_command=commands,
        wake_phrases=PHRASES,
        follow_up_seconds=kwargs.pop("follow_up_seconds", 6.0),
        voice="amy",
        rate=1.05,
        on_error=errors.append,
        **kwargs,
    )


def final(text: str) -> RecognitionEvent:
    return RecognitionEvent(text, is_final=True)


@pytest.mark.asyncio
async def test_enable_starts_recognition(recognizer, synthesizer) -> None:
    controller = make_controller(recognizer, synthesizer, Commands())
    controller.enable()
    assert controller.state == MicState.IDLE
    assert controller.voice_mode
    assert recognizer.starts == 1


@pytest.mark.asyncio
async def test_wake_phrase_with_command_dispatches_remainder(recognizer, synthesizer) -> None:
    commands = Commands(reply="Next, drain the pasta.")
    controller = make_controller(recognizer, synthesizer, commands)
    controller.enable()

    recognizer.emit(final("Hey Sous what's next"))
    assert controller.state == MicState.PROCESSING
    await settle()

    assert commands.received == ["what's next"]
    assert controller.state == MicState.SPEAKING
    assert synthesizer.spoken == ["Next, drain the pasta."]
    synthesizer.finish()
    assert controller.state == MicState.IDLE


@pytest.mark.asyncio
async def test_transcript_without_wake_phrase_is_discarded(recognizer, synthesizer) -> None:
    commands = Commands()
    controller = make_controller(recognizer, synthesizer, commands)
    controller.enable()
    recognizer.emit(final("what's next"))
    await settle()
    assert commands.received == []
    assert controller.state == MicState.IDLE


@pytest.mark.asyncio
async def test_bare_wake_phrase_opens_follow_up_window(recognizer, synthesizer) -> None:
    commands = Commands(reply=None)
    controller = make_controller(recognizer, synthesizer, commands)
    controller.enable()

    recognizer.emit(final("hey sous"))
    assert controller.state == MicState.LISTENING
    assert controller.follow_up_active

    recognizer.emit(final("set a timer for five minutes"))
    assert not controller.follow_up_active
    await settle()
    assert commands.received == ["set a timer for five minutes"]
    assert controller.state == MicState.IDLE


@pytest.mark.asyncio
async def test_follow_up_sends_raw_transcript_even_with_wake_phrase(recognizer, synthesizer) -> None:
    commands = Commands(reply=None)
    controller = make_controller(recognizer, synthesizer, commands)
    controller.enable()

    recognizer.emit(final("hey sous"))
    recognizer.emit(final("add the salt hey sue"))
    assert not controller.follow_up_active
    await settle()
    assert commands.received == ["add the salt hey sue"]

    recognizer.emit(final("hey sous"))
    recognizer.emit(final("hey sue stir it"))
    await settle()
    assert commands.received == ["add the salt hey sue", "hey sue stir it"]


@pytest.mark.asyncio
async def test_follow_up_window_expires_to_idle(recognizer, synthesizer) -> None:
    commands = Commands()
    controller = make_controller(recognizer, synthesizer, commands, follow_up_seconds=0.01)
    controller.enable()
    recognizer.emit(final("hey sue"))
    assert controller.state == MicState.LISTENING
    await asyncio.sleep(0.05)
    assert controller.state == MicState.IDLE
    assert not controller.follow_up_active

    recognizer.emit(final("set a timer"))
    await settle()
    assert commands.received == []


@pytest.mark.asyncio
async def test_repeated_bare_wake_resets_window(recognizer, synthesizer) -> None:
    controller = make_controller(recognizer, synthesizer, Commands(), follow_up_seconds=0.05)
    controller.enable()
    recognizer.emit(final("hey sous"))
    await asyncio.sleep(0.03)
    recognizer.emit(final("hey sous"))
    await asyncio.sleep(0.03)
    assert controller.state == MicState.LISTENING
    await asyncio.sleep(0.05)
    assert controller.state == MicState.IDLE


@pytest.mark.asyncio
async def test_barge_in_cancels_speech_and_ignores_stale_completion(recognizer, synthesizer) -> None:
    controller = make_controller(recognizer, synthesizer, Commands())
    controller.enable()
    controller.speak("Step one. Step two. Step three.")
    assert controller.state == MicState.SPEAKING
    assert synthesizer.spoken == ["Step one."]

    recognizer.emit(RecognitionEvent("hey sous", is_final=False))
    assert synthesizer.cancels == 1
    assert controller.state == MicState.LISTENING
    assert not controller.is_speaking

    synthesizer.finish()
    assert synthesizer.spoken == ["Step one."]
    assert controller.state == MicState.LISTENING


@pytest.mark.asyncio
async def test_interim_without_speech_is_ignored(recognizer, synthesizer) -> None:
    controller = make_controller(recognizer, synthesizer, Commands())
    controller.enable()
    recognizer.emit(RecognitionEvent("hey sous", is_final=False))
    assert controller.state == MicState.IDLE


@pytest.mark.asyncio
async def test_benign_recognition_errors_are_ignored(recognizer, synthesizer) -> None:
    errors: list[str] = []
    controller = make_controller(recognizer, synthesizer, Commands(), errors=errors)
    controller.enable()
    recognizer.emit(RecognitionError("no-speech"))
    recognizer.emit(RecognitionError("aborted"))
    assert controller.state == MicState.IDLE
    assert errors == []


@pytest.mark.asyncio
async def test_other_recognition_errors_turn_the_mic_off(recognizer, synthesizer) -> None:
    errors: list[str] = []
    controller = make_controller(recognizer, synthesizer, Commands(), errors=errors)
    controller.enable()
    recognizer.emit(RecognitionError("not-allowed"))
    assert controller.state == MicState.ERROR
    assert not controller.is_enabled
    assert not controller.voice_mode
    assert recognizer.aborts == 1
    assert errors == ["Microphone access was denied."]

    # Re-enabling is an explicit user action.
    controller.enable()
    assert controller.state == MicState.IDLE
    assert recognizer.starts == 2


@pytest.mark.asyncio
async def test_start_failure_reports_error_without_retry(recognizer, synthesizer) -> None:
    errors: list[str] = []
    recognizer.fail_start = True
    controller = make_controller(recognizer, synthesizer, Commands(), errors=errors)
    controller.enable()
    assert controller.state == MicState.ERROR
    assert not controller.is_enabled
    assert errors == ["Microphone unavailable"]
    assert recognizer.starts == 0


@pytest.mark.asyncio
async def test_recognition_end_restarts_unless_speaking(recognizer, synthesizer) -> None:
    controller = make_controller(recognizer, synthesizer, Commands())
    controller.enable()
    recognizer.emit(RecognitionEnded())
    assert recognizer.starts == 2

    controller.speak("Hold on.")
    recognizer.emit(RecognitionEnded())
    assert recognizer.starts == 2
    synthesizer.finish()
    assert controller.state == MicState.IDLE
    assert recognizer.starts == 3


@pytest.mark.asyncio
async def test_toggle_off_cancels_everything(recognizer, synthesizer) -> None:
    commands = Commands()
    commands.gate = asyncio.Event()
    controller = make_controller(recognizer, synthesizer, commands)
    controller.enable()
    recognizer.emit(final("hey sous how long do I rest the dough"))
    await settle()
    assert controller.state == MicState.PROCESSING

    controller.toggle()
    assert controller.state == MicState.DISABLED
    assert recognizer.stops == 1
    assert recognizer.aborts == 0
    await settle()
    commands.gate.set()
    await settle()
    assert synthesizer.spoken == []
    assert controller.state == MicState.DISABLED


@pytest.mark.asyncio
async def test_typed_turn_is_spoken_in_voice_mode(recognizer, synthesizer) -> None:
    controller = make_controller(recognizer, synthesizer, Commands())
    controller.enable()
    controller.begin_turn()
    assert controller.state == MicState.PROCESSING
    controller.finish_turn("Sure. Preheat the oven.")
    assert controller.state == MicState.SPEAKING
    synthesizer.finish_all()
    assert synthesizer.spoken == ["Sure.", "Preheat the oven."]
    assert controller.state == MicState.IDLE


@pytest.mark.asyncio
async def test_nothing_is_spoken_when_mic_is_off(recognizer, synthesizer) -> None:
    controller = make_controller(recognizer, synthesizer, Commands())
    controller.begin_turn()
    controller.finish_turn("Hello.")
    controller.speak("Hello again.")
    assert synthesizer.spoken == []
    assert controller.state == MicState.DISABLED


@pytest.mark.asyncio
async def test_events_raised_while_dispatching_are_queued(recognizer, synthesizer) -> None:
    seen: list[tuple[MicState, MicState]] = []
    controller = make_controller(
        recognizer, synthesizer, Commands(), on_state_change=lambda a, b: seen.append((a, b))
    )
    controller.enable()

    def speak_now(text: str, *, voice, rate, on_done) -> None:
        synthesizer.spoken.append(text)
        on_done(None)

    synthesizer.speak = speak_now  # type: ignore[method-assign]
    controller.speak("Done.")
    assert synthesizer.spoken == ["Done."]
    assert [b for _, b in seen] == [MicState.IDLE, MicState.PROCESSING, MicState.SPEAKING, MicState.IDLE]
