import asyncio
import json

import pytest

from souschef_voice.errors import RecognitionStartError
from souschef_voice.runtime.events import RecognitionEnded, RecognitionError, RecognitionEvent
from souschef_voice.services.recognition import StreamingRecognizer, parse_message


def test_transcript_messages() -> None:
    event = parse_message(json.dumps({"type": "transcript", "text": "hey sous", "final": True}))
    assert isinstance(event, RecognitionEvent)
    assert event.transcript == "hey sous"
    assert event.is_final

    interim = parse_message(json.dumps({"type": "transcript", "text": "hey"}).encode())
    assert isinstance(interim, RecognitionEvent) and not interim.is_final


def test_error_messages() -> None:
    event = parse_message(json.dumps({"type": "error", "code": "no-speech"}))
    assert isinstance(event, RecognitionError)
    assert event.code == "no-speech"
    assert parse_message(json.dumps({"type": "error"})).code == "network"  # type: ignore[union-attr]


def test_other_messages_are_ignored() -> None:
    assert parse_message("") is None
    assert parse_message(json.dumps({"type": "ready"})) is None
    assert parse_message("[1, 2]") is None
    raw = parse_message("plain text")
    assert isinstance(raw, RecognitionEvent) and raw.transcript == "plain text"


class FakeCapture:
    def __init__(self) -> None:
        self.consumer = None
        self.starts = 0
        self.stops = 0

    def bind(self, consumer) -> None:
        self.consumer = consumer

    def start(self) -> None:
        self.starts += 1

    def stop(self) -> None:
        self.stops += 1


class LoopbackRecognizer(StreamingRecognizer):
    """Consumes queued frames locally instead of talking to a server."""

    async def _session(self, emit, frames) -> None:
        while True:
            frame = await frames.get()
            if not frame:
                emit(RecognitionEnded())
                return


@pytest.mark.asyncio
async def test_stop_flushes_and_ends_the_session() -> None:
    capture = FakeCapture()
    recognizer = LoopbackRecognizer("ws://test", capture=capture)  # type: ignore[arg-type]
    events: list = []
    recognizer.start(events.append)
    recognizer.stop()
    assert capture.stops == 1
    for _ in range(5):
        await asyncio.sleep(0)
    assert [type(event) for event in events] == [RecognitionEnded]
    assert not recognizer.running


@pytest.mark.asyncio
async def test_restart_while_stopped_session_flushes() -> None:
    capture = FakeCapture()
    recognizer = LoopbackRecognizer("ws://test", capture=capture)  # type: ignore[arg-type]
    recognizer.start(lambda event: None)
    with pytest.raises(RecognitionStartError):
        recognizer.start(lambda event: None)
    recognizer.stop()
    recognizer.start(lambda event: None)
    assert capture.starts == 2
    assert recognizer.running
    recognizer.abort()
