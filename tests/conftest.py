from __future__ import annotations

import os
import tempfile
from typing import Callable, Optional

import pytest

# Loggers are created at import time; keep their files out of the checkout.
os.environ.setdefault("SOUSCHEF_LOG_DIR", tempfile.mkdtemp(prefix="souschef-logs-"))

from souschef_voice.errors import RecognitionStartError  # noqa: E402
from souschef_voice.runtime.events import VoiceEvent  # noqa: E402


class FakeRecognizer:
    def __init__(self, *, fail_start: bool = False) -> None:
        self.fail_start = fail_start
        self.emit: Optional[Callable[[VoiceEvent], None]] = None
        self.starts = 0
        self.aborts = 0
        self.stops = 0

    def start(self, emit: Callable[[VoiceEvent], None]) -> None:
        if self.fail_start:
            raise RecognitionStartError("Microphone unavailable")
        self.starts += 1
        self.emit = emit

    def stop(self) -> None:
        self.stops += 1

    def abort(self) -> None:
        self.aborts += 1


class FakeSynthesizer:
    """Records segments; a test finishes the current one with ``finish``."""

    def __init__(self) -> None:
        self.spoken: list[str] = []
        self.voices: list[Optional[str]] = []
        self.cancels = 0
        self._pending: list[Callable[[Optional[str]], None]] = []

    def speak(self, text: str, *, voice: Optional[str], rate: float, on_done) -> None:
        self.spoken.append(text)
        self.voices.append(voice)
        self._pending.append(on_done)

    def cancel(self) -> None:
        self.cancels += 1

    def finish(self, error: Optional[str] = None) -> None:
        on_done = self._pending.pop(0)
        on_done(error)

    def finish_all(self) -> None:
        while self._pending:
            self.finish()


@pytest.fixture()
def recognizer() -> FakeRecognizer:
    return FakeRecognizer()


@pytest.fixture()
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()
