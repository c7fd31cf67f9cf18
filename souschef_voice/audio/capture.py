"""Microphone capture for streaming recognition."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Callable, Protocol

import sounddevice as sd

from ..errors import RecognitionStartError
from ..utils.logger import get_logger

logger = get_logger("voice")


class FrameConsumer(Protocol):
    """Protocol for streaming audio frames."""

    def __call__(self, frame: bytes) -> None: ...


@dataclass(slots=True)
class CaptureConfig:
    """Microphone capture configuration."""

    sample_rate: int = 16_000
    channels: int = 1
    frame_duration_ms: int = 20
    device_name: str | None = None


class MicrophoneCapture:
    """Delivers raw int16 frames to one consumer, on the audio thread."""

    def __init__(self, config: CaptureConfig | None = None) -> None:
        self.config = config or CaptureConfig()
        self._consumer: Callable[[bytes], None] | None = None
        self._stream: sd.RawInputStream | None = None
        self._lock = Lock()
        self._running = False

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def bind(self, consumer: FrameConsumer) -> None:
        """Register the frame consumer."""
        self._consumer = consumer

    def start(self) -> None:
        """Open the input stream; raises RecognitionStartError if the device refuses."""
        if self._consumer is None:
            raise RecognitionStartError("No audio consumer registered.")
        with self._lock:
            if self._running:
                return
            frame_size = int(self.config.sample_rate * self.config.frame_duration_ms / 1000)
            try:
                self._stream = sd.RawInputStream(
                    samplerate=self.config.sample_rate,
                    channels=self.config.channels,
                    dtype="int16",
                    blocksize=frame_size,
                    callback=self._on_frame,
                    device=self.config.device_name,
                )
                self._stream.start()
            except sd.PortAudioError as exc:
                self._stream = None
                raise RecognitionStartError(f"Microphone unavailable: {exc}") from exc
            self._running = True
            logger.debug("microphone capture started")

    def stop(self) -> None:
        """Stop microphone capture."""
        with self._lock:
            if not self._running:
                return
            assert self._stream is not None
            self._stream.stop()
            self._stream.close()
            self._stream = None
            self._running = False
            logger.debug("microphone capture stopped")

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _on_frame(self, indata: bytes, frames: int, time, status) -> None:  # type: ignore[override]  # noqa: ANN401
        if status:  # pragma: no cover
            logger.warning("microphone status: %s", status)
        if self._consumer is not None:
            self._consumer(bytes(indata))
