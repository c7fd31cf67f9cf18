"""Speaker output for synthesized segments."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

import sounddevice as sd

from ..utils.logger import get_logger

logger = get_logger("voice")


@dataclass(slots=True)
class PlaybackConfig:
    """Playback configuration."""

    sample_rate: int = 22_050
    channels: int = 1
    device_name: str | None = None


class SpeechPlayback:
    """Raw int16 output stream fed from a byte buffer.

    ``play`` takes an optional ``on_drained`` callback which fires once, on
    the audio thread, after the last byte of that buffer has been written.
    """

    def __init__(self, config: PlaybackConfig | None = None) -> None:
        self.config = config or PlaybackConfig()
        self._buffer = deque[bytes]()
        self._lock = threading.RLock()
        self._stream: sd.RawOutputStream | None = None
        self._on_drained: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def play(
        self,
        pcm_data: bytes,
        *,
        sample_rate: Optional[int] = None,
        on_drained: Optional[Callable[[], None]] = None,
    ) -> None:
        """Queue a PCM buffer for playback."""
        with self._lock:
            if sample_rate and sample_rate != self.config.sample_rate:
                self._close_stream()
                self.config.sample_rate = sample_rate
            if not pcm_data:
                if on_drained:
                    on_drained()
                return
            self._ensure_stream()
            self._buffer.append(pcm_data)
            self._on_drained = on_drained

    def stop(self) -> None:
        """Stop playback and drop whatever is still buffered."""
        with self._lock:
            self._buffer.clear()
            self._on_drained = None
            self._close_stream()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _ensure_stream(self) -> None:
        if self._stream is not None:
            if not self._stream.active:
                self._stream.start()
            return
        self._stream = sd.RawOutputStream(
            samplerate=self.config.sample_rate,
            channels=self.config.channels,
            dtype="int16",
            callback=self._on_write,
            device=self.config.device_name,
        )
        self._stream.start()

    def _close_stream(self) -> None:
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None

    def _on_write(self, outdata: bytearray, frames: int, time, status) -> None:  # type: ignore[override]  # noqa: ANN401
        if status:  # pragma: no cover
            logger.warning("audio output status: %s", status)
        drained: Optional[Callable[[], None]] = None
        with self._lock:
            if not self._buffer:
                outdata[:] = b"\x00" * len(outdata)
                return
            chunk = self._buffer.popleft()
            if len(chunk) >= len(outdata):
                outdata[:] = chunk[: len(outdata)]
                remainder = chunk[len(outdata) :]
                if remainder:
                    self._buffer.appendleft(remainder)
            else:
                outdata[: len(chunk)] = chunk
                outdata[len(chunk) :] = b"\x00" * (len(outdata) - len(chunk))
            if not self._buffer and self._on_drained is not None:
                drained, self._on_drained = self._on_drained, None
        if drained is not None:
            drained()
