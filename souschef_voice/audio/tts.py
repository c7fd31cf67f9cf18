"""Text-to-speech with Piper, exposed as a segment synthesizer."""

from __future__ import annotations

import asyncio
import threading
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from piper import PiperVoice, SynthesisConfig

from ..errors import CapabilityUnavailableError
from ..interfaces import SegmentDone
from ..utils.logger import get_logger
from .playback import SpeechPlayback

logger = get_logger("voice")


@dataclass(slots=True)
class PiperConfig:
    """Piper model configuration."""

    model_path: Path
    config_path: Path


def find_voice(model_dir: Path, voice: str) -> PiperConfig:
    """Locate ``<voice>.onnx`` and its JSON config under ``model_dir``."""
    base = model_dir / voice
    root = base if base.is_dir() else model_dir
    for model_path in sorted(root.rglob("*.onnx")):
        if base.is_dir() or model_path.stem == voice:
            config_path = model_path.with_suffix(".onnx.json")
            if config_path.exists():
                return PiperConfig(model_path=model_path, config_path=config_path)
    raise CapabilityUnavailableError(f"Piper voice {voice!r} not found under {model_dir}")


class PiperSynthesizer:
    """Speaks one segment at a time through Piper and the speaker.

    Synthesis runs in the default executor; completion is reported back on
    the event loop. A cancelled segment never reports completion.
    """

    def __init__(
        self,
        model_dir: Path,
        *,
        default_voice: str,
        playback: Optional[SpeechPlayback] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.model_dir = Path(model_dir)
        self.default_voice = default_voice
        self.playback = playback or SpeechPlayback()
        self._loop = loop
        self._voices: dict[str, PiperVoice] = {}
        self._voices_lock = threading.Lock()
        self._task: Optional[asyncio.Task[Any]] = None

    def speak(
        self,
        text: str,
        *,
        voice: Optional[str] = None,
        rate: float = 1.0,
        on_done: SegmentDone,
    ) -> None:
        loop = self._loop or asyncio.get_running_loop()
        self._task = loop.create_task(self._speak(text, voice or self.default_voice, rate, on_done))

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.playback.stop()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    async def _speak(self, text: str, voice: str, rate: float, on_done: SegmentDone) -> None:
        loop = asyncio.get_running_loop()
        try:
            pcm, sample_rate = await loop.run_in_executor(None, self._synthesize, text, voice, rate)
            drained = loop.create_future()

            def _drained() -> None:
                loop.call_soon_threadsafe(_resolve, drained)

            self.playback.play(pcm, sample_rate=sample_rate, on_drained=_drained)
            await drained
        except asyncio.CancelledError:
            raise
        except (CapabilityUnavailableError, OSError, RuntimeError, ValueError) as exc:
            logger.warning("segment synthesis failed: %s", exc)
            on_done(str(exc) or exc.__class__.__name__)
            return
        on_done(None)

    def _synthesize(self, text: str, voice: str, rate: float) -> tuple[bytes, int]:
        piper_voice = self._load(voice)
        text = _sanitize_text(text)
        if not text.strip():
            return b"", 0
        syn_config = SynthesisConfig(length_scale=1.0 / max(0.25, rate))
        pcm = bytearray()
        sample_rate = 0
        for chunk in piper_voice.synthesize(text, syn_config=syn_config):
            sample_rate = chunk.sample_rate
            pcm += chunk.audio_int16_bytes
        return bytes(pcm), sample_rate

    def _load(self, voice: str) -> PiperVoice:
        with self._voices_lock:
            loaded = self._voices.get(voice)
            if loaded is None:
                config = find_voice(self.model_dir, voice)
                logger.info("loading piper voice %s", config.model_path.name)
                loaded = PiperVoice.load(str(config.model_path), str(config.config_path))
                self._voices[voice] = loaded
            return loaded


def _resolve(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)


def _sanitize_text(text: str) -> str:
    """Drop combining marks that some voices have no phonemes for."""
    normalized = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in normalized if unicodedata.category(ch) != "Mn")
    return unicodedata.normalize("NFC", stripped.replace("~", ""))
