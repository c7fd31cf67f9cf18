"""Sentence-by-sentence speech output over a synthesis capability."""

from __future__ import annotations

import re
from collections import deque
from typing import Callable, Optional

from ..interfaces import SynthesisCapability
from ..utils.logger import get_logger

logger = get_logger("voice")

_SENTENCE_RE = re.compile(r"[^.!?\n]+[.!?\n]*")


def split_sentences(text: str) -> list[str]:
    """Split ``text`` on . ! ? and newlines, keeping each terminator."""
    segments = [match.strip() for match in _SENTENCE_RE.findall(text)]
    segments = [segment for segment in segments if segment]
    if segments:
        return segments
    text = text.strip()
    return [text] if text else []


class SpeechOutputStreamer:
    """Plays a reply one segment at a time and can drop the rest mid-queue.

    Every ``speak`` call starts a new generation; completion callbacks from
    an older generation are ignored, so once ``cancel`` returns nothing from
    the cancelled queue is spoken or reported.
    """

    def __init__(
        self,
        synthesizer: SynthesisCapability,
        *,
        voice: Optional[str] = None,
        rate: float = 1.0,
        on_finished: Optional[Callable[[int], None]] = None,
    ) -> None:
        self._synthesizer = synthesizer
        self.voice = voice
        self.rate = rate
        self._on_finished = on_finished
        self._queue: deque[str] = deque()
        self._generation = 0
        self._active = False

    @property
    def is_speaking(self) -> bool:
        return self._active

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending_segments(self) -> list[str]:
        return list(self._queue)

    def speak(self, text: str) -> int:
        """Queue ``text`` for playback, replacing anything still playing."""
        self.cancel()
        segments = split_sentences(text)
        self._generation += 1
        if not segments:
            return self._generation
        self._queue = deque(segments)
        self._active = True
        logger.info("speaking %d segment(s)", len(segments))
        self._next(self._generation)
        return self._generation

    def cancel(self) -> bool:
        """Stop the current segment and drop the queue; no-op when idle."""
        if not self._active:
            return False
        self._generation += 1
        self._queue.clear()
        self._active = False
        self._synthesizer.cancel()
        logger.info("speech cancelled")
        return True

    def _next(self, generation: int) -> None:
        if generation != self._generation:
            return
        if not self._queue:
            self._active = False
            if self._on_finished:
                self._on_finished(generation)
            return
        segment = self._queue.popleft()
        self._synthesizer.speak(
            segment,
            voice=self.voice,
            rate=self.rate,
            on_done=lambda error: self._segment_done(generation, error),
        )

    def _segment_done(self, generation: int, error: Optional[str]) -> None:
        if generation != self._generation or not self._active:
            return
        if error:
            # A failed segment must not stall the queue.
            logger.warning("speech segment failed: %s", error)
        self._next(generation)
