"""Text wake-phrase detection over recognition transcripts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(slots=True, frozen=True)
class WakeMatch:
    """Where a wake phrase was found and what followed it."""

    phrase: str
    position: int
    remainder: str

    @property
    def is_bare(self) -> bool:
        """True when the utterance held the wake phrase and nothing else."""
        return not self.remainder


class WakeWordDetector:
    """Find the earliest configured wake phrase in a transcript.

    Several phrases act as synonyms so that common misrecognitions of the
    wake word still trigger. Matching is case-insensitive and
    substring-based, so the phrase may appear mid-sentence.
    """

    def __init__(self, phrases: Iterable[str]) -> None:
        normalized = {p.strip().lower() for p in phrases if p and p.strip()}
        # Longest first so that ties at one position keep the fullest phrase.
        self.phrases: tuple[str, ...] = tuple(sorted(normalized, key=len, reverse=True))

    def detect(self, transcript: str) -> Optional[WakeMatch]:
        lower = transcript.lower()
        best: Optional[tuple[int, str]] = None
        for phrase in self.phrases:
            idx = lower.find(phrase)
            if idx == -1:
                continue
            if best is None or idx < best[0]:
                best = (idx, phrase)
        if best is None:
            return None
        position, phrase = best
        remainder = transcript[position + len(phrase):].lstrip(" \t,.;:!?-").strip()
        if not any(ch.isalnum() for ch in remainder):
            remainder = ""
        return WakeMatch(phrase=phrase, position=position, remainder=remainder)

    def contains_wake_phrase(self, transcript: str) -> bool:
        return self.detect(transcript) is not None
