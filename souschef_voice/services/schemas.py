"""Data schemas exchanged with the SousChef backend."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional


TIMER_TAG_RE = re.compile(r"\[\s*TIMER(?:_START)?:\d+:[^\]]+?\s*\]")


def strip_timer_tags(text: str) -> str:
    """Remove residual inline timer markup and collapse the gaps it leaves."""
    cleaned = TIMER_TAG_RE.sub("", text or "")
    return re.sub(r"\s{2,}", " ", cleaned).strip()


def _optional_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


@dataclass(slots=True)
class ConversationTurn:
    """One user utterance sent to the backend."""

    text: str
    session_id: Optional[int] = None
    resolved_recipe_id: Optional[int] = None
    confirm_end: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Serialise the turn for the conversation endpoint."""
        payload: dict[str, Any] = {"text": self.text}
        if self.session_id is not None:
            payload["sessionId"] = self.session_id
        if self.resolved_recipe_id is not None:
            payload["resolvedRecipeId"] = self.resolved_recipe_id
        if self.confirm_end:
            payload["confirmEnd"] = True
        return payload


@dataclass(slots=True)
class SessionRef:
    """Read-only view of a cooking session owned by the backend."""

    session_id: int
    recipe: str
    current_step: int = 0
    total_steps: int = 0

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SessionRef":
        return cls(
            session_id=int(payload.get("sessionId") or 0),
            recipe=str(payload.get("recipe") or ""),
            current_step=int(payload.get("currentStep") or 0),
            total_steps=int(payload.get("totalSteps") or 0),
        )


@dataclass(slots=True)
class RecipeCandidate:
    """A recipe offered during recipe disambiguation."""

    recipe_id: int
    title: str
    steps: int = 0

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RecipeCandidate":
        return cls(
            recipe_id=int(payload.get("recipeId") or 0),
            title=str(payload.get("title") or ""),
            steps=int(payload.get("steps") or 0),
        )


@dataclass(slots=True)
class TimerSuggestion:
    """A timer proposed by the assistant, waiting for accept or dismiss."""

    label: str
    duration_seconds: int
    recipe: str = "Timer"
    session_id: Optional[int] = None

    @classmethod
    def from_payload(
        cls,
        payload: dict[str, Any],
        *,
        recipe: str,
        session_id: Optional[int] = None,
    ) -> "TimerSuggestion":
        return cls(
            label=str(payload.get("label") or "Timer"),
            duration_seconds=int(payload.get("durationSeconds") or 0),
            recipe=recipe,
            session_id=session_id,
        )


@dataclass(slots=True)
class StartedTimer:
    """A timer running locally.

    ``persisted`` marks timers loaded from the backend's session list.
    """

    id: str
    label: str
    duration_seconds: int
    started_at: float
    recipe: str = "Timer"
    session_id: Optional[int] = None
    notified: bool = False
    persisted: bool = False

    def remaining_seconds(self, now: float) -> int:
        """Seconds left at ``now`` (epoch seconds), never negative."""
        elapsed = int(now - self.started_at)
        return max(0, self.duration_seconds - elapsed)


class ResponseKind(str, Enum):
    """Discriminant of a classified backend reply."""

    ERROR = "error"
    SESSION_DISAMBIGUATION = "session_disambiguation"
    RECIPE_DISAMBIGUATION = "recipe_disambiguation"
    SESSION_STARTED = "session_started"
    AWAITING_END_CONFIRMATION = "awaiting_end_confirmation"
    SESSION_COMPLETED = "session_completed"
    NORMAL = "normal"


@dataclass(slots=True)
class StructuredResponse:
    """Common fields of every classified reply."""

    KIND: ClassVar[ResponseKind]

    message: str
    spoken: Optional[str] = None
    session_id: Optional[int] = None
    model_used: Optional[str] = None

    @property
    def kind(self) -> ResponseKind:
        return self.KIND

    @property
    def spoken_text(self) -> str:
        """Text to read aloud; falls back to the displayed message."""
        return self.spoken if self.spoken is not None else self.message


@dataclass(slots=True)
class ErrorResponse(StructuredResponse):
    KIND: ClassVar[ResponseKind] = ResponseKind.ERROR

    expired: bool = False


@dataclass(slots=True)
class SessionDisambiguation(StructuredResponse):
    KIND: ClassVar[ResponseKind] = ResponseKind.SESSION_DISAMBIGUATION

    sessions: list[SessionRef] = field(default_factory=list)
    original_text: str = ""


@dataclass(slots=True)
class RecipeDisambiguation(StructuredResponse):
    KIND: ClassVar[ResponseKind] = ResponseKind.RECIPE_DISAMBIGUATION

    candidates: list[RecipeCandidate] = field(default_factory=list)
    pending_text: str = ""


@dataclass(slots=True)
class SessionStarted(StructuredResponse):
    KIND: ClassVar[ResponseKind] = ResponseKind.SESSION_STARTED

    recipe: str = ""
    suggested_timers: list[TimerSuggestion] = field(default_factory=list)


@dataclass(slots=True)
class AwaitingEndConfirmation(StructuredResponse):
    KIND: ClassVar[ResponseKind] = ResponseKind.AWAITING_END_CONFIRMATION


@dataclass(slots=True)
class SessionCompleted(StructuredResponse):
    KIND: ClassVar[ResponseKind] = ResponseKind.SESSION_COMPLETED


@dataclass(slots=True)
class NormalResponse(StructuredResponse):
    KIND: ClassVar[ResponseKind] = ResponseKind.NORMAL

    recipe: Optional[str] = None
    kitchen_qa: bool = False
    suggested_timers: list[TimerSuggestion] = field(default_factory=list)
    started_timers: list[TimerSuggestion] = field(default_factory=list)
    awaiting_completion: bool = False

    @property
    def recipe_name(self) -> Optional[str]:
        if self.recipe:
            return self.recipe
        return "Kitchen Q&A" if self.kitchen_qa else None


def parse_session_id(payload: dict[str, Any]) -> Optional[int]:
    """Read the optional ``sessionId`` marker of a reply."""
    return _optional_int(payload.get("sessionId"))
