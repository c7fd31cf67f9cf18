"""Shared state model for the voice client."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

import httpx

from ..services.api import SousChefAPI
from ..services.schemas import RecipeCandidate, SessionRef, StartedTimer, TimerSuggestion
from ..utils.logger import get_logger

logger = get_logger("timers")

Role = Literal["user", "assistant", "system"]
Source = Literal["text", "voice"]


@dataclass(slots=True)
class ChatMessage:
    """Single conversation entry with the prompts attached to it."""

    role: Role
    content: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    source: Source = "text"
    model_used: Optional[str] = None
    recipe_name: Optional[str] = None
    session_id: Optional[int] = None
    session_choices: list[SessionRef] = field(default_factory=list)
    original_text: Optional[str] = None
    recipe_choices: list[RecipeCandidate] = field(default_factory=list)
    timer_suggestions: list[TimerSuggestion] = field(default_factory=list)
    awaiting_completion: bool = False
    awaiting_end_confirmation: bool = False


def to_epoch_seconds(started_at: Any, *, default: Optional[float] = None) -> float:
    """Normalise a backend ``startedAt`` value.

    Accepts epoch milliseconds, a ``[y, m, d, h, mi, s, nanos]`` list or an
    ISO-ish string; anything else falls back to now.
    """
    if isinstance(started_at, bool):
        started_at = None
    if isinstance(started_at, (int, float)):
        return float(started_at) / 1000.0
    if isinstance(started_at, list) and len(started_at) >= 6:
        try:
            year, month, day, hour, minute, second = (int(part) for part in started_at[:6])
            nanos = int(started_at[6]) if len(started_at) > 6 else 0
            return datetime(year, month, day, hour, minute, second, nanos // 1000).timestamp()
        except (TypeError, ValueError):
            pass
    if isinstance(started_at, str):
        normalized = started_at if "T" in started_at else started_at.replace(" ", "T", 1)
        try:
            return datetime.fromisoformat(normalized.replace("Z", "+00:00")).timestamp()
        except ValueError:
            pass
    return default if default is not None else time.time()


@dataclass(slots=True)
class AppState:
    """Sessions, running timers and the message log of the client."""

    sessions: list[SessionRef] = field(default_factory=list)
    timers: list[StartedTimer] = field(default_factory=list)
    messages: list[ChatMessage] = field(default_factory=list)

    # ------------------------------------------------------------------ #
    # Messages
    # ------------------------------------------------------------------ #
    def add_message(self, message: ChatMessage) -> ChatMessage:
        self.messages.append(message)
        return message

    def system(self, content: str) -> ChatMessage:
        return self.add_message(ChatMessage(role="system", content=content))

    def find_message(self, message_id: str) -> Optional[ChatMessage]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None

    # ------------------------------------------------------------------ #
    # Timers
    # ------------------------------------------------------------------ #
    def add_timer(self, timer: StartedTimer) -> None:
        self.timers.append(timer)

    def finished_timers(self, now: Optional[float] = None) -> list[StartedTimer]:
        """Timers that reached zero since the last call; each is reported once."""
        now = time.time() if now is None else now
        done = []
        for timer in self.timers:
            if not timer.notified and timer.remaining_seconds(now) == 0:
                timer.notified = True
                done.append(timer)
        return done

    async def dismiss_timer(self, api: Optional[SousChefAPI], timer_id: str) -> None:
        """Drop a timer; backend timers (numeric ids) are also completed remotely."""
        self.timers = [timer for timer in self.timers if timer.id != timer_id]
        if api is None or not timer_id.isdigit():
            return
        try:
            await api.complete_timer(int(timer_id))
        except httpx.HTTPError as exc:
            logger.warning("timer %s completion not persisted: %s", timer_id, exc)
            return
        await self.refresh_sessions(api)

    # ------------------------------------------------------------------ #
    # Sessions
    # ------------------------------------------------------------------ #
    async def refresh_sessions(self, api: SousChefAPI) -> bool:
        """Reload active sessions and merge the backend's running timers.

        Timers loaded earlier are replaced by the new list. Timers started on
        this client stay until the backend reports one with the same session
        and label, so a failed or still pending save never drops them.
        """
        try:
            payload = await api.list_sessions()
        except httpx.HTTPError as exc:
            logger.warning("session refresh failed: %s", exc)
            return False

        sessions: list[SessionRef] = []
        timers: list[StartedTimer] = []
        for item in payload:
            session = SessionRef.from_payload(item)
            sessions.append(session)
            for raw in item.get("activeTimers") or []:
                if not isinstance(raw, dict):
                    continue
                label = str(raw.get("label") or "Timer")
                timer_id = raw.get("id")
                if timer_id is None:
                    timer_id = f"{session.session_id}-{label}-{raw.get('startedAt')}"
                timers.append(
                    StartedTimer(
                        id=str(timer_id),
                        label=label,
                        duration_seconds=int(raw.get("durationSeconds") or 0),
                        started_at=to_epoch_seconds(raw.get("startedAt")),
                        recipe=session.recipe or "Timer",
                        session_id=session.session_id,
                        persisted=True,
                    )
                )
        known = {(timer.session_id, timer.label) for timer in timers}
        local_only = [
            timer
            for timer in self.timers
            if not timer.persisted and (timer.session_id is None or (timer.session_id, timer.label) not in known)
        ]
        self.sessions = sessions
        self.timers = local_only + timers
        logger.info("hydrated %d sessions, %d timers", len(sessions), len(timers))
        return True
