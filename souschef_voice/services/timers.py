"""Timer suggestions, local timer starts and their spoken announcements."""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

import httpx

from ..utils.logger import get_logger
from .api import SousChefAPI
from .schemas import StartedTimer, TimerSuggestion

logger = get_logger("timers")

TimerStarted = Callable[[StartedTimer], None]


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def spoken_duration(seconds: int) -> str:
    """Render a duration for speech: hours (+ minutes) from an hour up,
    otherwise the nearest minute. Under half a minute reads as seconds."""
    seconds = max(0, int(seconds))
    if seconds >= 3600:
        hours = seconds // 3600
        minutes = _round_half_up((seconds % 3600) / 60)
        if minutes == 60:
            hours, minutes = hours + 1, 0
        if minutes:
            return f"{_plural(hours, 'hour')} and {_plural(minutes, 'minute')}"
        return _plural(hours, "hour")
    minutes = _round_half_up(seconds / 60)
    if minutes == 0:
        return _plural(seconds, "second")
    return _plural(minutes, "minute")


def format_clock(seconds: int) -> str:
    """``h:mm:ss`` / ``m:ss`` countdown text, ``DONE`` once elapsed."""
    if seconds <= 0:
        return "DONE"
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


@dataclass(slots=True)
class TimerOutcome:
    """What a reply did to the timer list."""

    started: list[StartedTimer] = field(default_factory=list)
    suggestions: list[TimerSuggestion] = field(default_factory=list)
    announcements: list[str] = field(default_factory=list)

    @property
    def spoken(self) -> str:
        return " ".join(self.announcements)


class TimerAnnouncer:
    """Starts timers locally, persists them, and words the announcements.

    In voice mode suggestions are accepted on the spot so hands-free use
    never blocks on a yes/no prompt; otherwise they are handed back for the
    user to accept or dismiss. Persistence runs in the background and its
    failure leaves the local timer running.
    """

    def __init__(
        self,
        api: Optional[SousChefAPI],
        *,
        on_timer_started: Optional[TimerStarted] = None,
        on_sessions_changed: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._api = api
        self._on_timer_started = on_timer_started
        self._on_sessions_changed = on_sessions_changed
        self._clock = clock
        self._tasks: set[asyncio.Task[Any]] = set()

    def handle(
        self,
        *,
        suggested: Iterable[TimerSuggestion] = (),
        started: Iterable[TimerSuggestion] = (),
        voice_mode: bool,
        session_id: Optional[int] = None,
    ) -> TimerOutcome:
        outcome = TimerOutcome()

        # Timers the backend already started and stored.
        for item in started:
            timer = self._start_local(item, session_id)
            outcome.started.append(timer)
            if voice_mode:
                outcome.announcements.append(
                    f"Timer started: {timer.label} for {spoken_duration(timer.duration_seconds)}."
                )

        for suggestion in suggested:
            if not voice_mode:
                outcome.suggestions.append(suggestion)
                continue
            timer = self.accept(suggestion, session_id)
            outcome.started.append(timer)
            outcome.announcements.append(
                f"Starting {timer.label} timer for {spoken_duration(timer.duration_seconds)}."
            )
        return outcome

    def accept(self, suggestion: TimerSuggestion, session_id: Optional[int] = None) -> StartedTimer:
        """Start a suggested timer now and persist it when it has a session."""
        timer = self._start_local(suggestion, session_id)
        task = asyncio.get_running_loop().create_task(self._persist(timer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return timer

    async def drain(self) -> None:
        """Wait for background persistence calls to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _start_local(self, suggestion: TimerSuggestion, session_id: Optional[int]) -> StartedTimer:
        timer = StartedTimer(
            id=uuid.uuid4().hex,
            label=suggestion.label,
            duration_seconds=suggestion.duration_seconds,
            started_at=self._clock(),
            recipe=suggestion.recipe,
            session_id=suggestion.session_id if suggestion.session_id is not None else session_id,
        )
        logger.info("timer started: %s (%ss)", timer.label, timer.duration_seconds)
        if self._on_timer_started:
            self._on_timer_started(timer)
        return timer

    async def _persist(self, timer: StartedTimer) -> None:
        if self._api is None or timer.session_id is None:
            return
        try:
            stored = await self._api.start_timer(timer.session_id, timer.label, timer.duration_seconds)
        except httpx.HTTPError as exc:
            logger.warning("timer %s not persisted: %s", timer.label, exc)
            return
        if not stored:
            logger.warning("backend refused timer %s", timer.label)
            return
        if self._on_sessions_changed:
            self._on_sessions_changed()
