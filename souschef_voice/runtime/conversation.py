"""Conversation session tying the dispatcher, timers and voice together."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

import httpx

from ..services.api import SousChefAPI
from ..services.dispatcher import ConversationDispatcher
from ..services.resolution import PendingResolutionStore, Resolution
from ..services.schemas import (
    AwaitingEndConfirmation,
    ConversationTurn,
    ErrorResponse,
    NormalResponse,
    RecipeDisambiguation,
    SessionCompleted,
    SessionDisambiguation,
    SessionStarted,
    StartedTimer,
    StructuredResponse,
    TimerSuggestion,
    strip_timer_tags,
)
from ..services.timers import TimerAnnouncer, format_clock
from ..state.app_state import AppState, ChatMessage, Source
from ..utils.logger import get_logger
from .controller import VoiceController

logger = get_logger("dispatch")

WELCOME_MESSAGE = "Welcome back! What are we cooking today?"


class ChatSession:
    """Front end of one user's conversation with the cooking assistant.

    Typed input, chip selections and voice commands all end up as a single
    :class:`ConversationTurn`; the classified reply is appended to the
    message log and, in voice mode, read aloud through the attached
    :class:`VoiceController`.
    """

    def __init__(
        self,
        api: SousChefAPI,
        *,
        state: Optional[AppState] = None,
        on_sessions_changed: Optional[Callable[[], None]] = None,
    ) -> None:
        self.api = api
        self.state = state or AppState()
        self.voice: Optional[VoiceController] = None
        self.pending = PendingResolutionStore()
        self._on_sessions_changed = on_sessions_changed
        self.dispatcher = ConversationDispatcher(api, on_sessions_changed=self._sessions_changed)
        self.timers = TimerAnnouncer(
            api,
            on_timer_started=self.state.add_timer,
            on_sessions_changed=self._sessions_changed,
        )
        self._refreshes: set[asyncio.Task[Any]] = set()
        if not self.state.messages:
            self.state.system(WELCOME_MESSAGE)

    def attach_voice(self, voice: VoiceController) -> None:
        self.voice = voice

    @property
    def voice_mode(self) -> bool:
        return self.voice is not None and self.voice.voice_mode

    @property
    def messages(self) -> list[ChatMessage]:
        return self.state.messages

    # ------------------------------------------------------------------ #
    # Turns
    # ------------------------------------------------------------------ #
    async def send_message(self, text: str, *, typed: bool = True) -> Optional[StructuredResponse]:
        """Record a user message and send it.

        Typed input gets one chance to answer an open recipe prompt before
        it is sent as is.
        """
        text = text.strip()
        if not text:
            return None
        self.state.add_message(ChatMessage(role="user", content=text))
        if typed:
            resolution = self.pending.match_typed(text)
            if resolution is not None:
                return await self._typed_turn(self._resolved_turn(resolution))
        return await self._typed_turn(ConversationTurn(text=text))

    async def handle_voice_command(self, text: str) -> Optional[str]:
        """Command handler for the voice controller; returns the text to speak."""
        self.state.add_message(ChatMessage(role="user", content=text, source="voice"))
        _, spoken = await self._exchange(ConversationTurn(text=text), source="voice")
        return spoken

    async def choose_session(self, session_id: int, original_text: str) -> StructuredResponse:
        """Replay the ambiguous message against the session the user picked."""
        return await self._typed_turn(ConversationTurn(text=original_text, session_id=session_id))

    async def choose_recipe(self, recipe_id: int) -> Optional[StructuredResponse]:
        resolution = self.pending.resolve_by_id(recipe_id)
        if resolution is None:
            return None
        return await self._typed_turn(self._resolved_turn(resolution))

    async def confirm_end(self, message_id: str, session_id: int) -> StructuredResponse:
        self._clear_end_prompt(message_id)
        return await self._typed_turn(ConversationTurn(text="yes", session_id=session_id, confirm_end=True))

    def dismiss_end_confirmation(self, message_id: str) -> None:
        self._clear_end_prompt(message_id)

    async def end_session(self, session_id: int) -> Optional[str]:
        """End a session directly, without a conversation turn."""
        try:
            status, body = await self.api.end_session(session_id)
        except httpx.HTTPError as exc:
            logger.warning("ending session %s failed: %s", session_id, exc)
            return None
        if not 200 <= status < 300:
            logger.warning("backend returned %s when ending session %s", status, session_id)
            return None
        message = str(body.get("message") or "")
        if message:
            self.state.system(message)
        self._sessions_changed()
        return message

    # ------------------------------------------------------------------ #
    # Timers
    # ------------------------------------------------------------------ #
    def accept_timer(self, message_id: str, suggestion: TimerSuggestion) -> StartedTimer:
        """Start a suggested timer by hand. Must run on the event loop."""
        message = self.state.find_message(message_id)
        session_id = suggestion.session_id
        if message is not None:
            self._drop_suggestion(message, suggestion.label)
            if session_id is None:
                session_id = message.session_id
        timer = self.timers.accept(suggestion, session_id)
        self.state.system(f"Timer started: {timer.label} ({format_clock(timer.duration_seconds)})")
        return timer

    def dismiss_timer(self, message_id: str, label: str) -> None:
        message = self.state.find_message(message_id)
        if message is not None:
            self._drop_suggestion(message, label)

    async def clear_timer(self, timer_id: str) -> None:
        """Remove a running timer from the list."""
        await self.state.dismiss_timer(self.api, timer_id)

    def announce_finished_timers(self, now: Optional[float] = None) -> list[StartedTimer]:
        done = self.state.finished_timers(now)
        for timer in done:
            text = f"{timer.label} timer is done!"
            self.state.system(text)
            if self.voice is not None:
                self.voice.speak(text)
        return done

    async def drain(self) -> None:
        """Wait for background persistence and session refreshes."""
        await self.timers.drain()
        while self._refreshes:
            await asyncio.gather(*list(self._refreshes), return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    @staticmethod
    def _resolved_turn(resolution: Resolution) -> ConversationTurn:
        return ConversationTurn(text=resolution.original_text, resolved_recipe_id=resolution.recipe_id)

    async def _typed_turn(self, turn: ConversationTurn) -> StructuredResponse:
        spoken: Optional[str] = None
        if self.voice is not None:
            self.voice.begin_turn()
        try:
            response, spoken = await self._exchange(turn, source="text")
        finally:
            if self.voice is not None:
                self.voice.finish_turn(spoken)
        return response

    async def _exchange(self, turn: ConversationTurn, *, source: Source) -> tuple[StructuredResponse, str]:
        response = await self.dispatcher.send(turn)
        voice_mode = self.voice_mode
        announcements = ""

        if isinstance(response, ErrorResponse):
            self.state.add_message(ChatMessage(role="system", content=response.message, source=source))
            return response, ""

        entry = ChatMessage(
            role="assistant",
            content=response.message,
            source=source,
            model_used=response.model_used,
            session_id=response.session_id,
        )
        if isinstance(response, SessionDisambiguation):
            entry.session_choices = list(response.sessions)
            entry.original_text = response.original_text
        elif isinstance(response, RecipeDisambiguation):
            self.pending.remember(response)
            entry.recipe_choices = list(response.candidates)
        elif isinstance(response, SessionStarted):
            outcome = self.timers.handle(
                suggested=response.suggested_timers,
                voice_mode=voice_mode,
                session_id=response.session_id,
            )
            entry.recipe_name = response.recipe or None
            entry.timer_suggestions = outcome.suggestions
            announcements = outcome.spoken
        elif isinstance(response, AwaitingEndConfirmation):
            entry.awaiting_end_confirmation = True
        elif isinstance(response, NormalResponse):
            outcome = self.timers.handle(
                suggested=response.suggested_timers,
                started=response.started_timers,
                voice_mode=voice_mode,
                session_id=response.session_id,
            )
            entry.recipe_name = response.recipe_name
            entry.timer_suggestions = outcome.suggestions
            entry.awaiting_completion = response.awaiting_completion
            announcements = outcome.spoken
        elif isinstance(response, SessionCompleted):
            entry.session_id = None
        self.state.add_message(entry)

        spoken = " ".join(part for part in (response.spoken_text, announcements) if part)
        return response, strip_timer_tags(spoken)

    def _clear_end_prompt(self, message_id: str) -> None:
        message = self.state.find_message(message_id)
        if message is not None:
            message.awaiting_end_confirmation = False

    @staticmethod
    def _drop_suggestion(message: ChatMessage, label: str) -> None:
        message.timer_suggestions = [s for s in message.timer_suggestions if s.label != label]

    def _sessions_changed(self) -> None:
        task = asyncio.get_running_loop().create_task(self.state.refresh_sessions(self.api))
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)
        if self._on_sessions_changed:
            self._on_sessions_changed()
