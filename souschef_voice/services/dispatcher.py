"""Send conversation turns and classify the structured replies."""

from __future__ import annotations

from typing import Any, Callable, Optional

import httpx

from ..errors import CONNECTION_FAILED_MESSAGE, GENERIC_FAILURE_MESSAGE
from ..utils.logger import get_logger
from ..utils.trace import new_trace_id
from .api import SousChefAPI
from .schemas import (
    AwaitingEndConfirmation,
    ConversationTurn,
    ErrorResponse,
    NormalResponse,
    RecipeCandidate,
    RecipeDisambiguation,
    ResponseKind,
    SessionCompleted,
    SessionDisambiguation,
    SessionRef,
    SessionStarted,
    StructuredResponse,
    TimerSuggestion,
    parse_session_id,
    strip_timer_tags,
)

logger = get_logger("dispatch")

SessionsChanged = Callable[[], None]

# Replies that prompt the user mid-conversation without changing backend state.
_PROMPT_KINDS = frozenset({ResponseKind.SESSION_DISAMBIGUATION, ResponseKind.RECIPE_DISAMBIGUATION})


def spoken_options(message: str, names: list[str]) -> str:
    """Append the enumerated option names to a spoken prompt."""
    names = [name for name in names if name]
    if not names:
        return message
    return f"{message} Your options are: {', or '.join(names)}."


class ConversationDispatcher:
    """Sends one :class:`ConversationTurn` and returns one classified reply.

    Failures never raise: connectivity errors and non-2xx replies come back
    as :class:`ErrorResponse` so the conversation can show them as system
    messages.
    """

    def __init__(self, api: SousChefAPI, *, on_sessions_changed: Optional[SessionsChanged] = None) -> None:
        self._api = api
        self._on_sessions_changed = on_sessions_changed

    async def send(self, turn: ConversationTurn) -> StructuredResponse:
        trace_id = new_trace_id()
        logger.info("send turn (%d chars, extra=%s)", len(turn.text), sorted(turn.to_payload().keys() - {"text"}))
        try:
            status, payload = await self._api.post_input(turn.to_payload())
        except httpx.HTTPError as exc:
            logger.warning("turn %s failed to reach the backend: %s", trace_id, exc)
            return ErrorResponse(message=CONNECTION_FAILED_MESSAGE)

        if not 200 <= status < 300:
            logger.warning("backend returned %s for turn %s", status, trace_id)
            expired = bool(payload.get("expired"))
            if expired:
                self._notify_sessions_changed()
            return ErrorResponse(message=str(payload.get("error") or GENERIC_FAILURE_MESSAGE), expired=expired)

        response = self.classify(payload, turn.text)
        logger.info("turn %s classified as %s", trace_id, response.kind.value)
        if isinstance(response, ErrorResponse):
            if response.expired:
                self._notify_sessions_changed()
        elif response.kind not in _PROMPT_KINDS:
            self._notify_sessions_changed()
        return response

    @staticmethod
    def classify(payload: dict[str, Any], original_text: str = "") -> StructuredResponse:
        """Map a reply body to exactly one response shape, first match wins."""
        message = str(payload.get("message") or "")
        session_id = parse_session_id(payload)
        model_used = payload.get("modelUsed")

        if payload.get("error"):
            return ErrorResponse(
                message=str(payload["error"]),
                session_id=session_id,
                model_used=model_used,
                expired=bool(payload.get("expired")),
            )

        if payload.get("disambiguation"):
            sessions = [SessionRef.from_payload(item) for item in _dict_items(payload.get("sessions"))]
            return SessionDisambiguation(
                message=message,
                spoken=spoken_options(message, [s.recipe for s in sessions]),
                session_id=session_id,
                model_used=model_used,
                sessions=sessions,
                original_text=original_text,
            )

        if payload.get("recipeDisambiguation"):
            candidates = [RecipeCandidate.from_payload(item) for item in _dict_items(payload.get("recipes"))]
            return RecipeDisambiguation(
                message=message,
                spoken=spoken_options(message, [c.title for c in candidates]),
                session_id=session_id,
                model_used=model_used,
                candidates=candidates,
                pending_text=str(payload.get("pendingText") or original_text),
            )

        if payload.get("sessionStarted"):
            recipe = str(payload.get("recipe") or "")
            text = strip_timer_tags(str(payload.get("message") or payload.get("firstStep") or "Starting your recipe."))
            return SessionStarted(
                message=text,
                session_id=session_id,
                model_used=model_used,
                recipe=recipe,
                suggested_timers=_timers(payload.get("suggestedTimers"), recipe, session_id),
            )

        if payload.get("awaitingEndConfirmation"):
            return AwaitingEndConfirmation(message=message, session_id=session_id, model_used=model_used)

        if payload.get("sessionCompleted"):
            return SessionCompleted(message=message, session_id=session_id, model_used=model_used)

        recipe = str(payload["recipe"]) if payload.get("recipe") else None
        timer_recipe = recipe or "Timer"
        return NormalResponse(
            message=strip_timer_tags(message),
            session_id=session_id,
            model_used=model_used,
            recipe=recipe,
            kitchen_qa=bool(payload.get("kitchenQA")),
            suggested_timers=_timers(payload.get("suggestedTimers"), timer_recipe, session_id),
            started_timers=_timers(payload.get("startedTimers"), timer_recipe, session_id),
            awaiting_completion=bool(payload.get("awaitingCompletion")),
        )

    def _notify_sessions_changed(self) -> None:
        if self._on_sessions_changed:
            self._on_sessions_changed()


def _dict_items(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _timers(value: Any, recipe: str, session_id: Optional[int]) -> list[TimerSuggestion]:
    return [
        TimerSuggestion.from_payload(item, recipe=recipe, session_id=session_id)
        for item in _dict_items(value)
    ]
