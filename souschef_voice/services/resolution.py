"""Pending recipe disambiguation, resolved by the user's next typed message."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..utils.logger import get_logger
from .schemas import RecipeCandidate, RecipeDisambiguation

logger = get_logger("dispatch")


@dataclass(slots=True)
class PendingRecipeResolution:
    original_text: str
    candidates: list[RecipeCandidate] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class Resolution:
    """The pending text to re-send and the recipe the user picked."""

    original_text: str
    recipe_id: int


def title_matches(message: str, title: str) -> bool:
    """Loose containment match between a typed reply and a recipe title.

    Either the title contains the message, the message contains the title,
    or the message contains the title's first word. Short titles or replies
    can match more than intended.
    """
    lower = message.strip().lower()
    title = title.strip().lower()
    if not lower or not title:
        return False
    first_word = title.split()[0]
    return lower in title or title in lower or first_word in lower


class PendingResolutionStore:
    """Holds at most one outstanding recipe disambiguation.

    Every lookup consumes the entry, matched or not: a prompt gets exactly
    one resolution attempt.
    """

    def __init__(self) -> None:
        self._pending: Optional[PendingRecipeResolution] = None

    @property
    def pending(self) -> Optional[PendingRecipeResolution]:
        return self._pending

    def remember(self, response: RecipeDisambiguation) -> None:
        """Store a new prompt, superseding any earlier one."""
        self._pending = PendingRecipeResolution(
            original_text=response.pending_text,
            candidates=list(response.candidates),
        )

    def match_typed(self, message: str) -> Optional[Resolution]:
        pending = self._pending
        if pending is None:
            return None
        self._pending = None
        for candidate in pending.candidates:
            if title_matches(message, candidate.title):
                logger.info("typed reply resolved recipe %s", candidate.recipe_id)
                return Resolution(original_text=pending.original_text, recipe_id=candidate.recipe_id)
        logger.info("typed reply matched no pending recipe, dispatching as is")
        return None

    def resolve_by_id(self, recipe_id: int) -> Optional[Resolution]:
        """Chip selection: resolve directly without matching."""
        pending = self._pending
        if pending is None:
            return None
        self._pending = None
        return Resolution(original_text=pending.original_text, recipe_id=recipe_id)
