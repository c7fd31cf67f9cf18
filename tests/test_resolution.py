from souschef_voice.services.resolution import PendingResolutionStore, title_matches
from souschef_voice.services.schemas import RecipeCandidate, RecipeDisambiguation


def prompt(pending_text: str = "cook pasta") -> RecipeDisambiguation:
    return RecipeDisambiguation(
        message="Which one?",
        pending_text=pending_text,
        candidates=[RecipeCandidate(1, "Lemon Pasta"), RecipeCandidate(2, "Garlic Pasta")],
    )


def test_title_matches_rules() -> None:
    assert title_matches("lemon", "Lemon Pasta")
    assert title_matches("the Garlic Pasta please", "Garlic Pasta")
    assert title_matches("garlic one", "Garlic Pasta")
    assert not title_matches("what's the weather", "Lemon Pasta")
    assert not title_matches("", "Lemon Pasta")


def test_typed_match_resolves_and_clears() -> None:
    store = PendingResolutionStore()
    store.remember(prompt())
    resolution = store.match_typed("garlic")
    assert resolution is not None
    assert (resolution.original_text, resolution.recipe_id) == ("cook pasta", 2)
    assert store.pending is None


def test_unmatched_typed_reply_clears_silently() -> None:
    store = PendingResolutionStore()
    store.remember(prompt())
    assert store.match_typed("what's the weather") is None
    assert store.pending is None
    assert store.match_typed("garlic") is None


def test_new_prompt_supersedes_old_one() -> None:
    store = PendingResolutionStore()
    store.remember(prompt("cook pasta"))
    store.remember(prompt("make dinner"))
    resolution = store.resolve_by_id(1)
    assert resolution is not None and resolution.original_text == "make dinner"
    assert store.resolve_by_id(1) is None
