"""Tests for rpg_forge.actions — catalog visibility and context building."""

import pytest

from rpg_forge.actions import (
    DEFAULT_ACTIONS,
    PREDICATES,
    build_context,
    find_action,
    get_visible_actions,
    mentions_image,
)
from rpg_forge.models import ActionContext, AgenticAction, PendingImage, UniverseDraft
from rpg_forge.phases import calculate_phase_state
from rpg_forge.session import CreationSession


def _ids(context: ActionContext) -> list[str]:
    return [a.id for a in get_visible_actions(DEFAULT_ACTIONS, context)]


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------

class TestVisibility:
    def test_fresh_context_only_text_input(self) -> None:
        assert _ids(ActionContext()) == ["type_message"]

    def test_hidden_never_shown(self) -> None:
        ctx = ActionContext(mode="universe", completeness=100, has_generated_entity=True)
        assert "generate_more" not in _ids(ctx)

    def test_character_needs_universe(self) -> None:
        assert "select_universe" in _ids(ActionContext(mode="character"))
        assert "select_universe" not in _ids(ActionContext(mode="character", has_selected_universe=True))

    def test_skip_phase_from_half_complete(self) -> None:
        ctx = ActionContext(mode="universe", completeness=50, phase_index=1, total_phases=6)
        assert "skip_phase" in _ids(ctx)
        assert "skip_phase" not in _ids(ctx.model_copy(update={"completeness": 49}))

    def test_no_skip_on_last_phase(self) -> None:
        ctx = ActionContext(mode="universe", completeness=90, phase_index=5, total_phases=6)
        assert "skip_phase" not in _ids(ctx)

    def test_preview_at_threshold(self) -> None:
        ctx = ActionContext(mode="universe", completeness=70)
        assert "go_to_preview" in _ids(ctx)
        assert "go_to_preview" not in _ids(ctx.model_copy(update={"completeness": 69}))

    def test_preview_respects_custom_threshold(self) -> None:
        ctx = ActionContext(mode="universe", completeness=60, threshold=60)
        assert "go_to_preview" in _ids(ctx)

    def test_confirmation_mode(self) -> None:
        ctx = ActionContext(
            mode="universe", completeness=80, is_confirmation_mode=True, has_generated_entity=True,
        )
        ids = _ids(ctx)
        assert ids[0] == "confirm_save"
        assert "go_to_preview" not in ids
        assert {"edit_entity", "regenerate"} <= set(ids)

    def test_validation_errors_hide_confirm(self) -> None:
        ctx = ActionContext(
            mode="universe", is_confirmation_mode=True, has_generated_entity=True,
            validation_errors=("Falta el nombre",),
        )
        assert "confirm_save" not in _ids(ctx)

    def test_image_offers(self) -> None:
        assert "upload_image" in _ids(ActionContext(mode="universe", phase_id="appearance"))
        assert "upload_image" in _ids(ActionContext(mode="universe", mentioned_image=True))
        assert "upload_image" in _ids(ActionContext(mode="universe", filled_fields=("a", "b", "c")))
        assert "upload_image" not in _ids(ActionContext(mode="universe", filled_fields=("a", "b")))

    def test_pending_image_classification(self) -> None:
        ids = _ids(ActionContext(mode="universe", has_pending_image=True))
        assert ids[0] == "classify_image"

    def test_sorted_by_priority(self) -> None:
        ctx = ActionContext(
            mode="character", completeness=80, phase_index=1, total_phases=7,
            filled_fields=("name", "universeId", "class"), has_generated_entity=True,
        )
        actions = get_visible_actions(DEFAULT_ACTIONS, ctx)
        priorities = [a.priority for a in actions]
        assert priorities == sorted(priorities, reverse=True)

    def test_deterministic(self) -> None:
        ctx = ActionContext(mode="universe", completeness=75, filled_fields=("name",))
        assert get_visible_actions(DEFAULT_ACTIONS, ctx) == get_visible_actions(DEFAULT_ACTIONS, ctx)

    def test_ties_keep_catalog_order(self) -> None:
        catalog = [
            AgenticAction(id="b", type="undo", label="B", visibility="always", priority=5),
            AgenticAction(id="a", type="undo", label="A", visibility="always", priority=5),
        ]
        assert [a.id for a in get_visible_actions(catalog, ActionContext())] == ["b", "a"]


# ---------------------------------------------------------------------------
# Catalog data
# ---------------------------------------------------------------------------

class TestCatalog:
    def test_every_predicate_is_registered(self) -> None:
        for action in DEFAULT_ACTIONS:
            if action.predicate is not None:
                assert action.predicate in PREDICATES, action.id

    def test_unknown_predicate_raises(self) -> None:
        catalog = [AgenticAction(id="x", type="undo", label="X", predicate="nope")]
        with pytest.raises(KeyError, match="nope"):
            get_visible_actions(catalog, ActionContext())

    def test_custom_predicates(self) -> None:
        catalog = [AgenticAction(id="x", type="undo", label="X", predicate="always_yes")]
        visible = get_visible_actions(catalog, ActionContext(), {"always_yes": lambda ctx: True})
        assert [a.id for a in visible] == ["x"]

    def test_contextual_without_predicate_hidden(self) -> None:
        catalog = [AgenticAction(id="x", type="undo", label="X")]
        assert get_visible_actions(catalog, ActionContext()) == []

    def test_find_action(self) -> None:
        assert find_action(DEFAULT_ACTIONS, "undo_last").type == "undo"
        assert find_action(DEFAULT_ACTIONS, "missing") is None

    def test_localized_label(self) -> None:
        action = find_action(DEFAULT_ACTIONS, "confirm_save")
        assert action.localized_label("es") == "Confirmar y guardar"
        assert action.localized_label("en") == "Confirm and save"


# ---------------------------------------------------------------------------
# Image mentions and context
# ---------------------------------------------------------------------------

def test_mentions_image():
    assert mentions_image("quiero subir una foto")
    assert mentions_image("tengo una fotografía del castillo")
    assert mentions_image("I uploaded a picture", "en")
    assert not mentions_image("hola, ¿qué tal?")


def test_build_context_from_session():
    session = CreationSession()
    session.set_mode("universe")
    session.add_message("user", "te paso una imagen")
    session.merge_collected({"name": "Aether", "theme": "fantasía"})
    session.pending_image = PendingImage(data_url="data:image/png;base64,AA==", mime_type="image/png")
    state = calculate_phase_state("universe", session.filled_fields, 0)

    ctx = build_context(session, state, UniverseDraft(name="Aether"))

    assert ctx.mode == "universe"
    assert ctx.phase_id == "concept"
    assert ctx.total_phases == 6
    assert ctx.filled_fields == ("name", "theme")
    assert ctx.has_generated_entity is True
    assert ctx.mentioned_image is True
    assert ctx.has_pending_image is True
    assert ctx.last_user_message == "te paso una imagen"


def test_build_context_without_phase_state():
    ctx = build_context(CreationSession(), None, None)
    assert ctx.phase_id == ""
    assert ctx.total_phases == 0
    assert ctx.has_generated_entity is False
