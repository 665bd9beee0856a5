"""Action visibility engine.

The catalog is plain data: each entry names its show-condition instead of
carrying a closure. Conditions live in PREDICATES and are pure functions of a
frozen ActionContext, so the same context always yields the same actions.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping

from rpg_forge.config import AUTO_CONFIRM_THRESHOLD
from rpg_forge.models import ActionContext, AgenticAction, DynamicPhaseState, EntityDraft
from rpg_forge.phases import SKIP_THRESHOLD
from rpg_forge.session import CreationSession

Predicate = Callable[[ActionContext], bool]

IMAGE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "es": ("imagen", "imágen", "foto", "ilustraci", "portada", "subir", "avatar", "dibujo"),
    "en": ("image", "photo", "picture", "illustration", "cover", "upload", "avatar", "drawing"),
}

# Filled fields after which an image upload is offered unprompted.
IMAGE_OFFER_MIN_FIELDS = 3


DEFAULT_ACTIONS: tuple[AgenticAction, ...] = (
    AgenticAction(
        id="type_message", type="text_input", visibility="always", priority=10,
        label="Escribir mensaje", label_en="Type a message", icon="chatbubble-outline",
    ),
    AgenticAction(
        id="upload_image", type="image_upload", predicate="wants_image", priority=80,
        label="Subir imagen", label_en="Upload image", icon="image-outline",
    ),
    AgenticAction(
        id="classify_image", type="quick_select", predicate="has_pending_image", priority=95,
        label="Asignar imagen", label_en="Assign image", icon="images-outline",
    ),
    AgenticAction(
        id="select_universe", type="quick_select", predicate="needs_universe", priority=85,
        label="Elegir universo", label_en="Choose universe", icon="planet-outline",
    ),
    AgenticAction(
        id="skip_phase", type="skip_phase", predicate="can_skip_phase", priority=50,
        label="Saltar fase", label_en="Skip phase", icon="play-skip-forward-outline",
    ),
    AgenticAction(
        id="go_to_preview", type="confirm_preview", predicate="ready_for_preview", priority=90,
        label="Ver preview", label_en="See preview", icon="eye-outline",
    ),
    AgenticAction(
        id="confirm_save", type="confirm_preview", predicate="can_confirm", priority=100,
        label="Confirmar y guardar", label_en="Confirm and save", icon="checkmark-circle-outline",
    ),
    AgenticAction(
        id="edit_entity", type="edit_field", predicate="has_draft", priority=70,
        label="Ajustar", label_en="Adjust", icon="create-outline",
    ),
    AgenticAction(
        id="regenerate", type="regenerate", predicate="has_draft", priority=60,
        label="Regenerar", label_en="Regenerate", icon="refresh-outline",
    ),
    AgenticAction(
        id="undo_last", type="undo", predicate="has_filled_fields", priority=30,
        label="Deshacer", label_en="Undo", icon="arrow-undo-outline",
    ),
    AgenticAction(
        id="generate_more", type="generate_more", visibility="hidden", priority=20,
        label="Generar más", label_en="Generate more", icon="sparkles-outline",
    ),
)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def _wants_image(ctx: ActionContext) -> bool:
    return (
        ctx.phase_id == "appearance"
        or ctx.mentioned_image
        or len(ctx.filled_fields) >= IMAGE_OFFER_MIN_FIELDS
    )


def _can_skip_phase(ctx: ActionContext) -> bool:
    return ctx.completeness >= SKIP_THRESHOLD and ctx.phase_index < ctx.total_phases - 1


def _ready_for_preview(ctx: ActionContext) -> bool:
    return ctx.completeness >= ctx.threshold and not ctx.is_confirmation_mode


def _can_confirm(ctx: ActionContext) -> bool:
    return ctx.is_confirmation_mode and not ctx.validation_errors


def _has_draft(ctx: ActionContext) -> bool:
    return ctx.has_generated_entity


def _has_filled_fields(ctx: ActionContext) -> bool:
    return len(ctx.filled_fields) > 0


def _has_pending_image(ctx: ActionContext) -> bool:
    return ctx.has_pending_image


def _needs_universe(ctx: ActionContext) -> bool:
    return ctx.mode == "character" and not ctx.has_selected_universe


PREDICATES: dict[str, Predicate] = {
    "wants_image": _wants_image,
    "can_skip_phase": _can_skip_phase,
    "ready_for_preview": _ready_for_preview,
    "can_confirm": _can_confirm,
    "has_draft": _has_draft,
    "has_filled_fields": _has_filled_fields,
    "has_pending_image": _has_pending_image,
    "needs_universe": _needs_universe,
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_visible_actions(
    catalog: Iterable[AgenticAction],
    context: ActionContext,
    predicates: Mapping[str, Predicate] = PREDICATES,
) -> list[AgenticAction]:
    """Actions to show for `context`, highest priority first (ties keep catalog order)."""
    visible: list[AgenticAction] = []
    for action in catalog:
        if action.visibility == "hidden":
            continue
        if action.visibility == "always" or _holds(action, context, predicates):
            visible.append(action)
    return sorted(visible, key=lambda a: -a.priority)


def find_action(catalog: Iterable[AgenticAction], action_id: str) -> AgenticAction | None:
    return next((a for a in catalog if a.id == action_id), None)


def mentions_image(text: str, locale: str = "es") -> bool:
    """Locale-aware keyword check; matches word prefixes ("fotos", "uploaded")."""
    words = IMAGE_KEYWORDS.get(locale, IMAGE_KEYWORDS["es"])
    return any(
        re.search(rf"(?<!\w){re.escape(w)}", text, re.IGNORECASE) for w in words
    )


def build_context(
    session: CreationSession,
    phase_state: DynamicPhaseState | None,
    draft: EntityDraft | None,
    *,
    locale: str = "es",
    threshold: int = AUTO_CONFIRM_THRESHOLD,
) -> ActionContext:
    last_user = session.last_user_message()
    return ActionContext(
        mode=session.mode,
        phase=session.phase,
        phase_id=phase_state.current_phase_id if phase_state else "",
        phase_index=session.phase_index,
        total_phases=phase_state.total_phases if phase_state else 0,
        completeness=phase_state.completeness if phase_state else session.extraction_progress,
        filled_fields=tuple(session.filled_fields),
        pending_fields=tuple(phase_state.pending_fields) if phase_state else (),
        has_generated_entity=draft is not None,
        is_confirmation_mode=session.is_confirmation_mode,
        validation_errors=tuple(session.validation_errors),
        validation_warnings=tuple(session.validation_warnings),
        last_user_message=last_user,
        mentioned_image=mentions_image(last_user, locale),
        has_pending_image=session.pending_image is not None,
        has_selected_universe=session.selected_universe is not None,
        threshold=threshold,
        locale="en" if locale == "en" else "es",
    )


def _holds(action: AgenticAction, context: ActionContext, predicates: Mapping[str, Predicate]) -> bool:
    if action.predicate is None:
        return False
    try:
        predicate = predicates[action.predicate]
    except KeyError:
        raise KeyError(f"Action {action.id!r} names unknown predicate {action.predicate!r}") from None
    return bool(predicate(context))
