"""Dynamic phase engine.

Each target type has a static, ordered phase table. Every function here is
pure: the caller passes the filled-field set and the current phase index and
gets back a fresh answer, so users may volunteer later-phase data early.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from rpg_forge.config import AUTO_CONFIRM_THRESHOLD
from rpg_forge.extraction import completeness_score, load_field_rules
from rpg_forge.extraction.rules import FieldRules
from rpg_forge.models import DynamicPhaseState, PhaseDefinition, PhaseSuggestion

logger = logging.getLogger(__name__)

REVIEW_PHASE_ID = "review"
# Completeness at which skipping the current phase is offered.
SKIP_THRESHOLD = 50
MAX_SUGGESTIONS = 4

UNIVERSE_PHASES: tuple[PhaseDefinition, ...] = (
    PhaseDefinition(
        id="concept", name="Concepto", name_en="Concept",
        required_fields=("name", "theme"), optional_fields=("description",),
        weight=2, can_skip=False,
    ),
    PhaseDefinition(
        id="statistics", name="Estadísticas", name_en="Statistics",
        optional_fields=("statCount", "statNames"), weight=2,
    ),
    PhaseDefinition(
        id="ranks", name="Rangos", name_en="Ranks",
        optional_fields=("rankSystem", "initialPoints"), weight=1.5,
    ),
    PhaseDefinition(
        id="rules", name="Reglas", name_en="Rules",
        optional_fields=("progressionRules",), weight=1,
    ),
    PhaseDefinition(
        id="appearance", name="Apariencia", name_en="Appearance",
        optional_fields=("coverImage", "locations"), weight=0.5,
    ),
    PhaseDefinition(id=REVIEW_PHASE_ID, name="Revisión", name_en="Review", weight=0, can_skip=False),
)

CHARACTER_PHASES: tuple[PhaseDefinition, ...] = (
    PhaseDefinition(
        id="universe_selection", name="Universo", name_en="Universe",
        required_fields=("universeId",), weight=2, can_skip=False,
    ),
    PhaseDefinition(
        id="identity", name="Identidad", name_en="Identity",
        required_fields=("name",), optional_fields=("class",), weight=2, can_skip=False,
    ),
    PhaseDefinition(
        id="backstory", name="Historia", name_en="Backstory",
        optional_fields=("backstory",), weight=1,
    ),
    PhaseDefinition(
        id="stats", name="Estadísticas", name_en="Stats",
        optional_fields=("specialty",), weight=1,
    ),
    PhaseDefinition(
        id="level", name="Nivel", name_en="Level",
        optional_fields=("startingLevel",), weight=0.5,
    ),
    PhaseDefinition(
        id="appearance", name="Apariencia", name_en="Appearance",
        optional_fields=("avatar",), weight=0.5,
    ),
    PhaseDefinition(id=REVIEW_PHASE_ID, name="Revisión", name_en="Review", weight=0, can_skip=False),
)

PHASE_TABLES: dict[str, tuple[PhaseDefinition, ...]] = {
    "universe": UNIVERSE_PHASES,
    "character": CHARACTER_PHASES,
}

# (target, phase) → field → locale → quick replies
_SUGGESTIONS: dict[tuple[str, str], dict[str, dict[str, list[str]]]] = {
    ("universe", "concept"): {
        "theme": {
            "es": ["Fantasía", "Ciencia Ficción", "Cyberpunk", "Medieval"],
            "en": ["Fantasy", "Science Fiction", "Cyberpunk", "Medieval"],
        },
    },
    ("universe", "statistics"): {
        "statNames": {
            "es": ["6 stats clásicos", "4 stats simples", "Personalizar stats"],
            "en": ["6 classic stats", "4 simple stats", "Custom stats"],
        },
    },
    ("universe", "ranks"): {
        "rankSystem": {
            "es": ["Estilo Solo Leveling (E-SSS)", "Niveles 1-100", "Sin rangos"],
            "en": ["Solo Leveling style (E-SSS)", "Levels 1-100", "No ranks"],
        },
    },
    ("universe", "rules"): {
        "progressionRules": {
            "es": ["Entrenar sube la fuerza", "Estudiar sube la inteligencia", "Sin reglas por ahora"],
            "en": ["Training raises strength", "Studying raises intelligence", "No rules for now"],
        },
    },
    ("universe", "appearance"): {
        "coverImage": {
            "es": ["Subir una portada", "Sin imagen por ahora"],
            "en": ["Upload a cover", "No image for now"],
        },
    },
    ("character", "identity"): {
        "class": {
            "es": ["Guerrero", "Mago", "Arquero", "Asesino"],
            "en": ["Warrior", "Mage", "Archer", "Assassin"],
        },
    },
    ("character", "backstory"): {
        "backstory": {
            "es": ["Huérfano con un secreto", "Noble caído en desgracia", "Sin historia por ahora"],
            "en": ["Orphan with a secret", "Fallen noble", "No backstory for now"],
        },
    },
    ("character", "level"): {
        "startingLevel": {
            "es": ["Novato (nivel 1)", "Experimentado", "Veterano"],
            "en": ["Novice (level 1)", "Experienced", "Veteran"],
        },
    },
}

_NAVIGATION = {
    "preview": {"es": "Ver preview", "en": "See preview"},
    "skip": {"es": "Saltar esta fase", "en": "Skip this phase"},
}


def get_phases(target: str) -> tuple[PhaseDefinition, ...]:
    return PHASE_TABLES.get(target, ())


def phase_index_of(target: str, phase_id: str) -> int:
    for i, phase in enumerate(get_phases(target)):
        if phase.id == phase_id:
            return i
    raise KeyError(f"No phase {phase_id!r} for {target!r}")


def required_fields(target: str, rules: FieldRules | None = None) -> list[str]:
    """Required keys from the field table and the phase table, in table order."""
    rules = rules or load_field_rules()
    keys = [fd.key for fd in rules.fields_for(target) if fd.required]
    for phase in get_phases(target):
        keys.extend(k for k in phase.required_fields if k not in keys)
    return keys


def calculate_phase_state(
    target: str,
    filled: Iterable[str],
    current_index: int,
    *,
    rules: FieldRules | None = None,
    threshold: int = AUTO_CONFIRM_THRESHOLD,
) -> DynamicPhaseState:
    phases = _table(target)
    rules = rules or load_field_rules()
    idx = _clamp(current_index, len(phases))
    filled_set = set(filled)

    completeness = completeness_score(rules.fields_for(target), filled_set)
    missing_required = [k for k in required_fields(target, rules) if k not in filled_set]

    pending = list(missing_required)
    for fd in rules.fields_for(target):
        if fd.key not in filled_set and fd.key not in pending:
            pending.append(fd.key)
    for phase in phases:
        pending.extend(k for k in phase.optional_fields if k not in filled_set and k not in pending)

    later = phases[idx + 1:]
    return DynamicPhaseState(
        current_phase_id=phases[idx].id,
        current_phase_index=idx,
        total_phases=len(phases),
        completeness=completeness,
        filled_fields=sorted(filled_set),
        pending_fields=pending,
        can_skip_to_confirmation=completeness >= threshold and not missing_required,
        suggested_next_phase=next(
            (p.id for p in later if not set(p.required_fields) <= filled_set), None,
        ),
        skippable_phases=[
            p.id for p in later
            if p.id != REVIEW_PHASE_ID and set(p.required_fields) <= filled_set
        ],
    )


def suggest_next_phase(
    target: str,
    current_index: int,
    filled: Iterable[str],
    *,
    rules: FieldRules | None = None,
    threshold: int = AUTO_CONFIRM_THRESHOLD,
) -> PhaseSuggestion:
    """Furthest phase reachable from `current_index`. Never moves backward."""
    phases = _table(target)
    rules = rules or load_field_rules()
    idx = _clamp(current_index, len(phases))
    filled_set = set(filled)
    last = len(phases) - 1

    completeness = completeness_score(rules.fields_for(target), filled_set)
    missing = [k for k in required_fields(target, rules) if k not in filled_set]
    if completeness >= threshold and not missing:
        return PhaseSuggestion(phase_id=phases[last].id, phase_index=last, reason="ready_for_review")

    j = idx
    while j < last and _phase_satisfied(phases[j], filled_set):
        j += 1
    if j != idx:
        logger.debug("%s phases: skipping ahead %d → %d", target, idx, j)
    return PhaseSuggestion(
        phase_id=phases[j].id,
        phase_index=j,
        reason="stay" if j == idx else "skip_ahead",
    )


def get_smart_suggestions(
    target: str,
    phase_id: str,
    filled: Iterable[str],
    last_message: str = "",
    *,
    locale: str = "es",
    rules: FieldRules | None = None,
    threshold: int = AUTO_CONFIRM_THRESHOLD,
) -> list[str]:
    """Quick replies aimed at the first unmet field of the current phase."""
    filled_set = set(filled)
    phase = next((p for p in get_phases(target) if p.id == phase_id), None)
    if phase is None:
        return []
    loc = "en" if locale == "en" else "es"

    suggestions: list[str] = []
    table = _SUGGESTIONS.get((target, phase_id), {})
    for key in (*phase.required_fields, *phase.optional_fields):
        if key not in filled_set and key in table:
            suggestions.extend(table[key][loc])
            break

    rules = rules or load_field_rules()
    completeness = completeness_score(rules.fields_for(target), filled_set)
    if completeness >= threshold:
        suggestions.append(_NAVIGATION["preview"][loc])
    if completeness >= SKIP_THRESHOLD and phase.can_skip:
        suggestions.append(_NAVIGATION["skip"][loc])

    said = last_message.casefold()
    if said:
        suggestions = [s for s in suggestions if s.casefold() not in said]
    return suggestions[:MAX_SUGGESTIONS]


def _phase_satisfied(phase: PhaseDefinition, filled: set[str]) -> bool:
    """A phase is done once its required fields are known and, for optional-only
    phases, at least one of its fields is."""
    if not set(phase.required_fields) <= filled:
        return False
    if phase.required_fields or not phase.optional_fields:
        return phase.id != REVIEW_PHASE_ID
    return any(k in filled for k in phase.optional_fields)


def _table(target: str) -> tuple[PhaseDefinition, ...]:
    phases = get_phases(target)
    if not phases:
        raise ValueError(f"No phase table for target {target!r}")
    return phases


def _clamp(index: int, size: int) -> int:
    return max(0, min(index, size - 1))
