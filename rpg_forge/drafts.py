"""Draft synthesis and validation.

Both steps are deterministic functions of the collected data: the same
answers always produce the same draft, so a draft can be thrown away and
rebuilt at any time.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from rpg_forge.extraction import load_field_rules
from rpg_forge.extraction.rules import FieldRules
from rpg_forge.models import (
    DEFAULT_INITIAL_POINTS,
    AwakeningSystem,
    CharacterDraft,
    EntityDraft,
    Location,
    Progression,
    ProgressionRule,
    StatDefinition,
    UniverseDraft,
    UniverseRecord,
    ValidationReport,
)
from rpg_forge.phases import required_fields
from rpg_forge.storage import slugify
from rpg_forge.texts import t

STAT_COLORS = [
    "#F44336", "#03A9F4", "#4CAF50", "#9C27B0",
    "#FF9800", "#00BCD4", "#E91E63", "#FFC107",
]
STAT_ICONS = [
    "barbell-outline", "flash-outline", "heart-outline", "bulb-outline",
    "eye-outline", "chatbubbles-outline", "sparkles-outline", "shield-outline",
]
DEFAULT_STAT_NAMES: dict[str, list[str]] = {
    "es": ["Fuerza", "Agilidad", "Vitalidad", "Inteligencia",
           "Percepción", "Carisma", "Sabiduría", "Suerte"],
    "en": ["Strength", "Agility", "Vitality", "Intelligence",
           "Perception", "Charisma", "Wisdom", "Luck"],
}
MAX_STATS = 20

FIRST_THRESHOLD = 50
THRESHOLD_GROWTH = 1.8

# Words that link an action to the stats it raises; never used as rule keywords.
_RULE_STOPWORDS = {
    "sube", "suben", "aumenta", "aumentan", "mejora", "mejoran", "para", "cada", "cuando",
    "raises", "increases", "improves", "with", "when", "each", "that",
}
MAX_RULE_ID = 40

# Collected-data key → draft attribute, where they differ.
_DRAFT_ATTRS = {"universeId": "universe_id", "class": "character_class"}


def awakening_thresholds(count: int) -> list[int]:
    """Experience needed for each level: 0, 50, then ×1.8 rounded half-up."""
    thresholds: list[int] = []
    for i in range(count):
        if i == 0:
            thresholds.append(0)
        elif i == 1:
            thresholds.append(FIRST_THRESHOLD)
        else:
            thresholds.append(math.floor(thresholds[-1] * THRESHOLD_GROWTH + 0.5))
    return thresholds


def build_stat_definitions(names: list[str]) -> dict[str, StatDefinition]:
    """One definition per distinct name; color and icon cycle by position."""
    stats: dict[str, StatDefinition] = {}
    for name in names:
        label = name.strip()
        key = slugify(label)
        if not label or key in stats:
            continue
        i = len(stats)
        stats[key] = StatDefinition(
            name=label[:1].upper() + label[1:],
            abbreviation=key.replace("-", "")[:3].upper(),
            icon=STAT_ICONS[i % len(STAT_ICONS)],
            color=STAT_COLORS[i % len(STAT_COLORS)],
        )
    return stats


def build_progression_rules(
    texts: list[str], stats: Mapping[str, StatDefinition],
) -> list[ProgressionRule]:
    """One rule per distinct sentence. A stat is affected when its name appears in the sentence."""
    result: list[ProgressionRule] = []
    seen: set[str] = set()
    for text in texts:
        description = text.strip()
        slug = slugify(description)
        rule_id = slug[:MAX_RULE_ID].strip("-").replace("-", "_")
        if not rule_id or rule_id in seen:
            continue
        seen.add(rule_id)
        padded = f"-{slug}-"
        affected = [
            key for key, stat in stats.items()
            if f"-{key}-" in padded or f"-{slugify(stat.name)}-" in padded
        ]
        stat_words = {part for key in affected for part in key.split("-")}
        keywords = [
            word for word in dict.fromkeys(slug.split("-"))
            if len(word) >= 4 and word not in _RULE_STOPWORDS and word not in stat_words
        ]
        result.append(ProgressionRule(
            id=rule_id, description=description, keywords=keywords, affected_stats=affected,
        ))
    return result


def build_entity_draft(
    target: str,
    collected: Mapping[str, Any],
    *,
    universe: UniverseRecord | None = None,
    locale: str = "es",
    rules: FieldRules | None = None,
) -> EntityDraft:
    if target == "universe":
        return build_universe_draft(collected, locale=locale, rules=rules)
    if target == "character":
        return build_character_draft(collected, universe=universe, rules=rules)
    raise ValueError(f"Cannot build a draft for {target!r}")


def build_universe_draft(
    collected: Mapping[str, Any],
    *,
    locale: str = "es",
    rules: FieldRules | None = None,
) -> UniverseDraft:
    names = _as_list(collected.get("statNames"))
    if not names and collected.get("statCount"):
        count = min(int(collected["statCount"]), MAX_STATS)
        defaults = DEFAULT_STAT_NAMES.get(locale, DEFAULT_STAT_NAMES["es"])
        names = [defaults[i] if i < len(defaults) else f"Stat {i + 1}" for i in range(count)]

    levels = _as_list(collected.get("rankSystem"))
    awakening = None
    if levels:
        awakening = AwakeningSystem(levels=levels, thresholds=awakening_thresholds(len(levels)))

    points = collected.get("initialPoints")
    if points is None:
        points = _field_default("universe", "initialPoints", rules, DEFAULT_INITIAL_POINTS)
    stats = build_stat_definitions(names)

    return UniverseDraft(
        name=_text(collected.get("name")),
        theme=_text(collected.get("theme")),
        description=_text(collected.get("description")),
        stat_definitions=stats,
        initial_points=int(points),
        awakening_system=awakening,
        progression_rules=build_progression_rules(_as_list(collected.get("progressionRules")), stats),
        cover_image=collected.get("coverImage"),
        locations=[Location.model_validate(loc) for loc in collected.get("locations") or []],
    )


def build_character_draft(
    collected: Mapping[str, Any],
    *,
    universe: UniverseRecord | None = None,
    rules: FieldRules | None = None,
) -> CharacterDraft:
    stats: dict[str, int] = {}
    awakening = "E"
    if universe is not None:
        if universe.stat_definitions:
            per_stat = universe.initial_points // len(universe.stat_definitions)
            stats = {key: per_stat for key in universe.stat_definitions}
        if universe.awakening_system and universe.awakening_system.levels:
            awakening = universe.awakening_system.levels[0]

    level = collected.get("startingLevel")
    if level is None:
        level = _field_default("character", "startingLevel", rules, 1)

    return CharacterDraft(
        name=_text(collected.get("name")),
        universe_id=collected.get("universeId") or (universe.id if universe else None),
        character_class=_text(collected.get("class")),
        backstory=_text(collected.get("backstory")),
        specialty=_text(collected.get("specialty")),
        avatar=collected.get("avatar"),
        stats=stats,
        progression=Progression(level=int(level), awakening=awakening),
    )


def validate_entity_draft(
    target: str,
    draft: EntityDraft,
    *,
    locale: str = "es",
    rules: FieldRules | None = None,
) -> ValidationReport:
    """Missing required fields are errors; missing enrichments are warnings."""
    rules = rules or load_field_rules()
    names = {fd.key: fd.name for fd in rules.fields_for(target)}
    errors: list[str] = []
    for key in required_fields(target, rules):
        if getattr(draft, _DRAFT_ATTRS.get(key, key), None):
            continue
        errors.append(_missing_message(target, key, names.get(key, key), locale))

    warnings: list[str] = []
    if isinstance(draft, UniverseDraft):
        if not draft.stat_definitions:
            warnings.append(t("warn_no_stats", locale))
        if not draft.cover_image:
            warnings.append(t("warn_no_cover", locale))
        if not draft.theme and not draft.description:
            warnings.append(t("warn_generic_universe", locale))
        elif not draft.description:
            warnings.append(t("warn_no_description", locale))
        for rule in draft.progression_rules:
            if not rule.affected_stats:
                warnings.append(t("warn_rule_no_stats", locale, rule=rule.description))
    else:
        if not draft.stats:
            warnings.append(t("warn_character_no_stats", locale))
        if not draft.avatar:
            warnings.append(t("warn_no_avatar", locale))
        if not draft.backstory:
            warnings.append(t("warn_no_backstory", locale))
    return ValidationReport(errors=errors, warnings=warnings)


def summarize_draft(draft: EntityDraft, locale: str = "es", universe_name: str | None = None) -> str:
    """Markdown summary shown when the draft is offered for confirmation."""
    lines: list[str] = []

    def _line(label_key: str, value: Any) -> None:
        if value:
            lines.append(f"**{t(label_key, locale)}:** {value}")

    _line("label_name", draft.name)
    if isinstance(draft, UniverseDraft):
        _line("label_theme", draft.theme)
        _line("label_description", draft.description)
        _line("label_stats", ", ".join(s.name for s in draft.stat_definitions.values()))
        if draft.awakening_system:
            _line("label_ranks", " → ".join(draft.awakening_system.levels))
        _line("label_points", draft.initial_points)
        _line("label_rules", "; ".join(r.description for r in draft.progression_rules))
        _line("label_locations", ", ".join(loc.name for loc in draft.locations))
    else:
        _line("label_universe", universe_name or draft.universe_id)
        _line("label_class", draft.character_class)
        _line("label_backstory", draft.backstory)
        _line("label_stats", ", ".join(f"{k} {v}" for k, v in draft.stats.items()))
        _line("label_level", draft.progression.level)
    return "\n".join(lines)


def _missing_message(target: str, key: str, name: str, locale: str) -> str:
    if key == "name":
        return t(f"missing_name_{target}", locale)
    if key in ("theme", "universeId"):
        return t(f"missing_{key}", locale)
    return t("missing_field", locale, field=name)


def _field_default(target: str, key: str, rules: FieldRules | None, fallback: Any) -> Any:
    rules = rules or load_field_rules()
    for fd in rules.fields_for(target):
        if fd.key == key and fd.default is not None:
            return fd.default
    return fallback


def _as_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ""
