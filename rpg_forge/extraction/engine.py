"""Field extraction engine.

`extract()` is a pure function: it mines one utterance for every field of a
target type, then scores completeness against what the session already knows.
Nothing here touches session state.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Mapping
from typing import Any

from rpg_forge.config import AUTO_CONFIRM_THRESHOLD
from rpg_forge.errors import ExtractionFailure
from rpg_forge.models import BulkExtraction, DetectedTarget, ExtractableField

from .rules import TRANSFORMS, VALIDATORS, FieldRules, compile_pattern, load_field_rules

logger = logging.getLogger(__name__)

_BASE_CONFIDENCE = 0.7
_KEYWORD_BONUS = 0.2


def extract(
    utterance: str,
    target: str,
    locale: str = "es",
    already_collected: Mapping[str, Any] | None = None,
    *,
    rules: FieldRules | None = None,
    threshold: int = AUTO_CONFIRM_THRESHOLD,
) -> BulkExtraction:
    """Extract every field of `target` from `utterance`.

    Completeness and the missing-field lists are computed over the union of
    `already_collected` and the values found in this call.
    """
    rules = rules or load_field_rules()
    defs = rules.fields_for(target)
    collected = already_collected or {}

    found: dict[str, Any] = {}
    scores: list[float] = []
    for fd in defs:
        try:
            value = extract_field(fd, utterance)
        except ExtractionFailure as e:
            logger.debug("field %s.%s rejected: %s", target, fd.key, e)
            continue
        if value is None:
            continue
        found[fd.key] = value
        bonus = _KEYWORD_BONUS if _count_keywords(utterance, fd.keywords.get(locale, [])) else 0.0
        scores.append(min(1.0, _BASE_CONFIDENCE + bonus))

    present = {k for k, v in collected.items() if v is not None} | set(found)
    completeness = completeness_score(defs, present)
    missing_required = [fd.key for fd in defs if fd.required and fd.key not in present]
    missing_optional = [fd.key for fd in defs if not fd.required and fd.key not in present]

    result = BulkExtraction(
        fields=found,
        completeness=completeness,
        extracted_fields=list(found),
        missing_required=missing_required,
        missing_optional=missing_optional,
        confidence=round(sum(scores) / len(scores), 2) if scores else 0.0,
        detected_target=detect_target(utterance, locale, rules=rules),
        follow_up_question=_follow_up(defs, missing_required, missing_optional,
                                      completeness, threshold, locale),
    )
    logger.debug(
        "extract target=%s found=%s completeness=%d",
        target, result.extracted_fields, completeness,
    )
    return result


def extract_field(fd: ExtractableField, utterance: str) -> Any:
    """Run one field's patterns in order; the first that matches decides.

    Returns None when no pattern matches. Raises ExtractionFailure when the
    matching pattern's value is rejected by the transform or validator.
    """
    for pattern in fd.patterns:
        m = compile_pattern(pattern).search(utterance)
        if not m:
            continue
        raw = next((g for g in m.groups() if g), m.group(0))
        try:
            value = TRANSFORMS[fd.transform](raw) if fd.transform else raw.strip()
        except (ValueError, TypeError) as e:
            raise ExtractionFailure(f"transform {fd.transform} failed on {raw!r}") from e
        if fd.validator and not VALIDATORS[fd.validator](value):
            raise ExtractionFailure(f"validator {fd.validator} rejected {value!r}")
        return value
    return None


def completeness_score(defs: Iterable[ExtractableField], present: Iterable[str]) -> int:
    """Weighted percentage (0-100, half-up) of fields with a known value."""
    defs = list(defs)
    present = set(present)
    total = sum(fd.weight for fd in defs)
    if total <= 0:
        return 0
    filled = sum(fd.weight for fd in defs if fd.key in present)
    return max(0, min(100, math.floor(100 * filled / total + 0.5)))


def detect_target(utterance: str, locale: str = "es", *, rules: FieldRules | None = None) -> DetectedTarget:
    """Guess whether the user talks about a universe or a character."""
    rules = rules or load_field_rules()
    counts = {
        target: _count_keywords(utterance, words.get(locale, []))
        for target, words in rules.targets.items()
    }
    universe = counts.get("universe", 0)
    character = counts.get("character", 0)
    if universe == character:
        return "unknown"
    return "universe" if universe > character else "character"


def field_question(fd: ExtractableField, locale: str) -> str:
    if locale in fd.questions:
        return fd.questions[locale]
    if locale == "en":
        return f"What is the {fd.name}?"
    return f"¿Cuál es {fd.name}?"


def _count_keywords(text: str, keywords: Iterable[str]) -> int:
    return sum(
        1 for kw in keywords
        if re.search(rf"(?<!\w){re.escape(kw)}(?!\w)", text, re.IGNORECASE)
    )


def _follow_up(
    defs: list[ExtractableField],
    missing_required: list[str],
    missing_optional: list[str],
    completeness: int,
    threshold: int,
    locale: str,
) -> str | None:
    by_key = {fd.key: fd for fd in defs}
    if missing_required:
        return field_question(by_key[missing_required[0]], locale)
    if completeness < threshold and missing_optional:
        heaviest = max((by_key[k] for k in missing_optional), key=lambda fd: fd.weight)
        return field_question(heaviest, locale)
    return None
