"""Extraction rule tables: loading, transforms and validators.

Field definitions are data (presets/fields.json) so they can be swapped or
extended without touching the engine. Transforms and validators are referenced
from the table by name and looked up in the registries below.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Callable
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from rpg_forge.errors import ExtractionFailure
from rpg_forge.models import ExtractableField

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = Path(__file__).parent.parent / "presets" / "fields.json"

# Weakest to strongest.
RANK_LADDER = ["F", "E", "D", "C", "B", "A", "S", "SS", "SSS"]
SOLO_LEVELING_RANKS = ["E", "D", "C", "B", "A", "S"]

_LEVEL_WORDS = {
    "novato": 1, "novata": 1, "novice": 1,
    "experimentado": 10, "experimentada": 10, "experienced": 10,
    "veterano": 25, "veterana": 25, "veteran": 25,
}

_LIST_SPLIT = re.compile(r"\s*(?:,|;|&|/|\by\b|\be\b|\band\b)\s*", re.IGNORECASE)
_RANK_RANGE = re.compile(r"([A-Z]{1,3})\s*(?:-|\bA\b|\bHASTA\b|\bTO\b)\s*([A-Z]{1,3})")
_RANK_SPLIT = re.compile(r"\s*(?:,|-|/|>|→)\s*")
_RULE_SPLIT = re.compile(r"\s*(?:;|\n|\.\s+)\s*")


class FieldRules(BaseModel):
    """Parsed rule table: per-target keyword lists and field definitions."""

    targets: dict[str, dict[str, list[str]]] = Field(default_factory=dict)
    fields: dict[str, list[ExtractableField]] = Field(default_factory=dict)

    def fields_for(self, target: str) -> list[ExtractableField]:
        return self.fields.get(target, [])


@lru_cache(maxsize=8)
def _load(path: str) -> FieldRules:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    rules = FieldRules.model_validate(data)
    for target, defs in rules.fields.items():
        for fd in defs:
            for pattern in fd.patterns:
                compile_pattern(pattern)
            if fd.transform and fd.transform not in TRANSFORMS:
                raise ValueError(f"Unknown transform {fd.transform!r} on {target}.{fd.key}")
            if fd.validator and fd.validator not in VALIDATORS:
                raise ValueError(f"Unknown validator {fd.validator!r} on {target}.{fd.key}")
    logger.debug("Loaded extraction rules from %s", path)
    return rules


def load_field_rules(path: Path | None = None) -> FieldRules:
    """Load (and cache) a rule table. Defaults to the bundled presets."""
    return _load(str(path or DEFAULT_RULES_PATH))


@lru_cache(maxsize=256)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


# ---------------------------------------------------------------------------
# Transforms — raw matched text → typed value; raise ExtractionFailure to reject
# ---------------------------------------------------------------------------

def _strip(raw: str) -> str:
    return raw.strip().strip("\"'“”").strip()


def _lower(raw: str) -> str:
    return _strip(raw).lower()


def _to_int(raw: str) -> int:
    m = re.search(r"-?\d+", raw)
    if not m:
        raise ExtractionFailure(f"No number in {raw!r}")
    return int(m.group(0))


def _to_list(raw: str) -> list[str]:
    text = _strip(raw).rstrip(".!?")
    items = [p.strip() for p in _LIST_SPLIT.split(text)]
    return [p for p in items if p]


def _to_rules(raw: str) -> list[str]:
    """One rule per sentence or semicolon-separated clause."""
    text = _strip(raw).rstrip(".!?")
    return [p for p in (r.strip() for r in _RULE_SPLIT.split(text)) if len(p) >= 3]


def _to_bool(raw: str) -> bool:
    text = _lower(raw)
    if text in ("si", "sí", "yes", "true", "1"):
        return True
    if text in ("no", "false", "0"):
        return False
    raise ExtractionFailure(f"Not a yes/no answer: {raw!r}")


def _to_level(raw: str) -> int:
    text = _lower(raw)
    if text in _LEVEL_WORDS:
        return _LEVEL_WORDS[text]
    return _to_int(text)


def rank_levels(raw: str) -> list[str]:
    """Turn "E a S", "E-S", "E, D, C, B" or "Solo Leveling" into an ordered level list.

    Levels are returned weakest first, whatever order the user wrote them in.
    """
    text = " ".join(raw.upper().split())
    if "SOLO" in text and "LEVELING" in text:
        return list(SOLO_LEVELING_RANKS)

    m = _RANK_RANGE.fullmatch(text)
    if m:
        start, end = m.group(1), m.group(2)
        if start not in RANK_LADDER or end not in RANK_LADDER:
            raise ExtractionFailure(f"Unknown rank in {raw!r}")
        i, j = sorted((RANK_LADDER.index(start), RANK_LADDER.index(end)))
        return RANK_LADDER[i:j + 1]

    levels = [p for p in _RANK_SPLIT.split(text) if p]
    unknown = [lv for lv in levels if lv not in RANK_LADDER]
    if unknown:
        raise ExtractionFailure(f"Unknown ranks {unknown} in {raw!r}")
    return sorted(dict.fromkeys(levels), key=RANK_LADDER.index)


TRANSFORMS: dict[str, Callable[[str], Any]] = {
    "strip": _strip,
    "lower": _lower,
    "int": _to_int,
    "list": _to_list,
    "bool": _to_bool,
    "level": _to_level,
    "rank_levels": rank_levels,
    "rule_list": _to_rules,
}


# ---------------------------------------------------------------------------
# Validators — return False to reject a transformed value
# ---------------------------------------------------------------------------

def _non_empty(value: Any) -> bool:
    return bool(value) or value == 0


def _positive(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


def _short_text(value: Any) -> bool:
    return isinstance(value, str) and 0 < len(value) <= 60


def _long_text(value: Any) -> bool:
    return isinstance(value, str) and len(value) >= 20


def _min_two(value: Any) -> bool:
    return isinstance(value, list) and len(value) >= 2


VALIDATORS: dict[str, Callable[[Any], bool]] = {
    "non_empty": _non_empty,
    "positive": _positive,
    "short_text": _short_text,
    "long_text": _long_text,
    "min_two": _min_two,
}
