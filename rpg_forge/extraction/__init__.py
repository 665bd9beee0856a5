"""Field extraction: rule tables plus the pure `extract()` engine."""

from .engine import (  # noqa: F401
    completeness_score,
    detect_target,
    extract,
    extract_field,
    field_question,
)
from .rules import (  # noqa: F401
    RANK_LADDER,
    FieldRules,
    load_field_rules,
    rank_levels,
)
