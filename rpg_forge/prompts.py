"""Handlebars prompt rendering for the clarifying-reply system prompt."""

from collections.abc import Callable, Mapping
from typing import Any

import pybars


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}

DEFAULT_SYSTEM_PROMPT = """\
You are a creative assistant helping the user design {{entity}} for a \
tabletop RPG. Answer in {{language}}. Keep replies short and friendly, and \
never invent values the user has not given.

{{#if phase.total}}
## Current Phase
{{phase.name}} ({{phase.number}}/{{phase.total}})

{{/if}}
{{#if collected}}
## Already Known
{{#each collected}}
- {{key}}: {{{value}}}
{{/each}}

{{/if}}
{{#if missing}}
## Still Missing
{{#take missing 3}}
- {{{this}}}
{{/take}}

{{/if}}
{{#if question}}
Acknowledge what the user just said, then end with this question in your own words:
{{{question}}}
{{else}}
Acknowledge what the user just said and offer to review the result.
{{/if}}
"""

_LANGUAGES = {"es": "Spanish", "en": "English"}
_ENTITIES = {"universe": "a universe", "character": "a character", "action": "an action"}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_take(this, options, items, count):
    """{{#take array N}}...{{/take}} iterates over the first N items."""
    result = []
    for item in list(items)[:int(count)]:
        result.extend(options["fn"](item))
    return result


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}} iterates over the final N items, oldest first."""
    items = list(items)
    result = []
    for item in items[max(len(items) - int(count), 0):]:
        result.extend(options["fn"](item))
    return result


_HELPERS: dict[str, Callable] = {
    "take": _helper_take,
    "last": _helper_last,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def build_context(
    target: str,
    locale: str,
    phase_name: str,
    phase_index: int,
    total_phases: int,
    collected: Mapping[str, Any],
    missing: list[str],
    question: str | None = None,
) -> dict[str, Any]:
    """Assemble template variables for DEFAULT_SYSTEM_PROMPT (or a custom one)."""
    return {
        "entity": _ENTITIES.get(target, target),
        "language": _LANGUAGES.get(locale, "Spanish"),
        "locale": locale,
        "phase": {"name": phase_name, "number": phase_index + 1, "total": total_phases},
        "collected": [
            {"key": key, "value": _format_value(value)}
            for key, value in collected.items() if value is not None
        ],
        "missing": list(missing),
        "question": question or "",
    }


def _format_value(value: Any) -> str:
    if isinstance(value, str) and value.startswith("data:"):
        return "[image]"
    if isinstance(value, list):
        return ", ".join(_format_value(v) if not isinstance(v, dict) else v.get("name", "?") for v in value)
    return str(value)
