"""Tests for Handlebars prompt rendering: compilation, the take and last helpers,
context building, and the default system prompt."""

import pytest

from rpg_forge.prompts import DEFAULT_SYSTEM_PROMPT, PromptError, build_context, render_prompt


# ── render_prompt ────────────────────────────────────────────


def test_render_simple_variable():
    assert render_prompt("Hola {{name}}!", {"name": "Kael"}) == "Hola Kael!"


def test_render_take_helper():
    tpl = "{{#take items 2}}{{this}};{{/take}}"
    assert render_prompt(tpl, {"items": ["a", "b", "c"]}) == "a;b;"


def test_render_last_helper():
    tpl = "{{#last items 2}}{{this}};{{/last}}"
    assert render_prompt(tpl, {"items": ["a", "b", "c"]}) == "b;c;"


def test_render_last_more_than_length():
    assert render_prompt("{{#last items 5}}{{this}}{{/last}}", {"items": ["a"]}) == "a"


def test_render_missing_variable():
    assert render_prompt("Hola {{name}}!", {}) == "Hola !"


def test_render_invalid_template():
    with pytest.raises(PromptError):
        render_prompt("{{> missing_partial}}", {})


# ── build_context ────────────────────────────────────────────


def test_context_shape():
    ctx = build_context(
        "universe", "es", "Concepto", 0, 5,
        {"name": "Aether", "theme": None}, ["theme", "statNames"], "¿Qué temática?",
    )
    assert ctx["entity"] == "a universe"
    assert ctx["language"] == "Spanish"
    assert ctx["phase"] == {"name": "Concepto", "number": 1, "total": 5}
    assert ctx["collected"] == [{"key": "name", "value": "Aether"}]
    assert ctx["question"] == "¿Qué temática?"


def test_context_hides_image_data():
    ctx = build_context(
        "universe", "en", "Appearance", 3, 5,
        {"coverImage": "data:image/png;base64,AAAA",
         "locations": [{"name": "Torre", "image_url": "data:image/png;base64,AA"}],
         "statNames": ["Fuerza", "Magia"]},
        [],
    )
    values = {item["key"]: item["value"] for item in ctx["collected"]}
    assert values["coverImage"] == "[image]"
    assert values["locations"] == "Torre"
    assert values["statNames"] == "Fuerza, Magia"
    assert ctx["language"] == "English"


# ── default system prompt ────────────────────────────────────


def test_default_prompt_with_question():
    ctx = build_context(
        "character", "es", "Identidad", 1, 7, {"universeId": "reino"},
        ["name", "class", "backstory", "specialty"], "¿Cómo se llama tu personaje?",
    )
    text = render_prompt(DEFAULT_SYSTEM_PROMPT, ctx)
    assert "a character" in text
    assert "Identidad (2/7)" in text
    assert "- universeId: reino" in text
    assert "- name" in text and "- backstory" in text
    assert "- specialty" not in text
    assert "¿Cómo se llama tu personaje?" in text


def test_default_prompt_without_phase_or_question():
    ctx = build_context("action", "en", "", 0, 0, {}, [])
    text = render_prompt(DEFAULT_SYSTEM_PROMPT, ctx)
    assert "Current Phase" not in text
    assert "Already Known" not in text
    assert "offer to review" in text
