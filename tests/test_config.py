"""Tests for rpg_forge.config — defaults, stored values and env overrides."""

import json

import pytest

from rpg_forge.config import AUTO_CONFIRM_THRESHOLD, MAX_SESSIONS, get_config, update_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("LLM_PROVIDER_URL", "LLM_API_KEY", "LLM_FORMAT", "LLM_MODEL",
                "FORGE_LOCALE", "FORGE_THRESHOLD", "FORGE_MAX_SESSIONS"):
        monkeypatch.delenv(var, raising=False)


def test_get_config_empty(tmp_path):
    """Returns defaults when no config file exists."""
    config = get_config(tmp_path)
    assert config["locale"] == "es"
    assert config["auto_confirm_threshold"] == AUTO_CONFIRM_THRESHOLD
    assert config["llm"]["provider_format"] == "openai"
    assert config["llm"]["provider_url"] == ""


def test_update_config_persists(tmp_path):
    result = update_config(tmp_path, {"locale": "en", "llm": {"provider_url": "http://localhost:5001"}})
    assert result["locale"] == "en"
    assert result["llm"]["provider_url"] == "http://localhost:5001"

    stored = json.loads((tmp_path / "config.json").read_text())
    assert stored == {"locale": "en", "llm": {"provider_url": "http://localhost:5001"}}


def test_update_config_partial_llm(tmp_path):
    """Partial LLM update preserves other keys."""
    update_config(tmp_path, {"llm": {"provider_url": "http://a"}})
    update_config(tmp_path, {"llm": {"model": "qwen"}})
    config = get_config(tmp_path)
    assert config["llm"]["provider_url"] == "http://a"
    assert config["llm"]["model"] == "qwen"
    assert config["llm"]["timeout"] == 120.0


def test_unknown_keys_ignored(tmp_path):
    update_config(tmp_path, {"colour": "red"})
    assert "colour" not in get_config(tmp_path)


def test_env_overrides_stored(tmp_path, monkeypatch):
    update_config(tmp_path, {"llm": {"provider_url": "http://stored"}, "auto_confirm_threshold": 60})
    monkeypatch.setenv("LLM_PROVIDER_URL", "http://env")
    monkeypatch.setenv("FORGE_THRESHOLD", "80")
    config = get_config(tmp_path)
    assert config["llm"]["provider_url"] == "http://env"
    assert config["auto_confirm_threshold"] == 80


def test_unsupported_locale_falls_back(tmp_path, monkeypatch):
    monkeypatch.setenv("FORGE_LOCALE", "fr")
    assert get_config(tmp_path)["locale"] == "es"


def test_non_numeric_threshold_falls_back(tmp_path, monkeypatch, caplog):
    monkeypatch.setenv("FORGE_THRESHOLD", "alto")
    with caplog.at_level("WARNING", logger="rpg_forge.config"):
        config = get_config(tmp_path)
    assert config["auto_confirm_threshold"] == AUTO_CONFIRM_THRESHOLD
    assert "FORGE_THRESHOLD" in caplog.text


def test_max_sessions_stored_and_overridden(tmp_path, monkeypatch):
    assert get_config(tmp_path)["max_sessions"] == MAX_SESSIONS
    update_config(tmp_path, {"max_sessions": 5})
    assert get_config(tmp_path)["max_sessions"] == 5
    monkeypatch.setenv("FORGE_MAX_SESSIONS", "7")
    assert get_config(tmp_path)["max_sessions"] == 7
