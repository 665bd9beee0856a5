"""App configuration: LLM connection, locale and the auto-confirm threshold.

Values come from three layers, later ones winning:

    _CONFIG_DEFAULTS  →  {data_dir}/config.json  →  environment (.env)
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Completeness (0-100) at which a draft is built without asking for more input.
AUTO_CONFIRM_THRESHOLD = 70

# Live sessions kept in memory; the least recently used go first.
MAX_SESSIONS = 100

DEFAULT_LOCALE = "es"
SUPPORTED_LOCALES = ("es", "en")

_CONFIG_DEFAULTS: dict[str, Any] = {
    "llm": {
        "provider_url": "",
        "api_key": "",
        "provider_format": "openai",
        "model": "",
        "timeout": 120.0,
    },
    "locale": DEFAULT_LOCALE,
    "auto_confirm_threshold": AUTO_CONFIRM_THRESHOLD,
    "history_limit": 10,
    "max_sessions": MAX_SESSIONS,
}

_ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "LLM_PROVIDER_URL": ("llm", "provider_url"),
    "LLM_API_KEY": ("llm", "api_key"),
    "LLM_FORMAT": ("llm", "provider_format"),
    "LLM_MODEL": ("llm", "model"),
    "FORGE_LOCALE": ("locale",),
    "FORGE_THRESHOLD": ("auto_confirm_threshold",),
    "FORGE_MAX_SESSIONS": ("max_sessions",),
}
_STORED_KEYS = ("locale", "auto_confirm_threshold", "history_limit", "max_sessions")


def load_env(env_file: Path | None = None) -> None:
    """Load a .env file (defaults to the repo root) without clobbering the environment."""
    load_dotenv(env_file or Path(__file__).parent.parent / ".env")


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def _apply_env(config: dict[str, Any]) -> None:
    for var, path in _ENV_OVERRIDES.items():
        value = os.getenv(var)
        if not value:
            continue
        if len(path) == 2:
            config[path[0]][path[1]] = value
        elif path[0] in ("auto_confirm_threshold", "max_sessions"):
            try:
                config[path[0]] = int(value)
            except ValueError:
                fallback = _CONFIG_DEFAULTS[path[0]]
                logger.warning("%s=%r is not a number, using %d", var, value, fallback)
                config[path[0]] = fallback
        else:
            config[path[0]] = value


def get_config(data_dir: Path) -> dict[str, Any]:
    """Read config, returning defaults merged with stored values and env overrides."""
    config: dict[str, Any] = json.loads(json.dumps(_CONFIG_DEFAULTS))
    path = _config_path(data_dir)
    if path.is_file():
        stored = json.loads(path.read_text())
        if isinstance(stored.get("llm"), dict):
            config["llm"].update(stored["llm"])
        for key in _STORED_KEYS:
            if key in stored:
                config[key] = stored[key]
    _apply_env(config)
    if config["locale"] not in SUPPORTED_LOCALES:
        config["locale"] = DEFAULT_LOCALE
    return config


def update_config(data_dir: Path, fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into the stored config and persist. Returns the full config."""
    path = _config_path(data_dir)
    stored: dict[str, Any] = json.loads(path.read_text()) if path.is_file() else {}
    if isinstance(fields.get("llm"), dict):
        stored.setdefault("llm", {}).update(fields["llm"])
    for key in _STORED_KEYS:
        if key in fields:
            stored[key] = fields[key]
    data_dir.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(stored, indent=2))
    return get_config(data_dir)
