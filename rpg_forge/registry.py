"""In-memory registry of live creation sessions, keyed by session id."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from rpg_forge.config import get_config
from rpg_forge.llm import TextGenerator, llm_from_config
from rpg_forge.models import Mode
from rpg_forge.orchestrator import CreationOrchestrator
from rpg_forge.storage import EntityStore

logger = logging.getLogger(__name__)

LLMFactory = Callable[[dict[str, Any]], TextGenerator]


class SessionRegistry:
    """Each session gets its own orchestrator, configured from the current settings."""

    def __init__(
        self,
        data_dir: Path,
        store: EntityStore,
        llm_factory: LLMFactory = llm_from_config,
    ) -> None:
        self._data_dir = data_dir
        self._store = store
        self._llm_factory = llm_factory
        self._sessions: dict[str, CreationOrchestrator] = {}

    @property
    def store(self) -> EntityStore:
        return self._store

    def create(self, mode: Mode) -> CreationOrchestrator:
        config = get_config(self._data_dir)
        orchestrator = CreationOrchestrator(
            self._llm_factory(config),
            self._store,
            locale=config["locale"],
            threshold=int(config["auto_confirm_threshold"]),
            history_limit=int(config["history_limit"]),
        )
        snapshot = orchestrator.start_creation(mode)
        if snapshot.session_id is None:
            raise ValueError(f"Cannot start a session in mode {mode!r}")
        self._sessions[snapshot.session_id] = orchestrator
        logger.info("registered session %s (%d live)", snapshot.session_id, len(self._sessions))
        self._evict(max(1, int(config["max_sessions"])))
        return orchestrator

    def get(self, session_id: str) -> CreationOrchestrator | None:
        orchestrator = self._sessions.pop(session_id, None)
        if orchestrator is not None:
            # Most recently used sessions sit at the end.
            self._sessions[session_id] = orchestrator
        return orchestrator

    def remove(self, session_id: str) -> bool:
        orchestrator = self._sessions.pop(session_id, None)
        if orchestrator is None:
            return False
        orchestrator.cancel()
        return True

    def __len__(self) -> int:
        return len(self._sessions)

    def _evict(self, limit: int) -> None:
        """Drop sessions over `limit`: saved ones first, then the least recently used."""
        while len(self._sessions) > limit:
            saved = [sid for sid, o in self._sessions.items() if o.session.phase == "confirmed"]
            victim = saved[0] if saved else next(iter(self._sessions))
            logger.info("evicting session %s (%d live)", victim, len(self._sessions))
            self.remove(victim)
