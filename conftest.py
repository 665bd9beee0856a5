"""Shared fixtures: a scripted text generator, an in-memory store, orchestrators."""

import asyncio
import re
from typing import Any

import pytest

from rpg_forge.drafts import awakening_thresholds, build_stat_definitions
from rpg_forge.errors import GenerationCancelled
from rpg_forge.models import AwakeningSystem, PersistResult, UniverseRecord
from rpg_forge.orchestrator import CreationOrchestrator
from rpg_forge.storage import JsonEntityStore

REINO = UniverseRecord(
    id="reino-de-sombras",
    name="Reino de Sombras",
    description="Mazmorras que despiertan cada luna nueva.",
    stat_definitions=build_stat_definitions(["Fuerza", "Agilidad", "Inteligencia", "Percepción"]),
    initial_points=60,
    awakening_system=AwakeningSystem(
        levels=["E", "D", "C", "B", "A", "S"], thresholds=awakening_thresholds(6),
    ),
)


class StubLLM:
    """Streams a fixed reply token by token and records every call.

    error:      raised after `fail_after` tokens (before any token by default).
    """

    def __init__(
        self,
        reply: str = "¡Me encanta! Cuéntame más.",
        error: Exception | None = None,
        fail_after: int = 0,
    ) -> None:
        self.reply = reply
        self.error = error
        self.fail_after = fail_after
        self.calls: list[list[dict[str, str]]] = []

    async def generate(self, messages, on_token=None, cancel=None) -> str:
        self.calls.append(messages)
        tokens = [tok for tok in re.split(r"(\s+)", self.reply) if tok]
        for i, token in enumerate(tokens):
            if self.error is not None and i >= self.fail_after:
                raise self.error
            if cancel is not None and cancel.is_set():
                raise GenerationCancelled("Generation cancelled")
            if on_token is not None:
                on_token(token)
            # Yield like a real stream so concurrent callers can interleave.
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.reply


class MemoryStore:
    """EntityStore that keeps everything in lists; failures are switchable."""

    def __init__(
        self,
        universes: list[UniverseRecord] | None = None,
        create_error: str | None = None,
        update_error: str | None = None,
    ) -> None:
        self.universes = list(universes or [])
        self.create_error = create_error
        self.update_error = update_error
        self.created: list[tuple[str, dict[str, Any]]] = []
        self.updated: list[tuple[str, str, dict[str, Any]]] = []

    async def create_entity(self, kind, fields) -> PersistResult:
        self.created.append((kind, fields))
        if self.create_error:
            return PersistResult(error=self.create_error)
        return PersistResult(id=f"{kind}-{len(self.created)}")

    async def update_entity(self, kind, entity_id, fields) -> PersistResult:
        self.updated.append((kind, entity_id, fields))
        if self.update_error:
            return PersistResult(error=self.update_error)
        return PersistResult(id=entity_id)

    def list_universes(self) -> list[UniverseRecord]:
        return list(self.universes)


@pytest.fixture
def llm() -> StubLLM:
    return StubLLM()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore(universes=[REINO])


@pytest.fixture
def orchestrator(llm: StubLLM, store: MemoryStore) -> CreationOrchestrator:
    return CreationOrchestrator(llm, store)


@pytest.fixture
def json_store(tmp_path) -> JsonEntityStore:
    return JsonEntityStore(tmp_path / "entities")
