"""Entity persistence.

The orchestrator only depends on the EntityStore protocol. JsonEntityStore
is the bundled implementation: flat JSON files under a base directory, one
file per entity, with slug ids derived from the entity name.

Directory layout:

    {base}/
      universes/
        {id}.json
      characters/
        {id}.json
"""

from __future__ import annotations

import json
import logging
import re
import unicodedata
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal, Protocol

from pydantic import ValidationError

from rpg_forge.models import PersistResult, UniverseRecord

logger = logging.getLogger(__name__)

EntityKind = Literal["universe", "character"]


def slugify(title: str) -> str:
    """Convert a name to a filesystem-safe slug.

    "Reino de Sombras" → "reino-de-sombras", "Percepción" → "percepcion"
    """
    text = unicodedata.normalize("NFKD", title)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"['\"]", "", text)
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = text.strip("-")
    return text or "untitled"


# ---------------------------------------------------------------------------
# Protocol — what the orchestrator needs from a store
# ---------------------------------------------------------------------------

class EntityStore(Protocol):
    async def create_entity(self, kind: EntityKind, fields: dict[str, Any]) -> PersistResult: ...

    async def update_entity(
        self, kind: EntityKind, entity_id: str, fields: dict[str, Any]
    ) -> PersistResult: ...

    def list_universes(self) -> list[UniverseRecord]: ...


# ---------------------------------------------------------------------------
# JsonEntityStore
# ---------------------------------------------------------------------------

class JsonEntityStore:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        for kind in ("universe", "character"):
            self._kind_dir(kind).mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _kind_dir(self, kind: EntityKind) -> Path:
        return self._base / f"{kind}s"

    def _entity_file(self, kind: EntityKind, entity_id: str) -> Path:
        return self._kind_dir(kind) / f"{entity_id}.json"

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text(encoding="utf-8"))

    def _write_json(self, path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    def _unique_id(self, kind: EntityKind, base: str) -> str:
        candidate = base
        n = 2
        while self._entity_file(kind, candidate).exists():
            candidate = f"{base}-{n}"
            n += 1
        return candidate

    # ------------------------------------------------------------------
    # EntityStore
    # ------------------------------------------------------------------

    async def create_entity(self, kind: EntityKind, fields: dict[str, Any]) -> PersistResult:
        name = str(fields.get("name") or "").strip()
        if not name:
            return PersistResult(error="the entity has no name")
        entity_id = self._unique_id(kind, slugify(name))
        now = datetime.now(timezone.utc).isoformat()
        record = {**fields, "id": entity_id, "created_at": now, "updated_at": now}
        try:
            self._write_json(self._entity_file(kind, entity_id), record)
        except OSError as e:
            logger.warning("create %s %r failed: %s", kind, name, e)
            return PersistResult(error=str(e))
        logger.info("created %s %s", kind, entity_id)
        return PersistResult(id=entity_id)

    async def update_entity(
        self, kind: EntityKind, entity_id: str, fields: dict[str, Any]
    ) -> PersistResult:
        path = self._entity_file(kind, entity_id)
        if not path.is_file():
            return PersistResult(error=f"{kind} {entity_id!r} not found")
        try:
            record = self._read_json(path)
            record.update(fields)
            record["id"] = entity_id
            record["updated_at"] = datetime.now(timezone.utc).isoformat()
            self._write_json(path, record)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("update %s %s failed: %s", kind, entity_id, e)
            return PersistResult(error=str(e))
        return PersistResult(id=entity_id)

    def get_entity(self, kind: EntityKind, entity_id: str) -> dict[str, Any] | None:
        path = self._entity_file(kind, entity_id)
        if not path.is_file():
            return None
        return self._read_json(path)

    def list_universes(self) -> list[UniverseRecord]:
        records: list[UniverseRecord] = []
        for path in sorted(self._kind_dir("universe").glob("*.json")):
            try:
                records.append(UniverseRecord.model_validate(self._read_json(path)))
            except (json.JSONDecodeError, ValidationError) as e:
                logger.warning("skipping unreadable universe %s: %s", path.name, e)
        return sorted(records, key=lambda u: u.name.lower())
