"""Create demo universes for development/testing."""

import asyncio
import shutil
from pathlib import Path

from rpg_forge.drafts import awakening_thresholds, build_progression_rules, build_stat_definitions
from rpg_forge.storage import JsonEntityStore

DEMO_UNIVERSES = [
    {
        "name": "Reino de Sombras",
        "theme": "fantasía oscura",
        "description": "Un reino donde las mazmorras despiertan cada luna nueva y "
        "los cazadores compiten por los portales más peligrosos.",
        "stats": ["Fuerza", "Agilidad", "Inteligencia", "Percepción"],
        "ranks": ["E", "D", "C", "B", "A", "S"],
        "initial_points": 60,
        "rules": [
            "Entrenar en la mazmorra sube la fuerza y la agilidad",
            "Estudiar los grimorios sube la inteligencia",
        ],
    },
    {
        "name": "Neo Kyoto 2099",
        "theme": "cyberpunk",
        "description": "A megacity of neon and rain, ruled by corporations that "
        "rent out memories by the hour.",
        "stats": ["Body", "Reflexes", "Tech", "Cool"],
        "ranks": [],
        "initial_points": 40,
        "rules": [],
    },
]


async def _seed(store: JsonEntityStore) -> None:
    for demo in DEMO_UNIVERSES:
        created = await store.create_entity("universe", {
            "name": demo["name"],
            "theme": demo["theme"],
            "description": demo["description"],
        })
        if not created.ok:
            raise RuntimeError(f"Cannot create demo universe {demo['name']}: {created.error}")
        stats = build_stat_definitions(demo["stats"])
        extras = {
            "stat_definitions": {key: stat.model_dump() for key, stat in stats.items()},
            "initial_points": demo["initial_points"],
            "awakening_system": None,
            "progression_rules": [
                rule.model_dump() for rule in build_progression_rules(demo["rules"], stats)
            ],
        }
        if demo["ranks"]:
            extras["awakening_system"] = {
                "enabled": True,
                "levels": demo["ranks"],
                "thresholds": awakening_thresholds(len(demo["ranks"])),
            }
        await store.update_entity("universe", created.id, extras)


def create_demo_data(data_dir: Path) -> None:
    """Wipe stored entities and create fresh demo universes."""
    entities = data_dir / "entities"
    if entities.exists():
        shutil.rmtree(entities)
    asyncio.run(_seed(JsonEntityStore(entities)))
