import logging
import os
from pathlib import Path

from fastapi import FastAPI

from rpg_forge.config import load_env
from rpg_forge.llm import llm_from_config
from rpg_forge.registry import LLMFactory, SessionRegistry
from rpg_forge.routes import router
from rpg_forge.storage import JsonEntityStore

load_env()

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"

logger = logging.getLogger(__name__)


def create_app(data_dir: Path | None = None, llm_factory: LLMFactory | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    resolved.mkdir(parents=True, exist_ok=True)
    store = JsonEntityStore(resolved / "entities")

    app = FastAPI(title="RPG Forge")
    app.state.data_dir = resolved
    app.state.registry = SessionRegistry(resolved, store, llm_factory or llm_from_config)
    app.include_router(router, prefix="/api")
    logger.info("data dir %s", resolved)
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
