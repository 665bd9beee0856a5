"""Health check, settings, and universe listing endpoints."""

from fastapi import APIRouter, Request

from rpg_forge.config import get_config, update_config

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(request: Request):
    """Get app settings (LLM connection, locale, auto-confirm threshold)."""
    return get_config(request.app.state.data_dir)


@router.patch("/settings")
async def update_settings(request: Request, body: dict):
    """Update app settings (partial merge). Applies to sessions started afterwards."""
    return update_config(request.app.state.data_dir, body)


@router.get("/universes")
async def list_universes(request: Request):
    """List stored universes a character can belong to."""
    return request.app.state.registry.store.list_universes()
