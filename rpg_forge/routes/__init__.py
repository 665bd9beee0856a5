"""FastAPI API endpoints under /api.

Endpoint groups: settings (health, settings, universes) and sessions. Every
session action is nested under /api/sessions/{session_id}/ and answers with
the session snapshot.
"""

from fastapi import APIRouter

from .sessions import router as sessions_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(sessions_router)
