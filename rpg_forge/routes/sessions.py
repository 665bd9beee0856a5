"""Creation session endpoints: conversation, drafts, phases, images, actions."""

import base64
import binascii

from fastapi import APIRouter, HTTPException, Request

from rpg_forge.orchestrator import CreationOrchestrator

from .models import (
    AssignImageBody,
    MessageBody,
    SelectUniverseBody,
    StartSession,
    UploadImageBody,
)

router = APIRouter()


def _orchestrator(request: Request, session_id: str) -> CreationOrchestrator:
    orchestrator = request.app.state.registry.get(session_id)
    if orchestrator is None:
        raise HTTPException(404, "Session not found")
    return orchestrator


@router.post("/sessions")
async def start_session(request: Request, body: StartSession):
    """Start a creation session and return its first snapshot."""
    orchestrator = request.app.state.registry.create(body.mode)
    return orchestrator.snapshot()


@router.get("/sessions/{session_id}")
async def get_session(request: Request, session_id: str):
    """Get the current snapshot of a session."""
    return _orchestrator(request, session_id).snapshot()


@router.delete("/sessions/{session_id}")
async def delete_session(request: Request, session_id: str):
    """Abandon a session. Nothing it collected is kept."""
    if not request.app.state.registry.remove(session_id):
        raise HTTPException(404, "Session not found")
    return {"ok": True}


@router.post("/sessions/{session_id}/messages")
async def send_message(request: Request, session_id: str, body: MessageBody):
    """Send a user message; extraction, phase update and reply happen here."""
    return await _orchestrator(request, session_id).process_message(body.text)


@router.post("/sessions/{session_id}/universe")
async def select_universe(request: Request, session_id: str, body: SelectUniverseBody):
    """Pick the universe a character is created in."""
    return _orchestrator(request, session_id).select_universe(body.universe_id)


# ── Images ──────────────────────────────────────────────────


@router.post("/sessions/{session_id}/images")
async def upload_image(request: Request, session_id: str, body: UploadImageBody):
    """Upload an image; it stays pending until assigned to a slot."""
    orchestrator = _orchestrator(request, session_id)
    try:
        data = base64.b64decode(body.data_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(400, "Image data is not valid base64")
    return orchestrator.upload_image(data, body.mime_type)


@router.post("/sessions/{session_id}/images/assign")
async def assign_image(request: Request, session_id: str, body: AssignImageBody):
    """Assign the pending image to cover, location or avatar."""
    return _orchestrator(request, session_id).assign_pending_image(
        body.slot, body.name, body.description,
    )


@router.delete("/sessions/{session_id}/images")
async def discard_image(request: Request, session_id: str):
    """Drop the pending image."""
    return _orchestrator(request, session_id).discard_pending_image()


# ── Draft lifecycle ─────────────────────────────────────────


@router.post("/sessions/{session_id}/confirm")
async def confirm(request: Request, session_id: str):
    """Persist the reviewed draft."""
    return await _orchestrator(request, session_id).confirm()


@router.post("/sessions/{session_id}/adjust")
async def adjust(request: Request, session_id: str):
    """Leave review to change the draft through conversation."""
    return _orchestrator(request, session_id).request_adjustment()


@router.post("/sessions/{session_id}/regenerate")
async def regenerate(request: Request, session_id: str):
    """Discard the draft but keep the collected answers."""
    return _orchestrator(request, session_id).regenerate()


@router.post("/sessions/{session_id}/discard")
async def discard(request: Request, session_id: str):
    """Discard the draft and everything collected for it."""
    return _orchestrator(request, session_id).discard_draft()


# ── Phases and actions ──────────────────────────────────────


@router.post("/sessions/{session_id}/phases/next")
async def next_phase(request: Request, session_id: str):
    """Move to the next phase (the last one builds the draft)."""
    return _orchestrator(request, session_id).advance_phase()


@router.post("/sessions/{session_id}/phases/previous")
async def previous_phase(request: Request, session_id: str):
    """Move back one phase."""
    return _orchestrator(request, session_id).previous_phase()


@router.post("/sessions/{session_id}/actions/{action_id}")
async def perform_action(request: Request, session_id: str, action_id: str):
    """Trigger one of the currently visible actions."""
    return await _orchestrator(request, session_id).perform_action(action_id)


@router.post("/sessions/{session_id}/undo")
async def undo(request: Request, session_id: str):
    """Revert the last change to the collected data."""
    return _orchestrator(request, session_id).undo()


@router.post("/sessions/{session_id}/cancel")
async def cancel(request: Request, session_id: str):
    """Stop the generation in flight."""
    orchestrator = _orchestrator(request, session_id)
    orchestrator.cancel()
    return orchestrator.snapshot()
