"""Pydantic request models for API endpoints."""

from typing import Literal

from pydantic import BaseModel

from rpg_forge.models import ImageSlot


class StartSession(BaseModel):
    mode: Literal["universe", "character", "action"]


class MessageBody(BaseModel):
    text: str


class SelectUniverseBody(BaseModel):
    universe_id: str


class UploadImageBody(BaseModel):
    data_base64: str
    mime_type: str


class AssignImageBody(BaseModel):
    slot: ImageSlot
    name: str | None = None
    description: str | None = None
