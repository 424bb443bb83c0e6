"""Pydantic models for WebSocket events."""
from __future__ import annotations
from typing import Any, Dict
from pydantic import BaseModel, Field, StrictBool, StrictInt


class ClientEvent(BaseModel):
    """Client → Server envelope."""
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class RoomContext(BaseModel):
    """Room and player ids carried by every room-scoped event."""
    room_id: str = Field(min_length=1)
    player_id: str = Field(min_length=1)


class MakeChoicePayload(RoomContext):
    choice: StrictInt = Field(ge=0, le=100)


class ToggleBotAssignmentPayload(RoomContext):
    enabled: StrictBool


class ServerEvent(BaseModel):
    """Server → Client event envelope."""
    type: str
    payload: Dict[str, Any]
