"""Pydantic request models for REST endpoints."""
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field


class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    player_name: str = Field(min_length=1, max_length=20)


class JoinRoomRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    room_id: str = Field(min_length=1, max_length=12)
    player_name: str = Field(min_length=1, max_length=20)
