"""REST API routes: room creation/joining, lobby info, health."""
from __future__ import annotations
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, HTTPException

from diamonds.game.game_state import GamePhase
from diamonds.managers.connection_manager import connection_manager
from diamonds.managers.room_manager import room_manager
from diamonds.models.requests import CreateRoomRequest, JoinRoomRequest

router = APIRouter()

_STARTED_AT = time.monotonic()
VERSION = "1.0.0"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.post("/api/create-room")
async def create_room(req: CreateRoomRequest) -> Dict[str, Any]:
    room, player_id = room_manager.create_room(req.player_name)
    return {"room_id": room.room_id, "player_id": player_id}


@router.post("/api/join-room")
async def join_room(req: JoinRoomRequest) -> Dict[str, Any]:
    room = room_manager.get_room(req.room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")

    if room.phase is not GamePhase.WAITING:
        raise HTTPException(status_code=400, detail="Game already in progress")

    player_id = str(uuid.uuid4())
    if not room.add_player(player_id, req.player_name):
        raise HTTPException(status_code=400, detail="Room is full")

    return {"room_id": room.room_id, "player_id": player_id}


@router.get("/api/room/{room_id}")
async def get_room(room_id: str) -> Dict[str, Any]:
    room = room_manager.get_room(room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return room.to_summary()


@router.get("/api/rooms")
async def list_rooms() -> Dict[str, Any]:
    return {"rooms": room_manager.list_rooms()}


@router.get("/api/stats")
async def stats() -> Dict[str, Any]:
    return {**room_manager.stats(), "timestamp": _now()}


@router.get("/health")
async def health() -> Dict[str, Any]:
    stats = room_manager.stats()
    return {
        "status": "ok",
        "server": "King of Diamonds Game Server",
        "timestamp": _now(),
        "uptime": time.monotonic() - _STARTED_AT,
        "version": VERSION,
        "rooms": stats["total_rooms"],
        "players": stats["total_players"],
        "active_sockets": connection_manager.total_connections(),
    }


@router.get("/api/health")
async def api_health() -> Dict[str, Any]:
    return {
        "status": "healthy",
        "timestamp": _now(),
        "uptime": time.monotonic() - _STARTED_AT,
        "version": VERSION,
    }
