"""WebSocket endpoint: translates client events into room calls."""
from __future__ import annotations
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Type, TypeVar

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from diamonds.core.exceptions import (
    GameError,
    InvalidChoice,
    InvalidEvent,
    InvalidStateTransition,
    NotAuthorized,
    PlayerNotFound,
    RoomNotFound,
)
from diamonds.game.game_state import GamePhase
from diamonds.game.room import GameRoom
from diamonds.managers.connection_manager import connection_manager
from diamonds.managers.room_manager import room_manager
from diamonds.models.events import (
    ClientEvent,
    MakeChoicePayload,
    RoomContext,
    ToggleBotAssignmentPayload,
)

logger = logging.getLogger(__name__)
ws_router = APIRouter()

M = TypeVar("M", bound=BaseModel)
Handler = Callable[[WebSocket, str, Dict[str, Any]], Awaitable[None]]


@ws_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    connection_id = str(uuid.uuid4())
    try:
        while True:
            data = await websocket.receive_json()
            await dispatch(websocket, connection_id, data)
    except WebSocketDisconnect:
        await handle_disconnect(connection_id)
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}")
        await handle_disconnect(connection_id)


async def dispatch(websocket: WebSocket, connection_id: str, data: Any) -> None:
    """Route one inbound frame. Failures go back to the sender only."""
    try:
        try:
            event = ClientEvent.model_validate(data)
        except ValidationError:
            raise InvalidEvent("Malformed event")
        handler = HANDLERS.get(event.type)
        if handler is None:
            raise InvalidEvent(f"Unknown event type: {event.type}")
        await handler(websocket, connection_id, event.payload)
    except GameError as e:
        logger.debug(f"Rejected event from {connection_id}: {e.message}")
        await connection_manager.send(websocket, "error", {"message": e.message})
    except Exception:
        logger.exception(f"Error handling event from {connection_id}")
        await connection_manager.send(websocket, "error", {"message": "Internal server error"})


def _parse(model: Type[M], payload: Dict[str, Any], error: GameError) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError:
        raise error


def _room_for(ctx: RoomContext) -> GameRoom:
    room = room_manager.get_room(ctx.room_id)
    if room is None:
        raise RoomNotFound(ctx.room_id)
    return room


def _host_room(ctx: RoomContext, action: str) -> GameRoom:
    room = room_manager.get_room(ctx.room_id)
    if room is None or room.host_id != ctx.player_id:
        raise NotAuthorized(f"Not authorized to {action}")
    return room


# ----------------------------------------------------------------------
# Handlers
# ----------------------------------------------------------------------

async def on_join_room(websocket: WebSocket, connection_id: str, payload: Dict[str, Any]) -> None:
    ctx = _parse(RoomContext, payload, PlayerNotFound(""))
    room = room_manager.get_room(ctx.room_id)
    if room is None or ctx.player_id not in room.players:
        raise PlayerNotFound(ctx.player_id)

    room.reconnect_player(ctx.player_id)
    connection_manager.subscribe(room.room_id, connection_id, websocket)
    room_manager.bind_connection(connection_id, room.room_id, ctx.player_id)

    await connection_manager.send(websocket, "room_joined", room.snapshot(ctx.player_id))
    if room.phase is GamePhase.PLAYING:
        await connection_manager.send(websocket, "choice_update", room.choice_progress())
    await connection_manager.broadcast(
        room.room_id, "player_joined", {"players": room.roster()}, exclude=[connection_id],
    )
    logger.info(f"Player {ctx.player_id} joined room {room.room_id}")


async def on_start_game(websocket: WebSocket, connection_id: str, payload: Dict[str, Any]) -> None:
    ctx = _parse(RoomContext, payload, NotAuthorized("Not authorized to start game"))
    room = _host_room(ctx, "start game")
    if room.phase is not GamePhase.WAITING or not room.start_game():
        raise InvalidStateTransition("Cannot start game")
    await connection_manager.broadcast(room.room_id, "game_starting", {"players": room.roster()})


async def on_toggle_bot_assignment(websocket: WebSocket, connection_id: str, payload: Dict[str, Any]) -> None:
    ctx = _parse(ToggleBotAssignmentPayload, payload, InvalidEvent("Invalid bot assignment toggle"))
    room = _host_room(ctx, "change settings")
    if room.phase is not GamePhase.WAITING or not room.set_bot_assignment_enabled(ctx.enabled):
        raise InvalidStateTransition("Cannot change bot assignment after game has started")
    await connection_manager.broadcast(
        room.room_id, "bot_assignment_changed", {"enabled": room.bot_assignment_enabled},
    )


async def on_make_choice(websocket: WebSocket, connection_id: str, payload: Dict[str, Any]) -> None:
    room = _room_for(_parse(RoomContext, payload, RoomNotFound("")))
    ctx = _parse(MakeChoicePayload, payload, InvalidChoice())
    if not await room.make_choice(ctx.player_id, ctx.choice):
        raise InvalidStateTransition("Choice not accepted for this round")
    await connection_manager.send(websocket, "choice_confirmed", {"choice": ctx.choice})


async def on_player_ready(websocket: WebSocket, connection_id: str, payload: Dict[str, Any]) -> None:
    try:
        ctx = RoomContext.model_validate(payload)
    except ValidationError:
        return
    room = room_manager.get_room(ctx.room_id)
    if room is not None:
        await room.player_ready(ctx.player_id)


async def on_get_room_info(websocket: WebSocket, connection_id: str, payload: Dict[str, Any]) -> None:
    room = room_manager.get_room(str(payload.get("room_id", "")))
    if room is None:
        raise RoomNotFound(str(payload.get("room_id", "")))
    info = room.to_summary()
    info["round_history"] = [r.to_dict() for r in room.round_history]
    await connection_manager.send(websocket, "room_info", info)


async def on_ping(websocket: WebSocket, connection_id: str, payload: Dict[str, Any]) -> None:
    await connection_manager.send(websocket, "pong", {})


HANDLERS: Dict[str, Handler] = {
    "join_room": on_join_room,
    "start_game": on_start_game,
    "toggle_bot_assignment": on_toggle_bot_assignment,
    "make_choice": on_make_choice,
    "player_ready": on_player_ready,
    "get_room_info": on_get_room_info,
    "ping": on_ping,
}


async def handle_disconnect(connection_id: str) -> None:
    """Run the departure flow for whoever was bound to this connection."""
    binding = room_manager.unbind_connection(connection_id)
    if binding is None:
        return
    room_id, player_id = binding
    connection_manager.unsubscribe(room_id, connection_id)

    room = room_manager.get_room(room_id)
    player = room.players.get(player_id) if room else None
    if room is None or player is None or player.is_bot:
        return
    # Another socket of the same player is still open
    if room_manager.is_player_bound(room_id, player_id):
        return

    try:
        should_delete = await room.remove_player(player_id)
    except Exception:
        logger.exception(f"Error removing {player_id} from room {room_id}")
        return

    if should_delete:
        room_manager.remove_room(room_id)
        connection_manager.drop_room(room_id)
        logger.info(f"Room {room_id} deleted (empty)")
        return

    # Swept or deleted by another handler while this departure ran
    if room.is_closed:
        return

    await connection_manager.broadcast(room_id, "player_left", {
        "left_player_id": player_id,
        "left_player_name": player.original_name or player.name,
        "players": room.roster(),
    })
    logger.info(f"Player {player_id} left room {room_id}")
