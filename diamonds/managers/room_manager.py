"""
In-memory room directory.

Maps room code → GameRoom and connection id → (room code, player id), and
reaps rooms that no human is playing in any more.
"""
from __future__ import annotations
import asyncio
import logging
import random
import string
import uuid
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from diamonds.core.config import Settings, get_settings
from diamonds.game.game_state import GamePhase
from diamonds.game.room import BroadcastCallback, GameRoom

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits


class RoomManager:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self._rooms: Dict[str, GameRoom] = {}
        # connection id → (room code, player id)
        self._connections: Dict[str, Tuple[str, str]] = {}
        self._broadcast_cb: Optional[BroadcastCallback] = None
        self._sweeper: Optional[asyncio.Task] = None

    def set_broadcast(self, cb: BroadcastCallback) -> None:
        """Broadcast callback handed to every room created from now on."""
        self._broadcast_cb = cb

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def _new_code(self) -> str:
        while True:
            code = "".join(random.choices(_CODE_ALPHABET, k=self.settings.room_code_length))
            if code not in self._rooms:
                return code

    def create_room(self, host_name: str) -> Tuple[GameRoom, str]:
        """Create a room with its host already seated. Returns (room, host player id)."""
        host_id = str(uuid.uuid4())
        room = GameRoom(self._new_code(), host_id, settings=self.settings)
        room.add_player(host_id, host_name)
        self.register_room(room)
        logger.info(f"Room {room.room_id} created by {host_name}")
        return room, host_id

    def register_room(self, room: GameRoom) -> None:
        if self._broadcast_cb is not None:
            room.set_broadcast(self._broadcast_cb)
        self._rooms[room.room_id] = room

    def get_room(self, room_id: str) -> Optional[GameRoom]:
        if not room_id:
            return None
        return self._rooms.get(room_id.upper())

    def remove_room(self, room_id: str) -> bool:
        """Cancel the room's timers and forget it."""
        room = self._rooms.pop(room_id.upper(), None)
        if room is None:
            return False
        room.close()
        for conn_id, (rid, _) in list(self._connections.items()):
            if rid == room.room_id:
                del self._connections[conn_id]
        logger.info(f"Room {room.room_id} deleted")
        return True

    def list_rooms(self) -> List[dict]:
        return [room.to_summary() for room in self._rooms.values()]

    def room_count(self) -> int:
        return len(self._rooms)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def bind_connection(self, connection_id: str, room_id: str, player_id: str) -> None:
        self._connections[connection_id] = (room_id.upper(), player_id)

    def unbind_connection(self, connection_id: str) -> Optional[Tuple[str, str]]:
        return self._connections.pop(connection_id, None)

    def player_for(self, connection_id: str) -> Optional[Tuple[str, str]]:
        return self._connections.get(connection_id)

    def is_player_bound(self, room_id: str, player_id: str) -> bool:
        return (room_id.upper(), player_id) in self._connections.values()

    def connection_count(self) -> int:
        return len(self._connections)

    # ------------------------------------------------------------------
    # Sweeping
    # ------------------------------------------------------------------

    def sweep(self) -> List[str]:
        """Delete every room without a live human. Returns the removed codes."""
        removed = [rid for rid, room in self._rooms.items() if room.human_count() == 0]
        for rid in removed:
            logger.info(f"Sweeping room {rid} - no human players")
            self.remove_room(rid)
        return removed

    def stats(self) -> dict:
        rooms = list(self._rooms.values())
        return {
            "total_rooms": self.room_count(),
            "active_games": sum(1 for r in rooms if r.phase is GamePhase.PLAYING),
            "total_players": sum(
                1 for r in rooms for p in r.players.values() if p.is_human_origin
            ),
            "connections": self.connection_count(),
        }

    async def run_sweeper(
        self,
        on_removed: Optional[Callable[[str], Awaitable[None]]] = None,
    ) -> None:
        while True:
            await asyncio.sleep(self.settings.sweep_interval)
            for rid in self.sweep():
                if on_removed is not None:
                    await on_removed(rid)
            stats = self.stats()
            logger.info(
                f"Server stats: {stats['total_rooms']} rooms, "
                f"{stats['active_games']} active games, {stats['connections']} connections"
            )

    def start_sweeper(self, on_removed: Optional[Callable[[str], Awaitable[None]]] = None) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self.run_sweeper(on_removed))

    async def stop_sweeper(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

    def clear(self) -> None:
        for rid in list(self._rooms):
            self.remove_room(rid)
        self._connections.clear()


# Global singleton
room_manager = RoomManager()
