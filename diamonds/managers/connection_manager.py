"""
WebSocket connection registry.

Maintains a mapping: room_id → connection_id → WebSocket.
Every subscriber of a room receives the same broadcast payload.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Dict, Iterable, Optional

from fastapi import WebSocket

from diamonds.models.events import ServerEvent

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self) -> None:
        # room_id → { connection_id → WebSocket }
        self._rooms: Dict[str, Dict[str, WebSocket]] = {}

    def subscribe(self, room_id: str, connection_id: str, websocket: WebSocket) -> None:
        self._rooms.setdefault(room_id, {})[connection_id] = websocket
        logger.info(f"Connection {connection_id} subscribed to room {room_id}")

    def unsubscribe(self, room_id: str, connection_id: str) -> None:
        if room_id in self._rooms:
            self._rooms[room_id].pop(connection_id, None)
            if not self._rooms[room_id]:
                del self._rooms[room_id]

    def drop_room(self, room_id: str) -> None:
        self._rooms.pop(room_id, None)

    async def send(self, websocket: WebSocket, event_type: str, payload: dict) -> None:
        """Send one event to a single socket, ignoring a closed peer."""
        try:
            await websocket.send_json(ServerEvent(type=event_type, payload=payload).model_dump())
        except Exception as e:
            logger.warning(f"Failed to send {event_type}: {e}")

    async def broadcast(
        self,
        room_id: str,
        event_type: str,
        payload: dict,
        exclude: Optional[Iterable[str]] = None,
    ) -> None:
        """Send payload to every subscriber of room_id except the excluded connection ids."""
        skip = set(exclude or ())
        tasks = [
            self._safe_send(ws, room_id, conn_id, event_type, payload)
            for conn_id, ws in list(self._rooms.get(room_id, {}).items())
            if conn_id not in skip
        ]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _safe_send(
        self,
        ws: WebSocket,
        room_id: str,
        connection_id: str,
        event_type: str,
        payload: dict,
    ) -> None:
        try:
            await ws.send_json(ServerEvent(type=event_type, payload=payload).model_dump())
        except Exception as e:
            logger.warning(f"WS send failed {connection_id}: {e}")
            self.unsubscribe(room_id, connection_id)

    def total_connections(self) -> int:
        return sum(len(conns) for conns in self._rooms.values())


# Global singleton
connection_manager = ConnectionManager()
