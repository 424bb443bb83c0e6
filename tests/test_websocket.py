"""Tests for websocket.py — event gateway over a real websocket session."""
import asyncio
import uuid
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from conftest import fast_settings, wait_until
from diamonds.api.websocket import dispatch, handle_disconnect
from diamonds.game.player import PlayerKind
from diamonds.game.room import GameRoom
from diamonds.main import app
from diamonds.managers.connection_manager import connection_manager
from diamonds.managers.room_manager import room_manager


def _fast_room(*names, max_players=None, **overrides) -> GameRoom:
    settings = fast_settings(max_players=max_players or len(names), **overrides)
    room = GameRoom(uuid.uuid4().hex[:6].upper(), "p0", settings=settings)
    for i, name in enumerate(names):
        room.add_player(f"p{i}", name)
    room_manager.register_room(room)
    return room


def _mock_ws():
    ws = AsyncMock()
    ws.send_json = AsyncMock()
    return ws


def _sent(ws):
    return [call.args[0] for call in ws.send_json.await_args_list]


def _receive_until(ws, event_type, limit=5000):
    seen = []
    for _ in range(limit):
        msg = ws.receive_json()
        seen.append(msg)
        if msg["type"] == event_type:
            return msg, seen
    raise AssertionError(f"no {event_type} in {[m['type'] for m in seen]}")


def _join(ws, room, player_id):
    ws.send_json({"type": "join_room", "payload": {"room_id": room.room_id, "player_id": player_id}})
    msg, _ = _receive_until(ws, "room_joined")
    return msg["payload"]


class TestJoin:
    def test_join_unknown_player(self):
        room = _fast_room("Alice")
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "join_room", "payload": {"room_id": room.room_id, "player_id": "x"}})
            assert ws.receive_json() == {"type": "error", "payload": {"message": "Invalid room or player"}}

    def test_join_sends_snapshot_and_notifies_others(self):
        room = _fast_room("Alice", "Bob")
        with TestClient(app) as client:
            with client.websocket_connect("/ws") as ws1, client.websocket_connect("/ws") as ws2:
                snap = _join(ws1, room, "p0")
                assert snap["is_host"] is True
                assert snap["game_state"] == "waiting"
                assert [p["name"] for p in snap["players"]] == ["Alice", "Bob"]

                assert _join(ws2, room, "p1")["is_host"] is False
                msg, _ = _receive_until(ws1, "player_joined")
                assert len(msg["payload"]["players"]) == 2


class TestHostActions:
    def test_non_host_cannot_start(self):
        room = _fast_room("Alice", "Bob")
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            _join(ws, room, "p1")
            ws.send_json({"type": "start_game", "payload": {"room_id": room.room_id, "player_id": "p1"}})
            msg, _ = _receive_until(ws, "error")
            assert msg["payload"]["message"] == "Not authorized to start game"

    def test_toggle_bot_assignment(self):
        room = _fast_room("Alice", "Bob")
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            _join(ws, room, "p0")
            ws.send_json({"type": "toggle_bot_assignment", "payload": {
                "room_id": room.room_id, "player_id": "p0", "enabled": False,
            }})
            msg, _ = _receive_until(ws, "bot_assignment_changed")
            assert msg["payload"] == {"enabled": False}
            assert room.bot_assignment_enabled is False

    def test_toggle_rejected_for_non_host(self):
        room = _fast_room("Alice", "Bob")
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            _join(ws, room, "p1")
            ws.send_json({"type": "toggle_bot_assignment", "payload": {
                "room_id": room.room_id, "player_id": "p1", "enabled": False,
            }})
            msg, _ = _receive_until(ws, "error")
            assert msg["payload"]["message"] == "Not authorized to change settings"
            assert room.bot_assignment_enabled is True


class TestPlay:
    def test_solo_game_round_trip(self):
        room = _fast_room("Alice")
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            _join(ws, room, "p0")
            ws.send_json({"type": "start_game", "payload": {"room_id": room.room_id, "player_id": "p0"}})
            _receive_until(ws, "game_starting")
            new_round, _ = _receive_until(ws, "new_round")
            assert new_round["payload"]["round"] == 1

            ws.send_json({"type": "make_choice", "payload": {
                "room_id": room.room_id, "player_id": "p0", "choice": 150,
            }})
            error, _ = _receive_until(ws, "error")
            assert error["payload"]["message"] == "Invalid choice. Must be an integer between 0 and 100"

            ws.send_json({"type": "make_choice", "payload": {
                "room_id": room.room_id, "player_id": "p0", "choice": 42,
            }})
            confirmed, seen = _receive_until(ws, "choice_confirmed")
            assert confirmed["payload"] == {"choice": 42}
            types = [m["type"] for m in seen]
            assert "round_result" in types
            finished = next(m for m in seen if m["type"] == "game_finished")
            assert finished["payload"]["winner"] == "Alice"
            assert finished["payload"]["reason"] == "last_standing"

            ws.send_json({"type": "make_choice", "payload": {
                "room_id": room.room_id, "player_id": "p0", "choice": 42,
            }})
            error, _ = _receive_until(ws, "error")
            assert error["payload"]["message"] == "Choice not accepted for this round"

    def test_start_twice_rejected(self):
        room = _fast_room("Alice", "Bob")
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            _join(ws, room, "p0")
            start = {"type": "start_game", "payload": {"room_id": room.room_id, "player_id": "p0"}}
            ws.send_json(start)
            _receive_until(ws, "game_starting")
            ws.send_json(start)
            error, _ = _receive_until(ws, "error")
            assert error["payload"]["message"] == "Cannot start game"


class TestDisconnect:
    def test_departure_hands_seat_to_proxy(self):
        async def _run():
            room = _fast_room("Alice", "Bob", max_players=3)
            ws1, ws2 = _mock_ws(), _mock_ws()
            c1, c2 = str(uuid.uuid4()), str(uuid.uuid4())
            ctx = {"room_id": room.room_id}
            await dispatch(ws1, c1, {"type": "join_room", "payload": {**ctx, "player_id": "p0"}})
            await dispatch(ws2, c2, {"type": "join_room", "payload": {**ctx, "player_id": "p1"}})
            await dispatch(ws1, c1, {"type": "start_game", "payload": {**ctx, "player_id": "p0"}})
            await wait_until(lambda: room.round_open)

            await handle_disconnect(c2)

            assert room.players["p1"].kind is PlayerKind.PROXY
            left = next(m for m in _sent(ws1) if m["type"] == "player_left")
            assert left["payload"]["left_player_id"] == "p1"
            assert left["payload"]["left_player_name"] == "Bob"
            assert room_manager.player_for(c2) is None
            room.close()
            connection_manager.drop_room(room.room_id)
        asyncio.run(_run())

    def test_last_player_leaving_waiting_room_deletes_it(self):
        async def _run():
            room = _fast_room("Alice")
            ws, conn = _mock_ws(), str(uuid.uuid4())
            await dispatch(ws, conn, {"type": "join_room", "payload": {
                "room_id": room.room_id, "player_id": "p0",
            }})
            await handle_disconnect(conn)
            assert room_manager.get_room(room.room_id) is None
            assert room.is_closed is True
        asyncio.run(_run())

    def test_room_removed_during_departure_gets_no_notice(self):
        async def _run():
            room = _fast_room("Alice", "Bob")
            ws1, ws2 = _mock_ws(), _mock_ws()
            c1, c2 = str(uuid.uuid4()), str(uuid.uuid4())
            ctx = {"room_id": room.room_id}
            await dispatch(ws1, c1, {"type": "join_room", "payload": {**ctx, "player_id": "p0"}})
            await dispatch(ws2, c2, {"type": "join_room", "payload": {**ctx, "player_id": "p1"}})

            async def swept_meanwhile(player_id):
                room_manager.remove_room(room.room_id)
                return False

            with patch.object(room, "remove_player", side_effect=swept_meanwhile):
                await handle_disconnect(c2)

            assert room.is_closed is True
            assert "player_left" not in [m["type"] for m in _sent(ws1)]
            connection_manager.drop_room(room.room_id)
        asyncio.run(_run())

    def test_unknown_connection_is_ignored(self):
        asyncio.run(handle_disconnect("never-bound"))


class TestDispatchErrors:
    def test_internal_error_reported_generically(self):
        async def _run():
            ws = _mock_ws()
            with patch.object(room_manager, "get_room", side_effect=RuntimeError("boom")):
                await dispatch(ws, "c1", {"type": "get_room_info", "payload": {"room_id": "X"}})
            assert _sent(ws) == [{"type": "error", "payload": {"message": "Internal server error"}}]
        asyncio.run(_run())


class TestMisc:
    def test_ping(self):
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong", "payload": {}}

    def test_unknown_event(self):
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "dance", "payload": {}})
            msg = ws.receive_json()
            assert msg["type"] == "error"
            assert msg["payload"]["message"] == "Unknown event type: dance"

    def test_malformed_event(self):
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            ws.send_json({"payload": {}})
            assert ws.receive_json()["payload"]["message"] == "Malformed event"

    def test_ready_for_unknown_room_is_silent(self):
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "player_ready", "payload": {"room_id": "NOPE00", "player_id": "x"}})
            ws.send_json({"type": "ping"})
            assert ws.receive_json()["type"] == "pong"

    def test_room_info(self):
        room = _fast_room("Alice")
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "get_room_info", "payload": {"room_id": room.room_id}})
            msg = ws.receive_json()
            assert msg["type"] == "room_info"
            assert msg["payload"]["room_id"] == room.room_id
            assert msg["payload"]["round_history"] == []

    def test_room_info_unknown(self):
        with TestClient(app) as client, client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "get_room_info", "payload": {"room_id": "NOPE00"}})
            assert ws.receive_json()["payload"]["message"] == "Room not found"
