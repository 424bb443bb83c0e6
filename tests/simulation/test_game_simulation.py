"""
Game simulation tests — play whole games in-process and check invariants.

Human seats are driven by the same BotPlayer the bots use, so a game runs
from the first countdown to game_finished without any client.

Run:
    python -m pytest tests/simulation/ -v
"""
import asyncio
import random
import time

import pytest

from conftest import EventRecorder, fast_settings
from diamonds.ai.bot import BotPlayer
from diamonds.game.game_state import FinishReason, GamePhase, Rule
from diamonds.game.room import GameRoom

ELIMINATION_GATED = {Rule.DUPLICATE.description, Rule.PERFECT_TARGET.description}


def _make_room(humans: int, max_players: int = 5, round_time_limit: int = 400) -> GameRoom:
    settings = fast_settings(
        max_players=max_players,
        tick_seconds=0.001,
        next_round_delay=2,
        round_time_limit=round_time_limit,
    )
    room = GameRoom("SIM001", "h0", settings=settings)
    for i in range(humans):
        room.add_player(f"h{i}", f"Human {i}")
    return room


def _wire_autopilot(room: GameRoom, recorder: EventRecorder, skip_rounds=()) -> None:
    """Answer every new round for the human seats, like a client would."""
    pilot = BotPlayer()

    async def play(round_number):
        await asyncio.sleep(0.002)
        for p in list(room.players.values()):
            if p.is_bot or not p.is_eligible or round_number in skip_rounds:
                continue
            await room.make_choice(p.player_id, pilot.decide(p, room.bot_context()))

    async def capture(room_id, event_type, payload):
        await recorder(room_id, event_type, payload)
        if event_type == "new_round":
            asyncio.get_running_loop().create_task(play(payload["round"]))

    room.set_broadcast(capture)


async def _play_to_the_end(room: GameRoom, recorder: EventRecorder, timeout: float = 60.0) -> None:
    assert room.start_game()
    deadline = time.monotonic() + timeout
    while room.phase is not GamePhase.FINISHED:
        if time.monotonic() > deadline:
            room.close()
            raise AssertionError(f"game did not finish; round {room.current_round}")
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.01)
    room.close()


class TestHeadlessSimulation:
    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_game_reaches_an_end(self, seed):
        random.seed(seed)
        room = _make_room(humans=2)
        recorder = EventRecorder()
        _wire_autopilot(room, recorder)
        asyncio.run(_play_to_the_end(room, recorder))

        assert room.finish_reason in (FinishReason.LAST_STANDING, FinishReason.NO_HUMANS)
        finished = recorder.of("game_finished")
        assert len(finished) == 1
        assert len(finished[0]["final_scores"]) == 5

    def test_rounds_are_sequential_and_resolved_once(self):
        random.seed(11)
        room = _make_room(humans=2)
        recorder = EventRecorder()
        _wire_autopilot(room, recorder)
        asyncio.run(_play_to_the_end(room, recorder))

        numbers = [r.round for r in room.round_history]
        assert numbers == list(range(1, len(numbers) + 1))
        assert [p["round"] for p in recorder.of("round_result")] == numbers
        assert [p["round"] for p in recorder.of("new_round")] == numbers

    def test_scores_are_reconstructed_from_point_losses(self):
        random.seed(21)
        room = _make_room(humans=2)
        recorder = EventRecorder()
        _wire_autopilot(room, recorder)
        asyncio.run(_play_to_the_end(room, recorder))

        totals = {pid: 0 for pid in room.players}
        for result in room.round_history:
            for record in result.choices:
                totals[record.player_id] += record.total_delta
        assert totals == {pid: p.score for pid, p in room.players.items()}

    def test_elimination_bookkeeping(self):
        random.seed(31)
        room = _make_room(humans=2)
        recorder = EventRecorder()
        _wire_autopilot(room, recorder)
        asyncio.run(_play_to_the_end(room, recorder))

        eliminated = [p for p in room.players.values() if p.is_eliminated]
        assert room.eliminated_count == len(eliminated)
        timed_out = {n for r in room.round_history for n in r.eliminated_by_timeout}
        for p in eliminated:
            assert p.score <= room.settings.elimination_score or p.name in timed_out
        for p in room.players.values():
            if not p.is_eliminated:
                assert p.score > room.settings.elimination_score

    def test_rule_activation_is_monotonic(self):
        random.seed(41)
        room = _make_room(humans=2)
        recorder = EventRecorder()
        _wire_autopilot(room, recorder)
        asyncio.run(_play_to_the_end(room, recorder))

        previous = set()
        for payload in recorder.of("new_round"):
            gated = set(payload["active_rules"]) & ELIMINATION_GATED
            assert previous <= gated
            previous = gated

    def test_absent_human_times_out_twice_and_is_eliminated(self):
        random.seed(51)
        room = _make_room(humans=2, max_players=3, round_time_limit=5)
        recorder = EventRecorder()
        pilot_skips = (1, 2)

        async def _run():
            _wire_autopilot(room, recorder, skip_rounds=pilot_skips)
            assert room.start_game()
            while len(room.round_history) < 2 and room.phase is not GamePhase.FINISHED:
                await asyncio.sleep(0.005)
            room.close()

        asyncio.run(_run())
        first, second = room.round_history[:2]
        assert set(first.timeout_players) == {"Human 0", "Human 1"}
        assert set(second.eliminated_by_timeout) == {"Human 0", "Human 1"}
        assert room.phase is GamePhase.FINISHED
