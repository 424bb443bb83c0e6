"""
GameRoom — the server-authoritative state machine for one play session.

State machine:
  WAITING → COUNTDOWN → PLAYING (round → intermission → round ...) → FINISHED

All mutation happens on the event loop. Every method changes state
synchronously before its first await, so a round that has been closed can
never be scored twice, whichever of "last submission" or "timer expiry"
gets there first.
"""
from __future__ import annotations
import asyncio
import logging
import random
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from diamonds.ai.bot import BotPlayer
from diamonds.core.config import Settings, get_settings
from diamonds.core.constants import BOT_NAMES
from diamonds.game.game_state import (
    NO_WINNER,
    BotContext,
    FinishReason,
    GamePhase,
    RoundResult,
    Rule,
)
from diamonds.game.player import Player, PlayerKind
from diamonds.game.rules import active_rules, resolve_round
from diamonds.game.timers import PhaseTimer, TimerKind, current_task

logger = logging.getLogger(__name__)

BroadcastCallback = Callable[[str, str, Dict[str, Any]], Awaitable[None]]

_FINISH_MESSAGES = {
    FinishReason.NO_HUMANS: "Game terminated - no human players remaining",
    FinishReason.SOLO_PLAYER_LEFT: "Game ended - player left",
}


class GameRoom:
    """
    Owns all mutable state of one room: roster, rounds, timers and rules.

    Broadcast callback receives (room_id, event_type, payload).
    """

    def __init__(
        self,
        room_id: str,
        host_id: str,
        settings: Optional[Settings] = None,
        bot: Optional[BotPlayer] = None,
    ) -> None:
        self.room_id = room_id
        self.host_id = host_id
        self.settings = settings or get_settings()
        self.phase = GamePhase.WAITING
        self.players: Dict[str, Player] = {}
        self.ready: Set[str] = set()
        self.current_round = 0
        self.eliminated_count = 0
        self.round_history: List[RoundResult] = []
        self.bot_assignment_enabled = True
        self.finish_reason: Optional[FinishReason] = None
        self.winner_name: Optional[str] = None
        self.created_at = time.time()

        self._bot = bot or BotPlayer()
        self._broadcast_cb: Optional[BroadcastCallback] = None
        self._timer = PhaseTimer()
        self._bot_tasks: Set[asyncio.Task] = set()
        self._round_open = False
        self._fast_start = False
        self._submission_seq = 0
        self._closed = False

    # ------------------------------------------------------------------
    # Roster views
    # ------------------------------------------------------------------

    def active_players(self) -> List[Player]:
        """Everyone still present (not departed), in join order."""
        return [p for p in self.players.values() if not p.has_left]

    def eligible_players(self) -> List[Player]:
        """Players taking part in rounds, proxies included."""
        return [p for p in self.players.values() if p.is_eligible]

    def human_count(self) -> int:
        return sum(1 for p in self.players.values() if p.kind is PlayerKind.HUMAN)

    def active_rules(self) -> List[Rule]:
        return active_rules(
            self.eliminated_count,
            len(self.eligible_players()),
            self.settings.duplicate_rule_threshold,
            self.settings.perfect_target_rule_threshold,
        )

    @property
    def round_open(self) -> bool:
        return self._round_open

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Player management
    # ------------------------------------------------------------------

    def add_player(self, player_id: str, name: str, is_bot: bool = False) -> bool:
        """Add a player. Returns False if the room is at capacity."""
        if len(self.active_players()) >= self.settings.max_players:
            return False
        if player_id in self.players:
            return False
        kind = PlayerKind.BOT if is_bot else PlayerKind.HUMAN
        self.players[player_id] = Player(player_id=player_id, name=name, kind=kind)
        return True

    async def remove_player(self, player_id: str) -> bool:
        """
        Remove or mark departed. Returns True when the room should be deleted
        (no non-departed players remain).
        """
        player = self.players.get(player_id)
        if player is None:
            return self._is_empty()

        if player.kind is PlayerKind.BOT or self.phase is GamePhase.WAITING:
            del self.players[player_id]
            self.ready.discard(player_id)
            if player_id == self.host_id:
                self._reassign_host()
            logger.info(f"Removed {player.name} from room {self.room_id}")
        elif player.kind is PlayerKind.HUMAN:
            await self._handle_departure(player)

        return self._is_empty()

    def _is_empty(self) -> bool:
        return not self.active_players()

    def _reassign_host(self) -> None:
        humans = [p for p in self.players.values() if p.kind is PlayerKind.HUMAN]
        if humans:
            self.host_id = humans[0].player_id
            logger.info(f"Host of room {self.room_id} passed to {humans[0].name}")

    async def _handle_departure(self, player: Player) -> None:
        self.ready.discard(player.player_id)

        if self.phase is GamePhase.FINISHED:
            self._mark_departed(player)
            return

        humans = [p for p in self.players.values() if p.is_human_origin]
        if len(humans) == 1:
            self._mark_departed(player)
            logger.info(f"Solo game in room {self.room_id} ended - {player.name} left")
            await self._finish(FinishReason.SOLO_PLAYER_LEFT)
            return

        if self.bot_assignment_enabled and not player.is_eliminated:
            self.assign_bot_to_left_player(player)
        else:
            self._mark_departed(player)
            logger.info(f"{player.name} left room {self.room_id} - no bot assigned")

        if not self._humans_remaining():
            logger.info(f"Terminating game in room {self.room_id} - no human players remaining")
            await self._finish(FinishReason.NO_HUMANS)
            return

        await self._maybe_complete_round()

    def _mark_departed(self, player: Player) -> None:
        player.kind = PlayerKind.DEPARTED
        player.reset_round()

    def _humans_remaining(self) -> bool:
        eligible = self.eligible_players()
        return not eligible or any(p.represents_human for p in eligible)

    def assign_bot_to_left_player(self, player: Player) -> None:
        """Hand a departed human's seat to a bot that keeps their score and name."""
        used = {p.bot_name for p in self.players.values() if p.is_bot}
        available = [n for n in BOT_NAMES if n not in used]
        if available:
            player.assigned_bot_name = random.choice(available)
        else:
            player.assigned_bot_name = f"Bot {random.randint(0, 999)}"
        if not player.original_name:
            player.original_name = player.name
        player.kind = PlayerKind.PROXY

        logger.info(
            f"Assigned bot {player.assigned_bot_name} to {player.original_name} "
            f"in room {self.room_id} (had chosen: {player.has_chosen})"
        )

        if self._round_open and not player.has_chosen:
            delay = min(
                self.settings.proxy_delay_cap,
                self._bot.response_delay(self.settings.bot_delay_min, self.settings.bot_delay_max),
            )
            self._schedule_bot(player, delay)

    def reconnect_player(self, player_id: str) -> bool:
        """Give a departed human their seat back. Returns True if reclaimed."""
        player = self.players.get(player_id)
        if player is None or not player.has_left or self.phase is GamePhase.FINISHED:
            return False
        if player.is_eliminated:
            return False
        player.kind = PlayerKind.HUMAN
        player.assigned_bot_name = None
        logger.info(f"{player.name} reclaimed their seat in room {self.room_id}")
        return True

    def fill_with_bots(self) -> int:
        """Top the roster up to capacity with uniquely named bots. Returns bots added."""
        if self.phase is not GamePhase.WAITING:
            logger.warning(f"Cannot add bots to room {self.room_id} - game state {self.phase.value}")
            return 0

        needed = max(0, self.settings.max_players - len(self.active_players()))
        used = {p.name for p in self.players.values()}
        names = [n for n in BOT_NAMES if n not in used]
        random.shuffle(names)

        for i in range(needed):
            name = names[i] if i < len(names) else f"Bot {i + 1}"
            self.add_player(str(uuid.uuid4()), name, is_bot=True)
            logger.info(f"Added bot {name} to room {self.room_id}")
        return needed

    def set_bot_assignment_enabled(self, enabled: bool) -> bool:
        if self.phase is not GamePhase.WAITING:
            return False
        self.bot_assignment_enabled = enabled
        logger.info(f"Bot assignment {'enabled' if enabled else 'disabled'} in room {self.room_id}")
        return True

    def set_broadcast(self, cb: BroadcastCallback) -> None:
        """Set broadcast callback: cb(room_id, event_type, payload)."""
        self._broadcast_cb = cb

    # ------------------------------------------------------------------
    # Game lifecycle
    # ------------------------------------------------------------------

    def start_game(self) -> bool:
        """Begin the countdown. Must be called from a running event loop."""
        if self.phase is not GamePhase.WAITING:
            logger.warning(f"Cannot start room {self.room_id} - state {self.phase.value}")
            return False
        if len(self.active_players()) < self.settings.min_players:
            return False

        self.fill_with_bots()
        self.phase = GamePhase.COUNTDOWN
        self._timer.start(TimerKind.COUNTDOWN, self.phase, self._run_countdown())
        logger.info(f"Game starting in room {self.room_id} with {len(self.players)} players")
        return True

    async def _run_countdown(self) -> None:
        for remaining in range(self.settings.countdown_seconds, -1, -1):
            await self._broadcast("countdown", {"count": remaining})
            await asyncio.sleep(self.settings.tick_seconds)
        self._timer.detach()
        self.phase = GamePhase.PLAYING
        await self._start_new_round()

    async def _start_new_round(self) -> None:
        if self.phase is not GamePhase.PLAYING or self._closed:
            return
        self._timer.cancel(TimerKind.NEXT_ROUND)
        self.current_round += 1
        round_number = self.current_round
        for p in self.players.values():
            p.reset_round()
        self.ready.clear()
        self._fast_start = False

        await self._broadcast("new_round", {
            "round": round_number,
            "active_rules": [r.description for r in self.active_rules()],
            "players": self.roster(),
        })
        if self.phase is not GamePhase.PLAYING or self.current_round != round_number:
            return

        self._round_open = True
        self._timer.start(TimerKind.ROUND, self.phase, self._run_round_timer(round_number))
        for p in self.eligible_players():
            if p.is_bot:
                delay = self.settings.bot_start_delay + self._bot.response_delay(
                    self.settings.bot_delay_min, self.settings.bot_delay_max
                )
                self._schedule_bot(p, delay)
        logger.info(f"Round {round_number} started in room {self.room_id}")
        await self._broadcast("choice_update", self.choice_progress())

    async def _run_round_timer(self, round_number: int) -> None:
        for remaining in range(self.settings.round_time_limit, -1, -1):
            await self._broadcast("round_timer", {"time_left": remaining})
            await asyncio.sleep(self.settings.tick_seconds)
        self._timer.detach()
        if self._round_open and self.current_round == round_number:
            logger.info(f"Round {round_number} timed out in room {self.room_id}")
            await self._resolve_round()

    # ------------------------------------------------------------------
    # Choices
    # ------------------------------------------------------------------

    async def make_choice(self, player_id: str, choice: int) -> bool:
        """
        Record a choice for the open round. Returns False (and changes
        nothing) for unknown, eliminated, departed or already-chosen players,
        out-of-range values, or when no round is open.
        """
        player = self.players.get(player_id)
        if player is None or not self._round_open:
            return False
        if not player.is_eligible or player.has_chosen:
            return False
        if isinstance(choice, bool) or not isinstance(choice, int) or not 0 <= choice <= 100:
            return False

        self._submission_seq += 1
        player.current_choice = choice
        player.has_chosen = True
        player.choice_seq = self._submission_seq

        # The last submission closes and scores the round before any await
        progress = self.choice_progress(player.display_label)
        settled = None
        if all(p.has_chosen for p in self.eligible_players()):
            self._close_round()
            settled = self._score_round()

        await self._broadcast("choice_update", progress)
        if settled is not None:
            await self._announce_round(*settled)
        return True

    async def _maybe_complete_round(self) -> None:
        if self._round_open and all(p.has_chosen for p in self.eligible_players()):
            await self._resolve_round()

    def _schedule_bot(self, player: Player, delay: float) -> None:
        task = asyncio.create_task(self._bot_turn(player.player_id, self.current_round, delay))
        self._bot_tasks.add(task)
        task.add_done_callback(self._bot_tasks.discard)

    async def _bot_turn(self, player_id: str, round_number: int, delay: float) -> None:
        await asyncio.sleep(delay)
        player = self.players.get(player_id)
        if player is None or not player.is_bot or not player.is_eligible or player.has_chosen:
            return
        if not self._round_open or self.current_round != round_number:
            return
        try:
            choice = self._bot.decide(player, self.bot_context())
        except Exception as e:
            logger.error(f"Bot decision error for {player.bot_name} in room {self.room_id}: {e}")
            choice = self._bot.fallback_choice()
        await self.make_choice(player_id, choice)

    def _cancel_bot_tasks(self) -> None:
        current = current_task()
        for task in list(self._bot_tasks):
            if task is not current:
                task.cancel()
        self._bot_tasks.clear()

    def bot_context(self) -> BotContext:
        return BotContext(
            active_rules=tuple(self.active_rules()),
            active_players=tuple(self.eligible_players()),
            round_history=tuple(self.round_history),
            eliminated_count=self.eliminated_count,
            current_round=self.current_round,
        )

    # ------------------------------------------------------------------
    # Round resolution
    # ------------------------------------------------------------------

    def _close_round(self) -> None:
        self._round_open = False
        self._timer.cancel(TimerKind.ROUND)
        self._cancel_bot_tasks()

    async def _resolve_round(self) -> None:
        if not self._round_open:
            return
        self._close_round()
        settled = self._score_round()
        if settled is not None:
            await self._announce_round(*settled)

    def _score_round(self) -> Optional[Tuple[dict, Optional[FinishReason]]]:
        """
        Score the just-closed round and record it, without yielding to the
        loop. Returns the round_result payload and the finish reason, or None
        when the game already ended.
        """
        if self.phase is GamePhase.FINISHED or self._closed:
            return None
        outcome = resolve_round(
            self.current_round,
            self.eligible_players(),
            list(self.players.values()),
            self.eliminated_count,
            self.settings,
        )
        self.eliminated_count += len(outcome.newly_eliminated)
        self.round_history.append(outcome.result)
        self.ready.clear()
        self._fast_start = False
        logger.info(
            f"Round {outcome.result.round} in room {self.room_id}: target "
            f"{outcome.result.target:.2f}, winner {outcome.result.winner}"
        )
        for p in outcome.newly_eliminated:
            logger.info(f"{p.name} eliminated in room {self.room_id} (score {p.score})")

        finish = self._end_condition()
        if finish is not None:
            self._mark_finished(finish)

        payload = outcome.result.to_dict()
        payload["players"] = self.roster(include_choice=True)
        return payload, finish

    async def _announce_round(self, payload: dict, finish: Optional[FinishReason]) -> None:
        await self._broadcast("round_result", payload)
        if finish is not None:
            await self._broadcast("game_finished", self.finish_payload())
        elif self.phase is GamePhase.PLAYING and not self._closed:
            self._begin_intermission()

    def _end_condition(self) -> Optional[FinishReason]:
        eligible = self.eligible_players()
        if eligible and not any(p.represents_human for p in eligible):
            return FinishReason.NO_HUMANS
        if len(eligible) <= 1:
            return FinishReason.LAST_STANDING
        return None

    # ------------------------------------------------------------------
    # Intermission & readiness
    # ------------------------------------------------------------------

    def _all_ready(self) -> bool:
        return all(p.player_id in self.ready for p in self.eligible_players())

    def _begin_intermission(self) -> None:
        # Readiness sent while round_result was going out still counts
        if self.ready and self._all_ready():
            self._fast_start = True
            self._timer.start(
                TimerKind.NEXT_ROUND, self.phase,
                self._start_after(self.settings.ready_smoothing_delay),
            )
            return
        self._timer.start(TimerKind.NEXT_ROUND, self.phase, self._run_next_round_countdown())

    async def _run_next_round_countdown(self) -> None:
        for remaining in range(self.settings.next_round_delay, 0, -1):
            await self._broadcast("next_round_countdown", {"count": remaining})
            await asyncio.sleep(self.settings.tick_seconds)
        await self._broadcast("next_round_countdown", {"count": 0})
        self._timer.detach()
        await self._start_new_round()

    async def _start_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._timer.detach()
        await self._start_new_round()

    async def player_ready(self, player_id: str) -> bool:
        """Mark a player ready; starts the next round early once everyone is."""
        if player_id not in self.players or self.phase is not GamePhase.PLAYING:
            return False

        self.ready.add(player_id)
        for p in self.players.values():
            if p.is_bot and not p.is_eliminated:
                self.ready.add(p.player_id)

        eligible = self.eligible_players()
        ready_count = sum(1 for p in eligible if p.player_id in self.ready)
        all_ready = ready_count == len(eligible)

        collapse = (all_ready and not self._fast_start
                    and self._timer.kind is TimerKind.NEXT_ROUND)
        if collapse:
            self._fast_start = True
            self._timer.cancel(TimerKind.NEXT_ROUND)
            self._timer.start(
                TimerKind.NEXT_ROUND, self.phase,
                self._start_after(self.settings.ready_smoothing_delay),
            )

        await self._broadcast("ready_update", {
            "ready_count": ready_count,
            "total_active": len(eligible),
            "all_ready": all_ready,
        })
        if collapse:
            await self._broadcast("next_round_countdown", {"count": 0})
        return True

    # ------------------------------------------------------------------
    # Finish & teardown
    # ------------------------------------------------------------------

    def _mark_finished(self, reason: FinishReason) -> None:
        if self.phase is GamePhase.FINISHED or self._closed:
            return
        self.phase = GamePhase.FINISHED
        self.finish_reason = reason
        self._round_open = False
        self._timer.cancel()
        self._cancel_bot_tasks()

        if reason is FinishReason.LAST_STANDING:
            remaining = self.eligible_players()
            winner = remaining[0] if remaining else None
            self.winner_name = (winner.original_name or winner.name) if winner else NO_WINNER
        else:
            self.winner_name = _FINISH_MESSAGES[reason]
        logger.info(f"Game finished in room {self.room_id}: {reason.value} ({self.winner_name})")

    async def _finish(self, reason: FinishReason) -> None:
        if self.phase is GamePhase.FINISHED:
            return
        self._mark_finished(reason)
        await self._broadcast("game_finished", self.finish_payload())

    def close(self) -> None:
        """Cancel every pending timer and bot task. The room stays readable."""
        self._closed = True
        self._round_open = False
        self._timer.cancel()
        self._cancel_bot_tasks()

    # ------------------------------------------------------------------
    # Payloads
    # ------------------------------------------------------------------

    async def _broadcast(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self._broadcast_cb and not self._closed:
            await self._broadcast_cb(self.room_id, event_type, payload)

    def roster(self, include_choice: bool = False) -> List[dict]:
        players = []
        for p in self.players.values():
            pd = p.to_dict()
            if include_choice:
                pd["current_choice"] = p.current_choice
            players.append(pd)
        return players

    def choice_progress(self, last_player_name: Optional[str] = None) -> dict:
        eligible = self.eligible_players()
        payload = {
            "chosen_count": sum(1 for p in eligible if p.has_chosen),
            "total_active_players": len(eligible),
        }
        if last_player_name:
            payload["last_player_name"] = last_player_name
            payload["timestamp"] = time.time()
        return payload

    def finish_payload(self) -> dict:
        return {
            "winner": self.winner_name,
            "reason": self.finish_reason.value if self.finish_reason else None,
            "final_scores": self.roster(),
        }

    def snapshot(self, player_id: str) -> dict:
        """Full room state for a (re)joining client."""
        return {
            "room_id": self.room_id,
            "players": self.roster(),
            "game_state": self.phase.value,
            "current_round": self.current_round,
            "active_rules": [r.description for r in self.active_rules()],
            "round_history": [r.to_dict() for r in self.round_history],
            "bot_assignment_enabled": self.bot_assignment_enabled,
            "is_host": player_id == self.host_id,
        }

    def to_summary(self) -> dict:
        return {
            "room_id": self.room_id,
            "game_state": self.phase.value,
            "current_round": self.current_round,
            "player_count": len(self.players),
            "max_players": self.settings.max_players,
            "players": self.roster(),
            "active_rules": [r.description for r in self.active_rules()],
        }
