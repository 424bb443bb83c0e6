"""GamePhase and FinishReason enums, immutable round records, bot context."""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from diamonds.game.player import Player


class GamePhase(Enum):
    WAITING = "waiting"
    COUNTDOWN = "countdown"
    PLAYING = "playing"
    FINISHED = "finished"


class FinishReason(Enum):
    LAST_STANDING = "last_standing"
    NO_HUMANS = "no_humans"
    SOLO_PLAYER_LEFT = "solo_player_left"


class Rule(Enum):
    TIMEOUT = "timeout"
    DUPLICATE = "duplicate"
    PERFECT_TARGET = "perfect_target"
    ZERO_HUNDRED = "zero_hundred"

    @property
    def description(self) -> str:
        return _RULE_DESCRIPTIONS[self]


_RULE_DESCRIPTIONS = {
    Rule.TIMEOUT: "No input within time limit → Lose 2 points (2nd timeout = elimination)",
    Rule.DUPLICATE: "Duplicate numbers → All choosing them lose 1 point",
    Rule.PERFECT_TARGET: "Exact correct number → Other players lose 2 points",
    Rule.ZERO_HUNDRED: "If one player chooses 0, another can win by choosing 100",
}

NO_WINNER = "No winner"
ALL_TIMED_OUT = "No winner - All players timed out"


@dataclass(frozen=True)
class PointLoss:
    reason: str
    points: int   # signed delta applied to the score


@dataclass(frozen=True)
class ChoiceRecord:
    player_id: str
    name: str
    choice: Optional[int]
    timed_out: bool
    point_losses: Tuple[PointLoss, ...] = ()

    @property
    def total_delta(self) -> int:
        return sum(loss.points for loss in self.point_losses)


@dataclass(frozen=True)
class RoundResult:
    """Immutable record of one resolved round."""
    round: int
    choices: Tuple[ChoiceRecord, ...]
    average: float
    target: float
    winner: str
    winner_id: Optional[str] = None
    timeout_players: Tuple[str, ...] = ()
    eliminated_by_timeout: Tuple[str, ...] = ()
    eliminated_this_round: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "round": self.round,
            "choices": [
                {
                    "player_id": c.player_id,
                    "name": c.name,
                    "choice": c.choice,
                    "timed_out": c.timed_out,
                    "point_losses": [
                        {"reason": loss.reason, "points": loss.points}
                        for loss in c.point_losses
                    ],
                }
                for c in self.choices
            ],
            "average": self.average,
            "target": self.target,
            "winner": self.winner,
            "timeout_players": list(self.timeout_players),
            "eliminated_by_timeout": list(self.eliminated_by_timeout),
            "eliminated_this_round": list(self.eliminated_this_round),
        }


@dataclass(frozen=True)
class BotContext:
    """What a bot may see when deciding."""
    active_rules: Tuple[Rule, ...]
    active_players: Tuple[Player, ...]
    round_history: Tuple[RoundResult, ...]
    eliminated_count: int
    current_round: int

    @property
    def remaining_players(self) -> int:
        return len(self.active_players)
